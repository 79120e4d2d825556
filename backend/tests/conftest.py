"""
QuickNotes Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied at import time, before any `app`
       module reads settings. SQLite (aiosqlite) stands in for PostgreSQL and
       a temporary directory stands in for the blob store root.

Fixture Hierarchy:
    Function-scoped:
    ├── identity / other_identity: signed-in users for workflow tests
    ├── note_gateway / blob_gateway: AsyncMock collaborators (spec'd on the ABCs)
    ├── workflow: NotesWorkflow wired to the mock collaborators
    ├── temp_storage: temporary blob store root
    ├── local_blobs: LocalBlobGateway on temp_storage
    ├── db_tables: fresh tables on the SQLite test database
    └── test_client: HTTPX AsyncClient against the FastAPI app
"""

import os
import tempfile

# Must run before any app import: settings are read once at import time
_TEST_DIR = tempfile.mkdtemp(prefix="quicknotes_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["SIGNING_SECRET"] = "test-signing-secret-0123456789abcdef"
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.schemas.auth import Identity  # noqa: E402
from app.services.gateway_base import BlobGateway, NoteGateway  # noqa: E402

TEST_SIGNING_SECRET = os.environ["SIGNING_SECRET"]

# 8-byte PNG signature followed by a few bytes of payload
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 16


# ══════════════════════════════════════════════════════════════════════════
# Workflow fixtures (no database, no filesystem)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def identity():
    return Identity(user_id=str(uuid4()), username="alice")


@pytest.fixture
def other_identity():
    return Identity(user_id=str(uuid4()), username="bob")


@pytest.fixture
def note_gateway():
    """
    Mock record store. Every method is an AsyncMock.

    Usage:
        note_gateway.list.return_value = [NoteRecord(...)]
        note_gateway.create.side_effect = DataStoreError()
    """
    gateway = AsyncMock(spec=NoteGateway)
    gateway.list.return_value = []
    return gateway


@pytest.fixture
def blob_gateway():
    """Mock blob store. Signed URLs echo the path."""
    gateway = AsyncMock(spec=BlobGateway)
    gateway.upload.side_effect = lambda path, data, content_type: path
    gateway.get_signed_url.side_effect = lambda path: f"https://blobs.test/{path}?token=t"
    return gateway


@pytest.fixture
def workflow(identity, note_gateway, blob_gateway):
    from app.services.notes_workflow import NotesWorkflow

    return NotesWorkflow(identity, note_gateway, blob_gateway, max_file_size=1024)


@pytest.fixture
def sample_image_bytes():
    return PNG_BYTES


# ══════════════════════════════════════════════════════════════════════════
# Storage & database fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """A fresh blob store root for each test."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def local_blobs(temp_storage):
    from app.services.blob_store import LocalBlobGateway

    return LocalBlobGateway(
        storage_root=temp_storage,
        signing_secret=TEST_SIGNING_SECRET,
        public_base_url="",
        validate_existence=True,
    )


@pytest_asyncio.fixture
async def db_tables():
    """
    Create all tables before the test and drop them after.

    The engine is disposed afterwards so no pooled connection outlives the
    test's event loop.
    """
    from app.database import Base, create_all_tables, engine

    await create_all_tables()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_tables, local_blobs):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport.

    The app gets fresh collaborators per test (blob store on temp_storage,
    empty workflow registry); the lifespan does not run.
    """
    from app.database import async_session_factory
    from app.dependencies import Services
    from app.main import app
    from app.services.auth_service import AuthService
    from app.services.note_store import SqlNoteGateway
    from app.services.notes_workflow import NotesWorkflow, WorkflowRegistry

    notes = SqlNoteGateway(async_session_factory)
    original = app.state.services
    app.state.services = Services(
        notes=notes,
        blobs=local_blobs,
        auth=AuthService(async_session_factory),
        workflows=WorkflowRegistry(lambda user: NotesWorkflow(user, notes, local_blobs)),
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.state.services = original
