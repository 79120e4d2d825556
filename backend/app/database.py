"""
QuickNotes Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory and declarative base.
How:   One engine per process. Each store operation opens a short-lived
       session from `async_session_factory` and commits it itself.
Who:   SqlNoteGateway, AuthService, Alembic and the test fixtures.
When:  Engine is created at module import; sessions are created per operation.

Connection Pooling:
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    SQLite URLs skip the pool options; aiosqlite picks its own pool class.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


def _engine_options() -> dict:
    options = {
        # Echo SQL queries only in DEBUG mode
        "echo": settings.log_level == "DEBUG",
    }
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options())

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: ORM rows stay readable after commit, which the
# stores rely on when converting rows into NoteRecord values.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, which Alembic and `create_all_tables`
    use for schema management.
    """
    pass


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def create_all_tables() -> None:
    """
    What:  Creates every table registered on Base.metadata that does not exist.
    When:  App startup when DB_AUTO_CREATE is true, and test fixtures.
    """
    # Model modules register their tables on import
    from app.models import note, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
