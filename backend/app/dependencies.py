"""
QuickNotes Backend — Service Wiring & Request Dependencies
============================================================

What:  Builds the collaborators once per app and exposes them to routes through
       FastAPI's dependency injection.
How:   `build_services()` constructs the record store, blob store, session
       provider and workflow registry; create_app() keeps the result on
       `app.state.services`. Routes ask for what they need via Depends().
Who:   create_app() at startup; every route handler per request.

Session token lookup order:
    1. Authorization: Bearer <token>
    2. The session cookie (settings.session_cookie_name)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, UploadFile

from app.config import settings
from app.database import async_session_factory
from app.exceptions import AuthenticationError, QuickNotesError
from app.schemas.auth import Identity
from app.schemas.note import AttachmentUpload
from app.services.auth_service import AuthService
from app.services.blob_store import LocalBlobGateway
from app.services.gateway_base import NoteGateway
from app.services.note_store import SqlNoteGateway
from app.services.notes_workflow import NotesWorkflow, WorkflowRegistry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """The app-wide collaborators. One instance per FastAPI app."""

    notes: NoteGateway
    blobs: LocalBlobGateway
    auth: AuthService
    workflows: WorkflowRegistry


def build_services() -> Services:
    notes = SqlNoteGateway(async_session_factory)
    blobs = LocalBlobGateway()
    auth = AuthService(async_session_factory)
    workflows = WorkflowRegistry(lambda user: NotesWorkflow(user, notes, blobs))
    return Services(notes=notes, blobs=blobs, auth=auth, workflows=workflows)


def get_services(request: Request) -> Services:
    return request.app.state.services


def session_token(request: Request) -> Optional[str]:
    """Extract the session token from the Authorization header or cookie."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.session_cookie_name) or None


async def current_user(
    request: Request,
    services: Services = Depends(get_services),
) -> Optional[Identity]:
    """The signed-in identity, or None. A token that no longer resolves loses its workflow."""
    token = session_token(request)
    user = await services.auth.current_user(token)
    if user is None:
        services.workflows.discard(token)
    return user


async def require_user(
    user: Optional[Identity] = Depends(current_user),
) -> Identity:
    if user is None:
        raise AuthenticationError()
    return user


async def get_workflow(
    request: Request,
    user: Identity = Depends(require_user),
    services: Services = Depends(get_services),
) -> NotesWorkflow:
    """
    The caller's notes workflow.

    A session's first access runs the initial fetch. A failed initial fetch
    leaves the empty list and the failure notice in place for the view.
    """
    workflow, created = services.workflows.open(session_token(request), user)
    if created:
        try:
            await workflow.fetch()
        except QuickNotesError as e:
            logger.warning(
                "Initial fetch failed for %s: %s", user.username, e.message
            )
    return workflow


async def read_attachment(file: Optional[UploadFile]) -> Optional[AttachmentUpload]:
    """
    Read a multipart file field into an AttachmentUpload.

    Browsers submit an empty, unnamed part when no file was picked; that counts
    as no selection.
    """
    if file is None or not file.filename:
        return None
    try:
        data = await file.read()
    finally:
        await file.close()
    return AttachmentUpload(
        filename=file.filename,
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )
