"""
QuickNotes Backend — Notes Route Handlers (JSON intent API)
=============================================================

What:  JSON endpoints that drive the caller's NotesWorkflow, plus the signed
       blob download.
How:   Each handler turns one user intent into one workflow call. Intents
       that change the screen return the resulting NotesView. Workflow errors
       propagate to the global exception handlers.
Who:   API clients and tests. The server-rendered page uses routes/pages.py,
       which drives the same workflow.

Caching:
    - Workflow endpoints: never cached (per-session state)
    - GET /api/blobs/{path}: private, for at most the signed-URL lifetime
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import FileResponse

from app.config import settings
from app.dependencies import (
    Services,
    get_services,
    get_workflow,
    read_attachment,
    require_user,
    session_token,
)
from app.schemas.auth import Identity
from app.schemas.common import ErrorResponse
from app.schemas.note import NoteRecord
from app.schemas.view import DraftUpdate, NotesView
from app.services.notes_workflow import NotesWorkflow
from app.services.presentation import build_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])

WORKFLOW_ERRORS = {
    401: {"description": "Not signed in", "model": ErrorResponse},
    409: {"description": "Another operation is in progress", "model": ErrorResponse},
    500: {"description": "Record or blob store failure", "model": ErrorResponse},
}


def _view(workflow: NotesWorkflow) -> NotesView:
    return build_view(workflow.state, workflow.user, workflow.take_notice())


@router.get(
    "/view",
    response_model=NotesView,
    responses={401: WORKFLOW_ERRORS[401]},
    summary="The current notes screen",
    description="The same view the HTML page renders. Reading it consumes the pending notice.",
)
async def get_view(workflow: NotesWorkflow = Depends(get_workflow)) -> NotesView:
    return _view(workflow)


@router.get(
    "/notes",
    response_model=List[NoteRecord],
    responses=WORKFLOW_ERRORS,
    summary="Refresh and list notes",
    description=(
        "Re-fetches the caller's notes from the record store, resolves a signed "
        "URL for every attached image, and returns the list in store order."
    ),
)
async def list_notes(
    request: Request,
    user: Identity = Depends(require_user),
    services: Services = Depends(get_services),
) -> List[NoteRecord]:
    # This fetch doubles as the initial fetch of a new session
    workflow, _ = services.workflows.open(session_token(request), user)
    return await workflow.fetch()


@router.post(
    "/notes",
    status_code=201,
    response_model=NoteRecord,
    responses={
        400: {"description": "Missing title/content or unusable image", "model": ErrorResponse},
        **WORKFLOW_ERRORS,
    },
    summary="Create a note",
    description=(
        "Creates a note from the submitted title and content. When an image is "
        "attached it is uploaded to images/{id}-{filename} and linked to the note."
    ),
)
async def create_note(
    title: str = Form(""),
    content: str = Form(""),
    file: Optional[UploadFile] = File(None, description="Optional image attachment"),
    workflow: NotesWorkflow = Depends(get_workflow),
) -> NoteRecord:
    upload = await read_attachment(file)
    workflow.ensure_idle("save a note")
    workflow.update_draft(title=title, content=content)
    workflow.select_file(upload)
    return await workflow.create()


@router.put(
    "/draft",
    response_model=NotesView,
    responses={401: WORKFLOW_ERRORS[401]},
    summary="Edit the draft form fields",
)
async def update_draft(
    draft: DraftUpdate,
    workflow: NotesWorkflow = Depends(get_workflow),
) -> NotesView:
    workflow.update_draft(title=draft.title, content=draft.content)
    return _view(workflow)


@router.post(
    "/draft/clear",
    response_model=NotesView,
    responses={401: WORKFLOW_ERRORS[401], 409: WORKFLOW_ERRORS[409]},
    summary="Clear the draft form and file selection",
)
async def clear_draft(workflow: NotesWorkflow = Depends(get_workflow)) -> NotesView:
    workflow.clear_draft()
    return _view(workflow)


@router.post(
    "/notes/{note_id}/delete",
    response_model=NotesView,
    responses={
        404: {"description": "Note is not in the list", "model": ErrorResponse},
        401: WORKFLOW_ERRORS[401],
        409: WORKFLOW_ERRORS[409],
    },
    summary="Ask to delete a note",
    description="Opens the delete confirmation. Nothing is deleted until confirmed.",
)
async def request_delete(
    note_id: str,
    workflow: NotesWorkflow = Depends(get_workflow),
) -> NotesView:
    workflow.request_delete(note_id)
    return _view(workflow)


@router.post(
    "/delete/confirm",
    response_model=NotesView,
    responses={
        400: {"description": "No delete awaiting confirmation", "model": ErrorResponse},
        **WORKFLOW_ERRORS,
    },
    summary="Confirm the pending delete",
    description="Deletes the image (if any), then the note record.",
)
async def confirm_delete(workflow: NotesWorkflow = Depends(get_workflow)) -> NotesView:
    await workflow.confirm_delete()
    return _view(workflow)


@router.post(
    "/delete/cancel",
    response_model=NotesView,
    responses={401: WORKFLOW_ERRORS[401]},
    summary="Cancel the pending delete",
)
async def cancel_delete(workflow: NotesWorkflow = Depends(get_workflow)) -> NotesView:
    workflow.cancel_delete()
    return _view(workflow)


@router.get(
    "/blobs/{blob_path:path}",
    summary="Download an image through a signed URL",
    responses={
        200: {"description": "Image file"},
        401: {"description": "Missing, expired or tampered token", "model": ErrorResponse},
        404: {"description": "Image not found", "model": ErrorResponse},
    },
)
async def download_blob(
    blob_path: str,
    token: str = Query(..., description="Signed token from the image URL"),
    services: Services = Depends(get_services),
) -> FileResponse:
    """
    Serve a blob after checking its signed token.

    The token is the only credential: signed URLs work in <img> tags without
    the session cookie, and stop working once they expire.
    """
    relative = services.blobs.verify_signed_token(blob_path, token)
    absolute = services.blobs.open_blob(relative)
    return FileResponse(
        path=str(absolute),
        media_type=services.blobs.media_type_for(relative),
        headers={"Cache-Control": f"private, max-age={settings.signed_url_ttl_seconds}"},
    )
