"""
QuickNotes Backend — Page Route Handlers (server-rendered UI)
===============================================================

What:  The HTML notes screen and the form posts it emits.
How:   GET / renders either the sign-in page or the notes page. Every form
       post runs one intent against the caller's NotesWorkflow and answers
       303 See Other back to GET / (post/redirect/get). Failures are shown as
       the workflow's one-shot notice on the next render instead of as an
       error page.
Who:   Browsers.

Request Flow:
    POST /notes ─▶ update draft ─▶ [select file] ─▶ create ─▶ 303 /
    GET  /      ─▶ build_view(state) ─▶ render_page ─▶ 200 text/html
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from app.dependencies import (
    Services,
    current_user,
    get_services,
    get_workflow,
    read_attachment,
    session_token,
)
from app.exceptions import (
    AuthenticationError,
    ConflictError,
    QuickNotesError,
    ValidationError,
)
from app.routes.auth import clear_session_cookie, set_session_cookie
from app.services.notes_workflow import NotesWorkflow
from app.services.presentation import build_view, render_page, render_sign_in

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"], include_in_schema=False)

NO_STORE = {"Cache-Control": "no-store"}


def _home() -> RedirectResponse:
    return RedirectResponse(url="/", status_code=303)


def _sign_in_page(notice: str, username: str = "", status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        render_sign_in(notice, username),
        status_code=status_code,
        headers=NO_STORE,
    )


async def _page_workflow(request: Request, services: Services) -> Optional[NotesWorkflow]:
    """The caller's workflow, or None when nobody is signed in."""
    user = await current_user(request, services)
    if user is None:
        return None
    return await get_workflow(request, user, services)


# ══════════════════════════════════════════════════════════════════════════
# Screen
# ══════════════════════════════════════════════════════════════════════════


@router.get("/", response_class=HTMLResponse)
async def index(request: Request, services: Services = Depends(get_services)) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is None:
        return HTMLResponse(render_sign_in(), headers=NO_STORE)
    view = build_view(workflow.state, workflow.user, workflow.take_notice())
    return HTMLResponse(render_page(view), headers=NO_STORE)


# ══════════════════════════════════════════════════════════════════════════
# Session
# ══════════════════════════════════════════════════════════════════════════


@router.post("/sign-in")
async def sign_in(
    username: str = Form(""),
    password: str = Form(""),
    services: Services = Depends(get_services),
) -> Response:
    try:
        token, _ = await services.auth.sign_in(username, password)
    except AuthenticationError as e:
        return _sign_in_page(e.message, username, status_code=401)
    response = _home()
    set_session_cookie(response, token)
    return response


@router.post("/sign-up")
async def sign_up(
    username: str = Form(""),
    password: str = Form(""),
    services: Services = Depends(get_services),
) -> Response:
    try:
        await services.auth.sign_up(username, password)
        token, _ = await services.auth.sign_in(username, password)
    except (ValidationError, ConflictError) as e:
        status_code = 409 if isinstance(e, ConflictError) else 400
        return _sign_in_page(e.message, status_code=status_code)
    response = _home()
    set_session_cookie(response, token)
    return response


@router.post("/sign-out")
async def sign_out(request: Request, services: Services = Depends(get_services)) -> Response:
    token = session_token(request)
    await services.auth.sign_out(token)
    services.workflows.discard(token)
    response = _home()
    clear_session_cookie(response)
    return response


# ══════════════════════════════════════════════════════════════════════════
# Notes intents
# ══════════════════════════════════════════════════════════════════════════


@router.post("/notes")
async def create_note(
    request: Request,
    title: str = Form(""),
    content: str = Form(""),
    file: Optional[UploadFile] = File(None),
    services: Services = Depends(get_services),
) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is None:
        return _home()

    upload = await read_attachment(file)
    try:
        workflow.ensure_idle("save a note")
        workflow.update_draft(title=title, content=content)
        if upload is not None:
            workflow.select_file(upload)
        await workflow.create()
    except QuickNotesError as e:
        workflow.notify(e.message)
    return _home()


@router.post("/notes/clear")
async def clear_form(request: Request, services: Services = Depends(get_services)) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is None:
        return _home()
    try:
        workflow.clear_draft()
    except QuickNotesError as e:
        workflow.notify(e.message)
    return _home()


@router.post("/refresh")
async def refresh(request: Request, services: Services = Depends(get_services)) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is None:
        return _home()
    try:
        await workflow.fetch()
    except QuickNotesError as e:
        workflow.notify(e.message)
    return _home()


@router.post("/notes/{note_id}/delete")
async def request_delete(
    note_id: str,
    request: Request,
    services: Services = Depends(get_services),
) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is None:
        return _home()
    try:
        workflow.request_delete(note_id)
    except QuickNotesError as e:
        workflow.notify(e.message)
    return _home()


@router.post("/delete/confirm")
async def confirm_delete(request: Request, services: Services = Depends(get_services)) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is None:
        return _home()
    try:
        await workflow.confirm_delete()
    except QuickNotesError as e:
        workflow.notify(e.message)
    return _home()


@router.post("/delete/cancel")
async def cancel_delete(request: Request, services: Services = Depends(get_services)) -> Response:
    workflow = await _page_workflow(request, services)
    if workflow is not None:
        workflow.cancel_delete()
    return _home()
