"""
QuickNotes Backend — Notes Workflow (Application Layer)
=========================================================

What:  Holds one signed-in session's UI state and runs the three workflows:
       fetch-and-hydrate, create-with-optional-attachment, delete-with-cleanup.
How:   A single `busy` flag guards the workflows. It is set before a workflow
       starts and cleared in `finally`. Remote calls go through the NoteGateway
       and BlobGateway contracts only.
Who:   One NotesWorkflow per session token, kept in WorkflowRegistry. Driven by
       the page routes and the JSON intent API.

Workflow Flow:
    fetch:   list records ─▶ resolve signed URLs concurrently ─▶ swap list
    create:  validate ─▶ create record ─▶ [upload blob ─▶ attach path] ─▶ append
    delete:  request ─▶ confirm ─▶ [delete blob] ─▶ delete record ─▶ remove entry

    On failure at any step:
    - the note list keeps its pre-call value
    - the cause is logged and a one-shot notice names the failed operation
    - the error is re-raised for the HTTP layer

Known gaps (no cross-collaborator transaction):
    - create fails after the record exists → record without attachment
    - delete fails after the blob is gone → stale list entry until refresh
    Both are logged at WARNING when they happen.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import PurePosixPath
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from app.config import settings
from app.exceptions import (
    NotFoundError,
    QuickNotesError,
    ValidationError,
    WorkflowBusyError,
)
from app.schemas.auth import Identity
from app.schemas.note import (
    AttachmentUpload,
    NoteRecord,
    merge_note,
    remove_note,
    replace_note,
    with_image_url,
)
from app.services.gateway_base import BlobGateway, NoteGateway

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "images"
FALLBACK_FILENAME = "upload"

NOTICE_MISSING_FIELDS = "Please provide a title and content"
NOTICE_FETCH_FAILED = "Error fetching notes. Check the server log for details."
NOTICE_CREATE_FAILED = "Error creating note. Check the server log for details."
NOTICE_DELETE_FAILED = "Error deleting note. Check the server log for details."


def attachment_path(note_id: str, filename: str) -> str:
    """
    Build the blob path for a note's attachment: images/{id}-{filename}.

    Only the final component of the client-supplied name is used.
    """
    name = PurePosixPath(filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        name = FALLBACK_FILENAME
    return f"{IMAGE_PREFIX}/{note_id}-{name}"


@dataclass
class WorkflowState:
    """Ephemeral per-session UI state."""

    notes: List[NoteRecord] = field(default_factory=list)
    draft_title: str = ""
    draft_content: str = ""
    pending_file: Optional[AttachmentUpload] = None
    busy: bool = False
    pending_delete_id: Optional[str] = None
    notice: Optional[str] = None


class NotesWorkflow:
    """
    The notes screen's state machine.

    At most one of fetch/create/delete runs at a time per instance. Starting
    one while `busy` is set raises WorkflowBusyError and leaves state alone.
    """

    def __init__(
        self,
        user: Identity,
        notes: NoteGateway,
        blobs: BlobGateway,
        max_file_size: Optional[int] = None,
    ):
        self.user = user
        self.notes = notes
        self.blobs = blobs
        self.max_file_size = max_file_size or settings.max_file_size
        self.state = WorkflowState()

    # ── Busy guard ────────────────────────────────────────────────────────

    def ensure_idle(self, operation: str) -> None:
        """Raise WorkflowBusyError if a workflow is in flight."""
        if self.state.busy:
            raise WorkflowBusyError(operation)

    @asynccontextmanager
    async def _running(self, operation: str) -> AsyncIterator[None]:
        self.ensure_idle(operation)
        self.state.busy = True
        self.state.notice = None
        try:
            yield
        finally:
            self.state.busy = False

    def _fail(self, operation: str, notice: str, error: Exception) -> QuickNotesError:
        """Log a workflow failure, set the user-visible notice, return the error to raise."""
        self.state.notice = notice
        if isinstance(error, QuickNotesError):
            logger.error(
                "Error %s for user %s: %s | Context: %s",
                operation,
                self.user.username,
                error.message,
                error.context,
            )
            return error
        logger.error(
            "Unexpected error %s for user %s: %s",
            operation,
            self.user.username,
            str(error),
            exc_info=error,
        )
        return QuickNotesError(
            message=notice,
            context={"operation": operation, "error_type": type(error).__name__},
        )

    # ── fetch ─────────────────────────────────────────────────────────────

    async def _hydrate(self, note: NoteRecord) -> NoteRecord:
        if not note.has_image:
            return note
        url = await self.blobs.get_signed_url(note.image_path)
        return with_image_url(note, url)

    async def _hydrate_all(self, records: List[NoteRecord]) -> List[NoteRecord]:
        """Resolve every signed URL concurrently; the first failure cancels the rest."""
        tasks = [asyncio.ensure_future(self._hydrate(note)) for note in records]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def fetch(self) -> List[NoteRecord]:
        """
        Replace the note list with the store's current records.

        Signed URLs are resolved concurrently. Any failure leaves the previous
        list in place.
        """
        async with self._running("refresh notes"):
            try:
                records = await self.notes.list(self.user.user_id)
                hydrated = await self._hydrate_all(records)
            except Exception as e:
                error = self._fail("fetching notes", NOTICE_FETCH_FAILED, e)
                if error is e:
                    raise
                raise error from e

            self.state.notes = hydrated
            logger.info(
                "Fetched %d notes for %s (%d with images)",
                len(self.state.notes),
                self.user.username,
                sum(1 for note in self.state.notes if note.image_url),
            )
            return self.state.notes

    # ── create ────────────────────────────────────────────────────────────

    async def create(self) -> NoteRecord:
        """
        Save the draft as a new note, uploading the selected file if any.

        Raises:
            ValidationError: title or content is blank (no remote call made).
            QuickNotesError: any collaborator failure.
        """
        async with self._running("save a note"):
            title = self.state.draft_title
            content = self.state.draft_content
            if not title.strip() or not content.strip():
                self.state.notice = NOTICE_MISSING_FIELDS
                raise ValidationError(
                    message=NOTICE_MISSING_FIELDS,
                    field="title" if not title.strip() else "content",
                )

            upload = self.state.pending_file
            created: Optional[NoteRecord] = None
            try:
                created = await self.notes.create(self.user.user_id, title, content)
                note = created

                if upload is not None:
                    stored_path = await self.blobs.upload(
                        attachment_path(created.id, upload.filename),
                        upload.data,
                        upload.content_type,
                    )
                    updated = await self.notes.update(
                        self.user.user_id, created.id, stored_path
                    )
                    note = merge_note(created, updated)
            except Exception as e:
                if created is not None:
                    logger.warning(
                        "Note %s was created but its attachment was not linked",
                        created.id,
                    )
                error = self._fail("creating note", NOTICE_CREATE_FAILED, e)
                if error is e:
                    raise
                raise error from e

            self.state.notes = replace_note(self.state.notes, note)
            self.state.draft_title = ""
            self.state.draft_content = ""
            self.state.pending_file = None
            logger.info(
                "Note %s created for %s (attachment=%s)",
                note.id,
                self.user.username,
                note.image_path or "none",
            )
            return note

    # ── delete ────────────────────────────────────────────────────────────

    def _find(self, note_id: str) -> NoteRecord:
        for note in self.state.notes:
            if note.id == note_id:
                return note
        raise NotFoundError(resource="note", resource_id=note_id)

    def request_delete(self, note_id: str) -> None:
        """Open the delete confirmation for a listed note. No remote effect."""
        self.ensure_idle("delete a note")
        self._find(note_id)
        self.state.pending_delete_id = note_id

    def cancel_delete(self) -> None:
        self.state.pending_delete_id = None

    async def confirm_delete(self) -> None:
        """
        Delete the note awaiting confirmation: blob first, then the record.

        Raises:
            ValidationError: nothing is awaiting confirmation.
            QuickNotesError: any collaborator failure.
        """
        note_id = self.state.pending_delete_id
        if note_id is None:
            raise ValidationError(message="No delete is awaiting confirmation")

        async with self._running("delete a note"):
            self.state.pending_delete_id = None
            note = self._find(note_id)

            blob_deleted = False
            try:
                if note.has_image:
                    await self.blobs.delete(note.image_path)
                    blob_deleted = True
                await self.notes.delete(self.user.user_id, note.id)
            except Exception as e:
                if blob_deleted:
                    logger.warning(
                        "Image %s was deleted but note %s was not",
                        note.image_path,
                        note.id,
                    )
                error = self._fail("deleting note", NOTICE_DELETE_FAILED, e)
                if error is e:
                    raise
                raise error from e

            self.state.notes = remove_note(self.state.notes, note.id)
            logger.info("Note %s deleted for %s", note.id, self.user.username)

    # ── form intents ──────────────────────────────────────────────────────

    def update_draft(self, title: Optional[str] = None, content: Optional[str] = None) -> None:
        if title is not None:
            self.state.draft_title = title
        if content is not None:
            self.state.draft_content = content

    def select_file(self, upload: Optional[AttachmentUpload]) -> None:
        """
        Set (or with None, clear) the pending attachment.

        Raises:
            ValidationError: not an image, empty, or larger than the limit.
        """
        if upload is None:
            self.state.pending_file = None
            return
        try:
            self._validate_attachment(upload)
        except ValidationError as e:
            self.state.notice = e.message
            raise
        self.state.pending_file = upload

    def _validate_attachment(self, upload: AttachmentUpload) -> None:
        if not upload.content_type.lower().startswith("image/"):
            raise ValidationError(
                message=f"File type '{upload.content_type}' is not supported. Please choose an image.",
                field="file",
                context={"content_type": upload.content_type},
            )
        if upload.size == 0:
            raise ValidationError(message="The selected file is empty.", field="file")
        if upload.size > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please choose a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": upload.size},
            )

    def clear_draft(self) -> None:
        self.ensure_idle("clear the form")
        self.state.draft_title = ""
        self.state.draft_content = ""
        self.state.pending_file = None

    def notify(self, message: str) -> None:
        """Set the notice unless the failed operation already set one."""
        if self.state.notice is None:
            self.state.notice = message

    def take_notice(self) -> Optional[str]:
        """Return the pending notice once, then forget it."""
        notice, self.state.notice = self.state.notice, None
        return notice


class WorkflowRegistry:
    """
    Session token → NotesWorkflow.

    Workflows are created on first access for a session. They are dropped on
    sign-out, when their token stops resolving to a user, or once unused for
    longer than `idle_ttl` (default: the session TTL). A token whose user changed gets a fresh workflow.
    """

    def __init__(
        self,
        factory: Callable[[Identity], NotesWorkflow],
        idle_ttl: Optional[timedelta] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._idle_ttl = (idle_ttl or timedelta(hours=settings.session_ttl_hours)).total_seconds()
        self._clock = clock
        self._workflows: Dict[str, NotesWorkflow] = {}
        self._last_seen: Dict[str, float] = {}

    def open(self, token: str, user: Identity) -> Tuple[NotesWorkflow, bool]:
        """Return (workflow, created)."""
        now = self._clock()
        self._prune(now)
        self._last_seen[token] = now
        workflow = self._workflows.get(token)
        if workflow is not None and workflow.user.user_id == user.user_id:
            return workflow, False
        workflow = self._factory(user)
        self._workflows[token] = workflow
        logger.debug("Opened notes workflow for %s", user.username)
        return workflow, True

    def discard(self, token: Optional[str]) -> None:
        if token:
            self._workflows.pop(token, None)
            self._last_seen.pop(token, None)

    def _prune(self, now: float) -> None:
        idle = [
            token
            for token, seen in self._last_seen.items()
            if now - seen > self._idle_ttl
        ]
        for token in idle:
            self.discard(token)
        if idle:
            logger.debug("Dropped %d idle notes workflows", len(idle))

    def __len__(self) -> int:
        return len(self._workflows)
