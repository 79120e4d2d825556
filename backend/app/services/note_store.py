"""
QuickNotes Backend — SQL Note Store
=====================================

What:  SQLAlchemy implementation of the structured-data collaborator for notes.
How:   Each operation opens its own session from the shared session factory,
       runs one short transaction and converts the ORM row into an immutable
       NoteRecord before the session closes.
Who:   Constructed once at bootstrap with the app-wide session factory; called
       by NotesWorkflow.

Error translation:
    - Unknown id, malformed id, or a note owned by someone else → NotFoundError
    - Any SQLAlchemy / driver error → DataStoreError (details logged only)
"""

import logging
import uuid
from typing import List

from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import DataStoreError, NotFoundError
from app.models.note import Note
from app.schemas.note import NoteRecord
from app.services.gateway_base import NoteGateway

logger = logging.getLogger(__name__)


def to_record(note: Note) -> NoteRecord:
    """Convert an ORM row into the immutable value type."""
    return NoteRecord(
        id=str(note.id),
        title=note.title,
        content=note.content,
        image_path=note.image_path,
    )


def _parse_id(value: str, resource: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(resource=resource, resource_id=str(value))


class SqlNoteGateway(NoteGateway):
    """
    Owner-scoped CRUD over the `notes` table.

    Store order is creation order (created_at, then id), which matches the
    order the workflow appends newly created notes locally.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list(self, owner_id: str) -> List[NoteRecord]:
        owner = _parse_id(owner_id, "user")
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Note)
                    .where(Note.owner_id == owner)
                    .order_by(Note.created_at.asc(), Note.id.asc())
                )
                return [to_record(note) for note in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Database error listing notes for %s: %s", owner_id, str(e))
            raise DataStoreError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def create(self, owner_id: str, title: str, content: str) -> NoteRecord:
        owner = _parse_id(owner_id, "user")
        try:
            async with self.session_factory() as session:
                note = Note(owner_id=owner, title=title, content=content)
                session.add(note)
                await session.commit()
                logger.info("Note record created: %s", note.id)
                return to_record(note)
        except SQLAlchemyError as e:
            logger.error("Database error creating note: %s", str(e))
            raise DataStoreError(
                message="Could not save the note. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def update(self, owner_id: str, note_id: str, image_path: str) -> NoteRecord:
        owner = _parse_id(owner_id, "user")
        key = _parse_id(note_id, "note")
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Note).where(Note.id == key, Note.owner_id == owner)
                )
                note = result.scalar_one_or_none()
                if note is None:
                    raise NotFoundError(resource="note", resource_id=note_id)

                note.image_path = image_path
                await session.commit()
                logger.info("Note %s attached image %s", note_id, image_path)
                return to_record(note)
        except SQLAlchemyError as e:
            logger.error("Database error updating note %s: %s", note_id, str(e))
            raise DataStoreError(
                message="Could not update the note. Please try again.",
                context={"note_id": note_id, "error_type": type(e).__name__},
            )

    async def delete(self, owner_id: str, note_id: str) -> None:
        owner = _parse_id(owner_id, "user")
        key = _parse_id(note_id, "note")
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(Note).where(Note.id == key, Note.owner_id == owner)
                )
                if result.rowcount == 0:
                    raise NotFoundError(resource="note", resource_id=note_id)
                await session.commit()
                logger.info("Note record deleted: %s", note_id)
        except SQLAlchemyError as e:
            logger.error("Database error deleting note %s: %s", note_id, str(e))
            raise DataStoreError(
                message="Could not delete the note. Please try again.",
                context={"note_id": note_id, "error_type": type(e).__name__},
            )

    async def health_check(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Health check: database unreachable: %s", str(e))
            return False
