"""
QuickNotes Backend — Note SQLAlchemy Model
============================================

What:  ORM model representing the `notes` table.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Used only by SqlNoteGateway. Everything above the store works with the
       immutable NoteRecord value type instead of ORM rows.

Table Design:
    - id: UUID assigned by the store at creation, immutable thereafter
    - owner_id: the signed-in user who created the note; every query is
      scoped to it
    - title / content: required, non-empty (enforced by the workflow)
    - image_path: store-relative blob path, NULL until an attachment is uploaded
    - created_at: store order for listing (ascending)
    - updated_at: bumped when the attachment path is set

    There is deliberately no image_url column: signed URLs are derived on
    every fetch and never persisted.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Note(Base):
    """
    A user's text note with an optional image attachment.

    Lifecycle:
        1. Created with title/content, image_path NULL
        2. If a file was selected: updated exactly once to set image_path
        3. Deleted (blob first, then this row) on user request

    Query Patterns:
        - List a user's notes: WHERE owner_id = :uid ORDER BY created_at, id
          → idx_notes_owner_created
        - Single note: WHERE id = :uuid AND owner_id = :uid → primary key
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier assigned at creation",
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="User who owns this note",
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Note title (required, non-empty)",
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Note body (required, non-empty)",
    )

    # Format: images/<note id>-<file name>
    image_path: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
        default=None,
        comment="Store-relative path of the attached image blob",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When this note was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        onupdate=_utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When this note was last modified (UTC)",
    )

    __table_args__ = (
        Index("idx_notes_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, owner_id={self.owner_id}, "
            f"image_path={self.image_path!r})>"
        )
