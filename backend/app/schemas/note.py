"""
QuickNotes Backend — Note Value Types
=======================================

What:  The immutable `NoteRecord` value type shared by the stores, the notes
       workflow and the API, plus the pure functions that merge server-confirmed
       records into the cached note list.
How:   Frozen Pydantic models. Every change produces a new instance via
       `model_copy(update=...)`, so a cached list entry only ever changes by
       being replaced.

Invariant:
    `image_url` is set only when `image_path` is set and the signed URL was
    resolved during the current fetch. Stores never read or write it.
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class NoteRecord(BaseModel):
    """
    What:  One note as known to the application.
    Who:   Returned by NoteGateway operations; held in WorkflowState.notes;
           serialized by the JSON API.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque identifier assigned by the record store")
    title: str = Field(description="Note title")
    content: str = Field(description="Note body")
    image_path: Optional[str] = Field(
        default=None,
        description="Store-relative path of the attached image, if any",
    )
    image_url: Optional[str] = Field(
        default=None,
        description="Time-limited signed URL for the image (derived, never persisted)",
    )

    @property
    def has_image(self) -> bool:
        return self.image_path is not None


class AttachmentUpload(BaseModel):
    """
    What:  A file selected in the create form, held until the next save.
    How:   Carries the declared content type and the raw bytes.
    """

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    data: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


# ══════════════════════════════════════════════════════════════════════════
# Cache merge helpers
# ══════════════════════════════════════════════════════════════════════════


def merge_note(cached: NoteRecord, confirmed: NoteRecord) -> NoteRecord:
    """
    Return the cached entry updated with the server-confirmed fields.

    The derived `image_url` survives only while the confirmed record still
    points at the same blob path.
    """
    if cached.id != confirmed.id:
        raise ValueError(f"Cannot merge note {confirmed.id} into note {cached.id}")
    image_url = cached.image_url if confirmed.image_path == cached.image_path else None
    return confirmed.model_copy(update={"image_url": image_url})


def with_image_url(note: NoteRecord, url: Optional[str]) -> NoteRecord:
    """Attach a freshly resolved signed URL to a note."""
    return note.model_copy(update={"image_url": url})


def replace_note(notes: Sequence[NoteRecord], updated: NoteRecord) -> List[NoteRecord]:
    """Replace the entry with the same id, keeping list order. Unknown ids are appended."""
    result = []
    replaced = False
    for note in notes:
        if note.id == updated.id:
            result.append(merge_note(note, updated))
            replaced = True
        else:
            result.append(note)
    if not replaced:
        result.append(updated)
    return result


def remove_note(notes: Sequence[NoteRecord], note_id: str) -> List[NoteRecord]:
    """Drop the entry with the given id, keeping list order."""
    return [note for note in notes if note.id != note_id]
