"""
QuickNotes Backend — Collaborator Contracts
=============================================

What:  Abstract base classes for the two remote collaborators the notes
       workflow calls: the record store and the blob store.
How:   Concrete implementations (SqlNoteGateway, LocalBlobGateway) inherit
       from these and implement every method. Tests substitute AsyncMocks
       built with `spec=` against these classes.
Who:   NotesWorkflow depends only on these interfaces.

Failure contract:
    Every method may raise a QuickNotesError subclass:
    - record store: DataStoreError (transport), NotFoundError (unknown id)
    - blob store: BlobStorageError (transport), NotFoundError (missing blob),
      ValidationError (path outside the store)
"""

from abc import ABC, abstractmethod
from typing import List

from app.schemas.note import NoteRecord


class NoteGateway(ABC):
    """
    Structured-data collaborator for Note records.

    All operations are scoped to `owner_id`: records of other owners behave
    as if they did not exist.
    """

    @abstractmethod
    async def list(self, owner_id: str) -> List[NoteRecord]:
        """Return every note of the owner in store order."""
        ...

    @abstractmethod
    async def create(self, owner_id: str, title: str, content: str) -> NoteRecord:
        """Create a note without an attachment and return it with its new id."""
        ...

    @abstractmethod
    async def update(self, owner_id: str, note_id: str, image_path: str) -> NoteRecord:
        """Attach a blob path to an existing note and return the updated record."""
        ...

    @abstractmethod
    async def delete(self, owner_id: str, note_id: str) -> None:
        """Delete a note record."""
        ...

    async def health_check(self) -> bool:
        """Return True if the store is reachable. Never raises."""
        return True


class BlobGateway(ABC):
    """Blob collaborator: path-addressed binary objects."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store `data` at `path` and return the stored path."""
        ...

    @abstractmethod
    async def get_signed_url(self, path: str) -> str:
        """Return a time-limited URL granting read access to the blob."""
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the blob at `path`."""
        ...

    async def health_check(self) -> bool:
        """Return True if the store is usable. Never raises."""
        return True
