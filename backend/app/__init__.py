"""
QuickNotes Backend — Application Package
==========================================

What: A small notes service: sign in, write text notes with an optional image
      attachment, list them with signed image URLs, delete them.
Who:  Imported by uvicorn (app.main:app), Alembic and pytest.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   Routes (HTML pages + JSON API)    │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Presentation  ·  Notes Workflow   │  ← view model, UI state machine
    ├─────────────────────────────────────┤
    │   Collaborators: auth, note store,  │  ← behind NoteGateway/BlobGateway
    │   blob store                        │
    ├─────────────────────────────────────┤
    │   Models & Schemas · Database       │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
