# Services package init
"""
QuickNotes Backend — Services Layer
=====================================

What:  Everything between the routes and the database.

Service Inventory:
    - gateway_base:    NoteGateway / BlobGateway contracts (abstract)
    - note_store:      SqlNoteGateway, notes in the SQL database
    - blob_store:      LocalBlobGateway, image files on disk + signed URLs
    - auth_service:    AuthService, accounts and sign-in sessions
    - notes_workflow:  NotesWorkflow (per-session UI state machine) and
                       WorkflowRegistry
    - presentation:    build_view / render_page / render_sign_in

The workflow only sees the two gateway contracts, so tests drive it with
AsyncMock gateways and never touch a database or the filesystem.
"""
