# Routes package init
"""
QuickNotes Backend — Routes Package
=====================================

What:  HTTP route handlers. They turn requests into workflow intents and
       workflow state into responses.

Route Inventory:
    - pages.py:   GET  /                         (sign-in or notes page)
                  POST /sign-in, /sign-up, /sign-out
                  POST /notes, /notes/clear, /refresh
                  POST /notes/{id}/delete, /delete/confirm, /delete/cancel
    - auth.py:    POST /api/auth/sign-up, /api/auth/sign-in, /api/auth/sign-out
                  GET  /api/auth/me
    - notes.py:   GET  /api/view, /api/notes
                  POST /api/notes, /api/draft/clear, /api/notes/{id}/delete,
                       /api/delete/confirm, /api/delete/cancel
                  PUT  /api/draft
                  GET  /api/blobs/{path}?token=   (signed image download)
    - health.py:  GET  /health

Routes stay thin: extract input, call one workflow or service method, shape
the response. State rules live in services/notes_workflow.py.
"""
