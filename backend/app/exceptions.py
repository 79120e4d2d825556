"""
QuickNotes Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every failure the workflows can hit.
How:   Each exception class carries a user-safe message and an optional context
       dict. Global exception handlers (registered in main.py) map them to HTTP
       status codes and structured JSON error responses.
Who:   Raised by collaborators (stores, auth) and the notes workflow; caught by
       the global handlers and by the HTML page routes.

Exception Hierarchy:
    QuickNotesError (base)
    ├── ValidationError          → 400 Bad Request (caught before any remote call)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    │   └── WorkflowBusyError    → 409 Conflict (another workflow is in flight)
    ├── BlobStorageError         → 500 Internal Server Error
    └── DataStoreError           → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class QuickNotesError(Exception):
    """
    Base exception for all QuickNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for server errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(QuickNotesError):
    """
    Raised when user input fails validation.

    When:    Empty title or content, attachment that is not an image, empty or
             oversized attachment, malformed sign-up credentials, blob paths
             escaping the storage root.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(QuickNotesError):
    """
    Raised when no valid session or signed token accompanies a request.

    When:    Missing/expired session, wrong credentials, tampered or expired
             signed blob URL.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(QuickNotesError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown note id (or a note owned by another user), missing blob.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(QuickNotesError):
    """
    Raised when a request conflicts with current state.

    When:    Signing up with a username that is already taken.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class WorkflowBusyError(ConflictError):
    """
    Raised when a workflow is started while another one holds the busy flag.

    The busy flag is advisory: it only guards workflows started through the
    same session's NotesWorkflow instance.
    """

    def __init__(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["operation"] = operation
        super().__init__(
            message=f"Cannot {operation} while another operation is in progress. Please wait.",
            context=ctx,
        )
        self.operation = operation


class BlobStorageError(QuickNotesError):
    """
    Raised when blob store operations fail.

    When:    Disk full, permission denied, I/O error while writing, reading or
             deleting an attachment.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DataStoreError(QuickNotesError):
    """
    Raised when record store operations fail unexpectedly.

    The message returned to the client is always generic; the SQL error is
    logged server-side only.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
