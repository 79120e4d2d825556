"""
QuickNotes Backend — Request ID Middleware
============================================

What:  Assigns each request a short correlation ID and echoes it back in the
       X-Request-ID response header.
How:   Reuses a client-sent X-Request-ID when present, otherwise generates
       one. The ID is stored in a ContextVar (read by loggers and exception
       handlers) and on request.state.
Who:   Applied to every request; the first middleware to run.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

MAX_CLIENT_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID if it is present and short enough
        2. Otherwise generate 8 hex characters of a UUID4
        3. Store it in request_id_var and request.state.request_id
        4. Add it to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID", "")
        if not rid or len(rid) > MAX_CLIENT_ID_LENGTH:
            rid = uuid.uuid4().hex[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
