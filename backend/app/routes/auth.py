"""
QuickNotes Backend — Auth Route Handlers
==========================================

What:  JSON endpoints for account registration, sign-in, sign-out and the
       current identity.
How:   Thin wrappers around AuthService. Sign-in sets the session token as an
       HTTP-only cookie and also returns it for API clients.
Who:   Called by API clients and tests; the HTML pages use routes/pages.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from app.config import settings
from app.dependencies import Services, get_services, require_user, session_token
from app.schemas.auth import Credentials, Identity, SignInResponse, SignOutResponse
from app.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.session_cookie_name)


@router.post(
    "/sign-up",
    status_code=201,
    response_model=Identity,
    responses={
        400: {"description": "Username or password rejected", "model": ErrorResponse},
        409: {"description": "Username already taken", "model": ErrorResponse},
    },
    summary="Create an account",
)
async def sign_up(
    credentials: Credentials,
    services: Services = Depends(get_services),
) -> Identity:
    return await services.auth.sign_up(credentials.username, credentials.password)


@router.post(
    "/sign-in",
    response_model=SignInResponse,
    responses={401: {"description": "Wrong username or password", "model": ErrorResponse}},
    summary="Sign in and open a session",
)
async def sign_in(
    credentials: Credentials,
    response: Response,
    services: Services = Depends(get_services),
) -> SignInResponse:
    token, user = await services.auth.sign_in(credentials.username, credentials.password)
    set_session_cookie(response, token)
    return SignInResponse(token=token, user=user)


@router.post(
    "/sign-out",
    response_model=SignOutResponse,
    summary="Close the current session",
    description="Idempotent: signing out without a session succeeds.",
)
async def sign_out(
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> SignOutResponse:
    token: Optional[str] = session_token(request)
    await services.auth.sign_out(token)
    services.workflows.discard(token)
    clear_session_cookie(response)
    return SignOutResponse()


@router.get(
    "/me",
    response_model=Identity,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="The signed-in identity",
)
async def me(user: Identity = Depends(require_user)) -> Identity:
    return user
