"""
QuickNotes Backend — Auth Request/Response Schemas
====================================================

What:  Pydantic models for the sign-up / sign-in / identity endpoints and the
       `Identity` value handed to the rest of the application.
"""

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """
    What:  The opaque current-user value exposed by the session provider.
    Who:   Passed to the notes workflow (record ownership) and the page header.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(description="Stable user identifier")
    username: str = Field(description="Login name shown in the header")


class Credentials(BaseModel):
    """Username/password pair posted by the sign-up and sign-in endpoints."""

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=256)


class SignInResponse(BaseModel):
    """
    What:  Returned by POST /api/auth/sign-in.
    How:   The same token is also set as an HTTP-only cookie, so browsers can
           ignore the body; API clients send it as `Authorization: Bearer`.
    """

    token: str = Field(description="Opaque session token")
    user: Identity


class SignOutResponse(BaseModel):
    signed_out: bool = True
