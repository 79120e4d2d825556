"""
QuickNotes Backend — Auth Service (Session Provider)
======================================================

What:  Account registration, sign-in, current-user lookup and sign-out.
How:   Passwords are hashed with bcrypt. Signing in creates a `user_sessions`
       row keyed by an opaque random token; the client keeps the token in an
       HTTP-only cookie (or sends it as a Bearer token). Signing out deletes
       the row, so the token stops resolving immediately.
Who:   Constructed once at bootstrap; used by the auth routes, the page routes
       and the `require_user` dependency.

Contract exposed to the rest of the app:
    current_user(token) -> Identity | None
    sign_out(token) -> None
"""

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.exceptions import (
    AuthenticationError,
    ConflictError,
    DataStoreError,
    ValidationError,
)
from app.models.user import User, UserSession
from app.schemas.auth import Identity

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]{3,64}$")
MIN_PASSWORD_LENGTH = 8

# bcrypt only looks at the first 72 bytes; longer input raises in bcrypt>=4.1
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES],
        hashed_password.encode("utf-8"),
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_identity(user: User) -> Identity:
    return Identity(user_id=str(user.id), username=user.username)


class AuthService:
    """
    Session provider backed by the `users` and `user_sessions` tables.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        session_ttl: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.session_ttl = session_ttl or timedelta(hours=settings.session_ttl_hours)

    async def sign_up(self, username: str, password: str) -> Identity:
        """
        Register a new account.

        Raises:
            ValidationError: username or password does not meet the rules.
            ConflictError: the username is already taken.
        """
        username = username.strip()
        if not USERNAME_PATTERN.match(username):
            raise ValidationError(
                message=(
                    "Username must be 3-64 characters of letters, digits, "
                    "dots, dashes or underscores."
                ),
                field="username",
            )
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                field="password",
            )

        try:
            async with self.session_factory() as session:
                user = User(username=username, password_hash=hash_password(password))
                session.add(user)
                await session.commit()
                logger.info("User registered: %s", username)
                return to_identity(user)
        except IntegrityError:
            raise ConflictError(
                message=f"The username '{username}' is already taken.",
                context={"username": username},
            )
        except SQLAlchemyError as e:
            logger.error("Database error registering %s: %s", username, str(e))
            raise DataStoreError(context={"error_type": type(e).__name__})

    async def sign_in(self, username: str, password: str) -> Tuple[str, Identity]:
        """
        Verify credentials and open a session.

        Returns:
            (session token, identity)

        Raises:
            AuthenticationError: unknown user or wrong password (same message
            for both).
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(User).where(User.username == username.strip())
                )
                user = result.scalar_one_or_none()
                if user is None or not verify_password(password, user.password_hash):
                    logger.warning("Failed sign-in for username %s", username)
                    raise AuthenticationError(message="Incorrect username or password.")

                now = datetime.now(timezone.utc)
                token = secrets.token_urlsafe(32)
                session.add(
                    UserSession(
                        token=token,
                        user_id=user.id,
                        created_at=now,
                        expires_at=now + self.session_ttl,
                    )
                )
                await session.commit()
                logger.info("User signed in: %s", user.username)
                return token, to_identity(user)
        except SQLAlchemyError as e:
            logger.error("Database error signing in %s: %s", username, str(e))
            raise DataStoreError(context={"error_type": type(e).__name__})

    async def current_user(self, token: Optional[str]) -> Optional[Identity]:
        """
        Resolve a session token to its user.

        Returns None for a missing, unknown or expired token.
        """
        if not token:
            return None
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserSession, User)
                    .join(User, User.id == UserSession.user_id)
                    .where(UserSession.token == token)
                )
                row = result.first()
                if row is None:
                    return None
                user_session, user = row
                if _as_utc(user_session.expires_at) <= datetime.now(timezone.utc):
                    await session.delete(user_session)
                    await session.commit()
                    logger.info("Session expired for user %s", user.username)
                    return None
                return to_identity(user)
        except SQLAlchemyError as e:
            logger.error("Database error resolving session: %s", str(e))
            raise DataStoreError(context={"error_type": type(e).__name__})

    async def sign_out(self, token: Optional[str]) -> None:
        """Invalidate the session. Unknown tokens are ignored."""
        if not token:
            return
        try:
            async with self.session_factory() as session:
                await session.execute(delete(UserSession).where(UserSession.token == token))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Database error signing out: %s", str(e))
            raise DataStoreError(context={"error_type": type(e).__name__})
        logger.info("Session closed")

