"""
QuickNotes Backend — Local Blob Store
=======================================

What:  Filesystem implementation of the blob collaborator: upload, signed-URL
       resolution and delete of path-addressed image files.
How:   Blobs live under STORAGE_ROOT at their store-relative path
       (e.g. images/<note id>-photo.png). Writes use aiofiles so disk I/O does
       not block the event loop. Signed URLs carry a short-lived JWT whose
       subject is the blob path; GET /api/blobs/{path} verifies it before
       serving the file.
Who:   Constructed once at bootstrap; called by NotesWorkflow and the blob
       download route.

Path rules:
    - Relative, forward-slash separated, no empty / "." / ".." segments
    - The resolved file must stay inside STORAGE_ROOT
    Violations raise ValidationError before touching the disk.

Signed URL format:
    {PUBLIC_BASE_URL}/api/blobs/images/123-photo.png?token=<jwt>
    JWT claims: sub=<path>, typ="blob", exp=<now + SIGNED_URL_TTL_SECONDS>
"""

import logging
import mimetypes
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os
from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.exceptions import (
    AuthenticationError,
    BlobStorageError,
    NotFoundError,
    ValidationError,
)
from app.services.gateway_base import BlobGateway

logger = logging.getLogger(__name__)

BLOB_TOKEN_TYPE = "blob"
BLOB_ROUTE_PREFIX = "/api/blobs"


def normalize_blob_path(path: str) -> str:
    """
    Validate and normalise a store-relative blob path.

    Returns the path with duplicate slashes removed.
    Raises ValidationError for absolute paths, backslashes or dot segments.
    """
    if not path or path.startswith("/") or "\\" in path or "\x00" in path:
        raise ValidationError(
            message="Invalid file path",
            field="path",
            context={"path": path},
        )
    segments = [segment for segment in path.split("/") if segment]
    if not segments or any(segment in (".", "..") for segment in segments):
        raise ValidationError(
            message="Invalid file path",
            field="path",
            context={"path": path},
        )
    return "/".join(segments)


class LocalBlobGateway(BlobGateway):
    """
    Blob store backed by a local directory.

    Directory Structure:
        storage/
        └── images/
            ├── 6f1c...-photo.png
            └── 9a2e...-receipt.jpg
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        signing_secret: Optional[str] = None,
        signed_url_ttl_seconds: Optional[int] = None,
        public_base_url: Optional[str] = None,
        validate_existence: Optional[bool] = None,
    ):
        """
        Args:
            storage_root: Override settings.storage_root (used in tests).
            signing_secret: Override settings.signing_secret.
            signed_url_ttl_seconds: Override settings.signed_url_ttl_seconds.
            public_base_url: Override settings.public_base_url.
            validate_existence: Override settings.blob_validate_existence.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.signing_secret = signing_secret or settings.signing_secret
        self.algorithm = settings.signing_algorithm
        self.ttl = timedelta(
            seconds=signed_url_ttl_seconds or settings.signed_url_ttl_seconds
        )
        base = settings.public_base_url if public_base_url is None else public_base_url
        self.public_base_url = base.rstrip("/")
        self.validate_existence = (
            settings.blob_validate_existence
            if validate_existence is None
            else validate_existence
        )
        logger.info("LocalBlobGateway initialized with storage_root=%s", self.storage_root)

    # ── Path helpers ──────────────────────────────────────────────────────

    def _resolve(self, path: str) -> Path:
        """Map a store-relative path to an absolute path inside the storage root."""
        relative = normalize_blob_path(path)
        absolute = (self.storage_root / relative).resolve()
        if not absolute.is_relative_to(self.storage_root):
            raise ValidationError(
                message="Invalid file path",
                field="path",
                context={"path": path},
            )
        return absolute

    # ── Collaborator contract ─────────────────────────────────────────────

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Write `data` to `path`, replacing any existing blob.

        Returns:
            The normalised store-relative path.

        Raises:
            ValidationError if the path is invalid.
            BlobStorageError if directory creation or the write fails.
        """
        relative = normalize_blob_path(path)
        absolute = self._resolve(relative)

        try:
            absolute.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store blob at %s: %s", relative, str(e))
            raise BlobStorageError(
                message="Failed to save the image. Please try again.",
                context={"path": relative, "os_error": str(e)},
            )

        logger.info(
            "Blob stored: %s (%d bytes, %s)",
            relative,
            len(data),
            content_type,
        )
        return relative

    async def get_signed_url(self, path: str) -> str:
        """
        Issue a time-limited download URL for the blob.

        Raises:
            ValidationError if the path is invalid.
            NotFoundError if existence validation is on and the blob is missing.
        """
        relative = normalize_blob_path(path)
        if self.validate_existence:
            absolute = self._resolve(relative)
            if not await aiofiles.os.path.exists(absolute):
                raise NotFoundError(resource="blob", resource_id=relative)

        expires = datetime.now(timezone.utc) + self.ttl
        token = jwt.encode(
            {"sub": relative, "typ": BLOB_TOKEN_TYPE, "exp": expires},
            self.signing_secret,
            algorithm=self.algorithm,
        )
        return f"{self.public_base_url}{BLOB_ROUTE_PREFIX}/{quote(relative)}?token={token}"

    async def delete(self, path: str) -> None:
        """
        Remove the blob. Deleting an already-missing blob succeeds.

        Raises:
            ValidationError if the path is invalid.
            BlobStorageError if the file exists but cannot be removed.
        """
        relative = normalize_blob_path(path)
        absolute = self._resolve(relative)
        try:
            await aiofiles.os.remove(absolute)
            logger.info("Blob deleted: %s", relative)
        except FileNotFoundError:
            logger.debug("Blob already gone: %s", relative)
        except OSError as e:
            logger.error("Failed to delete blob %s: %s", relative, str(e))
            raise BlobStorageError(
                message="Failed to delete the image. Please try again.",
                context={"path": relative, "os_error": str(e)},
            )

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)

    # ── Signed download support ───────────────────────────────────────────

    def verify_signed_token(self, path: str, token: str) -> str:
        """
        Check that `token` was issued for `path` and has not expired.

        Returns:
            The normalised path.

        Raises:
            AuthenticationError for expired, tampered or mismatched tokens.
        """
        relative = normalize_blob_path(path)
        try:
            claims = jwt.decode(token, self.signing_secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise AuthenticationError(
                message="This image link has expired. Refresh the page to get a new one.",
                context={"path": relative},
            )
        except JWTError as e:
            logger.warning("Rejected blob token for %s: %s", relative, str(e))
            raise AuthenticationError(
                message="Invalid image link",
                context={"path": relative},
            )

        if claims.get("typ") != BLOB_TOKEN_TYPE or claims.get("sub") != relative:
            logger.warning("Blob token subject mismatch for %s", relative)
            raise AuthenticationError(
                message="Invalid image link",
                context={"path": relative},
            )
        return relative

    def open_blob(self, path: str) -> Path:
        """
        Resolve a blob for serving.

        Raises:
            NotFoundError if the blob does not exist.
        """
        absolute = self._resolve(path)
        if not absolute.is_file():
            raise NotFoundError(resource="blob", resource_id=normalize_blob_path(path))
        return absolute

    @staticmethod
    def media_type_for(path: str) -> str:
        guessed, _ = mimetypes.guess_type(path)
        return guessed or "application/octet-stream"
