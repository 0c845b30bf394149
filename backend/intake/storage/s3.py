"""
S3 Object Store — uploaded document blobs

Layout:
    s3://<BUCKET>/uploads/<epoch_millis>-<random>.<ext>

The object path is generated server-side and never derived from the
client's filename beyond its extension, so two uploads of "invoice.pdf"
never collide and no path traversal is possible.

Any S3-compatible endpoint works (MinIO, Supabase storage, R2): set
S3_ENDPOINT_URL for the API and S3_PUBLIC_BASE_URL for the public
locator that is stored on the document row.

Object lifecycle:
  - put_object() uploads and returns the public URL.
  - get_object() is used by the worker in queued mode.
  - delete_object() is best-effort from the caller's point of view;
    the document row is removed even if the blob delete fails.
"""

from __future__ import annotations

import logging
import os
import random
import time

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from intake.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "uploads"


class ObjectNotFoundError(FileNotFoundError):
    """Raised by get_object when the key does not exist."""


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def build_object_path(filename: str, fallback_ext: str = "") -> str:
    """
    Build a unique blob path for an upload.
    Pattern:  uploads/<epoch_millis>-<0..1e9><ext>

    Only the extension of the client filename is kept.
    """
    ext = os.path.splitext(filename or "")[1].lower() or fallback_ext
    millis = int(time.time() * 1000)
    suffix = round(random.random() * 1e9)
    return f"{UPLOAD_PREFIX}/{millis}-{suffix}{ext}"


# ---------------------------------------------------------------------------
# Object store
# ---------------------------------------------------------------------------

class ObjectStore:
    """
    Async S3 operations on the documents bucket.

    One instance is created at application startup and shared across
    requests; every call opens its own short-lived client.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._cfg = config or default_settings
        self._session = aioboto3.Session(
            aws_access_key_id=self._cfg.aws_access_key_id or None,
            aws_secret_access_key=self._cfg.aws_secret_access_key or None,
            region_name=self._cfg.aws_region,
        )

    @property
    def bucket(self) -> str:
        return self._cfg.s3_bucket

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            endpoint_url=self._cfg.s3_endpoint_url or None,
            # In production: IAM role assumed via ECS task role / IRSA.
        )

    def _public_base(self) -> str:
        if self._cfg.s3_public_base_url:
            return self._cfg.s3_public_base_url.rstrip("/")
        return f"https://{self.bucket}.s3.{self._cfg.aws_region}.amazonaws.com"

    # ------------------------------------------------------------------
    # URL <-> path
    # ------------------------------------------------------------------

    def public_url(self, path: str) -> str:
        return f"{self._public_base()}/{path.lstrip('/')}"

    def path_from_url(self, url: str) -> str | None:
        """
        Reverse of public_url(). Returns None for URLs that were not
        issued by this store (e.g. rows migrated from another bucket).
        """
        base = self._public_base() + "/"
        if not url or not url.startswith(base):
            return None
        path = url[len(base):].split("?", 1)[0]
        return path or None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put_object(self, path: str, body: bytes, content_type: str) -> str:
        """
        Upload raw bytes under `path`.

        Returns:
            The public URL of the stored object.

        Raises:
            ClientError / BotoCoreError from the S3 client; callers map
            these to STORAGE_ERROR.
        """
        async with self._client() as s3:
            await s3.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=body,
                ContentType=content_type,
            )

        logger.info(
            "S3 upload ok | bucket=%s key=%s size=%d content_type=%s",
            self.bucket, path, len(body), content_type,
        )
        return self.public_url(path)

    async def get_object(self, path: str) -> bytes:
        """Download an object. Raises ObjectNotFoundError if the key is absent."""
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self.bucket, Key=path)
                return await resp["Body"].read()
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    raise ObjectNotFoundError(f"Object not found: {path}") from exc
                raise

    async def delete_object(self, path: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=self.bucket, Key=path)
        logger.info("S3 delete | bucket=%s key=%s", self.bucket, path)

    async def delete_by_url(self, url: str) -> bool:
        """
        Best-effort removal of the blob behind a stored public URL.
        Failures are logged and reported as False, never raised.
        """
        path = self.path_from_url(url)
        if path is None:
            logger.warning("S3 delete skipped | url not owned by bucket=%s url=%s", self.bucket, url)
            return False
        try:
            await self.delete_object(path)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("S3 delete failed | key=%s error=%s", path, exc)
            return False
        return True
