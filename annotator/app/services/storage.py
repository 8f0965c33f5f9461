"""Object storage for uploaded images and thumbnails.

Objects live in a MinIO (S3-compatible) bucket. Clients upload either
directly (base64 through the API) or with a presigned PUT URL issued by
the bucket endpoint; public URLs point at the bucket as well.
"""

import io
import mimetypes
import re
import secrets
from datetime import timedelta
from typing import Optional, Protocol
from urllib.parse import quote, urlparse

from minio import Minio
from minio.error import MinioException

from annotator.app.core.clock import Clock, system_clock
from annotator.app.core.config import Settings
from annotator.app.core.logging import get_logger

logger = get_logger(__name__)

_EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,10}$")
DEFAULT_EXTENSION = "jpg"
THUMBNAIL_PREFIX = "thumb-"


class StorageError(RuntimeError):
    """Raised when the object store rejects or fails an operation."""


class ObjectStorage(Protocol):
    def ensure_bucket(self) -> None: ...

    def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None: ...

    def public_url(self, key: str) -> str: ...

    def signed_upload_url(self, key: str, ttl_seconds: Optional[int] = None) -> str: ...


def file_extension(filename: str) -> str:
    """Lower-cased extension of ``filename``, or ``jpg`` when missing or odd."""
    _, dot, ext = filename.rpartition(".")
    ext = ext.lower()
    if not dot or not _EXTENSION_PATTERN.match(ext):
        return DEFAULT_EXTENSION
    return ext


def generate_object_key(original_filename: str, clock: Clock = system_clock) -> str:
    """Return a unique flat key such as ``1718000000000-9f2c1a7b.png``."""
    return f"{clock()}-{secrets.token_hex(4)}.{file_extension(original_filename)}"


def thumbnail_key(key: str) -> str:
    return f"{THUMBNAIL_PREFIX}{key}"


def guess_content_type(key: str) -> str:
    content_type, _ = mimetypes.guess_type(key)
    return content_type or "application/octet-stream"


class MinioObjectStorage:
    """MinIO-backed object store with presigned upload URLs."""

    def __init__(
        self,
        client: Minio,
        bucket: str,
        public_base_url: str,
        upload_ttl_seconds: int = 3600,
    ):
        """Initialize storage.

        Args:
            client: Configured MinIO client
            bucket: Bucket holding images and thumbnails
            public_base_url: Endpoint URL objects are publicly served from
            upload_ttl_seconds: Default lifetime of presigned upload URLs
        """
        self._client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.upload_ttl_seconds = upload_ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "MinioObjectStorage":
        parsed = urlparse(settings.storage_endpoint_url)
        client = Minio(
            endpoint=parsed.netloc,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            secure=parsed.scheme == "https",
            region=settings.storage_region,
        )
        return cls(
            client=client,
            bucket=settings.storage_bucket,
            public_base_url=settings.storage_public_base_url or settings.storage_endpoint_url,
            upload_ttl_seconds=settings.storage_upload_ttl_seconds,
        )

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet.

        Raises:
            StorageError: The bucket could not be checked or created
        """
        try:
            if not self._client.bucket_exists(bucket_name=self.bucket):
                self._client.make_bucket(bucket_name=self.bucket)
                logger.info(f"Created storage bucket {self.bucket}")
        except MinioException as e:
            raise StorageError(f"Unable to ensure bucket '{self.bucket}': {e}") from e

    def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Upload ``data`` under ``key``, replacing any existing object.

        Raises:
            StorageError: The upload failed
        """
        try:
            self._client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type or guess_content_type(key),
            )
        except MinioException as e:
            logger.error(f"Failed to store object {key}: {e}")
            raise StorageError(f"Failed to store object {key}") from e
        logger.debug(f"Stored object {key} ({len(data)} bytes)")

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{quote(key)}"

    def signed_upload_url(self, key: str, ttl_seconds: Optional[int] = None) -> str:
        """Presigned PUT URL that accepts an upload for ``key`` until it expires."""
        ttl = ttl_seconds if ttl_seconds is not None else self.upload_ttl_seconds
        return self._client.presigned_put_object(
            bucket_name=self.bucket,
            object_name=key,
            expires=timedelta(seconds=ttl),
        )
