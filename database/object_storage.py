"""S3-compatible object storage for product images and HTML audits."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Optional, Set, Tuple
from urllib.parse import urlparse

from minio import Minio
from minio.error import S3Error

from utils.error_handling import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "NotFound"}


def parse_endpoint(endpoint: str) -> Tuple[str, bool]:
    """``http://minio:9000`` -> (``minio:9000``, False); bare hosts default to https."""
    if not endpoint or not endpoint.strip():
        raise ConfigurationError("S3 endpoint is not configured")
    endpoint = endpoint.strip()
    if "://" not in endpoint:
        return endpoint.rstrip("/"), True
    parsed = urlparse(endpoint)
    return parsed.netloc, parsed.scheme == "https"


class ObjectStorage:
    """
    Thin async wrapper around the blocking ``minio`` client.

    Every client call runs in a worker thread. Buckets are created on first
    use and remembered for the lifetime of the wrapper.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        public_url: Optional[str] = None,
        client: Optional[Minio] = None,
    ):
        host, secure = parse_endpoint(endpoint)
        self.client = client or Minio(
            host,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        scheme = "https" if secure else "http"
        self.public_url = (public_url or f"{scheme}://{host}").rstrip("/")
        self._known_buckets: Set[str] = set()

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_url}/{bucket}/{path.lstrip('/')}"

    async def bucket_exists(self, bucket: str) -> bool:
        try:
            return bool(await asyncio.to_thread(self.client.bucket_exists, bucket))
        except S3Error as exc:
            raise StorageError(f"Failed to check bucket {bucket}: {exc}") from exc

    async def exists(self, bucket: str, path: str) -> bool:
        try:
            await asyncio.to_thread(self.client.stat_object, bucket, path)
        except S3Error as exc:
            if exc.code in _MISSING_OBJECT_CODES or exc.code == "NoSuchBucket":
                return False
            raise StorageError(f"Failed to stat {bucket}/{path}: {exc}") from exc
        return True

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        *,
        upsert: bool = True,
    ) -> str:
        """
        Store ``data`` at ``bucket/path`` and return its public URL.

        With ``upsert=False`` an existing object is left untouched and its URL
        is returned.
        """
        try:
            await self._ensure_bucket(bucket)
            if not upsert and await self.exists(bucket, path):
                logger.debug(f"Object {bucket}/{path} already stored, keeping it")
                return self.get_public_url(bucket, path)

            await asyncio.to_thread(
                self.client.put_object,
                bucket_name=bucket,
                object_name=path,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as exc:
            logger.error(f"Upload to {bucket}/{path} failed: {exc}")
            raise StorageError(f"Failed to upload {bucket}/{path}: {exc}") from exc

        logger.info(f"Stored {len(data)} bytes at {bucket}/{path}")
        return self.get_public_url(bucket, path)

    async def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return
        if not await asyncio.to_thread(self.client.bucket_exists, bucket):
            logger.info(f"Creating bucket {bucket}")
            await asyncio.to_thread(self.client.make_bucket, bucket)
        self._known_buckets.add(bucket)
