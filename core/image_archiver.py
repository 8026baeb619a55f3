"""Re-hosts product images in object storage under content-addressed paths."""

import logging
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from core.types import ObjectStore
from network.page_fetcher import PageFetcher
from utils.error_handling import FetchError, ImageArchiveError, StorageError
from utils.helpers import compute_checksum

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_BUCKET = "products"
DEFAULT_IMAGE_PREFIX = "product-images/medicines"
MAX_IMAGE_BYTES = 2 * 1024 * 1024

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

_URL_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}


@dataclass
class ArchivedImage:
    public_url: str
    storage_path: str
    image_hash: str


def image_extension(content_type: str, url: str) -> str:
    """Extension from content type, then from the URL path, defaulting to jpg."""
    if content_type in CONTENT_TYPE_EXTENSIONS:
        return CONTENT_TYPE_EXTENSIONS[content_type]
    ext = os.path.splitext(urlparse(url).path)[1].lstrip(".").lower()
    if ext in _URL_EXTENSIONS:
        return "jpg" if ext == "jpeg" else ext
    return "jpg"


class ImageArchiver:
    def __init__(
        self,
        fetcher: PageFetcher,
        storage: ObjectStore,
        bucket: str = DEFAULT_IMAGE_BUCKET,
        prefix: str = DEFAULT_IMAGE_PREFIX,
        max_bytes: int = MAX_IMAGE_BYTES,
    ):
        self.fetcher = fetcher
        self.storage = storage
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.max_bytes = max_bytes

    async def archive(self, image_url: Optional[str]) -> ArchivedImage:
        """Download, validate and upload one image; raises ``ImageArchiveError``."""
        if not image_url:
            raise ImageArchiveError("No image URL to archive")

        scheme = urlparse(image_url).scheme.lower()
        if scheme not in ("http", "https"):
            raise ImageArchiveError(
                f"Unsupported image URL scheme: {scheme or 'none'}",
                {"url": image_url},
            )

        try:
            binary = await self.fetcher.fetch_bytes(image_url, max_bytes=self.max_bytes)
        except FetchError as exc:
            raise ImageArchiveError(f"Image download failed: {exc}", {"url": image_url}) from exc

        if not binary.content_type.startswith("image/"):
            raise ImageArchiveError(
                f"Not an image: {binary.content_type or 'unknown content type'}",
                {"url": image_url},
            )

        image_hash = compute_checksum(binary.content, "sha1")
        path = f"{self.prefix}/{image_hash}.{image_extension(binary.content_type, image_url)}"

        try:
            public_url = await self.storage.upload(
                self.bucket, path, binary.content, binary.content_type, upsert=True
            )
        except StorageError as exc:
            raise ImageArchiveError(f"Image upload failed: {exc}", {"url": image_url}) from exc

        logger.info(f"Archived image {image_url} -> {self.bucket}/{path}")
        return ArchivedImage(public_url=public_url, storage_path=path, image_hash=image_hash)
