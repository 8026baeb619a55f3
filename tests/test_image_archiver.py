"""Tests for image re-hosting."""

import hashlib

import pytest

from core.image_archiver import ImageArchiver, image_extension
from network.page_fetcher import PageFetcher
from utils.error_handling import ImageArchiveError

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


def test_image_extension_prefers_content_type() -> None:
    assert image_extension("image/webp", "https://cdn.test/a.png") == "webp"
    assert image_extension("image/x-icon", "https://cdn.test/a.JPEG") == "jpg"
    assert image_extension("image/x-icon", "https://cdn.test/a") == "jpg"


@pytest.mark.asyncio
async def test_archive_uploads_content_addressed_copy(make_client, storage) -> None:
    routes = {"https://cdn.test/dolo.png": (200, PNG_BYTES, {"content-type": "image/png"})}
    async with make_client(routes) as client:
        archiver = ImageArchiver(PageFetcher(client), storage)
        archived = await archiver.archive("https://cdn.test/dolo.png")

    digest = hashlib.sha1(PNG_BYTES).hexdigest()
    assert archived.image_hash == digest
    assert archived.storage_path == f"product-images/medicines/{digest}.png"
    assert archived.public_url == f"https://storage.test/products/product-images/medicines/{digest}.png"
    assert storage.uploads == [("products", archived.storage_path, True)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url,routes,message",
    [
        ("ftp://cdn.test/dolo.png", {}, "Unsupported image URL scheme"),
        ("https://cdn.test/page", {"https://cdn.test/page": (200, "<html></html>")}, "Not an image"),
        ("https://cdn.test/missing.png", {}, "Image download failed"),
    ],
)
async def test_archive_rejects_invalid_sources(make_client, storage, url, routes, message) -> None:
    async with make_client(routes) as client:
        archiver = ImageArchiver(PageFetcher(client), storage)
        with pytest.raises(ImageArchiveError) as excinfo:
            await archiver.archive(url)

    assert message in str(excinfo.value)
    assert storage.uploads == []


@pytest.mark.asyncio
async def test_archive_enforces_size_cap(make_client, storage) -> None:
    routes = {"https://cdn.test/huge.jpg": (200, b"x" * 2048, {"content-type": "image/jpeg"})}
    async with make_client(routes) as client:
        archiver = ImageArchiver(PageFetcher(client), storage, max_bytes=1024)
        with pytest.raises(ImageArchiveError) as excinfo:
            await archiver.archive("https://cdn.test/huge.jpg")

    assert "too large" in str(excinfo.value)
