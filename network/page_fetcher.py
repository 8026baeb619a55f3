"""
Async page and asset fetcher built on httpx.

All outbound requests of one import go through a single shared
``httpx.AsyncClient``; failures surface as ``FetchError`` so callers can tell
network problems apart from parsing or persistence issues.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
from fake_useragent import UserAgent

from utils.error_handling import FetchError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-IN,en;q=0.9",
}


@dataclass
class FetchedBinary:
    content: bytes
    content_type: str


class PageFetcher:
    """Fetches HTML pages and binary assets with a browser user-agent."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        rotate_user_agent: bool = False,
    ) -> None:
        self.client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self.ua: Optional[UserAgent] = None

        if rotate_user_agent:
            try:
                self.ua = UserAgent(browsers=["Chrome", "Edge"])
            except Exception as e:
                logger.warning(f"Failed to initialize UserAgent rotation: {e}")
                self.ua = None

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        user_agent = self.user_agent
        if self.ua is not None:
            try:
                user_agent = self.ua.random
            except Exception as e:
                logger.debug(f"UserAgent rotation failed, using default: {e}")
        headers = {**DEFAULT_HEADERS, "User-Agent": user_agent}
        if extra:
            headers.update(extra)
        return headers

    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            response = await self.client.get(
                url,
                headers=self._headers(headers),
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", url, exc)
            raise FetchError(f"Failed to fetch {url}: {exc}", url=url) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise FetchError(
                f"Failed to fetch page: {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response

    async def fetch_html(self, url: str) -> str:
        """Return the page body as text or raise ``FetchError``."""
        response = await self._get(url)
        logger.debug("Fetched %s (%d chars)", url, len(response.text))
        return response.text

    async def fetch_text(self, url: str, user_agent: Optional[str] = None) -> Optional[str]:
        """Return the body for 2xx responses and None otherwise; never raises."""
        headers = {"User-Agent": user_agent} if user_agent else None
        try:
            response = await self._get(url, headers)
        except FetchError as exc:
            logger.debug("Optional fetch of %s skipped: %s", url, exc)
            return None
        return response.text

    async def fetch_bytes(self, url: str, max_bytes: Optional[int] = None) -> FetchedBinary:
        """Download a binary asset, enforcing ``max_bytes`` when given."""
        response = await self._get(url, {"Accept": "image/avif,image/webp,image/*,*/*;q=0.8"})
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()

        if max_bytes is not None:
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise FetchError(
                    f"Asset too large: {declared} bytes (max: {max_bytes})", url=url, status_code=413
                )
            if len(response.content) > max_bytes:
                raise FetchError(
                    f"Asset too large: {len(response.content)} bytes (max: {max_bytes})",
                    url=url,
                    status_code=413,
                )

        return FetchedBinary(content=response.content, content_type=content_type)
