"""Thin Firecrawl API client used for product discovery during crawls."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.firecrawl.dev/v1"


class FirecrawlClient:
    """HTTP wrapper around the Firecrawl ``/scrape`` and ``/crawl`` endpoints.

    Calls are blocking; async callers run them through ``asyncio.to_thread``.
    Several API keys may be configured: when one runs out of credits the
    client rotates to the next.
    """

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None) -> None:
        self.enabled: bool = bool(config.get("enabled", True))

        raw_keys = config.get("api_keys")
        api_keys: list[str] = []
        if isinstance(raw_keys, list):
            for key in raw_keys:
                if isinstance(key, str) and key.strip():
                    api_keys.append(key.strip())

        primary_key = str(config.get("api_key") or "").strip()
        if primary_key:
            if primary_key not in api_keys:
                api_keys.insert(0, primary_key)

        self.api_keys: list[str] = api_keys
        self._key_index: int = 0
        self.api_key: str = api_keys[0] if api_keys else ""
        self.base_url: str = str(config.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout: int = int(config.get("timeout_seconds", 30))
        self.max_requests: int = int(config.get("max_requests_per_run", 60))
        self.only_main_content: bool = bool(config.get("only_main_content", False))

        formats = config.get("formats", ["markdown"])
        self.formats: list[Any] = formats if isinstance(formats, list) else [formats]

        self._request_count = 0
        self._cache: Dict[str, Optional[str]] = {}

        self._session = session or requests.Session()
        self._apply_auth_header()
        self._session.headers.update({"Content-Type": "application/json"})

        self._insufficient_credits = False

        if not self.is_configured:
            logger.info("Firecrawl client initialised in disabled state")

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.api_key) and not self._insufficient_credits

    # Public API -----------------------------------------------------------------
    def scrape_markdown(self, url: str) -> Optional[str]:
        """Return markdown payload for *url* or None when disabled/failed."""

        if not self.is_configured:
            return None

        if url in self._cache:
            return self._cache[url]

        if self._request_count >= self.max_requests:
            logger.warning(
                "Firecrawl request limit reached (%s); skipping %s",
                self.max_requests,
                url,
            )
            return None

        payload: Dict[str, Any] = {
            "url": url,
            "formats": self.formats,
            "onlyMainContent": self.only_main_content,
        }

        data = self._request("post", f"{self.base_url}/scrape", payload)
        markdown = self._extract_markdown(data) if data is not None else None
        self._cache[url] = markdown
        if markdown:
            logger.info("Firecrawl scraped %s characters from %s", len(markdown), url)
        return markdown

    def start_crawl(
        self,
        url: str,
        *,
        limit: int,
        include_paths: Optional[List[str]] = None,
    ) -> Optional[str]:
        """Start a crawl job rooted at *url*; returns the job id or None."""

        if not self.is_configured:
            return None

        payload: Dict[str, Any] = {
            "url": url,
            "limit": int(limit),
            "scrapeOptions": {"formats": ["markdown", "html"]},
        }
        if include_paths:
            payload["includePaths"] = include_paths

        data = self._request("post", f"{self.base_url}/crawl", payload)
        if not isinstance(data, dict) or not data.get("id"):
            logger.warning("Firecrawl crawl for %s did not return a job id", url)
            return None

        logger.info("Firecrawl crawl job %s started for %s", data["id"], url)
        return str(data["id"])

    def get_crawl_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw status payload (``status``, ``data``) of a crawl job."""

        if not self.is_configured:
            return None

        data = self._request("get", f"{self.base_url}/crawl/{job_id}", None)
        return data if isinstance(data, dict) else None

    # Internal helpers -----------------------------------------------------------
    def _request(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]],
    ) -> Any:
        """Issue one API call, re-sending it with the next key on exhausted credits."""

        while True:
            try:
                self._request_count += 1
                if method == "get":
                    response = self._session.get(url, timeout=self.timeout)
                else:
                    response = self._session.post(url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except requests.RequestException as exc:
                if self._should_rotate_key(exc) and self._rotate_key():
                    continue
                logger.warning("Firecrawl request to %s failed: %s", url, exc)
            except ValueError as exc:
                logger.warning("Firecrawl JSON decoding failed for %s: %s", url, exc)
            return None

    @staticmethod
    def _extract_markdown(payload: Any) -> Optional[str]:
        """Extract markdown content from arbitrary Firecrawl payload shape."""

        if not isinstance(payload, dict):
            return None

        if isinstance(payload.get("markdown"), str):
            return payload["markdown"]

        data = payload.get("data")
        if isinstance(data, dict):
            if isinstance(data.get("markdown"), str):
                return data["markdown"]

            document = data.get("document")
            if isinstance(document, dict) and isinstance(document.get("markdown"), str):
                return document["markdown"]

        return None

    def _apply_auth_header(self) -> None:
        if self.api_key:
            self._session.headers.update({"Authorization": f"Bearer {self.api_key}"})
        else:
            self._session.headers.pop("Authorization", None)

    def _rotate_key(self) -> bool:
        if self._key_index + 1 >= len(self.api_keys):
            self._insufficient_credits = True
            logger.warning("Firecrawl API keys exhausted; further requests disabled")
            return False

        self._key_index += 1
        self.api_key = self.api_keys[self._key_index]
        self._apply_auth_header()
        self._insufficient_credits = False
        logger.info(
            "Rotated Firecrawl API key (index %s/%s)",
            self._key_index + 1,
            len(self.api_keys),
        )
        return True

    def _should_rotate_key(self, exc: requests.RequestException) -> bool:
        response = getattr(exc, "response", None)
        if response is None:
            return False

        status_code = getattr(response, "status_code", None)
        body = response.text or ""

        is_quota = status_code == 402 or "insufficient credits" in body.lower()
        if not is_quota:
            return False

        if self._key_index + 1 >= len(self.api_keys):
            self._insufficient_credits = True
            return False

        return True


def extract_page_contents(status_payload: Dict[str, Any]) -> List[str]:
    """Markdown and HTML bodies of every page in a completed crawl payload."""
    contents: List[str] = []
    pages = status_payload.get("data")
    if not isinstance(pages, list):
        return contents
    for page in pages:
        if not isinstance(page, dict):
            continue
        for key in ("markdown", "html", "rawHtml"):
            value = page.get(key)
            if isinstance(value, str) and value:
                contents.append(value)
    return contents


__all__ = ["FirecrawlClient", "extract_page_contents"]
