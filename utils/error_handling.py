import json
import logging
import traceback
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, Optional, Any

import httpx

logger = logging.getLogger(__name__)

ROBOTS_DISALLOWED = "disallowed_by_robots"


# Custom Exception Classes
class ImporterError(Exception):
    """Base exception for all importer errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(ImporterError):
    """Configuration-related errors"""

    pass


class InvalidUrlError(ImporterError):
    """Import target is not an absolute http(s) URL"""

    pass


class FetchError(ImporterError):
    """Network failures and non-2xx responses while fetching a URL"""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.url = url
        self.status_code = status_code


class RobotsDisallowedError(ImporterError):
    """robots.txt denies access to the target path"""

    code = ROBOTS_DISALLOWED

    def __init__(self, url: str):
        super().__init__(ROBOTS_DISALLOWED, {"url": url})
        self.url = url


class ParsingError(ImporterError):
    """Errors during HTML/data parsing"""

    pass


class PersistenceError(ImporterError):
    """Datastore rejected a read or write"""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message, {"code": code, "detail": detail, "hint": hint})
        self.code = code
        self.detail = detail
        self.hint = hint


class StorageError(ImporterError):
    """Object storage upload or lookup failures"""

    pass


class ImageArchiveError(ImporterError):
    """Image could not be downloaded, validated or re-hosted"""

    pass


class CrawlDiscoveryError(ImporterError):
    """Bulk crawl job failed or did not finish in time"""

    pass


@dataclass
class ErrorContext:
    """Captures error details for structured failure logs"""

    url: Optional[str] = None
    stage: Optional[str] = None
    stack_trace: Optional[str] = None
    timestamp: Optional[datetime] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, indent=2)


TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def is_transient_error(error: BaseException) -> bool:
    """Return True when retrying the same request may succeed."""
    if isinstance(error, RobotsDisallowedError):
        return False
    if isinstance(error, FetchError):
        # No status means the request never completed (DNS, reset, timeout)
        return error.status_code is None or error.status_code in TRANSIENT_STATUS_CODES
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return False


def error_payload(error: BaseException) -> Dict[str, Any]:
    """Flatten an exception into the fields surfaced to API callers."""
    payload: Dict[str, Any] = {
        "error": str(error) or type(error).__name__,
        "errorType": type(error).__name__,
    }
    if isinstance(error, PersistenceError):
        details = {
            key: value
            for key, value in (
                ("code", error.code),
                ("detail", error.detail),
                ("hint", error.hint),
            )
            if value
        }
        if details:
            payload["errorDetails"] = details
    return payload


def log_unexpected_error(
    error: BaseException, context: Optional[ErrorContext] = None
) -> None:
    """Log an unexpected failure with its full stack trace."""
    context = context or ErrorContext()
    context.stack_trace = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    logger.error(
        "Unexpected %s: %s\n%s",
        type(error).__name__,
        error,
        context.to_json(),
    )
