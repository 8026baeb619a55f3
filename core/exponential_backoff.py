"""
Exponential backoff with jitter for retrying transient import failures.
Provides error-specific delay strategies and per-URL retry bookkeeping.
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from utils.error_handling import FetchError, is_transient_error
from utils.logger import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class ErrorType(Enum):
    """Types of errors for specific retry strategies."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    HTTP_5XX = "http_5xx"
    HTTP_4XX = "http_4xx"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> ErrorType:
    """Map an exception raised during an import to a retry strategy."""
    if isinstance(error, httpx.TimeoutException):
        return ErrorType.TIMEOUT
    if isinstance(error, FetchError):
        status = error.status_code
        if status is None:
            return ErrorType.NETWORK
        if status == 429:
            return ErrorType.RATE_LIMIT
        if status in (408, 504):
            return ErrorType.TIMEOUT
        if status >= 500:
            return ErrorType.HTTP_5XX
        if status in (401, 403):
            return ErrorType.BLOCKED
        return ErrorType.HTTP_4XX
    if isinstance(error, httpx.NetworkError):
        return ErrorType.NETWORK
    return ErrorType.UNKNOWN


@dataclass
class RetryState:
    """State tracking for retry attempts of one identifier."""

    identifier: str
    attempt_count: int = 0
    last_failure: Optional[datetime] = None
    failure_types: List[str] = field(default_factory=list)
    total_delay: float = 0.0
    success_count: int = 0


class ExponentialBackoff:
    """Bounded exponential backoff; only transient errors are retried."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, sleep: Sleep = asyncio.sleep):
        config = config or {}
        self.config = config
        self.enabled = config.get("enabled", True)
        self.base_delay = config.get("base_delay_seconds", 1.0)
        self.max_delay = config.get("max_delay_seconds", 30.0)
        self.multiplier = config.get("multiplier", 2.0)
        self.jitter = config.get("jitter", True)
        self.max_attempts = config.get("max_attempts", 3)
        self._sleep = sleep

        # Error-specific strategies
        self.error_strategies: Dict[str, Dict[str, float]] = {
            "timeout": {"multiplier": 1.5, "delay_factor": 2.0},
            "rate_limit": {"multiplier": 3.0, "delay_factor": 5.0},
            "network": {"multiplier": 2.0, "delay_factor": 1.0},
            "http_5xx": {"multiplier": 2.0, "delay_factor": 2.0},
        }
        for error_type, strategy in config.get("error_specific_strategies", {}).items():
            self.error_strategies.setdefault(error_type, {}).update(strategy)

        self.retry_states: Dict[str, RetryState] = {}
        self.global_stats = {"total_retries": 0, "total_delays": 0.0}

        logger.debug(
            f"ExponentialBackoff initialized: base={self.base_delay}s, "
            f"max={self.max_delay}s, attempts={self.max_attempts}"
        )

    def calculate_delay(self, attempt: int, error_type: Optional[ErrorType] = None) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (0-based)
            error_type: Type of error for specific strategy

        Returns:
            Delay in seconds
        """
        if not self.enabled:
            return 0.0

        strategy = self.error_strategies.get(error_type.value, {}) if error_type else {}
        base_delay = self.base_delay * strategy.get("delay_factor", 1.0)
        multiplier = strategy.get("multiplier", self.multiplier)

        delay = min(base_delay * (multiplier**attempt), self.max_delay)

        if self.jitter and delay > 0:
            delay *= 1 + 0.1 + (random.random() * 0.4)  # 10-50% jitter

        return delay

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """
        Retry decision for a failed attempt.

        Args:
            attempt: Number of attempts already made (1-based)
            error: Exception raised by the last attempt
        """
        if not self.enabled or attempt >= self.max_attempts:
            return False
        return is_transient_error(error)

    def track_failure(self, identifier: str, error: BaseException) -> None:
        state = self._get_retry_state(identifier)
        state.attempt_count += 1
        state.last_failure = datetime.now()
        state.failure_types.append(classify_error(error).value)
        self.global_stats["total_retries"] += 1

    def track_success(self, identifier: str) -> None:
        self._get_retry_state(identifier).success_count += 1

    async def wait_with_backoff(self, identifier: str, attempt: int, error: BaseException) -> float:
        """
        Calculate delay and wait asynchronously.

        Returns:
            Actual delay time waited
        """
        error_type = classify_error(error)
        delay = self.calculate_delay(attempt, error_type)

        if delay > 0:
            state = self._get_retry_state(identifier)
            state.total_delay += delay
            self.global_stats["total_delays"] += delay

            logger.info(
                f"Retrying {identifier} in {delay:.2f}s after {error_type.value} error (attempt {attempt + 1})"
            )
            await self._sleep(delay)

        return delay

    def get_retry_statistics(self, identifier: str) -> Dict[str, Any]:
        state = self._get_retry_state(identifier)
        return {
            "identifier": identifier,
            "attempt_count": state.attempt_count,
            "success_count": state.success_count,
            "total_delay": state.total_delay,
            "failure_types": list(state.failure_types),
        }

    def _get_retry_state(self, identifier: str) -> RetryState:
        if identifier not in self.retry_states:
            self.retry_states[identifier] = RetryState(identifier=identifier)
        return self.retry_states[identifier]
