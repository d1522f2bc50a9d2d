"""Request pacing and retry helpers shared by the outbound HTTP clients."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
RETRY_STATUS_CODES = (429, 500, 502, 503, 504, 529)


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, max_requests_per_second: float = 10.0) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests_per_second: Maximum requests allowed per second.
        """
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    retry_on: tuple[type[Exception], ...],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    description: str = "request",
) -> T:
    """Run an async operation with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory, invoked once per attempt.
        retry_on: Exception types that trigger another attempt.
        max_retries: Additional attempts after the first.
        base_delay: Base delay in seconds (doubles with each retry).
        description: Label used in log messages.

    Raises:
        RetryError: When every attempt failed with a retryable error.
    """
    last_exception: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except retry_on as e:
            last_exception = e
            if attempt == max_retries:
                break

            delay = base_delay * (2**attempt)
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                description,
                attempt + 1,
                max_retries + 1,
                str(e),
                delay,
            )
            await asyncio.sleep(delay)

    raise RetryError(
        f"All {max_retries + 1} attempts failed for {description}",
        last_exception=last_exception,
    )
