"""
Retry policy shared by all provider adapters.

Every outbound request goes through RetryPolicy.call(): bounded attempts,
exponential backoff between them, and a per-attempt timeout. Only
transient failures are retried (network errors, timeouts, 429 and 5xx
responses); a 401 or 404 fails on the first attempt.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from gridlines.core.config import Settings, settings

logger = logging.getLogger(__name__)


def is_transient_error(exc: BaseException) -> bool:
    """True for failures worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Attributes:
        attempts: Total attempts, including the first
        timeout_seconds: Limit for a single attempt
        wait_min: Minimum backoff between attempts (seconds)
        wait_max: Maximum backoff between attempts (seconds)
    """
    attempts: int = 3
    timeout_seconds: float = 10.0
    wait_min: float = 2.0
    wait_max: float = 10.0

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "RetryPolicy":
        return cls(
            attempts=config.PROVIDER_RETRY_ATTEMPTS,
            timeout_seconds=config.PROVIDER_TIMEOUT_SECONDS,
            wait_min=config.PROVIDER_RETRY_MIN_WAIT,
            wait_max=config.PROVIDER_RETRY_MAX_WAIT,
        )

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await func(*args, **kwargs) under this policy.

        Raises:
            The last exception once attempts are exhausted, or the first
            non-transient one immediately
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception(is_transient_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout_seconds)
