"""Retry policies for page loads, geocoding and vision calls.

Every network stage backs off exponentially with jitter. ``RetryConfig``
holds the knobs; ``with_retry`` turns one into a tenacity decorator that logs
each retry and re-raises the last error once attempts run out.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, ParamSpec, TypeVar

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from src.logging import get_logger

if TYPE_CHECKING:
    from src.config.settings import Settings

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
)


class RetryableHTTPError(Exception):
    """Non-2xx response that may succeed when repeated (429, 5xx)."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


@dataclass(frozen=True)
class RetryConfig:
    """How many times to try and how long to wait in between."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 1.0
    retryable_status_codes: tuple[int, ...] = (429, 500, 502, 503, 504)
    retryable_exceptions: tuple[type[BaseException], ...] = TRANSIENT_ERRORS

    @classmethod
    def for_pages(cls, settings: "Settings") -> "RetryConfig":
        """Page renders: one retry after a short pause by default."""
        return cls(
            max_attempts=settings.page_max_attempts,
            initial_delay=settings.page_retry_delay,
            jitter=0.5,
        )

    @classmethod
    def for_geocoding(cls) -> "RetryConfig":
        return cls(max_attempts=3, initial_delay=1.0, jitter=0.5)

    @classmethod
    def for_vision(cls, key_count: int) -> "RetryConfig":
        """Two tries per API key, so every key gets a turn after rotation."""
        import openai

        return cls(
            max_attempts=max(key_count, 1) * 2,
            initial_delay=1.0,
            max_delay=10.0,
            retryable_exceptions=(openai.APIError,),
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after ``attempt`` (1-indexed) failed."""
        delay = min(self.initial_delay * 2 ** (attempt - 1), self.max_delay)
        return min(delay + random.uniform(0, self.jitter), self.max_delay)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, RetryableHTTPError):
            return exc.status_code in self.retryable_status_codes
        return isinstance(exc, self.retryable_exceptions)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retryable_error",
        function=getattr(retry_state.fn, "__name__", None),
        attempt=retry_state.attempt_number,
        error=str(error),
        error_type=type(error).__name__,
        delay=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
    )


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async callable according to ``config``.

    Usage:
        @with_retry(RetryConfig.for_geocoding())
        async def _request(self, address): ...
    """
    config = config or RetryConfig()
    return retry(
        stop=stop_after_attempt(max(config.max_attempts, 1)),
        wait=wait_exponential_jitter(
            initial=config.initial_delay,
            max=config.max_delay,
            jitter=config.jitter,
        ),
        retry=retry_if_exception(config.is_retryable),
        before_sleep=_log_retry,
        sleep=_sleep,
        reraise=True,
    )
