"""
Retry with exponential backoff for transient backend failures.

Transient failures are network-level errors (refused/reset connections,
timeouts), HTTP 5xx responses and 429 rate limiting. Anything else is
permanent and is raised on the first attempt.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from chorus.services.errors import (
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
)

if TYPE_CHECKING:
    from chorus.settings import Settings

T = TypeVar("T")

OnRetry = Callable[[int, BaseException], Any]

TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    RequestTimeoutError,
    RateLimitError,
    ServiceUnavailableError,
)


@dataclass
class RetryConfig:
    """Configuration for retry_with_backoff. Delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryConfig":
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay_ms / 1000,
            max_delay=settings.retry_max_delay_ms / 1000,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


def _status_code_of(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def is_transient_error(error: BaseException | None) -> bool:
    """Check if an error is likely to succeed on retry."""
    if error is None:
        return False

    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return True

    status = _status_code_of(error)
    if status is None:
        return False
    return status == 429 or 500 <= status < 600


def compute_delay(
    attempt: int,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff_multiplier: float = 2.0,
) -> float:
    """Delay in seconds before the retry following 0-based attempt `attempt`."""
    return min(initial_delay * backoff_multiplier**attempt, max_delay)


async def retry_with_backoff(
    action: Callable[[], Awaitable[T]],
    *,
    max_retries: int | None = None,
    initial_delay: float | None = None,
    max_delay: float | None = None,
    backoff_multiplier: float | None = None,
    on_retry: OnRetry | None = None,
    config: RetryConfig | None = None,
) -> T:
    """
    Execute `action`, retrying transient failures with exponential backoff.

    Explicit keyword arguments override the values in `config`. The action is
    called at most `max_retries + 1` times. Permanent errors propagate on the
    first occurrence; when retries are exhausted the last error propagates
    as-is.

    Args:
        action: Zero-argument coroutine function to execute
        max_retries: Retries after the first attempt
        initial_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        backoff_multiplier: Growth factor between consecutive delays
        on_retry: Called as on_retry(attempt_number, error) before each wait;
            may be a coroutine function
        config: Base RetryConfig

    Returns:
        The action's result
    """
    config = config or RetryConfig()
    retries = config.max_retries if max_retries is None else max_retries
    first_delay = config.initial_delay if initial_delay is None else initial_delay
    delay_cap = config.max_delay if max_delay is None else max_delay
    multiplier = (
        config.backoff_multiplier if backoff_multiplier is None else backoff_multiplier
    )

    attempt = 0
    while True:
        try:
            return await action()
        except Exception as e:
            if not is_transient_error(e):
                raise

            if attempt >= retries:
                logger.warning(
                    f"Giving up after {attempt + 1} attempts: {type(e).__name__}: {e}"
                )
                raise

            delay = compute_delay(attempt, first_delay, delay_cap, multiplier)
            logger.debug(
                f"Transient error on attempt {attempt + 1}/{retries + 1}: "
                f"{type(e).__name__}. Retrying in {delay:.2f}s"
            )

            if on_retry is not None:
                outcome = on_retry(attempt + 1, e)
                if inspect.isawaitable(outcome):
                    await outcome

            await asyncio.sleep(delay)
            attempt += 1
