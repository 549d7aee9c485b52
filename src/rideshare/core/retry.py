"""Backoff for calls to external services that fail transiently."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from .exceptions import RideshareError, TransientError

if TYPE_CHECKING:
    from rideshare.settings import MapsSettings

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (TransientError,)
    )

    @classmethod
    def from_maps_settings(cls, settings: "MapsSettings") -> "RetryConfig":
        return cls(
            max_attempts=settings.max_retries,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
        )


def backoff_delay(config: RetryConfig, attempt: int, error: Exception | None = None) -> float:
    """Seconds to wait before retrying after ``attempt`` (0-based) failed.

    A ``retry_after`` hint in the error details (quota and 503 responses)
    replaces the exponential delay. Both are capped at ``max_delay``.
    """
    if isinstance(error, RideshareError) and error.details.get("retry_after") is not None:
        return min(float(error.details["retry_after"]), config.max_delay)
    return min(config.base_delay * (config.multiplier**attempt), config.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
    on_retry: Callable[[Exception, int], None] | None = None,
) -> T:
    """Await ``operation`` until it succeeds, retrying the configured exceptions.

    The last error is re-raised once ``max_attempts`` is used up. Anything
    not listed in ``retryable_exceptions`` propagates immediately.
    """
    config = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await operation()
        except config.retryable_exceptions as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error(f"{operation_name} gave up after {attempt} attempts: {e}")
                raise

            delay = backoff_delay(config, attempt - 1, e)
            logger.warning(
                f"{operation_name} attempt {attempt}/{config.max_attempts} failed, "
                f"next try in {delay:.1f}s: {e}"
            )
            if on_retry:
                on_retry(e, attempt - 1)
            await asyncio.sleep(delay)
