"""Async retry with exponential backoff.

Delays double per failed attempt and are capped: with the defaults,
attempt 1 fails -> wait 1s, attempt 2 fails -> wait 2s, attempt 3 is final.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from chartcache.config import RetrySettings
from chartcache.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Attempt budget and backoff timing for with_retry.

    should_retry(error, attempt) can veto a retry; on_retry(error, attempt,
    delay_ms) is called before each backoff sleep.
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 8000
    should_retry: Callable[[Exception, int], bool] | None = None
    on_retry: Callable[[Exception, int, int], Any] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_settings(
        cls,
        settings: RetrySettings,
        should_retry: Callable[[Exception, int], bool] | None = None,
        on_retry: Callable[[Exception, int, int], Any] | None = None,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
            should_retry=should_retry,
            on_retry=on_retry,
        )

    def delay_ms(self, attempt: int) -> int:
        """Backoff after a failed attempt: base * 2^(attempt-1), capped at max."""
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
) -> T:
    """Run operation until it succeeds or the policy gives up.

    Re-raises the last error when attempts are exhausted or should_retry
    returns False. Cancelling the awaiting task stops the sequence, since
    only Exception subclasses are caught.
    """
    policy = policy or RetryPolicy()

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    "retry_exhausted",
                    attempts=attempt,
                    error=str(e),
                )
                raise

            if policy.should_retry is not None and not policy.should_retry(e, attempt):
                logger.debug(
                    "retry_skipped",
                    attempt=attempt,
                    error=str(e),
                )
                raise

            delay_ms = policy.delay_ms(attempt)

            if policy.on_retry is not None:
                try:
                    policy.on_retry(e, attempt, delay_ms)
                except Exception as callback_error:
                    logger.warning(
                        "retry_callback_failed",
                        attempt=attempt,
                        error=str(callback_error),
                    )

            logger.warning(
                "retry_scheduled",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_ms=delay_ms,
                error=str(e),
            )
            await asyncio.sleep(delay_ms / 1000)
            attempt += 1
