"""
Guaranteed delivery: bounded retry with exponential backoff.

The inter-attempt sleep is an ``asyncio.sleep``, so cancelling the task that
runs the retry loop aborts it immediately instead of finishing the backoff.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from pydantic import BaseModel, Field

from core.config import Settings, settings as default_settings
from core.exceptions import NonRetryableError, RetryExhaustedError
from models.job import TargetConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 30.0


class RetryPolicy(BaseModel):
    max_retries: int = Field(3, ge=0)
    base_delay: float = Field(1.0, ge=0)
    exponential: bool = True
    max_delay: float = Field(MAX_BACKOFF_SECONDS, ge=0)

    @classmethod
    def for_target(cls, target: TargetConfig, settings: Optional[Settings] = None) -> "RetryPolicy":
        """Policy from an API descriptor, capped by the configured maximum delay."""
        settings = settings or default_settings
        return cls(
            max_retries=target.max_retries,
            base_delay=target.retry_delay_seconds,
            exponential=target.use_exponential_backoff,
            max_delay=min(settings.RETRY_MAX_DELAY_SECONDS, MAX_BACKOFF_SECONDS),
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or default_settings
        return cls(
            max_retries=settings.MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY_SECONDS,
            max_delay=min(settings.RETRY_MAX_DELAY_SECONDS, MAX_BACKOFF_SECONDS),
        )

    def delay_for(self, attempt: int) -> float:
        """
        Seconds to wait after failed attempt number ``attempt`` (0-based).

        Exponential: ``min(base * 2^attempt, max_delay)``; otherwise flat ``base``.
        """
        if not self.exponential:
            return self.base_delay
        # Past 2^64 the delay is far beyond any cap; larger ints overflow float
        return min(self.base_delay * (2 ** min(attempt, 64)), self.max_delay)


class RetryHandler:
    """
    Runs an async operation up to ``max_retries + 1`` times.

    ``NonRetryableError`` subclasses are re-raised at once. Anything else is
    retried after the policy's backoff; when every attempt has failed a
    ``RetryExhaustedError`` wrapping the last failure is raised.
    ``asyncio.CancelledError`` is never caught.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "operation"
    ):
        self.policy = policy or RetryPolicy()
        self.name = name
        self._sleep = sleep
        self.attempts_made = 0
        self.delays: List[float] = []

    async def execute_with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        total_attempts = self.policy.max_retries + 1
        last_exception: Optional[Exception] = None
        self.attempts_made = 0
        self.delays = []

        for attempt in range(total_attempts):
            self.attempts_made = attempt + 1
            try:
                result = await operation()
                if attempt > 0:
                    logger.info(f"{self.name} succeeded on attempt {attempt + 1}/{total_attempts}")
                return result

            except NonRetryableError:
                raise

            except Exception as e:
                last_exception = e
                if attempt + 1 >= total_attempts:
                    break

                delay = self.policy.delay_for(attempt)
                self.delays.append(delay)
                logger.warning(
                    f"{self.name} failed (attempt {attempt + 1}/{total_attempts}): {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        logger.error(f"{self.name} failed after {total_attempts} attempts: {last_exception}")
        raise RetryExhaustedError(
            f"{self.name} failed after {total_attempts} attempts",
            attempts=total_attempts,
            context={"operation": self.name},
            original_exception=last_exception
        )
