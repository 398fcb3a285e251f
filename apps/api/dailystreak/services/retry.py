from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from dailystreak.services.errors import StoreUnavailableError
from dailystreak.services.supabase_rest import SupabaseRestError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_store_error(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, SupabaseRestError):
        return exc.is_transient
    return False


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    initial_wait: float = 0.2
    max_wait: float = 2.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            attempts=settings.store_retry_attempts,
            initial_wait=settings.store_retry_initial_wait_seconds,
            max_wait=settings.store_retry_max_wait_seconds,
        )

    async def call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` with bounded retries on transient store failures.

        Non-transient errors propagate on the first attempt. When every
        attempt fails transiently, ``StoreUnavailableError`` is raised with
        the last failure chained.
        """

        def _before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Store operation %s retrying after %s (attempt %s/%s)",
                operation,
                type(exc).__name__ if exc else "failure",
                retry_state.attempt_number,
                self.attempts,
            )

        result: T
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(self.attempts, 1)),
                wait=wait_exponential_jitter(
                    initial=self.initial_wait,
                    max=self.max_wait,
                    jitter=self.initial_wait,
                ),
                retry=retry_if_exception(is_transient_store_error),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    result = await fn()
        except Exception as exc:
            if is_transient_store_error(exc):
                logger.error("Store operation %s failed after %s attempts", operation, self.attempts)
                raise StoreUnavailableError(operation, attempts=self.attempts) from exc
            raise
        return result
