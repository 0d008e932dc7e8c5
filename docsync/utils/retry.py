"""Retry helper for calls to flaky external services."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from docsync.config.logger import app_logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    delay_ms: int = 1000
    exponential_backoff: bool = True


DEFAULT_RETRY = RetryConfig()


def _log_retry(max_retries: int) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        app_logger.warning(
            f"Attempt {retry_state.attempt_number}/{max_retries} failed. "
            f"Retrying in {int(delay * 1000)}ms... error={error}"
        )

    return before_sleep


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """Await ``fn`` up to ``config.max_retries`` times.

    Waits ``delay_ms * 2**attempt`` between attempts (or a constant
    ``delay_ms`` without exponential backoff). The last error is re-raised
    unchanged once attempts are exhausted, and no sleep follows the final
    attempt.
    """
    if config.max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    delay_seconds = config.delay_ms / 1000
    wait = (
        wait_exponential(multiplier=delay_seconds, min=0)
        if config.exponential_backoff
        else wait_fixed(delay_seconds)
    )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_retries),
        wait=wait,
        reraise=True,
        sleep=sleep or asyncio.sleep,
        before_sleep=_log_retry(config.max_retries),
    )
    async for attempt in retrying:
        with attempt:
            return await fn()
    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
