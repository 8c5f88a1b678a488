"""Retry with exponential backoff for flaky remote calls."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from screen_pilot.config import get_config
from screen_pilot.exceptions import is_retryable_error
from screen_pilot.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


def _log_before_sleep(label: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        log.warning(
            "Attempt failed, retrying",
            operation=label,
            attempt=state.attempt_number,
            delay=delay,
            error=str(error),
        )

    return _before_sleep


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int | None = None,
    initial_delay: float | None = None,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds, doubling the delay after each retryable failure.

    A non-retryable error, or the last attempt's error, is re-raised unchanged.

    Args:
        fn: Zero-argument coroutine factory to invoke.
        max_attempts: Total invocations allowed (default from config).
        initial_delay: Seconds slept before the first retry (default from config).
        is_retryable: Predicate deciding whether an error is worth retrying.
        label: Operation name used in log events.
        sleep: Awaitable sleep function, replaceable in tests.

    Returns:
        The first successful result of ``fn``.
    """
    cfg = get_config().retry
    attempts = cfg.max_attempts if max_attempts is None else max_attempts
    delay = cfg.initial_delay if initial_delay is None else initial_delay

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=delay, exp_base=2),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep(label),
        sleep=sleep,
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                return await fn()
    except Exception as e:
        log.error("Operation failed", operation=label, error=str(e))
        raise
    # unreachable: tenacity either returns or re-raises
    raise RuntimeError(f"{label} exhausted retries without a result")
