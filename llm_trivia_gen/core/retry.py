"""Generic retry/backoff engine used by provider adapters.

Failures are classified by their ``ErrorKind`` tag rather than by probing
status codes on arbitrary exceptions. The per-attempt timeout bounds each
attempt on its own; total wall clock is therefore bounded by the sum of the
attempt timeouts plus the accumulated backoff delays.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .errors import (
    ErrorKind,
    GenerationCancelledError,
    NetworkError,
    RateLimitError,
    TriviaGenError,
)
from .types import RetryPolicy, RetryResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rate limited requests without Retry-After back off from a longer base.
RATE_LIMIT_BACKOFF_FACTOR = 5


def should_retry(error: BaseException, policy: RetryPolicy) -> bool:
    if isinstance(error, TriviaGenError):
        if error.kind is ErrorKind.AUTH:
            return False
        if error.kind is ErrorKind.RATE_LIMIT:
            return policy.retry_on_rate_limit
        if error.kind is ErrorKind.SERVER:
            return policy.retry_on_server_error
        if error.kind is ErrorKind.NETWORK:
            return policy.retry_on_network_error
        if error.kind is ErrorKind.CANCELLED:
            return False
    if policy.classify is None:
        return False
    return bool(policy.classify(error))


def _build_wait(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    max_delay = policy.max_delay_ms / 1000
    jitter = wait_random(0, max(policy.jitter_ms, 0) / 1000)
    regular = wait_exponential(multiplier=policy.base_delay_ms / 1000, max=max_delay) + jitter
    rate_limited = (
        wait_exponential(
            multiplier=policy.base_delay_ms * RATE_LIMIT_BACKOFF_FACTOR / 1000,
            max=max_delay,
        )
        + jitter
    )

    def _wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError):
            if error.retry_after:
                return float(error.retry_after)
            return rate_limited(retry_state)
        return regular(retry_state)

    return _wait


class RetryExecutor:
    """Run an async operation under a RetryPolicy."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        cancel_event: Union[asyncio.Event, None] = None,
    ) -> RetryResult[T]:
        start = time.perf_counter()
        attempts = 0
        scheduled: list[tuple[int, BaseException, int]] = []
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(policy.max_retries, 0) + 1),
            wait=_build_wait(policy),
            retry=retry_if_exception(lambda exc: should_retry(exc, policy)),
            before_sleep=lambda state: scheduled.append(self._schedule_retry(state)),
            sleep=self._sleeper(cancel_event, policy, scheduled),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    if cancel_event is not None and cancel_event.is_set():
                        raise GenerationCancelledError("retry loop cancelled before attempt")
                    value = await self._run_attempt(operation, policy)
        except GenerationCancelledError as exc:
            exc.attempts = attempts
            raise
        except Exception as exc:
            _attach_attempts(exc, attempts)
            logger.debug(
                "retry_loop_failed",
                extra={"fields": {"attempts": attempts, "error": str(exc)}},
            )
            if policy.on_final_error is not None:
                policy.on_final_error(exc, attempts)
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        return RetryResult(value=value, attempts=attempts, duration_ms=duration_ms)

    async def _run_attempt(self, operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
        timeout = policy.per_attempt_timeout_ms / 1000 if policy.per_attempt_timeout_ms > 0 else None
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise NetworkError(
                f"Request timed out after {policy.per_attempt_timeout_ms}ms"
            ) from exc

    def _schedule_retry(self, retry_state: RetryCallState) -> tuple[int, BaseException, int]:
        error = retry_state.outcome.exception()
        delay_ms = int(retry_state.next_action.sleep * 1000)
        logger.debug(
            "retry_scheduled",
            extra={
                "fields": {
                    "attempt": retry_state.attempt_number,
                    "delay_ms": delay_ms,
                    "error": str(error),
                }
            },
        )
        return retry_state.attempt_number, error, delay_ms

    def _sleeper(
        self,
        cancel_event: Union[asyncio.Event, None],
        policy: RetryPolicy,
        scheduled: list[tuple[int, BaseException, int]],
    ) -> Callable[[float], Awaitable[None]]:
        # on_retry fires only once the backoff has elapsed and the next attempt will run.
        async def _sleep(seconds: float) -> None:
            if cancel_event is None:
                await self._sleep(seconds)
            else:
                try:
                    await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
                except asyncio.TimeoutError:
                    pass
                else:
                    raise GenerationCancelledError("retry loop cancelled during backoff")
            if scheduled and policy.on_retry is not None:
                policy.on_retry(*scheduled.pop())

        return _sleep


def _attach_attempts(exc: BaseException, attempts: int) -> None:
    try:
        exc.attempts = attempts  # type: ignore[attr-defined]
    except AttributeError:
        add_note = getattr(exc, "add_note", None)
        if add_note is not None:
            add_note(f"attempts: {attempts}")
