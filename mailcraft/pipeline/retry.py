"""Bounded retry with exponential backoff for async units of work."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field

from .exceptions import PipelineCancelled, RetryInvariantError

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_BACKOFF_CEILING_MS = 10000

SleepFn = Callable[[float], Awaitable[Any]]


class RetryPolicy(BaseModel):
    """Retry limits for one executor call."""

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, gt=0)
    backoff_ceiling_ms: int = Field(default=DEFAULT_BACKOFF_CEILING_MS, gt=0)

    def with_overrides(self, **overrides: int | None) -> RetryPolicy:
        """Return a copy with every non-None override applied (and re-validated)."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RetryPolicy(**values)

    def backoff_ms(self, attempt: int) -> int:
        return compute_backoff(attempt, self.retry_delay_ms, self.backoff_ceiling_ms)


class RetryContext(BaseModel):
    """Per-call bookkeeping. Never outlives the call that created it."""

    operation: str
    attempt: int = 0
    backoff_ms: int = 0


def compute_backoff(attempt: int, base_delay_ms: int, ceiling_ms: int) -> int:
    """base_delay * 2**attempt, capped at ceiling_ms."""
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # Exponent grows without bound; stop doubling once the ceiling is reached.
    delay = base_delay_ms
    for _ in range(attempt):
        if delay >= ceiling_ms:
            break
        delay *= 2
    return min(delay, ceiling_ms)


async def _wait_for_backoff(
    delay_ms: int,
    sleep: SleepFn,
    cancel_event: asyncio.Event | None,
    context: str,
) -> None:
    if cancel_event is None:
        await sleep(delay_ms / 1000)
        return

    if cancel_event.is_set():
        raise PipelineCancelled(f"Cancelled before retrying {context}")

    sleeper = asyncio.ensure_future(sleep(delay_ms / 1000))
    watcher = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, watcher, return_exceptions=True)

    if watcher in done and cancel_event.is_set():
        raise PipelineCancelled(f"Cancelled during backoff for {context}")
    # Surface errors raised by the sleep function itself
    sleeper.result()


class RetryExecutor:
    """Runs a zero-argument coroutine function with retries.

    Pipeline-agnostic: the orchestrator wraps every specialist call with the
    same executor. Logging, the sleep function and the cancellation event are
    injected so the executor can be driven without real time passing.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: SleepFn | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep or asyncio.sleep
        self.cancel_event = cancel_event

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        context: str = "operation",
    ) -> T:
        max_retries = self.policy.max_retries if max_retries is None else max_retries
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        ctx = RetryContext(operation=context)

        for attempt in range(max_retries + 1):
            ctx.attempt = attempt
            try:
                result = await operation()
            except PipelineCancelled:
                raise
            except Exception as e:
                if not getattr(e, "retryable", True):
                    raise
                if attempt == max_retries:
                    if max_retries > 0:
                        self.logger.error(
                            f"All {max_retries + 1} attempts failed for {context}: {e}",
                            extra={"context": context, "attempt": attempt + 1, "error": str(e)},
                        )
                    raise

                ctx.backoff_ms = self.policy.backoff_ms(attempt)
                self.logger.warning(
                    f"Attempt {attempt + 1}/{max_retries + 1} failed for {context}, "
                    f"retrying in {ctx.backoff_ms}ms: {e}",
                    extra={
                        "context": context,
                        "attempt": attempt + 1,
                        "backoff": ctx.backoff_ms,
                        "error": str(e),
                    },
                )
                await _wait_for_backoff(ctx.backoff_ms, self.sleep, self.cancel_event, context)
                continue

            if attempt > 0:
                self.logger.info(f"Retry succeeded on attempt {attempt + 1} for {context}")
            return result

        raise RetryInvariantError(
            f"execute_with_retry fell through after {max_retries + 1} attempts for {context}"
        )


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    context: str = "operation",
    *,
    policy: RetryPolicy | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    sleep: SleepFn | None = None,
    cancel_event: asyncio.Event | None = None,
) -> T:
    """One-shot convenience wrapper around RetryExecutor.execute()."""
    executor = RetryExecutor(policy=policy, logger=logger, sleep=sleep, cancel_event=cancel_event)
    return await executor.execute(operation, max_retries=max_retries, context=context)
