"""
Bounded retry-with-delay for fallible scenario steps.

Wraps a step so that a transient failure (a page that is slow to
render, a flaky upstream) is re-attempted a fixed number of times with
a constant pause in between.  The pause is a cooperative suspension:
``gevent.sleep`` for greenlet workers and ``asyncio.sleep`` for
coroutine workers, so one worker backing off never stalls the others.

The whole step is re-executed on every attempt.  Steps wrapped here
must therefore tolerate redundant execution (re-typing into a form,
re-navigating to a page); that is the caller's obligation.

Key Concepts Demonstrated:
- Backoff without jitter: constant delay, bounded attempts
- Last error re-raised unchanged on exhaustion (no wrapping)
- Twin sync/async entry points sharing one policy object
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import gevent

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration for one step.

    Attributes:
        max_attempts: Total number of attempts, including the first.
        delay_ms: Pause between attempts in milliseconds.
    """

    max_attempts: int = 3
    delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must not be negative")

    def run(
        self,
        step_fn: Callable[[], T],
        sleep: Callable[[float], object] = gevent.sleep,
    ) -> T:
        """
        Invoke *step_fn* until it succeeds or attempts run out.

        Args:
            step_fn: Zero-argument callable performing the whole step.
            sleep: Cooperative sleep taking seconds.

        Returns:
            Whatever *step_fn* returned on the first successful attempt.

        Raises:
            Exception: The error raised by the final attempt, unchanged.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return step_fn()
            except Exception:
                if attempt == self.max_attempts:
                    raise
                self._log_retry(attempt)
                sleep(self.delay_ms / 1000)
        raise AssertionError("unreachable")  # pragma: no cover

    async def arun(
        self,
        step_fn: Callable[[], Awaitable[T]],
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> T:
        """Coroutine twin of :meth:`run` for async workers."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await step_fn()
            except Exception:
                if attempt == self.max_attempts:
                    raise
                self._log_retry(attempt)
                await sleep(self.delay_ms / 1000)
        raise AssertionError("unreachable")  # pragma: no cover

    def _log_retry(self, attempt: int) -> None:
        logger.warning("Attempt %d failed, retrying in %dms...", attempt, self.delay_ms)


def run_with_retry(
    step_fn: Callable[[], T],
    max_attempts: int = 3,
    delay_ms: int = 1000,
    sleep: Callable[[float], object] = gevent.sleep,
) -> T:
    """Run *step_fn* under a :class:`RetryPolicy` built from the arguments."""
    return RetryPolicy(max_attempts, delay_ms).run(step_fn, sleep=sleep)


async def arun_with_retry(
    step_fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay_ms: int = 1000,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Coroutine variant of :func:`run_with_retry`."""
    return await RetryPolicy(max_attempts, delay_ms).arun(step_fn, sleep=sleep)
