"""
Virtual users: one independent simulated session per worker.

A virtual user owns nothing but its index and its transport.  Each
iteration gets a brand-new :class:`VirtualUserContext`, runs the scenario
inside an exit stack that releases whatever the iteration acquired
(cookies, browser contexts, pages) on every path, and records the
outcome into the ``iterations`` / ``iteration_failures`` counters.

An iteration-aborting error (a required step that failed, a request that
could not complete, a browser error) is logged and swallowed *here*, at
the worker boundary, so it never reaches the scheduler and never affects
another worker.  Anything else is a defect in the harness and
propagates.

Key Concepts Demonstrated:
- Fresh per-iteration state, no leakage between iterations
- ``contextlib.ExitStack`` / ``AsyncExitStack`` for guaranteed cleanup
- Failure isolation at the worker boundary
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Sequence
from contextlib import AsyncExitStack, ExitStack
from typing import Protocol

import requests

from loadharness.context import VirtualUserContext
from loadharness.errors import StepFailedError
from loadharness.fixtures import UserRecord
from loadharness.scenarios.metrics import IterationMetrics
from loadharness.steps import StepRecorder
from loadharness.transport import Transport

logger = logging.getLogger(__name__)

HTTP_ABORT_ERRORS: tuple[type[BaseException], ...] = (
    StepFailedError,
    requests.RequestException,
)


class Scenario(Protocol):
    def run(self, ctx: VirtualUserContext) -> None: ...


class AsyncScenario(Protocol):
    def run(self, ctx: VirtualUserContext, stack: AsyncExitStack) -> Awaitable[None]: ...


class _BaseVirtualUser:
    def __init__(
        self,
        index: int,
        users: Sequence[UserRecord],
        recorder: StepRecorder,
        iteration_metrics: IterationMetrics,
        seed: str,
        mid_upload_fraction: float = 0.15,
        abort_on: tuple[type[BaseException], ...] = HTTP_ABORT_ERRORS,
    ):
        self.index = index
        self.users = users
        self.recorder = recorder
        self.iteration_metrics = iteration_metrics
        self.seed = seed
        self.mid_upload_fraction = mid_upload_fraction
        self.abort_on = abort_on

    @property
    def tags(self) -> dict[str, str]:
        return {"vu": str(self.index)}

    def new_context(self) -> VirtualUserContext:
        return VirtualUserContext.create(
            self.index,
            self.users,
            self.recorder,
            self.seed,
            self.mid_upload_fraction,
        )

    def _aborted(self, ctx: VirtualUserContext, exc: BaseException) -> None:
        logger.error("[VU %d] Iteration aborted for %s: %s", self.index, ctx.user.email, exc)
        self.iteration_metrics.iteration_failures.add(1, self.tags)


class VirtualUser(_BaseVirtualUser):
    """
    Greenlet worker running the HTTP scenario.

    Args:
        index: 1-based worker number; selects the fixture record.
        scenario: Object with ``run(ctx)`` performing one iteration.
        transport: The worker's own HTTP transport.
        users: Fixture records shared read-only by every worker.
        recorder: Shared series and failure log.
        iteration_metrics: ``iterations`` / ``iteration_failures``.
        seed: Run seed for the per-worker random generator.
        mid_upload_fraction: Share of workers that browse mid-upload.
        abort_on: Errors that end an iteration without ending the run.
    """

    def __init__(
        self,
        index: int,
        scenario: Scenario,
        transport: Transport,
        users: Sequence[UserRecord],
        recorder: StepRecorder,
        iteration_metrics: IterationMetrics,
        seed: str,
        mid_upload_fraction: float = 0.15,
        abort_on: tuple[type[BaseException], ...] = HTTP_ABORT_ERRORS,
    ):
        super().__init__(
            index, users, recorder, iteration_metrics, seed, mid_upload_fraction, abort_on
        )
        self.scenario = scenario
        self.transport = transport

    def run_iteration(self) -> bool:
        """
        Run one iteration with fresh state.

        Returns:
            ``True`` if the scenario ran to the end, ``False`` if it was
            aborted by a step failure or transport error.
        """
        ctx = self.new_context()
        ctx.transport = self.transport
        if ctx.mid_upload:
            logger.info("[VU %d] Selected for mid-upload checks", self.index)

        with ExitStack() as stack:
            # Next iteration starts logged out, whatever happened here.
            stack.callback(self.transport.reset_cookies)
            stack.callback(self.iteration_metrics.iterations.add, 1, self.tags)
            try:
                self.scenario.run(ctx)
            except self.abort_on as exc:
                self._aborted(ctx, exc)
                return False
        logger.info("[VU %d] Iteration completed", self.index)
        return True


class AsyncVirtualUser(_BaseVirtualUser):
    """Coroutine worker running a browser scenario."""

    def __init__(
        self,
        index: int,
        scenario: AsyncScenario,
        users: Sequence[UserRecord],
        recorder: StepRecorder,
        iteration_metrics: IterationMetrics,
        seed: str,
        abort_on: tuple[type[BaseException], ...] = (StepFailedError,),
    ):
        super().__init__(index, users, recorder, iteration_metrics, seed, 0.0, abort_on)
        self.scenario = scenario

    async def run_iteration(self) -> bool:
        """Async twin of :meth:`VirtualUser.run_iteration`."""
        ctx = self.new_context()
        logger.info("Starting iteration for VU %d", self.index)

        async with AsyncExitStack() as stack:
            stack.callback(self.iteration_metrics.iterations.add, 1, self.tags)
            try:
                await self.scenario.run(ctx, stack)
            except self.abort_on as exc:
                self._aborted(ctx, exc)
                return False
        logger.info("Iteration completed successfully for VU %d", self.index)
        return True
