"""
Scenario steps and groups.

A :class:`ScenarioStep` is one named, measured action inside a worker's
iteration: usually a single HTTP request, sometimes a short exchange such
as a CORS preflight followed by the real call, or a browser navigation.
Executing a step

1. times the action,
2. classifies the response status through the step's
   :class:`StatusPolicy` and runs its named checks (each recorded into
   the shared ``checks`` rate),
3. folds the aggregate verdict into the step's fail rate, duration
   trend and request counter,
4. logs diagnostic context and appends a :class:`FailureRecord` when
   the step failed.

Two failure channels exist.  A transport exception (connection reset,
timeout, browser error) is recorded and then re-raised unchanged.  A
failed assertion is returned as an unsuccessful :class:`StepOutcome`;
only when the step is ``required`` does it become a
:class:`StepFailedError` that aborts the rest of the iteration.

Key Concepts Demonstrated:
- Per-step status policy so validation responses (422) can count as
  success where the workflow tolerates them
- Nested named groups that measure their own wall-clock duration
- One code path shared by greenlet (sync) and coroutine (async) workers
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable, Collection, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from loadharness.errors import StepFailedError
from loadharness.failures import FailureLog, FailureRecord, excerpt
from loadharness.metrics import Counter, MetricSink, Rate, Trend

if TYPE_CHECKING:
    from loadharness.context import VirtualUserContext

logger = logging.getLogger(__name__)

GROUP_SEPARATOR = "::"


class StepRecorder:
    """
    Shared series and failure log every step writes into.

    Args:
        sink: The run's metric sink.
        failures: The run's bounded failure log.
    """

    def __init__(self, sink: MetricSink, failures: FailureLog):
        self.sink = sink
        self.failures = failures
        self.checks = sink.rate("checks")
        self.response_status = sink.counter("response_status")
        self.group_duration = sink.trend("group_duration")


@dataclass(frozen=True)
class StatusPolicy:
    """
    Which response statuses a step treats as success.

    Attributes:
        expected: Statuses that mean the call did what was asked.  Any
            collection works, including ``range(200, 300)``.
        accepted: Statuses that are not the expected result but are a
            legitimate answer for this call (typically ``422`` for an
            idempotent operation the server already performed).
    """

    expected: Collection[int] = (200,)
    accepted: Collection[int] = ()

    def classify(self, status: int | None) -> str:
        """Return ``"expected"``, ``"accepted"`` or ``"unexpected"``."""
        if status is not None and status in self.expected:
            return "expected"
        if status is not None and status in self.accepted:
            return "accepted"
        return "unexpected"

    def allows(self, status: int | None) -> bool:
        return self.classify(status) != "unexpected"

    def describe(self) -> str:
        """Short label used in default check names, e.g. ``200`` or ``2xx``."""
        if isinstance(self.expected, range) and self.expected == range(200, 300):
            return "2xx"
        return "/".join(str(status) for status in sorted(self.expected))


class Check(NamedTuple):
    """A named predicate evaluated against a step's response."""

    name: str
    predicate: Callable[[Any], bool]


@dataclass(frozen=True)
class StepOutcome:
    """Result of one step execution."""

    success: bool
    duration_ms: float
    error: str | None = None
    status: int | None = None
    response: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class StepMetrics:
    """The duration trend, fail rate and request counter of one step."""

    time: Trend | None
    fail_rate: Rate | None
    requests: Counter | None

    @classmethod
    def declare(
        cls,
        sink: MetricSink,
        prefix: str,
        *,
        time: str | None = None,
        fail_rate: str | None = None,
        requests: str | None = None,
    ) -> StepMetrics:
        """
        Register ``{prefix}_time``, ``{prefix}_fail_rate`` and
        ``{prefix}_requests`` (or the explicit names given).
        """
        return cls(
            time=sink.trend(time or f"{prefix}_time"),
            fail_rate=sink.rate(fail_rate or f"{prefix}_fail_rate"),
            requests=sink.counter(requests or f"{prefix}_requests"),
        )


def status_class(status: int | None) -> str:
    """Bucket a status into the ``200`` / ``422`` / ``other`` tallies."""
    if status == 200:
        return "200"
    if status == 422:
        return "422"
    return "other"


def _status_of(response: Any) -> int | None:
    # requests.Response exposes status_code, playwright's Response exposes status.
    if response is None:
        return None
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(response, "status", None)
    return status if isinstance(status, int) else None


def _body_of(response: Any) -> str:
    text = getattr(response, "text", None)
    return text if isinstance(text, str) else ""


def group_tag(ctx: VirtualUserContext) -> str:
    """Render the worker's current group path, e.g. ``::Login flow::CSRF``."""
    if not ctx.group_path:
        return ""
    return GROUP_SEPARATOR + GROUP_SEPARATOR.join(ctx.group_path)


def check(ctx: VirtualUserContext, name: str, passed: bool) -> bool:
    """Record one named check into the shared ``checks`` rate and return it."""
    ctx.recorder.checks.add(bool(passed), {"check": name, "group": group_tag(ctx)})
    return bool(passed)


@contextmanager
def group(ctx: VirtualUserContext, name: str) -> Iterator[None]:
    """
    Bracket a block of steps under a named group.

    The group name is pushed onto the worker's group path (so steps and
    checks inside carry it as their ``group`` tag) and the block's own
    wall-clock duration is recorded into ``group_duration``, independent
    of the durations of the steps it contains.  The path is restored on
    every exit, including when the block raises.
    """
    ctx.group_path.append(name)
    tag = group_tag(ctx)
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        ctx.recorder.group_duration.add(elapsed_ms, {"group": tag})
        ctx.group_path.pop()


@dataclass
class ScenarioStep:
    """
    A named, measured unit of work inside a scenario.

    Attributes:
        name: Human-readable step name, used in logs and check names.
        action: Callable taking the worker context and returning the
            response to evaluate (or ``None`` for actions that verify
            themselves by raising).  May be a coroutine function when
            the step runs through :meth:`aexecute`.
        metrics: Series the step folds its result into.
        status_policy: Which statuses count as success.
        checks: Additional named predicates on the response.
        status_check: Name of the status check; derived from the step
            name and policy when omitted.
        on_success: Called with ``(ctx, response)`` after a successful
            evaluation, typically to capture tokens or ids.  A
            ``KeyError``/``ValueError``/``TypeError`` raised here marks
            the step failed.
        required: Abort the iteration when the step fails.
        track_status: When set, tally the response status class into
            the ``response_status`` counter under this label.
        tags: Extra tags for every sample the step records.
    """

    name: str
    action: Callable[[Any], Any]
    metrics: StepMetrics | None = None
    status_policy: StatusPolicy = field(default_factory=StatusPolicy)
    checks: Sequence[Check] = ()
    status_check: str | None = None
    on_success: Callable[[Any, Any], None] | None = None
    required: bool = False
    track_status: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)

    def execute(self, ctx: VirtualUserContext) -> StepOutcome:
        """
        Run the step synchronously inside a greenlet worker.

        Raises:
            StepFailedError: If the step is ``required`` and failed.
            Exception: Any error raised by the action, after recording.
        """
        started = time.perf_counter()
        try:
            response = self.action(ctx)
        except Exception as exc:
            self._record_exception(ctx, exc, started)
            raise
        return self._evaluate(ctx, response, started)

    async def aexecute(self, ctx: VirtualUserContext) -> StepOutcome:
        """Coroutine twin of :meth:`execute` for async (browser) workers."""
        started = time.perf_counter()
        try:
            response = self.action(ctx)
            if inspect.isawaitable(response):
                response = await response
        except Exception as exc:
            self._record_exception(ctx, exc, started)
            raise
        return self._evaluate(ctx, response, started)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _tags(self, ctx: VirtualUserContext) -> dict[str, str]:
        return {**self.tags, "step": self.name, "group": group_tag(ctx), "vu": str(ctx.index)}

    def _evaluate(self, ctx: VirtualUserContext, response: Any, started: float) -> StepOutcome:
        duration_ms = (time.perf_counter() - started) * 1000
        status = _status_of(response)
        errors: list[str] = []

        if status is not None:
            if self.track_status:
                ctx.recorder.response_status.add(
                    1, {"step": self.track_status, "status": status_class(status)}
                )
            status_name = self.status_check or (
                f"{self.name} status is {self.status_policy.describe()}"
            )
            if not check(ctx, status_name, self.status_policy.allows(status)):
                errors.append(f"unexpected status {status}")

        for item in self.checks:
            try:
                passed = bool(item.predicate(response))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.debug("[VU %d] Check %r raised %s", ctx.index, item.name, exc)
                passed = False
            if not check(ctx, item.name, passed):
                errors.append(f"check failed: {item.name}")

        if not errors and self.on_success is not None:
            try:
                self.on_success(ctx, response)
            except (KeyError, ValueError, TypeError) as exc:
                errors.append(f"could not read response: {exc!r}")

        outcome = StepOutcome(
            success=not errors,
            duration_ms=duration_ms,
            error="; ".join(errors) or None,
            status=status,
            response=response,
        )
        self._record(ctx, outcome)
        if not outcome.success:
            self._log_failure(ctx, outcome, response)
            if self.required:
                raise StepFailedError(self.name, outcome)
        return outcome

    def _record(self, ctx: VirtualUserContext, outcome: StepOutcome) -> None:
        if self.metrics is None:
            return
        tags = self._tags(ctx)
        if self.metrics.time is not None:
            self.metrics.time.add(outcome.duration_ms, tags)
        if self.metrics.fail_rate is not None:
            self.metrics.fail_rate.add(not outcome.success, tags)
        if self.metrics.requests is not None:
            self.metrics.requests.add(1, tags)

    def _record_exception(self, ctx: VirtualUserContext, exc: Exception, started: float) -> None:
        outcome = StepOutcome(
            success=False,
            duration_ms=(time.perf_counter() - started) * 1000,
            error=f"{type(exc).__name__}: {exc}",
        )
        self._record(ctx, outcome)
        self._log_failure(ctx, outcome, getattr(exc, "response", None))

    def _log_failure(self, ctx: VirtualUserContext, outcome: StepOutcome, response: Any) -> None:
        url = getattr(response, "url", None)
        if callable(url):
            url = None
        body = excerpt(_body_of(response))
        headers = getattr(response, "headers", None)
        logger.warning(
            "[VU %d] %s failed: %s (status=%s url=%s body=%r headers=%s)",
            ctx.index,
            self.name,
            outcome.error,
            outcome.status,
            url,
            body,
            dict(headers) if isinstance(headers, Mapping) else None,
        )
        ctx.recorder.failures.append(
            FailureRecord(
                step=self.name,
                vu=ctx.index,
                status=outcome.status,
                url=url if isinstance(url, str) else None,
                error=outcome.error,
                body=body,
                group=group_tag(ctx),
                duration_ms=outcome.duration_ms,
            )
        )
