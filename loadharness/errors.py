"""Exception hierarchy for the harness."""

from __future__ import annotations

from typing import Any


class HarnessError(Exception):
    """Base class for every error raised by the harness itself."""


class FixtureError(HarnessError):
    """Fixture data is missing or malformed; the run cannot start."""


class MetricKindConflictError(HarnessError):
    """A series name was registered with two different kinds."""

    def __init__(self, name: str, existing: str, requested: str):
        super().__init__(
            f"Series {name!r} is already registered as {existing}, cannot use it as {requested}"
        )
        self.name = name
        self.existing = existing
        self.requested = requested


class StepFailedError(HarnessError):
    """
    A required step did not pass its checks.

    Raised at the step boundary to abort the remainder of the current
    worker's iteration.  The failed outcome is attached for logging.
    """

    def __init__(self, step: str, outcome: Any):
        super().__init__(f"Step {step!r} failed: {outcome.error or 'checks failed'}")
        self.step = step
        self.outcome = outcome


class ThresholdConfigError(HarnessError):
    """A threshold expression or thresholds file could not be parsed."""
