"""
Unit tests for the bounded retry policy.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from loadharness.retry import RetryPolicy, arun_with_retry, run_with_retry

pytestmark = pytest.mark.unit


class Flaky:
    """Fails *failures* times, then returns "ok"."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"attempt {self.calls} failed")
        return "ok"


def test_succeeds_after_two_failures_with_two_delays(caplog):
    # Arrange
    step = Flaky(failures=2)
    delays = []

    # Act
    with caplog.at_level(logging.WARNING, logger="loadharness.retry"):
        result = run_with_retry(step, max_attempts=3, delay_ms=1000, sleep=delays.append)

    # Assert
    assert result == "ok"
    assert step.calls == 3
    assert delays == [1.0, 1.0]
    retry_lines = [r.getMessage() for r in caplog.records if "retrying" in r.getMessage()]
    assert retry_lines == [
        "Attempt 1 failed, retrying in 1000ms...",
        "Attempt 2 failed, retrying in 1000ms...",
    ]


def test_exhausted_attempts_reraise_last_error_unchanged():
    step = Flaky(failures=3)
    delays = []

    with pytest.raises(RuntimeError, match="attempt 3 failed"):
        run_with_retry(step, max_attempts=3, delay_ms=10, sleep=delays.append)

    assert step.calls == 3
    assert delays == [0.01, 0.01]


def test_first_success_does_not_sleep():
    step = Flaky(failures=0)
    delays = []

    assert RetryPolicy(3, 500).run(step, sleep=delays.append) == "ok"
    assert delays == []


def test_single_attempt_never_retries():
    step = Flaky(failures=1)

    with pytest.raises(RuntimeError):
        RetryPolicy(max_attempts=1).run(step, sleep=lambda _: None)

    assert step.calls == 1


@pytest.mark.parametrize("attempts, delay", [(0, 100), (3, -1)])
def test_invalid_policy_is_rejected(attempts, delay):
    with pytest.raises(ValueError):
        RetryPolicy(attempts, delay)


def test_async_retry_mirrors_sync_behaviour():
    # Arrange
    step = Flaky(failures=2)
    delays = []

    async def attempt():
        return step()

    async def fake_sleep(seconds):
        delays.append(seconds)

    # Act
    result = asyncio.run(arun_with_retry(attempt, max_attempts=3, delay_ms=2000, sleep=fake_sleep))

    # Assert
    assert result == "ok"
    assert delays == [2.0, 2.0]
