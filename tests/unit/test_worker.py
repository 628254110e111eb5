"""
Unit tests for virtual users: fresh state, failure isolation, cleanup.
"""

from __future__ import annotations

import asyncio
import logging

import pytest
import requests

from loadharness.errors import StepFailedError
from loadharness.steps import StepOutcome
from loadharness.worker import AsyncVirtualUser, VirtualUser
from tests.fakes import FakeTransport

pytestmark = pytest.mark.unit


class RecordingScenario:
    """Remembers each context it ran and optionally raises."""

    def __init__(self, error: BaseException | None = None):
        self.error = error
        self.contexts = []

    def run(self, ctx):
        self.contexts.append(ctx)
        ctx.session_token = "captured"
        ctx.group_path.append("left behind")
        if self.error is not None:
            raise self.error


def _worker(scenario, users, recorder, iteration_metrics, transport=None, index=1):
    return VirtualUser(
        index=index,
        scenario=scenario,
        transport=transport or FakeTransport(),
        users=users,
        recorder=recorder,
        iteration_metrics=iteration_metrics,
        seed="test-seed",
        mid_upload_fraction=0.0,
    )


def test_completed_iteration_counts_and_resets_cookies(users, recorder, iteration_metrics, sink):
    # Arrange
    transport = FakeTransport()
    worker = _worker(RecordingScenario(), users, recorder, iteration_metrics, transport)

    # Act
    completed = worker.run_iteration()

    # Assert
    assert completed is True
    assert transport.cookie_resets == 1
    snapshot = sink.snapshot()
    assert snapshot.values("iterations", vu="1") == [1.0]
    assert snapshot.values("iteration_failures") == []


def test_every_iteration_gets_fresh_state(users, recorder, iteration_metrics):
    scenario = RecordingScenario()
    worker = _worker(scenario, users, recorder, iteration_metrics, index=2)

    worker.run_iteration()
    worker.run_iteration()

    first, second = scenario.contexts
    assert first is not second
    assert second.group_path == ["left behind"]
    assert first.user == second.user == users[1]


def test_step_failure_aborts_only_the_iteration(users, recorder, iteration_metrics, sink, caplog):
    # Arrange
    error = StepFailedError("CSRF", StepOutcome(success=False, duration_ms=3.0, status=500))
    transport = FakeTransport()
    worker = _worker(RecordingScenario(error), users, recorder, iteration_metrics, transport)

    # Act
    with caplog.at_level(logging.ERROR, logger="loadharness.worker"):
        completed = worker.run_iteration()

    # Assert
    assert completed is False
    assert transport.cookie_resets == 1
    snapshot = sink.snapshot()
    assert snapshot.values("iterations") == [1.0]
    assert snapshot.values("iteration_failures") == [1.0]
    assert "Iteration aborted" in caplog.text


def test_transport_error_aborts_the_iteration(users, recorder, iteration_metrics):
    worker = _worker(
        RecordingScenario(requests.ConnectionError("refused")), users, recorder, iteration_metrics
    )

    assert worker.run_iteration() is False


def test_harness_defect_propagates_after_cleanup(users, recorder, iteration_metrics, sink):
    transport = FakeTransport()
    worker = _worker(RecordingScenario(ZeroDivisionError()), users, recorder, iteration_metrics, transport)

    with pytest.raises(ZeroDivisionError):
        worker.run_iteration()

    assert transport.cookie_resets == 1
    assert sink.snapshot().values("iterations") == [1.0]


def test_workers_with_distinct_indices_get_distinct_users(users, recorder, iteration_metrics):
    scenario = RecordingScenario()
    for index in (1, 2, 3):
        _worker(scenario, users, recorder, iteration_metrics, index=index).run_iteration()

    assert [ctx.user for ctx in scenario.contexts] == users


class AsyncScenario:
    def __init__(self, error: BaseException | None = None):
        self.error = error
        self.closed = []

    async def run(self, ctx, stack):
        stack.push_async_callback(self._close, "page")
        if self.error is not None:
            raise self.error

    async def _close(self, label):
        self.closed.append(label)


def test_async_worker_runs_cleanup_on_abort(users, recorder, iteration_metrics, sink):
    # Arrange
    error = StepFailedError("Verify Landing Page", StepOutcome(success=False, duration_ms=1.0))
    scenario = AsyncScenario(error)
    worker = AsyncVirtualUser(1, scenario, users, recorder, iteration_metrics, "seed")

    # Act
    completed = asyncio.run(worker.run_iteration())

    # Assert
    assert completed is False
    assert scenario.closed == ["page"]
    assert sink.snapshot().values("iteration_failures") == [1.0]


def test_async_worker_completes(users, recorder, iteration_metrics, sink):
    scenario = AsyncScenario()
    worker = AsyncVirtualUser(2, scenario, users, recorder, iteration_metrics, "seed")

    assert asyncio.run(worker.run_iteration()) is True
    assert scenario.closed == ["page"]
    assert sink.snapshot().values("iterations", vu="2") == [1.0]
