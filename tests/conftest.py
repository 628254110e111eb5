"""
Shared pytest fixtures for the load harness test suite.

Every test gets a fresh metric sink, failure log and step recorder, so
nothing recorded by one test can leak into another.

Key Concepts Demonstrated:
- Fixture dependencies (sink -> recorder -> worker context)
- Test data factories backed by Faker
- Config selected through ``get_config`` exactly as a run does
"""

from __future__ import annotations

import csv
from collections.abc import Callable

import pytest
from faker import Faker

from loadharness.config import get_config
from loadharness.context import VirtualUserContext
from loadharness.failures import FailureLog
from loadharness.fixtures import ChunkFile, UserRecord
from loadharness.metrics import MetricSink
from loadharness.scenarios.metrics import IterationMetrics
from loadharness.steps import StepRecorder


# Initialize Faker for generating test data
fake = Faker()


# -----------------------------------------------------------------------------
# Configuration Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture(scope="session")
def config():
    """The testing configuration: stub URLs, zero think time, fixed seed."""
    return get_config("testing")


# -----------------------------------------------------------------------------
# Metric Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def sink() -> MetricSink:
    return MetricSink(default_tags={"test_id": "test"})


@pytest.fixture
def failure_log() -> FailureLog:
    return FailureLog(maxlen=50)


@pytest.fixture
def recorder(sink, failure_log) -> StepRecorder:
    return StepRecorder(sink, failure_log)


@pytest.fixture
def iteration_metrics(sink) -> IterationMetrics:
    return IterationMetrics.declare(sink)


# -----------------------------------------------------------------------------
# Fixture Data Factories
# -----------------------------------------------------------------------------

@pytest.fixture
def user_factory() -> Callable[..., UserRecord]:
    """Build user records with realistic credentials."""

    def _create(**overrides) -> UserRecord:
        data = {"email": fake.unique.email(), "password": fake.password(length=12)}
        data.update(overrides)
        return UserRecord(**data)

    return _create


@pytest.fixture
def users(user_factory) -> list[UserRecord]:
    return [user_factory() for _ in range(3)]


@pytest.fixture
def chunks() -> list[ChunkFile]:
    """Three small in-memory audio chunks."""
    return [
        ChunkFile(index=index, name=f"chunk{index}.webm", data=fake.binary(length=64))
        for index in range(3)
    ]


@pytest.fixture
def users_csv(tmp_path, users):
    """Write *users* to a CSV file and return its path."""
    path = tmp_path / "users.csv"
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["email", "password"])
        for user in users:
            writer.writerow([user.email, user.password])
    return path


@pytest.fixture
def make_ctx(users, recorder) -> Callable[..., VirtualUserContext]:
    """Build a worker context for a given 1-based index."""

    def _create(index: int = 1, mid_upload_fraction: float = 0.0, transport=None):
        ctx = VirtualUserContext.create(index, users, recorder, "test-seed", mid_upload_fraction)
        ctx.transport = transport
        return ctx

    return _create
