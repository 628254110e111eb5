"""
Run assembly and teardown shared by every entry point.

Locust, the browser runner and the test suite all build a run the same
way: load fixtures, create the metric sink and failure log, declare the
scenario's series, then at the end reduce the snapshot, evaluate the
thresholds and write the reports.  Keeping that here means no entry
point reimplements it, and the end-to-end tests exercise exactly what a
real run does without importing Locust.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loadharness.config import Config
from loadharness.errors import HarnessError
from loadharness.failures import FailureLog
from loadharness.fixtures import ChunkFile, UserRecord, load_chunks, load_users
from loadharness.metrics import MetricSink
from loadharness.reducer import ReportSummary, reduce
from loadharness.report import config_items, print_summary, write_reports
from loadharness.scenarios.metrics import IterationMetrics
from loadharness.steps import StepRecorder
from loadharness.thresholds import ThresholdVerdict, evaluate, load_thresholds

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_HARNESS_ERROR = 2


def resolve_seed(config: type[Config] | Config) -> str:
    """Return the configured run seed, or a fresh one when none is set."""
    return config.RUN_SEED or secrets.token_hex(8)


@dataclass
class HarnessRun:
    """
    Everything one run shares between its workers.

    Attributes:
        config: Run configuration.
        users: Login fixtures, assigned to workers round-robin.
        chunks: Audio segments for the upload step.
        seed: Seed of every worker's random generator.
        sink: The run's metric sink.
        failures: Bounded failure log.
        recorder: Step recorder over *sink* and *failures*.
        iterations: ``iterations`` / ``iteration_failures`` counters.
    """

    config: Any
    users: list[UserRecord]
    chunks: list[ChunkFile]
    seed: str
    sink: MetricSink
    failures: FailureLog
    recorder: StepRecorder
    iterations: IterationMetrics

    @classmethod
    def create(
        cls,
        config: type[Config] | Config,
        users: list[UserRecord] | None = None,
        chunks: list[ChunkFile] | None = None,
        with_chunks: bool = True,
    ) -> HarnessRun:
        """
        Build a run, loading fixtures from the configured paths when not given.

        Raises:
            FixtureError: If the user fixtures are missing or empty.
        """
        if users is None:
            users = load_users(config.USERS_CSV)
        if chunks is None:
            chunks = load_chunks(config.CHUNK_DIR, config.CHUNK_COUNT) if with_chunks else []
        seed = resolve_seed(config)
        sink = MetricSink(default_tags={"test_id": config.TEST_ID})
        failures = FailureLog(config.FAILURE_LOG_SIZE)
        run = cls(
            config=config,
            users=users,
            chunks=chunks,
            seed=seed,
            sink=sink,
            failures=failures,
            recorder=StepRecorder(sink, failures),
            iterations=IterationMetrics.declare(sink),
        )
        logger.info(
            "Run %s: %d users, %d chunks, seed=%s",
            config.TEST_ID,
            len(users),
            len(chunks),
            seed,
        )
        return run

    def summarize(self) -> ReportSummary:
        return reduce(self.sink.snapshot())

    def finish(
        self,
        thresholds_file: str | Path | None = None,
        output_dir: str | Path | None = None,
        prefix: str = "",
    ) -> int:
        """
        Reduce, gate and report the run.

        Returns:
            ``0`` when every threshold passed, ``1`` on a breach and
            ``2`` when the thresholds or reports could not be processed.
        """
        summary = self.summarize()
        thresholds_file = thresholds_file or self.config.THRESHOLDS_FILE
        try:
            verdict = ThresholdVerdict()
            if thresholds_file and Path(thresholds_file).exists():
                verdict = evaluate(summary, load_thresholds(thresholds_file))
            else:
                logger.warning("No thresholds file at %s; gating skipped", thresholds_file)
            config = {**config_items(self.config), "RUN_SEED": self.seed}
            write_reports(
                output_dir or self.config.OUTPUT_DIR,
                summary,
                verdict,
                self.failures,
                config,
                prefix=prefix,
            )
        except (HarnessError, OSError) as exc:
            logger.error("Could not finish run: %s", exc)
            return EXIT_HARNESS_ERROR

        print_summary(summary, verdict)
        return EXIT_PASS if verdict.passed else EXIT_THRESHOLD_BREACH
