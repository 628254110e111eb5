"""
Locust user class, load shape and run lifecycle hooks.

:class:`VoiceNoteUser` is the Locust face of a
:class:`~loadharness.worker.VirtualUser`: each spawned Locust user gets
the next 1-based worker index and loops whole iterations of the HTTP
scenario back to back.  The scenario's own think times provide the
pacing, so ``wait_time`` is zero.

Lifecycle:

- ``init``: load fixtures and chunks, build the run and the scenario,
  log the seed.  A :class:`~loadharness.errors.FixtureError` here stops
  Locust before any user is spawned.
- ``test_stop``: reduce the samples, evaluate thresholds, write reports.
- ``quitting``: turn the threshold verdict into the process exit code.

Key Concepts Demonstrated:
- Locust ``events`` hooks for run-level setup and teardown
- ``LoadTestShape`` driving a staged linear ramp
- Locust's ``HttpSession`` wrapped so statistics group id-bearing URLs
"""

from __future__ import annotations

import itertools
import logging

from locust import HttpUser, LoadTestShape, constant, events, task

from loadharness.config import get_config, ramp_target
from loadharness.errors import FixtureError
from loadharness.runner import HarnessRun
from loadharness.scenarios.api_flow import ApiScenario
from loadharness.transport import Transport
from loadharness.worker import VirtualUser

logger = logging.getLogger(__name__)

settings = get_config()


class VoiceNoteUser(HttpUser):
    """
    One clinician looping the voice-note workflow.

    Attributes:
        worker: The virtual user driving this Locust user's iterations.
    """

    host = settings.API_BASE_URL
    wait_time = constant(0)

    # Shared across instances so every spawned user gets a distinct index.
    _indices = itertools.count(1)

    worker: VirtualUser

    def on_start(self) -> None:
        run: HarnessRun = self.environment.harness_run
        self.worker = VirtualUser(
            index=next(VoiceNoteUser._indices),
            scenario=self.environment.harness_scenario,
            transport=Transport(self.client, timeout=settings.REQUEST_TIMEOUT, pass_names=True),
            users=run.users,
            recorder=run.recorder,
            iteration_metrics=run.iterations,
            seed=run.seed,
            mid_upload_fraction=settings.MID_UPLOAD_FRACTION,
        )

    @task
    def iteration(self) -> None:
        """Run one full pass through the workflow."""
        self.worker.run_iteration()


class StagesShape(LoadTestShape):
    """Linear ramp through ``settings.STAGES``; stops after the last stage."""

    stages = settings.STAGES

    def tick(self):
        return ramp_target(self.stages, self.get_run_time())


@events.init.add_listener
def _build_run(environment, **_kwargs):
    """Load fixtures and build the shared run before any user spawns."""
    try:
        run = HarnessRun.create(settings)
    except FixtureError as exc:
        logger.error("Cannot start load test: %s", exc)
        raise
    environment.harness_run = run
    environment.harness_scenario = ApiScenario(settings, run.sink, run.chunks)
    environment.harness_exit_code = None


@events.test_stop.add_listener
def _write_reports(environment, **_kwargs):
    run = getattr(environment, "harness_run", None)
    if run is None:
        return
    environment.harness_exit_code = run.finish()


@events.quitting.add_listener
def _set_exit_code(environment, **_kwargs):
    code = getattr(environment, "harness_exit_code", None)
    if code is not None:
        environment.process_exit_code = code
