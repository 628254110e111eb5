"""
Run the browser workload with real Chromium pages.

Spawns ``BROWSER_VUS`` coroutine workers sharing one launched browser.
Each worker runs ``BROWSER_ITERATIONS`` iterations of
:class:`~loadharness.scenarios.browser_flow.BrowserScenario`, each in its
own browser context.  The whole run is bounded by
``BROWSER_MAX_DURATION``; workers still going at that point are
cancelled, which closes their pages through the iteration's exit stack.

Usage::

    LOADTEST_ENV=demo loadharness-browser
    python -m loadharness.browser_runner --vus 2 --iterations 3 --headed

Exit codes match :mod:`loadharness.check_thresholds`: 0 pass, 1 breach,
2 harness error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from playwright.async_api import Browser, async_playwright
from playwright.async_api import Error as PlaywrightError

from loadharness.config import Config, get_config
from loadharness.errors import FixtureError, StepFailedError
from loadharness.runner import EXIT_HARNESS_ERROR, HarnessRun
from loadharness.scenarios.browser_flow import BrowserScenario
from loadharness.worker import AsyncVirtualUser

logger = logging.getLogger(__name__)

BROWSER_ABORT_ERRORS: tuple[type[BaseException], ...] = (StepFailedError, PlaywrightError)

LAUNCH_ARGS = [
    "--window-size=1280,720",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
]


async def _worker_loop(worker: AsyncVirtualUser, iterations: int) -> None:
    for _ in range(iterations):
        await worker.run_iteration()


async def drive_workers(
    run: HarnessRun,
    browser: Browser,
    vus: int,
    iterations: int,
    max_duration: float,
    scenario: BrowserScenario | None = None,
) -> None:
    """Run *vus* workers for *iterations* each, bounded by *max_duration* seconds."""
    scenario = scenario or BrowserScenario(run.config, run.sink, browser)
    workers = [
        AsyncVirtualUser(
            index,
            scenario,
            run.users,
            run.recorder,
            run.iterations,
            run.seed,
            abort_on=BROWSER_ABORT_ERRORS,
        )
        for index in range(1, vus + 1)
    ]
    try:
        await asyncio.wait_for(
            asyncio.gather(*(_worker_loop(worker, iterations) for worker in workers)),
            timeout=max_duration,
        )
    except asyncio.TimeoutError:
        logger.warning("Maximum duration of %ss reached; remaining iterations cancelled", max_duration)


async def run_browser_load(
    config: type[Config] | Config,
    vus: int,
    iterations: int,
    headless: bool,
) -> int:
    """Build the run, drive the workers and write the reports."""
    try:
        run = HarnessRun.create(config, with_chunks=False)
    except FixtureError as exc:
        logger.error("Cannot start browser test: %s", exc)
        return EXIT_HARNESS_ERROR

    async with async_playwright() as playwright:
        launch_options = {"headless": headless, "args": LAUNCH_ARGS}
        if config.BROWSER_EXECUTABLE:
            launch_options["executable_path"] = config.BROWSER_EXECUTABLE
        browser = await playwright.chromium.launch(**launch_options)
        try:
            await drive_workers(run, browser, vus, iterations, config.BROWSER_MAX_DURATION)
        finally:
            await browser.close()

    return run.finish(config.BROWSER_THRESHOLDS_FILE, prefix="browser_")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the browser load test.")
    parser.add_argument("--env", default=None, help="Config environment (dev, demo, testing)")
    parser.add_argument("--vus", type=int, default=None, help="Concurrent browser workers")
    parser.add_argument("--iterations", type=int, default=None, help="Iterations per worker")
    parser.add_argument("--headed", action="store_true", help="Show the browser windows")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = get_config(args.env)
    vus = args.vus or config.BROWSER_VUS
    iterations = args.iterations or config.BROWSER_ITERATIONS
    headless = config.BROWSER_HEADLESS and not args.headed
    return asyncio.run(run_browser_load(config, vus, iterations, headless))


if __name__ == "__main__":
    sys.exit(main())
