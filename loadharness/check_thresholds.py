"""
Validate a finished run's ``summary.json`` against threshold configuration.

After a run completes, CI can invoke this module to re-check the build
against a (possibly stricter) thresholds file without re-running the
load.  It reads the ``metrics`` section of ``summary.json``, rebuilds the
report summary from it and evaluates every criterion of
:file:`thresholds.yml`.

Exit codes follow a three-state convention so that CI can distinguish
"thresholds breached" from "script crashed":

- ``0``: all thresholds passed
- ``1``: at least one threshold was breached
- ``2``: the script itself failed (missing file, bad YAML, etc.)

Tag-filtered selectors (``checks{group:...}``) need the raw samples and
are only evaluated at the end of the run itself.

Key Concepts Demonstrated:
- JSON-based performance gating decoupled from the load generator
- Human-readable summary table printed to stdout for CI logs
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from loadharness.errors import HarnessError
from loadharness.reducer import ReportSummary
from loadharness.thresholds import ThresholdVerdict, evaluate, load_thresholds

# Three-state exit codes so CI can tell "test failed" from "script crashed".
EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the threshold checker."""
    parser = argparse.ArgumentParser(
        description="Check a load-test summary.json against performance thresholds."
    )
    parser.add_argument(
        "--summary",
        required=True,
        type=Path,
        help="Path to the summary.json written at the end of a run",
    )
    parser.add_argument(
        "--thresholds",
        type=Path,
        default=Path("thresholds.yml"),
        help="Path to thresholds YAML file",
    )
    return parser.parse_args(argv)


def _load_summary(path: Path) -> ReportSummary:
    """
    Read ``summary.json`` and rebuild its :class:`ReportSummary`.

    Raises:
        ValueError: If the file has no ``metrics`` mapping.
    """
    with path.open("r", encoding="utf-8") as handle:
        document = json.load(handle)
    metrics = document.get("metrics") if isinstance(document, dict) else None
    if not isinstance(metrics, dict):
        raise ValueError(f"{path} has no 'metrics' section")
    return ReportSummary.from_dict(metrics)


def _print_summary(verdict: ThresholdVerdict) -> None:
    """Print a human-readable results table to stdout for CI logs."""
    print("Performance Threshold Check")
    print("-" * 80)
    print(f"{'Series':<36}{'Criterion':<20}{'Actual':>14}{'Status':>10}")
    print("-" * 80)
    for result in verdict.results:
        status = "PASS" if result.passed else "FAIL"
        print(f"{result.selector:<36}{result.criterion:<20}{result.actual:>14.4f}{status:>10}")
    print("-" * 80)
    print(f"Overall: {'PASS' if verdict.passed else 'FAIL'}")


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load thresholds and summary, compare, and print results.

    Returns:
        ``EXIT_PASS`` (0) if all thresholds are met,
        ``EXIT_THRESHOLD_BREACH`` (1) if any are exceeded, or
        ``EXIT_SCRIPT_ERROR`` (2) when the inputs cannot be read.
    """
    args = parse_args(argv)

    try:
        thresholds = load_thresholds(args.thresholds)
        summary = _load_summary(args.summary)
        verdict = evaluate(summary, thresholds)
    except (HarnessError, OSError, ValueError) as exc:
        print(f"Threshold check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    _print_summary(verdict)
    return EXIT_PASS if verdict.passed else EXIT_THRESHOLD_BREACH


if __name__ == "__main__":
    raise SystemExit(main())
