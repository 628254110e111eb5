"""
Run reports.

Renders the reduced statistics of a run into the artifacts CI and people
read after a load test:

- ``summary.html``: per-series table, check table and run configuration
- ``summary.json``: every declared series with its kind and statistics,
  plus the threshold verdict
- ``failures.txt``: response status distribution per tracked step, the
  retained failure log and a failure-rate summary
- a plain text table printed to stdout for CI logs

Key Concepts Demonstrated:
- Jinja2 environment with autoescaping for HTML output
- One pure reduction feeding several independent renderers
- Human-readable summary table printed to stdout for CI logs
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, select_autoescape

from loadharness.failures import FailureLog
from loadharness.metrics import SeriesKind
from loadharness.reducer import RateStats, ReportSummary, SeriesStats, TrendStats
from loadharness.steps import status_class
from loadharness.thresholds import ThresholdVerdict

logger = logging.getLogger(__name__)

STATUS_CLASSES = (status_class(200), status_class(422), status_class(None))
FAIL_RATE_SUFFIX = "_fail_rate"
SECRET_KEYS = ("TOKEN", "PASSWORD", "SECRET")
ACCEPTED_422_NOTE = (
    "Note: 422 (validation) responses are treated as valid for the steps "
    "configured to accept them (stop1, education tracking create)."
)


@dataclass(frozen=True)
class CheckRow:
    name: str
    passes: int
    fails: int

    @property
    def rate(self) -> float:
        total = self.passes + self.fails
        return self.passes / total if total else 0.0


@dataclass(frozen=True)
class ReportPaths:
    html: Path
    json: Path
    failures: Path


def config_items(config: Any) -> dict[str, Any]:
    """Public upper-case settings of a config class, JSON-friendly."""
    items = {}
    for key in sorted(dir(config)):
        if not key.isupper() or key.startswith("_"):
            continue
        if any(secret in key for secret in SECRET_KEYS):
            continue
        value = getattr(config, key)
        if isinstance(value, (str, int, float, bool)) or value is None:
            items[key] = value
        elif isinstance(value, (list, tuple)):
            items[key] = [list(item) if isinstance(item, tuple) else item for item in value]
    return items


def check_rows(summary: ReportSummary) -> list[CheckRow]:
    """Pass/fail totals of every named check, in first-recorded order."""
    rows = []
    for name in summary.tag_values("checks", "check"):
        stats = summary.select("checks", check=name)
        if isinstance(stats, RateStats):
            rows.append(CheckRow(name, stats.passes, stats.fails))
    return rows


def status_distribution(summary: ReportSummary) -> dict[str, dict[str, int]]:
    """``{step: {"200": n, "422": n, "other": n}}`` from ``response_status``."""
    distribution = {}
    for step in summary.tag_values("response_status", "step"):
        distribution[step] = {
            status: int(summary.select("response_status", step=step, status=status).stat("sum"))
            for status in STATUS_CLASSES
        }
    return distribution


def fail_rates(summary: ReportSummary) -> list[RateStats]:
    return [
        stats
        for stats in summary.of_kind(SeriesKind.RATE)
        if stats.name.endswith(FAIL_RATE_SUFFIX) and isinstance(stats, RateStats)
    ]


def build_document(
    summary: ReportSummary,
    verdict: ThresholdVerdict | None = None,
    config: Mapping[str, Any] | None = None,
    failures: FailureLog | None = None,
) -> dict[str, Any]:
    """Assemble the ``summary.json`` payload."""
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "config": dict(config or {}),
        "metrics": summary.as_dict(),
        "checks": [
            {"name": row.name, "passes": row.passes, "fails": row.fails, "rate": row.rate}
            for row in check_rows(summary)
        ],
        "response_status": status_distribution(summary),
        "failures": {
            "total": failures.total if failures else 0,
            "retained": len(failures) if failures else 0,
        },
        "thresholds": verdict.as_dict() if verdict else {"passed": True, "results": []},
    }


def _fmt(value: float) -> str:
    return f"{value:.2f}"


def _trend_row(stats: TrendStats) -> dict[str, Any]:
    return {
        "name": stats.name,
        "kind": "trend",
        "count": stats.count,
        "avg": _fmt(stats.avg),
        "min": _fmt(stats.min),
        "max": _fmt(stats.max),
        "p95": _fmt(stats.stat("p(95)")) if "p(95)" in stats.percentiles else "-",
        "rate": "-",
    }


def _series_rows(summary: ReportSummary) -> list[dict[str, Any]]:
    rows = []
    for name in summary:
        stats: SeriesStats = summary.get(name)
        if isinstance(stats, TrendStats):
            rows.append(_trend_row(stats))
        elif isinstance(stats, RateStats):
            rows.append(
                {
                    "name": name,
                    "kind": "rate",
                    "count": stats.count,
                    "avg": "-",
                    "min": "-",
                    "max": "-",
                    "p95": "-",
                    "rate": f"{stats.rate * 100:.2f}%",
                }
            )
        else:
            rows.append(
                {
                    "name": name,
                    "kind": "counter",
                    "count": int(stats.stat("sum")),
                    "avg": "-",
                    "min": "-",
                    "max": "-",
                    "p95": "-",
                    "rate": "-",
                }
            )
    return rows


def render_html(
    summary: ReportSummary,
    verdict: ThresholdVerdict | None = None,
    config: Mapping[str, Any] | None = None,
    title: str = "Load Test Summary",
) -> str:
    env = Environment(
        loader=PackageLoader("loadharness", "templates"),
        autoescape=select_autoescape(["html", "j2"]),
    )
    template = env.get_template("summary.html.j2")
    return template.render(
        title=title,
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        rows=_series_rows(summary),
        checks=check_rows(summary),
        config=dict(config or {}),
        verdict=verdict,
    )


def render_failures(summary: ReportSummary, failures: FailureLog | None = None) -> str:
    """Render ``failures.txt``."""
    lines = ["Response Status Distribution", "=" * 60]
    distribution = status_distribution(summary)
    if not distribution:
        lines.append("(no tracked responses)")
    for step, counts in distribution.items():
        lines.append(f"{step}:")
        for status, count in counts.items():
            lines.append(f"  {status:<8}{count:>8}")

    lines += ["", "Failure Log", "=" * 60]
    records = failures.records() if failures else []
    if failures and failures.total > len(records):
        lines.append(f"(showing the last {len(records)} of {failures.total} failures)")
    if not records:
        lines.append("(no failures recorded)")
    for record in records:
        stamp = datetime.fromtimestamp(record.timestamp, timezone.utc).strftime("%H:%M:%S")
        lines.append(
            f"[{stamp}] VU {record.vu} {record.step} status={record.status} "
            f"group={record.group or '-'} url={record.url or '-'}"
        )
        if record.error:
            lines.append(f"    error: {record.error}")
        if record.body:
            lines.append(f"    body: {record.body}")

    lines += ["", "Failure Rates", "=" * 60]
    for stats in fail_rates(summary):
        lines.append(f"{stats.name:<48}{stats.rate * 100:>8.2f}%  ({stats.passes} failed / {stats.count})")
    lines += ["", ACCEPTED_422_NOTE, ""]
    return "\n".join(lines)


def render_text_table(summary: ReportSummary, verdict: ThresholdVerdict | None = None) -> str:
    """Plain text summary printed at the end of a run."""
    width = 100
    lines = [
        "Load Test Summary",
        "-" * width,
        f"{'Series':<44}{'Kind':<9}{'Count':>8}{'Avg':>10}{'Min':>10}{'Max':>10}{'P95/Rate':>9}",
        "-" * width,
    ]
    for row in _series_rows(summary):
        last = row["p95"] if row["kind"] == "trend" else row["rate"]
        lines.append(
            f"{row['name']:<44}{row['kind']:<9}{row['count']:>8}"
            f"{row['avg']:>10}{row['min']:>10}{row['max']:>10}{last:>9}"
        )
    lines.append("-" * width)
    if verdict is not None:
        for result in verdict.results:
            status = "PASS" if result.passed else "FAIL"
            lines.append(f"{result.selector:<44}{result.criterion:<24}{result.actual:>12.4f}{status:>8}")
        lines.append(f"Overall: {'PASS' if verdict.passed else 'FAIL'}")
    return "\n".join(lines)


def write_reports(
    output_dir: str | Path,
    summary: ReportSummary,
    verdict: ThresholdVerdict | None = None,
    failures: FailureLog | None = None,
    config: Mapping[str, Any] | None = None,
    prefix: str = "",
) -> ReportPaths:
    """
    Write ``summary.html``, ``summary.json`` and ``failures.txt``.

    Args:
        output_dir: Directory to write into; created if missing.
        prefix: Optional file-name prefix (``"browser_"`` for the browser
            runner) so both runners can share a directory.

    Returns:
        The paths written.
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    paths = ReportPaths(
        html=directory / f"{prefix}summary.html",
        json=directory / f"{prefix}summary.json",
        failures=directory / f"{prefix}failures.txt",
    )

    document = build_document(summary, verdict, config, failures)
    paths.json.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
    paths.html.write_text(render_html(summary, verdict, config), encoding="utf-8")
    paths.failures.write_text(render_failures(summary, failures), encoding="utf-8")
    logger.info("Reports written to %s", directory)
    return paths


def print_summary(summary: ReportSummary, verdict: ThresholdVerdict | None = None) -> None:
    print(render_text_table(summary, verdict))
