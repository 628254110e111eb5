"""
Threshold gating.

A thresholds file maps series selectors to one or more pass criteria::

    login_fail_rate: ["rate<0.05"]
    login_time: ["p(95)<2000", "avg<800"]
    "checks{group:::Login flow}": ["rate>0.95"]

A selector is a series name, optionally followed by ``{tag:value,...}``
to restrict the statistic to samples carrying those tags.  A criterion
is ``<stat> <op> <number>`` where *stat* is one of ``avg``, ``min``,
``max``, ``med``, ``count``, ``sum``, ``rate`` or ``p(N)`` and *op* is a
comparison operator.

Key Concepts Demonstrated:
- Small regex grammar with precise error messages
- Evaluation against the pure report summary, never the live sink
- Verdict object serialisable into ``summary.json`` for CI
"""

from __future__ import annotations

import logging
import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from loadharness.errors import ThresholdConfigError
from loadharness.reducer import ReportSummary, SeriesStats, percentile_label

logger = logging.getLogger(__name__)

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_SELECTOR = re.compile(r"^\s*(?P<name>[^{}\s]+)\s*(?:\{(?P<tags>[^{}]*)\})?\s*$")
_EXPRESSION = re.compile(
    r"^\s*(?P<stat>avg|min|max|med|count|sum|rate|p\((?P<pct>\d+(?:\.\d+)?)\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<limit>-?\d+(?:\.\d+)?)\s*$"
)


@dataclass(frozen=True)
class Criterion:
    """One ``<stat> <op> <number>`` comparison."""

    source: str
    stat: str
    op: str
    limit: float
    percentile: float | None = None

    def holds(self, actual: float) -> bool:
        return OPERATORS[self.op](actual, self.limit)


@dataclass(frozen=True)
class Threshold:
    """All criteria attached to one series selector."""

    selector: str
    series: str
    tags: Mapping[str, str] = field(default_factory=dict)
    criteria: tuple[Criterion, ...] = ()


@dataclass(frozen=True)
class ThresholdResult:
    selector: str
    criterion: str
    actual: float
    passed: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "criterion": self.criterion,
            "actual": self.actual,
            "passed": self.passed,
        }


@dataclass(frozen=True)
class ThresholdVerdict:
    """Outcome of evaluating every threshold of a run."""

    results: tuple[ThresholdResult, ...] = ()

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def breaches(self) -> list[ThresholdResult]:
        return [result for result in self.results if not result.passed]

    def as_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "results": [result.as_dict() for result in self.results],
        }


def parse_selector(selector: str) -> tuple[str, dict[str, str]]:
    """
    Split ``name{tag:value,...}`` into the series name and tag filter.

    Tag values may themselves contain colons (group paths look like
    ``::Login flow``); only the first colon of each pair separates the key.

    Raises:
        ThresholdConfigError: If the selector is malformed.
    """
    match = _SELECTOR.match(selector)
    if not match:
        raise ThresholdConfigError(f"Invalid series selector: {selector!r}")
    tags: dict[str, str] = {}
    raw_tags = match.group("tags")
    if raw_tags is not None:
        for pair in raw_tags.split(","):
            pair = pair.strip()
            if not pair:
                continue
            key, sep, value = pair.partition(":")
            if not sep or not key.strip():
                raise ThresholdConfigError(
                    f"Invalid tag filter {pair!r} in {selector!r}; expected tag:value"
                )
            tags[key.strip()] = value.strip()
    return match.group("name"), tags


def parse_criterion(text: str) -> Criterion:
    """
    Parse one ``<stat> <op> <number>`` expression.

    Raises:
        ThresholdConfigError: If the expression does not match the grammar.
    """
    match = _EXPRESSION.match(str(text))
    if not match:
        raise ThresholdConfigError(
            f"Invalid threshold expression {text!r}; expected e.g. 'p(95)<2000' or 'rate<0.05'"
        )
    pct = match.group("pct")
    percentile = float(pct) if pct is not None else None
    if percentile is not None and percentile > 100:
        raise ThresholdConfigError(f"Percentile out of range in {text!r}")
    stat = percentile_label(percentile) if percentile is not None else match.group("stat")
    return Criterion(
        source=str(text).strip(),
        stat=stat,
        op=match.group("op"),
        limit=float(match.group("limit")),
        percentile=percentile,
    )


def parse_thresholds(data: Mapping[str, Any] | None) -> list[Threshold]:
    """
    Build :class:`Threshold` objects from the loaded YAML mapping.

    Each value may be a single expression string or a list of them.

    Raises:
        ThresholdConfigError: On any malformed selector or expression.
    """
    if data is None:
        return []
    if not isinstance(data, Mapping):
        raise ThresholdConfigError("Thresholds file must contain a mapping of series to criteria")

    thresholds = []
    for selector, raw in data.items():
        series, tags = parse_selector(str(selector))
        expressions = [raw] if isinstance(raw, str) else raw
        if not isinstance(expressions, list) or not expressions:
            raise ThresholdConfigError(
                f"Criteria for {selector!r} must be an expression or a non-empty list"
            )
        thresholds.append(
            Threshold(
                selector=str(selector),
                series=series,
                tags=tags,
                criteria=tuple(parse_criterion(expr) for expr in expressions),
            )
        )
    return thresholds


def load_thresholds(path: str | Path) -> list[Threshold]:
    """
    Read and parse a thresholds YAML file.

    Raises:
        ThresholdConfigError: If the file is missing, is not valid YAML,
            or contains an invalid threshold.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ThresholdConfigError(f"Cannot read thresholds file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ThresholdConfigError(f"Thresholds file {path} is not valid YAML: {exc}") from exc
    return parse_thresholds(data)


def _stats_for(summary: ReportSummary, threshold: Threshold) -> SeriesStats:
    if threshold.series not in summary:
        raise ThresholdConfigError(f"Threshold refers to unknown series {threshold.series!r}")
    wanted = [c.percentile for c in threshold.criteria if c.percentile is not None]
    extra = [p for p in wanted if p not in summary.percentiles]
    if (threshold.tags or extra) and summary.snapshot is None:
        raise ThresholdConfigError(
            f"{threshold.selector!r} needs raw samples; evaluate it at the end of the run"
        )
    if threshold.tags or extra:
        return summary.select(
            threshold.series,
            percentiles=tuple(summary.percentiles) + tuple(extra),
            **threshold.tags,
        )
    return summary.get(threshold.series)


def evaluate(summary: ReportSummary, thresholds: list[Threshold]) -> ThresholdVerdict:
    """
    Evaluate *thresholds* against *summary*.

    Raises:
        ThresholdConfigError: If a threshold names an unknown series or
            a statistic the series' kind does not have.
    """
    results = []
    for threshold in thresholds:
        stats = _stats_for(summary, threshold)
        for criterion in threshold.criteria:
            try:
                actual = stats.stat(criterion.stat)
            except KeyError as exc:
                raise ThresholdConfigError(
                    f"{criterion.stat!r} is not available for {threshold.selector!r}: {exc}"
                ) from exc
            passed = criterion.holds(actual)
            if not passed:
                logger.warning(
                    "Threshold breached: %s %s (actual %.4f)",
                    threshold.selector,
                    criterion.source,
                    actual,
                )
            results.append(ThresholdResult(threshold.selector, criterion.source, actual, passed))
    return ThresholdVerdict(tuple(results))
