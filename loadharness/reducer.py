"""
Report Reducer.

Turns the frozen :class:`~loadharness.metrics.MetricsSnapshot` of a run
into per-series statistics.  The reduction is a pure function of the
snapshot: the same samples always yield the same summary, whatever the
order workers appended them in.

- **trend** → count, min, max, avg, median and the requested
  percentiles
- **rate** → count, passes, fails and the fraction of truthy samples
- **counter** → number of increments and their sum

Percentiles use linear interpolation between the closest ranks (rank
``p/100 * (n-1)``).  A series that was declared but never written
reduces to zeros, and asking the summary for a name that does not exist
at all returns an empty stats object rather than raising.

Key Concepts Demonstrated:
- Pure, deterministic reduction over an immutable snapshot
- Tag selection applied before aggregation
- Uniform ``stat()`` lookup used by the threshold evaluator
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from loadharness.metrics import MetricsSnapshot, SeriesKind, SeriesSnapshot

DEFAULT_PERCENTILES: tuple[float, ...] = (50, 90, 95, 99)


def percentile(values: Sequence[float], p: float) -> float:
    """
    Return the *p*-th percentile of *values* by linear interpolation.

    Args:
        values: Samples in any order.
        p: Percentile between 0 and 100.

    Returns:
        The interpolated value, or ``0.0`` for an empty sequence.

    Raises:
        ValueError: If *p* is outside ``[0, 100]``.
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be within [0, 100], got {p}")
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = p / 100 * (len(ordered) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(ordered[lower])
    weight = rank - lower
    return float(ordered[lower] + (ordered[upper] - ordered[lower]) * weight)


def percentile_label(p: float) -> str:
    """``95`` → ``"p(95)"``, ``99.9`` → ``"p(99.9)"``."""
    return f"p({p:g})"


@dataclass(frozen=True)
class SeriesStats:
    """
    Statistics of one series.

    The base class doubles as the empty result for unknown names: every
    statistic it is asked for is zero.
    """

    name: str
    count: int = 0

    kind: SeriesKind | None = field(default=None, init=False)

    def stat(self, key: str) -> float:
        """Return the statistic called *key* (``avg``, ``p(95)``, ``rate`` ...)."""
        if key == "count":
            return float(self.count)
        return 0.0

    def as_dict(self) -> dict[str, Any]:
        return {"kind": None, "count": self.count}


@dataclass(frozen=True)
class TrendStats(SeriesStats):
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    med: float = 0.0
    percentiles: Mapping[str, float] = field(default_factory=dict)

    kind: SeriesKind | None = field(default=SeriesKind.TREND, init=False)

    @classmethod
    def from_values(
        cls, name: str, values: Sequence[float], percentiles: Iterable[float]
    ) -> TrendStats:
        if not values:
            return cls(name, percentiles={percentile_label(p): 0.0 for p in percentiles})
        return cls(
            name=name,
            count=len(values),
            min=float(min(values)),
            max=float(max(values)),
            avg=float(sum(values) / len(values)),
            med=percentile(values, 50),
            percentiles={percentile_label(p): percentile(values, p) for p in percentiles},
        )

    def stat(self, key: str) -> float:
        if key in ("min", "max", "avg", "med"):
            return getattr(self, key)
        if key == "count":
            return float(self.count)
        if key in self.percentiles:
            return self.percentiles[key]
        raise KeyError(f"Trend {self.name!r} has no statistic {key!r}")

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": SeriesKind.TREND.value,
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "med": self.med,
            **self.percentiles,
        }


@dataclass(frozen=True)
class RateStats(SeriesStats):
    passes: int = 0
    fails: int = 0

    kind: SeriesKind | None = field(default=SeriesKind.RATE, init=False)

    @classmethod
    def from_values(cls, name: str, values: Sequence[float]) -> RateStats:
        passes = sum(1 for value in values if value)
        return cls(name=name, count=len(values), passes=passes, fails=len(values) - passes)

    @property
    def rate(self) -> float:
        """Fraction of truthy samples; ``0.0`` when nothing was recorded."""
        if not self.count:
            return 0.0
        return self.passes / self.count

    def stat(self, key: str) -> float:
        if key == "rate":
            return self.rate
        if key in ("count", "passes", "fails"):
            return float(getattr(self, key))
        raise KeyError(f"Rate {self.name!r} has no statistic {key!r}")

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": SeriesKind.RATE.value,
            "count": self.count,
            "passes": self.passes,
            "fails": self.fails,
            "rate": self.rate,
        }


@dataclass(frozen=True)
class CounterStats(SeriesStats):
    sum: float = 0.0

    kind: SeriesKind | None = field(default=SeriesKind.COUNTER, init=False)

    @classmethod
    def from_values(cls, name: str, values: Sequence[float]) -> CounterStats:
        return cls(name=name, count=len(values), sum=float(sum(values)))

    def stat(self, key: str) -> float:
        # A counter's "count" is its running total, as in a k6 summary.
        if key in ("count", "sum"):
            return self.sum
        if key == "increments":
            return float(self.count)
        raise KeyError(f"Counter {self.name!r} has no statistic {key!r}")

    def as_dict(self) -> dict[str, Any]:
        return {"kind": SeriesKind.COUNTER.value, "count": self.count, "sum": self.sum}


def reduce_series(
    series: SeriesSnapshot,
    percentiles: Iterable[float] = DEFAULT_PERCENTILES,
    tags: Mapping[str, str] | None = None,
) -> SeriesStats:
    """Reduce one series, keeping only samples carrying every tag in *tags*."""
    values = series.values(tags)
    if series.kind is SeriesKind.TREND:
        return TrendStats.from_values(series.name, values, percentiles)
    if series.kind is SeriesKind.RATE:
        return RateStats.from_values(series.name, values)
    return CounterStats.from_values(series.name, values)


class ReportSummary:
    """
    The reduced statistics of a run, keyed by series name.

    Also keeps the snapshot it was reduced from so that tag-filtered
    views (``summary.select("checks", check="Login status is 200")``)
    can be computed on demand.
    """

    def __init__(
        self,
        stats: Mapping[str, SeriesStats],
        snapshot: MetricsSnapshot | None = None,
        percentiles: Sequence[float] = DEFAULT_PERCENTILES,
    ):
        self._stats = dict(stats)
        self.snapshot = snapshot
        self.percentiles = tuple(percentiles)

    def __contains__(self, name: object) -> bool:
        return name in self._stats

    def __iter__(self):
        return iter(sorted(self._stats))

    def __len__(self) -> int:
        return len(self._stats)

    def get(self, name: str) -> SeriesStats:
        return self._stats.get(name) or SeriesStats(name)

    def of_kind(self, kind: SeriesKind) -> list[SeriesStats]:
        return [self._stats[name] for name in sorted(self._stats) if self._stats[name].kind is kind]

    def select(
        self,
        name: str,
        percentiles: Iterable[float] | None = None,
        **tags: str,
    ) -> SeriesStats:
        """
        Reduce *name* restricted to samples carrying *tags*.

        Falls back to the unfiltered stats when no snapshot is attached.
        """
        if self.snapshot is None:
            return self.get(name)
        series = self.snapshot.get(name)
        if series is None:
            return SeriesStats(name)
        wanted = tuple(percentiles) if percentiles is not None else self.percentiles
        return reduce_series(series, wanted, tags)

    def tag_values(self, name: str, tag: str) -> list[str]:
        """Distinct values of *tag* seen on *name*, in first-seen order."""
        if self.snapshot is None:
            return []
        series = self.snapshot.get(name)
        if series is None:
            return []
        seen: dict[str, None] = {}
        for sample in series.samples:
            value = sample.tags.get(tag)
            if value is not None:
                seen.setdefault(value, None)
        return list(seen)

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return {name: self._stats[name].as_dict() for name in sorted(self._stats)}

    @classmethod
    def from_dict(cls, metrics: Mapping[str, Mapping[str, Any]]) -> ReportSummary:
        """
        Rebuild a summary from the ``metrics`` section of ``summary.json``.

        The result has no snapshot attached, so tag-filtered views are not
        available from it.

        Raises:
            ValueError: If an entry has an unknown kind or malformed values.
        """
        stats: dict[str, SeriesStats] = {}
        percentiles: set[float] = set()
        for name, data in metrics.items():
            kind = data.get("kind")
            count = int(data.get("count", 0))
            if kind == SeriesKind.TREND.value:
                labelled = {key: float(value) for key, value in data.items() if key.startswith("p(")}
                percentiles.update(float(key[2:-1]) for key in labelled)
                stats[name] = TrendStats(
                    name=name,
                    count=count,
                    min=float(data.get("min", 0.0)),
                    max=float(data.get("max", 0.0)),
                    avg=float(data.get("avg", 0.0)),
                    med=float(data.get("med", 0.0)),
                    percentiles=labelled,
                )
            elif kind == SeriesKind.RATE.value:
                stats[name] = RateStats(
                    name=name,
                    count=count,
                    passes=int(data.get("passes", 0)),
                    fails=int(data.get("fails", 0)),
                )
            elif kind == SeriesKind.COUNTER.value:
                stats[name] = CounterStats(name=name, count=count, sum=float(data.get("sum", 0.0)))
            else:
                raise ValueError(f"Series {name!r} has unknown kind {kind!r}")
        return cls(stats, None, sorted(percentiles) or DEFAULT_PERCENTILES)


def reduce(
    snapshot: MetricsSnapshot,
    percentiles: Sequence[float] = DEFAULT_PERCENTILES,
    tags: Mapping[str, str] | None = None,
) -> ReportSummary:
    """
    Reduce every series in *snapshot*.

    Args:
        snapshot: Frozen view of the run's metric sink.
        percentiles: Trend percentiles to compute.
        tags: When given, only samples carrying all of these tags count.

    Returns:
        A :class:`ReportSummary` with one entry per declared series,
        including series that never received a sample.
    """
    stats = {name: reduce_series(series, percentiles, tags) for name, series in snapshot.items()}
    return ReportSummary(stats, snapshot, percentiles)
