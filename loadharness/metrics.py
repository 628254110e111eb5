"""
Metric Sink.

A process-wide registry of named observable series, constructed once per
run and passed explicitly to every virtual user and to the reducer.
Three kinds of series exist:

- **trend**: numeric durations (count, min, max, avg, percentiles)
- **rate**: boolean outcomes (fraction true)
- **counter**: running sum of numeric increments

A series name is bound to exactly one kind for the life of the sink.
Scenarios declare their series up front through the typed handles
(:meth:`MetricSink.trend`, :meth:`MetricSink.rate`,
:meth:`MetricSink.counter`), so a kind clash surfaces while the scenario
is being built rather than half way through a run.

Key Concepts Demonstrated:
- Append-only accumulation: workers never read-modify-write shared state
- Short critical sections so recording never stalls a worker
- Immutable snapshot handed to a pure reducer after the run
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from loadharness.errors import MetricKindConflictError


class SeriesKind(str, Enum):
    """The three kinds of observable series."""

    TREND = "trend"
    RATE = "rate"
    COUNTER = "counter"


@dataclass(frozen=True)
class Sample:
    """A single immutable observation."""

    series: str
    value: float | bool
    timestamp: float
    tags: Mapping[str, str] = field(default_factory=dict)

    def matches(self, tags: Mapping[str, str]) -> bool:
        """Return True when every requested tag is present with the same value."""
        return all(self.tags.get(key) == value for key, value in tags.items())


@dataclass(frozen=True)
class SeriesSnapshot:
    """All samples of one series, frozen at snapshot time."""

    name: str
    kind: SeriesKind
    samples: tuple[Sample, ...]

    def values(self, tags: Mapping[str, str] | None = None) -> list[float]:
        """Return sample values, optionally restricted to a tag selection."""
        if not tags:
            return [float(sample.value) for sample in self.samples]
        return [float(sample.value) for sample in self.samples if sample.matches(tags)]


class MetricsSnapshot:
    """
    Read-only view of every series in a sink.

    Declared series with no samples are still present, so that reports
    list them with zero counts.
    """

    def __init__(self, series: Mapping[str, SeriesSnapshot]):
        self._series = MappingProxyType(dict(series))

    def __contains__(self, name: object) -> bool:
        return name in self._series

    def __iter__(self):
        return iter(self._series)

    def __len__(self) -> int:
        return len(self._series)

    def get(self, name: str) -> SeriesSnapshot | None:
        return self._series.get(name)

    def items(self):
        return self._series.items()

    def kind_of(self, name: str) -> SeriesKind | None:
        series = self._series.get(name)
        return series.kind if series else None

    def values(self, name: str, **tags: str) -> list[float]:
        """Return the values recorded for *name*, or ``[]`` if never declared."""
        series = self._series.get(name)
        if series is None:
            return []
        return series.values(tags)


class _Handle:
    """Typed writer bound to one series of a sink."""

    kind: SeriesKind

    def __init__(self, sink: MetricSink, name: str):
        self.sink = sink
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class Trend(_Handle):
    kind = SeriesKind.TREND

    def add(self, value: float, tags: Mapping[str, str] | None = None) -> None:
        self.sink.record(self.name, self.kind, float(value), tags)


class Rate(_Handle):
    kind = SeriesKind.RATE

    def add(self, value: Any, tags: Mapping[str, str] | None = None) -> None:
        # Any truthy value counts as a "true" outcome.
        self.sink.record(self.name, self.kind, bool(value), tags)


class Counter(_Handle):
    kind = SeriesKind.COUNTER

    def add(self, value: float = 1, tags: Mapping[str, str] | None = None) -> None:
        self.sink.record(self.name, self.kind, float(value), tags)


_HANDLES: dict[SeriesKind, type[_Handle]] = {
    SeriesKind.TREND: Trend,
    SeriesKind.RATE: Rate,
    SeriesKind.COUNTER: Counter,
}


class MetricSink:
    """
    Concurrent, append-only store of samples keyed by series name.

    Args:
        default_tags: Tags merged into every recorded sample (for
            example the run's ``test_id``).  Per-call tags win on clash.
        clock: Timestamp source, injectable for tests.
    """

    def __init__(
        self,
        default_tags: Mapping[str, str] | None = None,
        clock=time.time,
    ):
        self._default_tags = dict(default_tags or {})
        self._clock = clock
        self._lock = threading.Lock()
        self._kinds: dict[str, SeriesKind] = {}
        self._samples: dict[str, list[Sample]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, kind: SeriesKind | str) -> SeriesKind:
        """
        Bind *name* to *kind*, or confirm an existing identical binding.

        Raises:
            MetricKindConflictError: If *name* is already bound to a
                different kind.
        """
        kind = SeriesKind(kind)
        with self._lock:
            existing = self._kinds.get(name)
            if existing is None:
                self._kinds[name] = kind
                self._samples[name] = []
            elif existing is not kind:
                raise MetricKindConflictError(name, existing.value, kind.value)
        return kind

    def trend(self, name: str) -> Trend:
        self.register(name, SeriesKind.TREND)
        return Trend(self, name)

    def rate(self, name: str) -> Rate:
        self.register(name, SeriesKind.RATE)
        return Rate(self, name)

    def counter(self, name: str) -> Counter:
        self.register(name, SeriesKind.COUNTER)
        return Counter(self, name)

    def handle(self, name: str, kind: SeriesKind | str) -> _Handle:
        kind = self.register(name, kind)
        return _HANDLES[kind](self, name)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        name: str,
        kind: SeriesKind | str,
        value: float | bool,
        tags: Mapping[str, str] | None = None,
    ) -> None:
        """
        Append one sample to *name*.

        Registers the series on first use.  Safe to call from any number
        of concurrent workers.

        Raises:
            MetricKindConflictError: If *kind* disagrees with the kind
                *name* was first registered with.
        """
        kind = SeriesKind(kind)
        merged = {**self._default_tags, **(tags or {})}
        sample = Sample(name, value, self._clock(), MappingProxyType(merged))
        with self._lock:
            existing = self._kinds.get(name)
            if existing is None:
                self._kinds[name] = kind
                self._samples[name] = [sample]
                return
            if existing is not kind:
                raise MetricKindConflictError(name, existing.value, kind.value)
            self._samples[name].append(sample)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def names(self) -> Iterable[str]:
        with self._lock:
            return list(self._kinds)

    def snapshot(self) -> MetricsSnapshot:
        """
        Freeze every series into an immutable :class:`MetricsSnapshot`.

        Intended to be called once all workers have finished; samples
        recorded after the call are not part of the returned view.
        """
        with self._lock:
            frozen = {
                name: SeriesSnapshot(name, kind, tuple(self._samples[name]))
                for name, kind in self._kinds.items()
            }
        return MetricsSnapshot(frozen)
