"""
Bounded in-memory failure log.

Keeps the most recent failure details (step, worker, status, URL, body
excerpt) so the final text report can list them.  Appends come from
every worker concurrently; ``collections.deque`` with ``maxlen`` gives
atomic appends and drops the oldest entries once full, so memory stays
flat over long soak runs.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any

BODY_EXCERPT_CHARS = 200


def excerpt(text: str | None, limit: int = BODY_EXCERPT_CHARS) -> str:
    """Return the first *limit* characters of *text* (or ``""``)."""
    if not text:
        return ""
    return text[:limit]


@dataclass(frozen=True)
class FailureRecord:
    """One failed step execution, as retained for the report."""

    step: str
    vu: int
    status: int | None = None
    url: str | None = None
    error: str | None = None
    body: str = ""
    group: str = ""
    duration_ms: float | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class FailureLog:
    """Append-only ring buffer of :class:`FailureRecord` entries."""

    def __init__(self, maxlen: int = 500):
        self._records: deque[FailureRecord] = deque(maxlen=maxlen)
        self._total = 0
        self._total_lock = threading.Lock()

    def append(self, record: FailureRecord) -> None:
        self._records.append(record)
        with self._total_lock:
            self._total += 1

    def __len__(self) -> int:
        return len(self._records)

    @property
    def total(self) -> int:
        """Failures seen over the whole run, including evicted ones."""
        return self._total

    @property
    def maxlen(self) -> int | None:
        return self._records.maxlen

    def records(self, step: str | None = None) -> list[FailureRecord]:
        """Return a copy of the retained records, optionally for one step."""
        items = list(self._records)
        if step is None:
            return items
        return [record for record in items if record.step == step]
