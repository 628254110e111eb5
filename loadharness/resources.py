"""
Page sub-resource discovery and parallel fetching.

After an HTML document loads, a browser fetches its stylesheets,
scripts and images in parallel.  This module imitates that cheaply:

1. Scan the HTML with simple attribute patterns (not a full parse, so
   malformed real-world markup never breaks discovery).
2. Normalise every reference to an absolute URL and de-duplicate.
3. Fire all URLs as one concurrent batch on a gevent pool, so the
   measured time is "all sub-resources done in parallel" rather than
   the sum of sequential fetches.

An individual failed sub-resource never fails the batch; callers fold
per-resource outcomes into a failure *rate*.

Key Concepts Demonstrated:
- Tolerant regex scanning instead of strict HTML parsing
- Order-preserving de-duplication of normalised URLs
- Cooperative fan-out with ``gevent.pool.Pool.map``
"""

from __future__ import annotations

import html as html_lib
import logging
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit

import requests
from gevent.pool import Pool

from loadharness.metrics import Counter, MetricSink, Rate, Trend
from loadharness.transport import Transport

logger = logging.getLogger(__name__)

# Patterns capture the attribute value directly.  Stylesheets and scripts
# must reference a .css/.js file; any <img src> counts.
_RESOURCE_PATTERNS = (
    re.compile(r"""<link[^>]+href=["']([^"']+\.css[^"']*)["'][^>]*>""", re.IGNORECASE),
    re.compile(r"""<script[^>]+src=["']([^"']+\.js[^"']*)["'][^>]*>""", re.IGNORECASE),
    re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE),
)

# Inline or non-network references a browser never requests.
_SKIPPED_SCHEMES = ("data:", "blob:", "javascript:", "about:")

DEFAULT_BATCH_SIZE = 20


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one sub-resource."""

    url: str
    duration_ms: float
    success: bool
    status: int | None = None
    error: str | None = None


def normalize_url(reference: str, base_url: str) -> str | None:
    """
    Resolve a discovered reference against *base_url*.

    Absolute ``http(s)`` URLs pass through unchanged, root-relative
    references (``/a.js``) are appended to the base origin, and anything
    else is joined with a ``/`` separator.  Protocol-relative references
    (``//cdn/x.js``) borrow the base scheme.

    Args:
        reference: Raw attribute value from the HTML.
        base_url: Origin of the page, e.g. ``https://x.test``.

    Returns:
        The absolute URL, or ``None`` for inline references such as
        ``data:`` URIs that are never fetched over the network.
    """
    reference = html_lib.unescape(reference.strip())
    if not reference or reference.lower().startswith(_SKIPPED_SCHEMES):
        return None

    base = base_url.rstrip("/")
    if reference.startswith("//"):
        scheme = urlsplit(base).scheme or "https"
        return f"{scheme}:{reference}"
    if urlsplit(reference).scheme in ("http", "https"):
        return reference
    if reference.startswith("/"):
        return f"{base}{reference}"
    return f"{base}/{reference}"


def discover_resource_urls(html: str, base_url: str) -> list[str]:
    """
    Find stylesheet, script and image URLs referenced by *html*.

    Returns:
        Absolute URLs in first-seen order, each at most once.
    """
    seen: dict[str, None] = {}
    for pattern in _RESOURCE_PATTERNS:
        for match in pattern.finditer(html or ""):
            url = normalize_url(match.group(1), base_url)
            if url is not None:
                seen.setdefault(url, None)
    return list(seen)


def _fetch(
    transport: Transport,
    url: str,
    headers: Mapping[str, str],
    name: str | None,
) -> FetchResult:
    started = time.perf_counter()
    try:
        response = transport.get(url, headers=headers, name=name)
    except requests.RequestException as exc:
        duration_ms = (time.perf_counter() - started) * 1000
        logger.warning("Resource fetch error for %s: %s", url, exc)
        return FetchResult(url, duration_ms, False, None, str(exc))

    duration_ms = (time.perf_counter() - started) * 1000
    return FetchResult(url, duration_ms, response.status_code < 400, response.status_code)


def fetch_batch(
    transport: Transport,
    urls: Sequence[str],
    headers: Mapping[str, str] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    name: str | None = None,
) -> list[FetchResult]:
    """Fetch *urls* concurrently; results keep the order of *urls*."""
    if not urls:
        return []
    pool = Pool(max(1, min(batch_size, len(urls))))
    return pool.map(lambda url: _fetch(transport, url, dict(headers or {}), name), urls)


def discover_and_fetch(
    transport: Transport,
    html: str,
    base_url: str,
    headers: Mapping[str, str] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    name: str | None = None,
) -> list[FetchResult]:
    """
    Discover the sub-resources of *html* and fetch them as one batch.

    Args:
        transport: The worker's HTTP transport.
        html: Body of the page that was just loaded.
        base_url: Origin used to resolve relative references.
        headers: Headers sent with every resource request.
        batch_size: Maximum number of requests in flight at once.
        name: Optional statistics name for the Locust request log.

    Returns:
        One :class:`FetchResult` per unique URL.
    """
    urls = discover_resource_urls(html, base_url)
    return fetch_batch(transport, urls, headers, batch_size, name)


@dataclass(frozen=True)
class PageResourceStats:
    """Aggregate view of one page's resource batch."""

    unique: int
    succeeded: int
    failed: int
    success_duration_ms: float
    wall_ms: float

    @classmethod
    def from_results(cls, results: Sequence[FetchResult], wall_ms: float) -> PageResourceStats:
        succeeded = [result for result in results if result.success]
        return cls(
            unique=len({result.url for result in results}),
            succeeded=len(succeeded),
            failed=len(results) - len(succeeded),
            success_duration_ms=sum(result.duration_ms for result in succeeded),
            wall_ms=wall_ms,
        )

    @property
    def avg_ms(self) -> float:
        """Mean duration of the successful fetches (0 when none succeeded)."""
        if not self.succeeded:
            return 0.0
        return self.success_duration_ms / self.succeeded


@dataclass(frozen=True)
class ResourceMetrics:
    """Series a page's resource batch is folded into."""

    total_time: Trend
    avg_time: Trend
    fail_rate: Rate
    requests: Counter

    @classmethod
    def declare(cls, sink: MetricSink, page: str) -> ResourceMetrics:
        return cls(
            total_time=sink.trend(f"{page}_resource_total_time"),
            avg_time=sink.trend(f"{page}_resource_avg_time"),
            fail_rate=sink.rate(f"{page}_resource_fail_rate"),
            requests=sink.counter(f"{page}_resource_requests"),
        )

    def record(
        self,
        results: Sequence[FetchResult],
        wall_ms: float,
        tags: Mapping[str, str] | None = None,
    ) -> PageResourceStats:
        """
        Fold a finished batch into the resource series.

        Every resource contributes one boolean sample to the fail rate;
        the average-time trend only receives a value when at least one
        resource loaded.
        """
        stats = PageResourceStats.from_results(results, wall_ms)
        self.requests.add(stats.unique, tags)
        self.total_time.add(wall_ms, tags)
        for result in results:
            self.fail_rate.add(not result.success, tags)
        if stats.succeeded:
            self.avg_time.add(stats.avg_ms, tags)
        return stats
