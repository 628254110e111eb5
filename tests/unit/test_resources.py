"""
Unit tests for page sub-resource discovery and batch fetching.
"""

from __future__ import annotations

import pytest
import requests

from loadharness.resources import (
    ResourceMetrics,
    discover_and_fetch,
    discover_resource_urls,
    fetch_batch,
    normalize_url,
)
from tests.fakes import FakeResponse, FakeTransport

pytestmark = pytest.mark.unit

BASE = "https://dashboard.test"


@pytest.mark.parametrize(
    "reference, expected",
    [
        ("/build/app.js", "https://dashboard.test/build/app.js"),
        ("build/app.css", "https://dashboard.test/build/app.css"),
        ("https://cdn.test/lib.js", "https://cdn.test/lib.js"),
        ("//cdn.test/lib.js", "https://cdn.test/lib.js"),
        ("  /a.css?v=1&amp;x=2 ", "https://dashboard.test/a.css?v=1&x=2"),
    ],
)
def test_normalize_url(reference, expected):
    assert normalize_url(reference, BASE + "/") == expected


@pytest.mark.parametrize("reference", ["data:image/png;base64,AAA", "blob:abc", "", "javascript:void(0)"])
def test_inline_references_are_skipped(reference):
    assert normalize_url(reference, BASE) is None


def test_discovery_deduplicates_in_first_seen_order():
    html = """
    <link rel="stylesheet" href="/app.css">
    <link rel="icon" href="/favicon.ico">
    <script src="/app.js"></script>
    <script>inline()</script>
    <img src="/logo.png"><img src="https://dashboard.test/logo.png">
    <img src="data:image/gif;base64,R0lG">
    <link href='/app.css' rel='stylesheet'>
    """

    urls = discover_resource_urls(html, BASE)

    assert urls == [
        "https://dashboard.test/app.css",
        "https://dashboard.test/app.js",
        "https://dashboard.test/logo.png",
    ]


def test_discover_and_fetch_requests_a_repeated_reference_once():
    # Arrange
    transport = FakeTransport()
    html = (
        '<link rel="stylesheet" href="/app.css"><script src="/app.js"></script>'
        '<link href="https://dashboard.test/app.css" rel="stylesheet">'
    )

    # Act
    results = discover_and_fetch(transport, html, BASE)

    # Assert
    requested = transport.urls("GET")
    assert requested.count(f"{BASE}/app.css") == 1
    assert sorted(requested) == [f"{BASE}/app.css", f"{BASE}/app.js"]
    assert [result.url for result in results] == [f"{BASE}/app.css", f"{BASE}/app.js"]


def test_discovery_of_empty_document():
    assert discover_resource_urls("", BASE) == []


def test_fetch_batch_keeps_order_and_isolates_failures():
    # Arrange
    transport = FakeTransport(
        [
            ("GET", "/missing.js", FakeResponse(404)),
            ("GET", "/reset.css", requests.ConnectionError("reset")),
        ]
    )
    urls = [f"{BASE}/app.css", f"{BASE}/missing.js", f"{BASE}/reset.css"]

    # Act
    results = fetch_batch(transport, urls, headers={"Accept": "*/*"}, batch_size=2)

    # Assert
    assert [result.url for result in results] == urls
    assert [result.success for result in results] == [True, False, False]
    assert results[1].status == 404
    assert "reset" in results[2].error


def test_fetch_batch_with_no_urls_sends_nothing():
    transport = FakeTransport()

    assert fetch_batch(transport, []) == []
    assert transport.calls == []


def test_resource_metrics_record_one_fail_sample_per_resource(sink):
    # Arrange
    metrics = ResourceMetrics.declare(sink, "login_page")
    transport = FakeTransport([("GET", "/broken.js", FakeResponse(500))])
    html = '<script src="/app.js"></script><script src="/broken.js"></script><img src="/a.png">'
    results = discover_and_fetch(transport, html, BASE)

    # Act
    stats = metrics.record(results, wall_ms=250.0, tags={"vu": "1"})

    # Assert
    snapshot = sink.snapshot()
    assert stats.unique == 3
    assert stats.failed == 1
    assert snapshot.values("login_page_resource_fail_rate") == [0.0, 1.0, 0.0]
    assert snapshot.values("login_page_resource_requests") == [3.0]
    assert snapshot.values("login_page_resource_total_time") == [250.0]
    assert len(snapshot.values("login_page_resource_avg_time")) == 1


def test_average_time_is_skipped_when_nothing_loaded(sink):
    metrics = ResourceMetrics.declare(sink, "landing_page")
    transport = FakeTransport([("GET", "", FakeResponse(503))])
    results = fetch_batch(transport, [f"{BASE}/a.js"])

    metrics.record(results, wall_ms=10.0)

    assert sink.snapshot().values("landing_page_resource_avg_time") == []
