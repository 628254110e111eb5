"""
Unit tests for report rendering and writing.
"""

from __future__ import annotations

import json

import pytest

from loadharness.failures import FailureLog, FailureRecord
from loadharness.reducer import reduce
from loadharness.report import (
    ACCEPTED_422_NOTE,
    check_rows,
    config_items,
    fail_rates,
    render_failures,
    render_html,
    render_text_table,
    status_distribution,
    write_reports,
)
from loadharness.thresholds import evaluate, parse_thresholds

pytestmark = pytest.mark.unit


@pytest.fixture
def summary(sink):
    sink.trend("login_time").add(150)
    sink.rate("login_fail_rate").add(False)
    sink.rate("stop1_fail_rate").add(True)
    checks = sink.rate("checks")
    checks.add(True, {"check": "Login status is 200"})
    checks.add(False, {"check": "Login status is 200"})
    checks.add(True, {"check": "<script>alert(1)</script>"})
    status = sink.counter("response_status")
    status.add(1, {"step": "tracking_create", "status": "200"})
    status.add(1, {"step": "tracking_create", "status": "422"})
    status.add(1, {"step": "tracking_create", "status": "422"})
    sink.counter("iterations").add(3)
    return reduce(sink.snapshot())


@pytest.fixture
def failures():
    log = FailureLog(maxlen=2)
    for vu in (1, 2, 3):
        log.append(FailureRecord(step="Stop", vu=vu, status=500, url="http://api.test/stop1", body="boom"))
    return log


def test_check_rows_aggregate_by_name(summary):
    rows = check_rows(summary)

    assert [(row.name, row.passes, row.fails) for row in rows] == [
        ("Login status is 200", 1, 1),
        ("<script>alert(1)</script>", 1, 0),
    ]
    assert rows[0].rate == 0.5


def test_status_distribution_per_step(summary):
    assert status_distribution(summary) == {"tracking_create": {"200": 1, "422": 2, "other": 0}}


def test_fail_rates_lists_only_fail_rate_series(summary):
    assert [stats.name for stats in fail_rates(summary)] == ["login_fail_rate", "stop1_fail_rate"]


def test_config_items_skip_secrets_and_private(config):
    items = config_items(config)

    assert items["API_BASE_URL"] == "http://api.test"
    assert items["STAGES"] == [[1, 3]]
    assert "RECAPTCHA_TOKEN" not in items
    assert all(key.isupper() for key in items)


def test_failures_text_has_every_section(summary, failures):
    text = render_failures(summary, failures)

    assert "Response Status Distribution" in text
    assert "tracking_create:" in text
    assert "Failure Log" in text
    assert "(showing the last 2 of 3 failures)" in text
    assert "VU 3 Stop status=500" in text
    assert "VU 1 Stop" not in text
    assert "Failure Rates" in text
    assert "stop1_fail_rate" in text
    assert "(1 failed / 1)" in text
    assert "(0 failed / 1)" in text
    assert ACCEPTED_422_NOTE in text


def test_failures_text_without_failures(summary):
    text = render_failures(summary, FailureLog())

    assert "(no failures recorded)" in text


def test_html_is_escaped_and_lists_series(summary, config):
    verdict = evaluate(summary, parse_thresholds({"login_time": "p(95)<100"}))

    html = render_html(summary, verdict, config_items(config), title="Nightly")

    assert "<title>Nightly</title>" in html
    assert "login_time" in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert "<script>alert(1)</script>" not in html
    assert "FAIL" in html


def test_text_table_shows_verdict(summary):
    verdict = evaluate(summary, parse_thresholds({"login_fail_rate": "rate<0.1"}))

    table = render_text_table(summary, verdict)

    assert "login_time" in table
    assert "Overall: PASS" in table


def test_write_reports_creates_all_files(tmp_path, summary, failures, config):
    # Arrange
    verdict = evaluate(summary, parse_thresholds({"stop1_fail_rate": "rate<0.5"}))

    # Act
    paths = write_reports(
        tmp_path / "reports", summary, verdict, failures, config_items(config), prefix="browser_"
    )

    # Assert
    assert paths.html.name == "browser_summary.html"
    assert paths.failures.read_text(encoding="utf-8").startswith("Response Status Distribution")
    document = json.loads(paths.json.read_text(encoding="utf-8"))
    assert document["metrics"]["iterations"] == {"kind": "counter", "count": 1, "sum": 3.0}
    assert document["thresholds"]["passed"] is False
    assert document["failures"] == {"total": 3, "retained": 2}
    assert document["response_status"]["tracking_create"]["422"] == 2
    assert document["config"]["ENV_NAME"] == "test"
