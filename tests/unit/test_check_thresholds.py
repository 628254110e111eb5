"""
Unit tests for the post-run threshold checker CLI.

Key Concepts Demonstrated:
- Three-state exit codes (pass / breach / script error)
- Round trip through the summary.json a run writes
"""

from __future__ import annotations

import pytest

from loadharness import check_thresholds
from loadharness.reducer import reduce
from loadharness.report import write_reports

pytestmark = pytest.mark.unit


@pytest.fixture
def summary_json(tmp_path, sink):
    """Write a real summary.json for a tiny run."""
    for value in (120, 180, 240):
        sink.trend("login_time").add(value)
    for failed in (False, False, True, False):
        sink.rate("login_fail_rate").add(failed)
    paths = write_reports(tmp_path / "reports", reduce(sink.snapshot()))
    return paths.json


def _thresholds(tmp_path, text):
    path = tmp_path / "thresholds.yml"
    path.write_text(text, encoding="utf-8")
    return path


def test_passing_thresholds_exit_zero(tmp_path, summary_json, capsys):
    thresholds = _thresholds(tmp_path, 'login_time: ["p(95)<300", "avg<200"]\nlogin_fail_rate: ["rate<0.3"]\n')

    code = check_thresholds.main(["--summary", str(summary_json), "--thresholds", str(thresholds)])

    assert code == check_thresholds.EXIT_PASS
    output = capsys.readouterr().out
    assert "Overall: PASS" in output
    assert "login_time" in output


def test_breached_threshold_exits_one(tmp_path, summary_json, capsys):
    thresholds = _thresholds(tmp_path, 'login_fail_rate: ["rate<0.1"]\n')

    code = check_thresholds.main(["--summary", str(summary_json), "--thresholds", str(thresholds)])

    assert code == check_thresholds.EXIT_THRESHOLD_BREACH
    assert "FAIL" in capsys.readouterr().out


@pytest.mark.parametrize(
    "text",
    [
        "login_time: [p(95)<300\n",
        'unknown_series: ["avg<1"]\n',
        'login_time: ["p(95) about 300"]\n',
        '"login_time{vu:1}": ["avg<1"]\n',
    ],
)
def test_bad_thresholds_exit_two(tmp_path, summary_json, capsys, text):
    thresholds = _thresholds(tmp_path, text)

    code = check_thresholds.main(["--summary", str(summary_json), "--thresholds", str(thresholds)])

    assert code == check_thresholds.EXIT_SCRIPT_ERROR
    assert "Threshold check failed" in capsys.readouterr().err


def test_missing_summary_exits_two(tmp_path):
    thresholds = _thresholds(tmp_path, 'login_time: ["avg<1"]\n')

    code = check_thresholds.main(["--summary", str(tmp_path / "none.json"), "--thresholds", str(thresholds)])

    assert code == check_thresholds.EXIT_SCRIPT_ERROR


def test_summary_without_metrics_exits_two(tmp_path):
    summary = tmp_path / "summary.json"
    summary.write_text('{"thresholds": {}}', encoding="utf-8")
    thresholds = _thresholds(tmp_path, 'login_time: ["avg<1"]\n')

    code = check_thresholds.main(["--summary", str(summary), "--thresholds", str(thresholds)])

    assert code == check_thresholds.EXIT_SCRIPT_ERROR


def test_summary_argument_is_required():
    with pytest.raises(SystemExit):
        check_thresholds.parse_args([])
