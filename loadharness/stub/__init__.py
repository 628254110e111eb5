"""
Stub backend for dry runs and end-to-end tests.

A small Flask application that serves every page and API endpoint the
default scenarios call, with the same cookies, JSON shapes and status
codes as the real dashboard.  A *failure plan* makes chosen endpoints
answer with chosen statuses on a fixed cycle, so tests can inject an
exact failure ratio and check that the harness measures it.

Usage::

    loadharness-stub --port 5050
    loadharness-stub --port 5050 --fail education_conditions=200,500,500

Key Concepts Demonstrated:
- Flask application factory pattern
- Blueprints for HTML pages and the JSON API
- Deterministic fault injection shared by all request threads
"""

from __future__ import annotations

import argparse
import itertools
import logging
import threading
from collections.abc import Iterator, Mapping, Sequence

from flask import Flask

from loadharness.config import get_config

logger = logging.getLogger(__name__)

DEFAULT_SESSION_COOKIE = "test_dashboard_session"


class FailurePlan:
    """
    Per-endpoint cycle of statuses to answer with.

    A 2xx entry means "serve the endpoint normally"; any other entry is
    returned as an error response with that status.  Endpoints without
    a cycle are always served normally.

    Args:
        plan: Mapping of endpoint key to the status cycle.
    """

    def __init__(self, plan: Mapping[str, Sequence[int]] | None = None):
        self._cycles: dict[str, Iterator[int]] = {
            key: itertools.cycle(list(statuses)) for key, statuses in (plan or {}).items() if statuses
        }
        self._lock = threading.Lock()
        self.hits: dict[str, int] = {}

    @property
    def planned_keys(self) -> list[str]:
        return sorted(self._cycles)

    def next_status(self, key: str) -> int | None:
        """Return the injected status for this call of *key*, or ``None``."""
        with self._lock:
            self.hits[key] = self.hits.get(key, 0) + 1
            cycle = self._cycles.get(key)
            status = next(cycle) if cycle is not None else None
        if status is None or 200 <= status < 300:
            return None
        return status


def parse_plan(entries: Sequence[str]) -> dict[str, list[int]]:
    """
    Parse ``key=status,status,...`` command-line entries.

    Raises:
        ValueError: If an entry is malformed.
    """
    plan = {}
    for entry in entries:
        key, sep, statuses = entry.partition("=")
        if not sep or not key:
            raise ValueError(f"Failure plan entry {entry!r} must look like key=200,500")
        plan[key.strip()] = [int(status) for status in statuses.split(",") if status.strip()]
    return plan


def create_app(
    failure_plan: Mapping[str, Sequence[int]] | FailurePlan | None = None,
    session_cookie_name: str = DEFAULT_SESSION_COOKIE,
) -> Flask:
    """
    Create and configure the stub application.

    Args:
        failure_plan: Statuses to inject per endpoint key (see
            :data:`loadharness.stub.routes.ENDPOINT_KEYS`).
        session_cookie_name: Name of the session cookie set on login.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__, static_folder=None)
    plan = failure_plan if isinstance(failure_plan, FailurePlan) else FailurePlan(failure_plan)
    app.extensions["failure_plan"] = plan
    app.config["SESSION_COOKIE_NAME_STUB"] = session_cookie_name

    from loadharness.stub.routes import api_bp, pages_bp

    app.register_blueprint(pages_bp)
    app.register_blueprint(api_bp)

    logger.info("Stub backend created with failure plan for: %s", plan.planned_keys or "none")
    return app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse the stub's command line.

    The session cookie defaults to the one the selected
    ``LOADTEST_ENV`` config expects, so a dry run logs in without flags.
    """
    parser = argparse.ArgumentParser(description="Run the stub dashboard backend.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5050)
    parser.add_argument("--session-cookie", default=get_config().SESSION_COOKIE_NAME)
    parser.add_argument(
        "--fail",
        action="append",
        default=[],
        metavar="KEY=STATUSES",
        help="Inject statuses for an endpoint, e.g. stop1=200,422",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    app = create_app(parse_plan(args.fail), session_cookie_name=args.session_cookie)
    app.run(host=args.host, port=args.port, threaded=True)


if __name__ == "__main__":
    main()
