"""
Harness Configuration.

Defines environment-specific configuration classes for load runs.
Each class captures the target URLs, the concurrency ramp, think times
and report locations.  Every value can be overridden through an
environment variable so the same code runs locally, in CI and against
the shared dev/demo stacks.  ``get_config`` selects the class from an
explicit key or the ``LOADTEST_ENV`` environment variable.

Key Concepts Demonstrated:
- Class-based configuration with inheritance for DRY defaults
- Environment-variable overrides for 12-factor deployability
- Testing configuration with zero think time and a local stub backend
"""

from __future__ import annotations

import os


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _session_cookie(env_name: str) -> str:
    """Cookie name the dashboard of *env_name* issues on login."""
    return os.environ.get("LOADTEST_SESSION_COOKIE", f"{env_name}_dashboard_session")


def parse_stages(text: str) -> list[tuple[int, int]]:
    """
    Parse a ``"duration:target,duration:target"`` ramp description.

    Args:
        text: Comma separated stages, durations in seconds.

    Returns:
        A list of ``(duration_seconds, target_users)`` tuples.

    Raises:
        ValueError: If a stage is not of the form ``int:int``.
    """
    stages: list[tuple[int, int]] = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        duration, _, target = chunk.partition(":")
        if not target:
            raise ValueError(f"Stage {chunk!r} must look like 'seconds:users'")
        stages.append((int(duration), int(target)))
    return stages


def ramp_target(stages: list[tuple[int, int]], elapsed: float) -> tuple[int, float] | None:
    """
    Return ``(users, spawn_rate)`` for *elapsed* seconds into a staged ramp.

    Each stage moves linearly from the previous stage's target (0 for
    the first) to its own target over its duration.

    Returns:
        ``None`` once every stage has elapsed.
    """
    previous = 0
    start = 0.0
    for duration, target in stages:
        end = start + duration
        # Zero-length stages are never entered; they only move ``previous``.
        if elapsed < end:
            progress = (elapsed - start) / duration
            users = round(previous + (target - previous) * progress)
            return users, max(1.0, abs(target - previous) / duration)
        previous = target
        start = end
    return None


class Config:
    """
    Base (shared) configuration for every environment.

    Timing values are in seconds unless the name says otherwise.
    """

    ENV_NAME: str = os.environ.get("LOADTEST_ENV_NAME", "dev")

    # Backend API and the browser-facing dashboard live on different origins.
    API_BASE_URL: str = os.environ.get("LOADTEST_API_BASE_URL", "http://localhost:5050")
    DASHBOARD_ORIGIN: str = os.environ.get("LOADTEST_DASHBOARD_ORIGIN", "http://localhost:5050")
    SESSION_COOKIE_NAME: str = _session_cookie(ENV_NAME)
    # Text every dashboard HTML page is expected to contain.
    BRAND_MARKER: str = os.environ.get("LOADTEST_BRAND_MARKER", "dashboard")
    LOGIN_TIMEZONE: str = os.environ.get("LOADTEST_LOGIN_TIMEZONE", "Europe/London")
    RECAPTCHA_TOKEN: str = os.environ.get("LOADTEST_RECAPTCHA_TOKEN", "load-test-token")
    USER_AGENT: str = os.environ.get(
        "LOADTEST_USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/135.0.0.0 Safari/537.36",
    )

    VU_COUNT: int = _env_int("LOADTEST_VU_COUNT", 100)
    STAGES: list[tuple[int, int]] = parse_stages(
        os.environ.get("LOADTEST_STAGES", f"300:{VU_COUNT},1200:{VU_COUNT},300:0")
    )

    THINK_TIME_AFTER_LOGIN: float = _env_float("LOADTEST_THINK_AFTER_LOGIN", 5)
    CHUNK_INTERVAL: float = _env_float("LOADTEST_CHUNK_INTERVAL", 3)
    TRANSCRIBE_WAIT: float = _env_float("LOADTEST_TRANSCRIBE_WAIT", 60)
    VIDEO_DWELL: float = _env_float("LOADTEST_VIDEO_DWELL", 15)
    VIDEO_PAGE_PAUSE: float = _env_float("LOADTEST_VIDEO_PAGE_PAUSE", 10)

    # Share of workers that also browse content while their upload runs.
    MID_UPLOAD_FRACTION: float = _env_float("LOADTEST_MID_UPLOAD_FRACTION", 0.15)
    # Empty means "pick a fresh seed for this run and log it".
    RUN_SEED: str = os.environ.get("LOADTEST_SEED", "")
    TEST_ID: str = os.environ.get("LOADTEST_TEST_ID", "local")

    USERS_CSV: str = os.environ.get("LOADTEST_USERS_CSV", "users.csv")
    CHUNK_DIR: str = os.environ.get("LOADTEST_CHUNK_DIR", "chunk")
    CHUNK_COUNT: int = _env_int("LOADTEST_CHUNK_COUNT", 50)

    OUTPUT_DIR: str = os.environ.get("LOADTEST_OUTPUT_DIR", "reports")
    THRESHOLDS_FILE: str = os.environ.get("LOADTEST_THRESHOLDS", "thresholds.yml")
    BROWSER_THRESHOLDS_FILE: str = os.environ.get(
        "LOADTEST_BROWSER_THRESHOLDS", "thresholds.browser.yml"
    )
    FAILURE_LOG_SIZE: int = _env_int("LOADTEST_FAILURE_LOG_SIZE", 500)

    REQUEST_TIMEOUT: float = _env_float("LOADTEST_REQUEST_TIMEOUT", 60)
    UPLOAD_TIMEOUT: float = _env_float("LOADTEST_UPLOAD_TIMEOUT", 90)
    RESOURCE_BATCH_SIZE: int = _env_int("LOADTEST_RESOURCE_BATCH_SIZE", 20)

    BROWSER_VUS: int = _env_int("LOADTEST_BROWSER_VUS", 5)
    BROWSER_ITERATIONS: int = _env_int("LOADTEST_BROWSER_ITERATIONS", 1)
    # Empty uses the Chromium build bundled with Playwright.
    BROWSER_EXECUTABLE: str = os.environ.get("LOADTEST_BROWSER_EXECUTABLE", "")
    BROWSER_MAX_DURATION: float = _env_float("LOADTEST_BROWSER_MAX_DURATION", 300)
    BROWSER_HEADLESS: bool = os.environ.get("LOADTEST_BROWSER_HEADLESS", "1") != "0"
    PAGE_TIMEOUT_MS: int = _env_int("LOADTEST_PAGE_TIMEOUT_MS", 30000)


class DevConfig(Config):
    """Full-size ramp against the shared development stack."""

    ENV_NAME: str = "dev"
    SESSION_COOKIE_NAME: str = _session_cookie(ENV_NAME)


class DemoConfig(Config):
    """
    Demo stack overrides.

    The demo stack is smaller, so the ramp peaks lower unless the
    environment says otherwise.
    """

    ENV_NAME: str = "demo"
    SESSION_COOKIE_NAME: str = _session_cookie(ENV_NAME)
    VU_COUNT: int = _env_int("LOADTEST_VU_COUNT", 20)
    STAGES: list[tuple[int, int]] = parse_stages(
        os.environ.get("LOADTEST_STAGES", f"120:{VU_COUNT},600:{VU_COUNT},120:0")
    )


class TestingConfig(Config):
    """
    Test-suite overrides.

    Points every URL at a local stub backend and removes all think time
    so scripted runs finish in milliseconds.
    """

    ENV_NAME: str = "test"
    API_BASE_URL: str = os.environ.get("TEST_API_BASE_URL", "http://api.test")
    DASHBOARD_ORIGIN: str = os.environ.get("TEST_DASHBOARD_ORIGIN", "http://dashboard.test")
    SESSION_COOKIE_NAME: str = "test_dashboard_session"
    VU_COUNT: int = 3
    STAGES: list[tuple[int, int]] = [(1, 3)]
    THINK_TIME_AFTER_LOGIN: float = 0
    CHUNK_INTERVAL: float = 0
    TRANSCRIBE_WAIT: float = 0
    VIDEO_DWELL: float = 0
    VIDEO_PAGE_PAUSE: float = 0
    RUN_SEED: str = "test-seed"
    TEST_ID: str = "test"
    REQUEST_TIMEOUT: float = 5
    UPLOAD_TIMEOUT: float = 5


# Lookup table mapping environment name strings to their config classes.
config = {
    "dev": DevConfig,
    "demo": DemoConfig,
    "testing": TestingConfig,
    "default": DevConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Return the configuration class for the given environment.

    Args:
        env: One of ``"dev"``, ``"demo"`` or ``"testing"``.  When
            *None*, the ``LOADTEST_ENV`` environment variable is
            consulted, falling back to ``"dev"``.

    Returns:
        The ``Config`` subclass matching the requested environment, or
        ``DevConfig`` if the key is unrecognised.
    """
    if env is None:
        env = os.environ.get("LOADTEST_ENV", "dev")
    return config.get(env, config["default"])
