"""
Locust entrypoint for the voice-note load test.

This is the file that the ``locust`` CLI discovers and loads.  The user
class, the staged load shape and the run lifecycle hooks all live in
:mod:`loadharness.users`; importing them here is enough for Locust to
register them.

Usage examples::

    # Staged ramp from LOADTEST_STAGES against the dev stack:
    LOADTEST_ENV=dev locust -f locustfile.py --headless

    # Dry run against the local stub backend:
    loadharness-stub --port 5050 &
    LOADTEST_API_BASE_URL=http://localhost:5050 \\
    LOADTEST_DASHBOARD_ORIGIN=http://localhost:5050 \\
    locust -f locustfile.py --headless
"""

from __future__ import annotations

from loadharness.users import StagesShape, VoiceNoteUser

__all__ = ["StagesShape", "VoiceNoteUser"]
