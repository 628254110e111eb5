"""
Per-worker iteration state.

A :class:`VirtualUserContext` is created at the start of every iteration
and thrown away at its end.  Nothing in it is shared between workers:
each one carries its own fixture record, captured auth tokens, workflow
ids, group path and random generator.

The random generator is seeded from the run seed and the worker index,
so a given worker makes the same choices (mid-upload branch, content
picked, socket ids) every time the run is repeated with the same seed.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote

from loadharness.errors import FixtureError
from loadharness.fixtures import UserRecord

if TYPE_CHECKING:
    from loadharness.steps import StepRecorder


def assign_fixture(index: int, fixtures: Sequence[Any]) -> Any:
    """
    Pick the fixture record for worker *index* (1-based), round-robin.

    Raises:
        FixtureError: If *fixtures* is empty.
        ValueError: If *index* is not positive.
    """
    if not fixtures:
        raise FixtureError("No fixture records available")
    if index < 1:
        raise ValueError("Worker index is 1-based")
    return fixtures[(index - 1) % len(fixtures)]


def worker_rng(seed: str, index: int) -> random.Random:
    """Return the deterministic random generator for worker *index*."""
    return random.Random(f"{seed}:{index}")


@dataclass
class VirtualUserContext:
    """
    Mutable state of one worker for one iteration.

    Attributes:
        index: 1-based worker number.
        user: The fixture record assigned to this worker.
        recorder: Shared series and failure log steps write into.
        rng: Per-worker random generator.
        mid_upload: Whether this worker browses content while uploading.
        xsrf_token: Raw (URL-encoded) ``XSRF-TOKEN`` cookie value.
        session_token: Value of the session cookie after login.
        user_id: Id of the logged-in account.
        session_id: Patient session created by this iteration.
        voice_note_id: Voice note attached to that session.
        segment_key: Storage prefix returned by the upload authorization.
        transport: HTTP transport of the worker (``None`` for browser
            workers, which talk through their page instead).
        group_path: Names of the groups currently entered.
        upload_authorization: Signed upload policy for this recording.
        treatment: Education content picked for mid-upload playback.
        treatment_url: Dashboard URL of that content.
    """

    index: int
    user: UserRecord
    recorder: StepRecorder
    rng: random.Random
    mid_upload: bool = False
    xsrf_token: str | None = None
    session_token: str | None = None
    user_id: Any = None
    session_id: Any = None
    voice_note_id: Any = None
    segment_key: str | None = None
    group_path: list[str] = field(default_factory=list)
    transport: Any = None
    upload_authorization: Any = None
    treatment: dict[str, Any] | None = None
    treatment_url: str | None = None

    @classmethod
    def create(
        cls,
        index: int,
        users: Sequence[UserRecord],
        recorder: StepRecorder,
        seed: str,
        mid_upload_fraction: float = 0.15,
    ) -> VirtualUserContext:
        """
        Build a fresh context for worker *index*.

        The mid-upload flag is drawn exactly once here, from the worker's
        own generator, so it never changes during the iteration.
        """
        rng = worker_rng(seed, index)
        return cls(
            index=index,
            user=assign_fixture(index, users),
            recorder=recorder,
            rng=rng,
            mid_upload=rng.random() < mid_upload_fraction,
        )

    @property
    def authenticated(self) -> bool:
        return bool(self.session_token and self.xsrf_token)

    @property
    def xsrf_header(self) -> str:
        """The ``X-XSRF-TOKEN`` header value (the cookie, URL-decoded)."""
        return unquote(self.xsrf_token or "")

    def cookie_header(self, session_cookie_name: str | None = None) -> str:
        """
        Render the ``Cookie`` header for the tokens captured so far.

        Args:
            session_cookie_name: Name of the session cookie; omitted
                before login, when only the XSRF cookie exists.
        """
        parts = []
        if session_cookie_name and self.session_token:
            parts.append(f"{session_cookie_name}={self.session_token}")
        if self.xsrf_token:
            parts.append(f"XSRF-TOKEN={self.xsrf_token}")
        return "; ".join(parts)

    def random_socket_id(self) -> str:
        """A Pusher-style socket id: six digits, a dot, twenty-five digits."""
        left = self.rng.randint(100000, 999999)
        right = "".join(str(self.rng.randint(0, 9)) for _ in range(25))
        return f"{left}.{right}"
