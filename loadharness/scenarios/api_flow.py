"""
HTTP workload: log in, browse, record and transcribe a voice note.

One iteration walks a clinician session through the dashboard API:

1. **Page Load Tests**: the login page and the landing page, each
   followed by a parallel fetch of its stylesheets, scripts and images.
2. **Login flow**: CSRF cookie, login, current user, realtime channel
   authorization and the education-content catalogue.
3. The authenticated voice-note page.
4. Think time.
5. **Patient Session**: create a session, upload the recording in
   chunks, stop the session, request a transcript, wait for processing
   and ask for a generated title.

Workers flagged for mid-upload activity also revisit the landing page,
reload the catalogue and play an education video while their upload is
in flight.

Only steps whose output later steps depend on (CSRF, login, session
creation) are required; any other failure is recorded and the iteration
moves on.

Key Concepts Demonstrated:
- Steps declared once and re-executed by every worker
- Explicit Cookie / X-XSRF-TOKEN headers built from captured tokens
- Statistics names that collapse id-bearing URLs for Locust's tables
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import gevent
import requests

from loadharness.config import Config
from loadharness.context import VirtualUserContext
from loadharness.fixtures import ChunkFile
from loadharness.metrics import MetricSink
from loadharness.resources import discover_and_fetch
from loadharness.scenarios.metrics import ApiScenarioMetrics, PageMetrics
from loadharness.steps import (
    Check,
    ScenarioStep,
    StatusPolicy,
    StepMetrics,
    StepOutcome,
    check,
    group,
)
from loadharness.upload import ChunkedUpload, UploadAuthorization

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "csrf_cookie": "/sanctum/csrf-cookie",
    "login": "/login",
    "user": "/api/user",
    "broadcasting_auth": "/broadcasting/auth",
    "education_conditions": "/api/education-content/data/conditions",
    "education_treatment_categories": "/api/education-content/data/treatment-categories",
    "education_risk_categories": "/api/education-content/data/risk-categories",
    "education_playlist": "/api/education-content/data/playlist?per_page=10",
    "patient_sessions": "/api/patient-sessions",
    "voice_notes": "/api/voice-notes",
    "content_view_tracking": "/api/education-content-view-tracking",
    "tracking_create": "/api/education-content/tracking/create",
}

# Sub-conditions whose education videos mid-upload workers play.
TREATMENT_OPTIONS = (
    {"id": 3, "uuid": "76624939-964f-4766-b9ea-f1d2943eeaa1"},
    {"id": 33, "uuid": "447e339c-01eb-471e-a36d-bd9dea8af101"},
    {"id": 5, "uuid": "cd007bbf-8c08-45df-a1a4-2b8ada326ca7"},
)

DOCUMENT_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8"
)
API_ACCEPT = "application/json, text/plain, */*"
TRACKING_SUCCESS = range(200, 300)


def _json(response: requests.Response) -> dict[str, Any]:
    """Return the JSON object body, raising ``ValueError`` for anything else."""
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")
    return body


def treatment_url(origin: str, treatment: dict[str, Any]) -> str:
    return f"{origin}/content/?condition=1&sub-condition={treatment['id']}"


class ApiScenario:
    """
    The HTTP workload, built once per run and shared by every worker.

    Args:
        config: Run configuration (origins, think times, timeouts).
        sink: The run's metric sink; every series is declared here.
        chunks: Audio segments each worker uploads.
        sleep: Cooperative sleep taking seconds.
    """

    def __init__(
        self,
        config: type[Config] | Config,
        sink: MetricSink,
        chunks: Sequence[ChunkFile] = (),
        sleep: Callable[[float], object] = gevent.sleep,
    ):
        self.config = config
        self.metrics = ApiScenarioMetrics.declare(sink)
        self.chunks = list(chunks)
        self.sleep = sleep
        self.api = config.API_BASE_URL.rstrip("/")
        self.origin = config.DASHBOARD_ORIGIN.rstrip("/")
        self.cookie_name = config.SESSION_COOKIE_NAME
        self._build_steps()

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    def common_headers(self) -> dict[str, str]:
        return {
            "Origin": self.origin,
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate",
            "Accept-Language": "en-GB,en-US;q=0.9,en;q=0.8",
            "User-Agent": self.config.USER_AGENT,
        }

    def document_headers(self, ctx: VirtualUserContext, same_origin: bool = False) -> dict[str, str]:
        headers = {
            **self.common_headers(),
            "Accept": DOCUMENT_ACCEPT,
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin" if same_origin else "none",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
        }
        if ctx.authenticated:
            headers["Cookie"] = ctx.cookie_header(self.cookie_name)
            headers["X-XSRF-TOKEN"] = ctx.xsrf_header
        return headers

    def auth_headers(self, ctx: VirtualUserContext, **extra: str) -> dict[str, str]:
        return {
            **self.common_headers(),
            "X-XSRF-TOKEN": ctx.xsrf_header,
            "Cookie": ctx.cookie_header(self.cookie_name),
            **extra,
        }

    def tracking_headers(self, ctx: VirtualUserContext, referer: str) -> dict[str, str]:
        return self.auth_headers(
            ctx,
            **{
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-Requested-With": "XMLHttpRequest",
                "Referer": referer,
            },
        )

    def resource_headers(self, ctx: VirtualUserContext) -> dict[str, str]:
        headers = self.common_headers()
        if ctx.authenticated:
            headers["Cookie"] = ctx.cookie_header(self.cookie_name)
            headers["X-XSRF-TOKEN"] = ctx.xsrf_header
        return headers

    def upload_headers(self) -> dict[str, str]:
        return {
            "Accept": "*/*",
            "Accept-Language": "en-US,en;q=0.5",
            "Accept-Encoding": "gzip, deflate",
            "Origin": self.origin,
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "cross-site",
            "User-Agent": self.config.USER_AGENT,
        }

    # ------------------------------------------------------------------
    # Step definitions
    # ------------------------------------------------------------------

    def _contains_marker(self, response: requests.Response) -> bool:
        return self.config.BRAND_MARKER in response.text

    def _page_step(
        self,
        name: str,
        path: str,
        page: PageMetrics,
        check_prefix: str,
        same_origin: bool = False,
    ) -> ScenarioStep:
        def load(ctx: VirtualUserContext) -> requests.Response:
            return ctx.transport.get(
                f"{self.origin}{path}",
                headers=self.document_headers(ctx, same_origin=same_origin),
                name=name,
            )

        return ScenarioStep(
            name=name,
            action=load,
            metrics=page.load,
            status_check=f"{check_prefix} loaded successfully",
            checks=(Check(f"{check_prefix} contains expected content", self._contains_marker),),
        )

    def _education_step(
        self, name: str, endpoint: str, metrics: StepMetrics, check_name: str
    ) -> ScenarioStep:
        def fetch(ctx: VirtualUserContext) -> requests.Response:
            return ctx.transport.get(
                f"{self.api}{ENDPOINTS[endpoint]}",
                headers=self.auth_headers(ctx, Accept=API_ACCEPT),
                name=ENDPOINTS[endpoint],
            )

        return ScenarioStep(name=name, action=fetch, metrics=metrics, status_check=check_name)

    def _build_steps(self) -> None:
        m = self.metrics

        self.login_page = self._page_step("Login Page Load", "", m.login_page, "Login page")
        self.landing_page = self._page_step(
            "Landing Page Load", "/landing", m.landing_page, "Landing page"
        )
        self.mid_upload_landing_page = self._page_step(
            "Mid-Upload Landing Page Load",
            "/landing",
            m.landing_page,
            "Mid-upload landing page",
        )

        def voice_note_content(response: requests.Response) -> bool:
            body = response.text
            return (
                '<div id="app"' in body
                or '<div id="root"' in body
                or self.config.BRAND_MARKER in body
            )

        def load_voice_note_page(ctx: VirtualUserContext) -> requests.Response:
            return ctx.transport.get(
                f"{self.origin}/voice-note/",
                headers=self.document_headers(ctx, same_origin=True),
                name="Voice Note Page Load",
            )

        self.voice_note_page = ScenarioStep(
            name="Voice Note Page Load",
            action=load_voice_note_page,
            metrics=m.voice_note_page.load,
            status_check="Voice note page loaded successfully",
            checks=(Check("Voice note page contains expected content", voice_note_content),),
        )

        self.csrf = ScenarioStep(
            name="CSRF",
            action=self._csrf,
            metrics=m.csrf,
            status_policy=StatusPolicy(expected=(204,)),
            status_check="CSRF GET status is 204",
            on_success=self._capture_xsrf,
            required=True,
        )
        self.login = ScenarioStep(
            name="Login",
            action=self._login,
            metrics=m.login,
            status_check="Login status is 200",
            on_success=self._capture_session,
            required=True,
        )
        self.get_user = ScenarioStep(
            name="Get User",
            action=lambda ctx: ctx.transport.get(
                f"{self.api}{ENDPOINTS['user']}",
                headers=self.auth_headers(
                    ctx, Accept="application/json", **{"X-Requested-With": "XMLHttpRequest"}
                ),
                name=ENDPOINTS["user"],
            ),
            metrics=m.get_user,
            status_check="Get user status is 200",
            on_success=self._capture_user,
        )
        self.broadcast_auth = ScenarioStep(
            name="Broadcasting Auth",
            action=self._broadcast_auth,
            metrics=m.broadcast_auth,
            status_check="Broadcasting auth status is 200",
        )

        self.education_conditions = self._education_step(
            "Education Conditions",
            "education_conditions",
            m.education_conditions,
            "Education content conditions status is 200",
        )
        self.education_treatment = self._education_step(
            "Education Treatment Categories",
            "education_treatment_categories",
            m.education_treatment,
            "Education content treatment categories status is 200",
        )
        self.education_risk = self._education_step(
            "Education Risk Categories",
            "education_risk_categories",
            m.education_risk,
            "Education content risk categories status is 200",
        )
        self.education_playlist = self._education_step(
            "Education Playlist",
            "education_playlist",
            m.education_playlist,
            "Education content playlist status is 200",
        )

        self.create_session = ScenarioStep(
            name="Create Patient Session",
            action=self._create_session,
            metrics=m.create_session,
            status_check="Create patient session status is 200",
            on_success=self._capture_session_ids,
            required=True,
        )
        self.upload_authorization = ScenarioStep(
            name="Upload Authorization",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['voice_notes']}/{ctx.voice_note_id}/upload",
                headers=self.auth_headers(ctx, Accept=API_ACCEPT),
                name=f"{ENDPOINTS['voice_notes']}/[id]/upload",
            ),
            metrics=m.create_voice_note,
            status_check="Upload authorization status is 200",
            on_success=self._capture_upload_authorization,
        )
        # 422 means the session is already stopped, which is the state we want.
        self.stop = ScenarioStep(
            name="Stop",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['patient_sessions']}/{ctx.session_id}/stop1",
                headers=self.auth_headers(ctx),
                name=f"{ENDPOINTS['patient_sessions']}/[id]/stop1",
            ),
            metrics=m.stop1,
            status_policy=StatusPolicy(expected=(200,), accepted=(422,)),
            status_check="Stop1 status is 200 or 422",
        )
        self.transcribe = ScenarioStep(
            name="Transcribe",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['voice_notes']}/{ctx.voice_note_id}/transcribe",
                json={"segment_key": ctx.segment_key, "new_note": False},
                headers=self.auth_headers(ctx),
                name=f"{ENDPOINTS['voice_notes']}/[id]/transcribe",
            ),
            metrics=m.transcribe,
            status_check="Transcribe status is 200",
        )
        self.create_title = ScenarioStep(
            name="Create Title",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['voice_notes']}/create-title-voice/{ctx.voice_note_id}",
                headers=self.auth_headers(ctx, **{"Content-Length": "0"}),
                name=f"{ENDPOINTS['voice_notes']}/create-title-voice/[id]",
            ),
            metrics=m.create_title,
            status_check="Create title status is 200",
        )

        self.video_page = ScenarioStep(
            name="Video Playback Page Load",
            action=lambda ctx: ctx.transport.get(
                ctx.treatment_url,
                headers=self.document_headers(ctx, same_origin=True),
                name="/content/?condition=1&sub-condition=[id]",
            ),
            metrics=m.video_playback_page,
            status_check="Video playback page loaded successfully",
            checks=(Check("Video playback page contains expected content", self._contains_marker),),
        )
        self.view_tracking = ScenarioStep(
            name="Education Content View Tracking",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['content_view_tracking']}",
                json={"contentable_id": ctx.treatment["id"], "contentable_type": "sub-condition"},
                headers=self.tracking_headers(ctx, ctx.treatment_url),
                name=ENDPOINTS["content_view_tracking"],
            ),
            metrics=m.education_content_view_tracking,
            status_policy=StatusPolicy(expected=(200, 201)),
            status_check="Education content view tracking successful",
            track_status="content_view_tracking",
        )
        # A repeat view of the same content answers 422; that is not an outage.
        self.tracking_create = ScenarioStep(
            name="Education Tracking Create",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['tracking_create']}",
                json={"id": ctx.treatment["id"], "type": "sub-condition"},
                headers=self.tracking_headers(ctx, ctx.treatment_url),
                name=ENDPOINTS["tracking_create"],
            ),
            metrics=m.education_tracking_create,
            status_policy=StatusPolicy(expected=TRACKING_SUCCESS, accepted=(422,)),
            status_check="Education tracking create successful",
            track_status="tracking_create",
        )
        self.tracking_create_uuid = ScenarioStep(
            name="Education Tracking Create With UUID",
            action=lambda ctx: ctx.transport.post(
                f"{self.api}{ENDPOINTS['tracking_create']}",
                json={
                    "id": ctx.treatment["id"],
                    "tracking_type": "media",
                    "type": "treatment",
                    "uuid": ctx.treatment["uuid"],
                },
                headers=self.tracking_headers(ctx, ctx.treatment_url),
                name=f"{ENDPOINTS['tracking_create']} [uuid]",
            ),
            metrics=m.education_tracking_create_uuid,
            status_policy=StatusPolicy(expected=TRACKING_SUCCESS),
            status_check="Education tracking create with UUID successful",
            track_status="tracking_create_uuid",
        )

    # ------------------------------------------------------------------
    # Actions and token capture
    # ------------------------------------------------------------------

    def _csrf(self, ctx: VirtualUserContext) -> requests.Response:
        url = f"{self.api}{ENDPOINTS['csrf_cookie']}"
        preflight = ctx.transport.options(
            url,
            headers={
                **self.common_headers(),
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "x-requested-with,x-xsrf-token",
            },
            name=f"{ENDPOINTS['csrf_cookie']} [OPTIONS]",
        )
        check(ctx, "CSRF OPTIONS status is 204", preflight.status_code == 204)
        return ctx.transport.get(url, headers=self.common_headers(), name=ENDPOINTS["csrf_cookie"])

    def _capture_xsrf(self, ctx: VirtualUserContext, response: requests.Response) -> None:
        token = response.cookies.get("XSRF-TOKEN")
        if not token:
            raise KeyError("XSRF-TOKEN cookie not set")
        ctx.xsrf_token = token

    def _login(self, ctx: VirtualUserContext) -> requests.Response:
        logger.info("[VU %d] Attempting login for user: %s", ctx.index, ctx.user.email)
        return ctx.transport.post(
            f"{self.api}{ENDPOINTS['login']}",
            json={
                "email": ctx.user.email,
                "password": ctx.user.password,
                "timezone": self.config.LOGIN_TIMEZONE,
                "recaptchaToken": self.config.RECAPTCHA_TOKEN,
            },
            headers={
                **self.common_headers(),
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-Requested-With": "XMLHttpRequest",
                "X-XSRF-TOKEN": ctx.xsrf_header,
                "Cookie": ctx.cookie_header(),
            },
            name=ENDPOINTS["login"],
        )

    def _capture_session(self, ctx: VirtualUserContext, response: requests.Response) -> None:
        session = response.cookies.get(self.cookie_name)
        if not session:
            raise KeyError(f"{self.cookie_name} cookie not set")
        ctx.session_token = session
        # Login rotates the XSRF token.
        ctx.xsrf_token = response.cookies.get("XSRF-TOKEN") or ctx.xsrf_token
        logger.info("[VU %d] User logged in: %s", ctx.index, ctx.user.email)

    def _capture_user(self, ctx: VirtualUserContext, response: requests.Response) -> None:
        ctx.user_id = _json(response).get("id")

    def _broadcast_auth(self, ctx: VirtualUserContext) -> requests.Response:
        return ctx.transport.post(
            f"{self.api}{ENDPOINTS['broadcasting_auth']}",
            data={
                "socket_id": ctx.random_socket_id(),
                "channel_name": f"presence-UserClients.{ctx.user_id}",
            },
            headers={
                **self.common_headers(),
                "Cookie": ctx.cookie_header(self.cookie_name),
            },
            name=ENDPOINTS["broadcasting_auth"],
        )

    def _create_session(self, ctx: VirtualUserContext) -> requests.Response:
        url = f"{self.api}{ENDPOINTS['patient_sessions']}"
        ctx.transport.options(
            url,
            headers={
                **self.common_headers(),
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type,x-requested-with,x-xsrf-token",
            },
            name=f"{ENDPOINTS['patient_sessions']} [OPTIONS]",
        )
        return ctx.transport.post(
            url,
            json={
                "patient_name": "",
                "create_session": True,
                "transcript": "",
                "template_id": None,
            },
            headers=self.auth_headers(
                ctx,
                **{
                    "Accept": API_ACCEPT,
                    "Content-Type": "application/json;charset=UTF-8",
                    "X-Requested-With": "XMLHttpRequest",
                    "Authorization": f"Bearer {ctx.session_token}",
                },
            ),
            name=ENDPOINTS["patient_sessions"],
        )

    def _capture_session_ids(self, ctx: VirtualUserContext, response: requests.Response) -> None:
        data = _json(response)["data"]
        ctx.session_id = data["patient_session"]["id"]
        ctx.voice_note_id = data["voice_note"]["id"]

    def _capture_upload_authorization(
        self, ctx: VirtualUserContext, response: requests.Response
    ) -> None:
        ctx.upload_authorization = UploadAuthorization.from_payload(_json(response))
        ctx.segment_key = ctx.upload_authorization.segment_key

    # ------------------------------------------------------------------
    # Flow
    # ------------------------------------------------------------------

    def load_page(
        self,
        ctx: VirtualUserContext,
        step: ScenarioStep,
        page: PageMetrics,
        with_resources: bool = True,
    ) -> StepOutcome:
        """Load an HTML page and, when it passed its checks, its sub-resources."""
        outcome = step.execute(ctx)
        if not outcome.success or not with_resources:
            return outcome

        tags = {"page": step.name, "vu": str(ctx.index)}
        started = time.perf_counter()
        results = discover_and_fetch(
            ctx.transport,
            outcome.response.text,
            self.origin,
            self.resource_headers(ctx),
            batch_size=self.config.RESOURCE_BATCH_SIZE,
            name=f"{step.name} resources",
        )
        wall_ms = (time.perf_counter() - started) * 1000
        stats = page.resources.record(results, wall_ms, tags)
        page.load.requests.add(stats.unique, tags)
        self.metrics.page_ready.add(outcome.duration_ms + wall_ms, tags)
        logger.info(
            "[VU %d] %s stats: html=%.0fms resources=%.0fms unique=%d ok=%d failed=%d",
            ctx.index,
            step.name,
            outcome.duration_ms,
            wall_ms,
            stats.unique,
            stats.succeeded,
            stats.failed,
        )
        return outcome

    def run(self, ctx: VirtualUserContext) -> None:
        """
        Execute one full iteration for *ctx*.

        Raises:
            StepFailedError: When a required step fails.
            requests.RequestException: When any request cannot complete.
        """
        m = self.metrics
        with group(ctx, "Page Load Tests"):
            with group(ctx, "Login Page Load"):
                self.load_page(ctx, self.login_page, m.login_page)
            with group(ctx, "Landing Page Load"):
                self.load_page(ctx, self.landing_page, m.landing_page)

        sequence_started = time.perf_counter()
        with group(ctx, "Login flow"):
            with group(ctx, "CSRF"):
                self.csrf.execute(ctx)
            with group(ctx, "Login"):
                self.login.execute(ctx)
            with group(ctx, "Get User"):
                self.get_user.execute(ctx)
            with group(ctx, "Broadcasting Auth"):
                self.broadcast_auth.execute(ctx)
            with group(ctx, "Education Content"):
                started = time.perf_counter()
                self.education_conditions.execute(ctx)
                self.education_treatment.execute(ctx)
                self.education_risk.execute(ctx)
                self.education_playlist.execute(ctx)
                m.education_content.add((time.perf_counter() - started) * 1000)
        m.api_sequence.add((time.perf_counter() - sequence_started) * 1000)

        with group(ctx, "Voice Note Page Load"):
            self.load_page(ctx, self.voice_note_page, m.voice_note_page)

        logger.info("[VU %d] Waiting after login to mimic user think time...", ctx.index)
        self.sleep(self.config.THINK_TIME_AFTER_LOGIN)

        with group(ctx, "Patient Session"):
            with group(ctx, "Create Patient Session"):
                self.create_session.execute(ctx)
            with group(ctx, "Upload Voice Note"):
                stored = self.upload_voice_note(ctx)
            if stored:
                with group(ctx, "Stop"):
                    self.finish_session(ctx)

    def upload_voice_note(self, ctx: VirtualUserContext) -> int:
        """Authorize and upload the recording; return the number of chunks stored."""
        authorized = self.upload_authorization.execute(ctx)
        if not authorized.success:
            return 0
        with group(ctx, "upload voice note chunks to S3"):
            upload = ChunkedUpload(
                ctx.transport,
                ctx.upload_authorization,
                self.chunks,
                self.metrics.upload,
                headers=self.upload_headers(),
                timeout=self.config.UPLOAD_TIMEOUT,
                interval=self.config.CHUNK_INTERVAL,
                on_mid_upload=self.mid_upload_checks,
                sleep=self.sleep,
            )
            return upload.run(ctx).succeeded

    def finish_session(self, ctx: VirtualUserContext) -> None:
        self.stop.execute(ctx)
        self.transcribe.execute(ctx)
        # Transcription is asynchronous on the server.
        self.sleep(self.config.TRANSCRIBE_WAIT)
        self.create_title.execute(ctx)

    def mid_upload_checks(self, ctx: VirtualUserContext) -> None:
        """Foreground browsing performed while the upload is in flight."""
        with group(ctx, "Mid-Upload Landing Page Check"):
            landing = self.load_page(
                ctx, self.mid_upload_landing_page, self.metrics.landing_page, with_resources=False
            )
            if not landing.success:
                return
            self.education_conditions.execute(ctx)
            self.education_treatment.execute(ctx)
            self.education_risk.execute(ctx)
            with group(ctx, "Video Playback During Upload"):
                self.play_video(ctx)

    def play_video(self, ctx: VirtualUserContext) -> None:
        ctx.treatment = ctx.rng.choice(TREATMENT_OPTIONS)
        ctx.treatment_url = treatment_url(self.origin, ctx.treatment)
        self.video_page.execute(ctx)

        started = time.perf_counter()
        outcomes = [
            self.view_tracking.execute(ctx),
            self.tracking_create.execute(ctx),
            self.tracking_create_uuid.execute(ctx),
        ]
        tracking = self.metrics.content_view_tracking
        tags = {"vu": str(ctx.index)}
        tracking.time.add((time.perf_counter() - started) * 1000, tags)
        tracking.fail_rate.add(not all(outcome.success for outcome in outcomes), tags)
        tracking.requests.add(1, tags)

        # Time spent watching the video.
        self.sleep(self.config.VIDEO_DWELL)
