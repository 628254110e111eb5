"""
Stub pages and API endpoints.

Pages:
    GET  /                 - Login page (form ``#inp_email``/``#inp_password``/``#btn_login``)
    POST /session          - Form login used by the browser flow, redirects to /voice-note/
    GET  /landing          - Condition picker
    GET  /voice-note/      - Recorder page
    GET  /content/         - Education video page
    GET  /assets/<name>    - Stylesheet, script and image referenced by the pages

API:
    OPTIONS|GET /sanctum/csrf-cookie             - Sets ``XSRF-TOKEN``
    POST /login                                  - Sets the session cookie, rotates XSRF
    GET  /api/user                               - Current user
    POST /broadcasting/auth                      - Realtime channel auth
    GET  /api/education-content/data/<resource>  - Catalogue lookups
    OPTIONS|POST /api/patient-sessions           - New session plus voice note
    POST /api/voice-notes/<id>/upload            - Signed storage policy
    POST /storage                                - Chunk upload (validates field order)
    POST /api/patient-sessions/<id>/stop1        - Stop recording
    POST /api/voice-notes/<id>/transcribe        - Start transcription
    POST /api/voice-notes/create-title-voice/<id>
    POST /api/education-content-view-tracking
    POST /api/education-content/tracking/create  - ``tracking_create_uuid`` when a uuid is sent
"""

from __future__ import annotations

import itertools
import logging
from functools import wraps
from urllib.parse import quote

from flask import Blueprint, Response, current_app, jsonify, redirect, request

logger = logging.getLogger(__name__)

pages_bp = Blueprint("pages", __name__)
api_bp = Blueprint("api", __name__)

# Keys a failure plan can target.
ENDPOINT_KEYS = (
    "login_page",
    "landing_page",
    "voice_note_page",
    "content_page",
    "assets",
    "csrf_options",
    "csrf",
    "login",
    "user",
    "broadcasting_auth",
    "education_conditions",
    "education_treatment_categories",
    "education_risk_categories",
    "education_playlist",
    "patient_sessions_options",
    "patient_sessions",
    "upload_authorization",
    "storage",
    "stop1",
    "transcribe",
    "create_title",
    "content_view_tracking",
    "tracking_create",
    "tracking_create_uuid",
)

EXPECTED_UPLOAD_FIELDS = [
    "acl",
    "key",
    "X-Amz-Credential",
    "X-Amz-Algorithm",
    "X-Amz-Date",
    "Policy",
    "X-Amz-Signature",
    "Content-Type",
]

_ids = itertools.count(1000)

ASSETS = {
    "app.css": ("body { font-family: sans-serif; }", "text/css"),
    "app.js": ("window.dashboard = {};", "application/javascript"),
    "logo.png": (b"\x89PNG\r\n\x1a\n", "image/png"),
}


# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------

def injected(key: str):
    """Answer with the failure plan's status for *key* instead of the view, when planned."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            status = current_app.extensions["failure_plan"].next_status(key)
            if status is not None:
                logger.info("Injecting %d for %s", status, key)
                return jsonify({"message": f"Injected status {status}"}), status
            return view(*args, **kwargs)

        return wrapper

    return decorator


def _next_id() -> int:
    return next(_ids)


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{title} | dashboard</title>
  <link rel="stylesheet" href="/assets/app.css">
  <link rel="icon" href="data:image/png;base64,AAAA">
  <script src="/assets/app.js"></script>
</head>
<body>
  <div id="app">
    <img src="/assets/logo.png" alt="logo">
    <img src="/assets/logo.png" alt="logo again">
    {body}
  </div>
</body>
</html>"""


def _new_xsrf_token() -> str:
    # URL-encoded like Laravel's cookie, so clients must decode it for the header.
    return quote(f"xsrf-{_next_id()}==")


def _preflight() -> Response:
    response = Response(status=204)
    response.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = request.headers.get(
        "Access-Control-Request-Headers", "*"
    )
    return response


# -----------------------------------------------------------------------------
# Pages
# -----------------------------------------------------------------------------

@pages_bp.get("/")
@injected("login_page")
def login_page():
    return _page(
        "Login",
        """<form method="post" action="/session">
      <input id="inp_email" name="email" type="email">
      <input id="inp_password" name="password" type="password">
      <button id="btn_login" type="submit">Log in</button>
    </form>""",
    )


@pages_bp.post("/session")
def form_login():
    response = redirect("/voice-note/")
    response.set_cookie(current_app.config["SESSION_COOKIE_NAME_STUB"], f"session-{_next_id()}")
    return response


@pages_bp.get("/landing")
@injected("landing_page")
def landing_page():
    return _page(
        "Landing",
        """<div class="intro-headings">
      <h2>Welcome back</h2>
      <h4 class="intro-subtxt">What condition are we treating today?</h4>
    </div>""",
    )


@pages_bp.get("/voice-note/")
@injected("voice_note_page")
def voice_note_page():
    return _page("Voice Note", '<div id="recorder"></div>')


@pages_bp.get("/content/")
@injected("content_page")
def content_page():
    return _page("Education Content", '<video src="/assets/video.mp4"></video>')


@pages_bp.get("/assets/<name>")
@injected("assets")
def asset(name: str):
    if name not in ASSETS:
        return Response("not found", status=404)
    content, mimetype = ASSETS[name]
    return Response(content, mimetype=mimetype)


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------

@api_bp.route("/sanctum/csrf-cookie", methods=["OPTIONS"])
@injected("csrf_options")
def csrf_preflight():
    return _preflight()


@api_bp.get("/sanctum/csrf-cookie")
@injected("csrf")
def csrf_cookie():
    response = Response(status=204)
    response.set_cookie("XSRF-TOKEN", _new_xsrf_token())
    return response


@api_bp.post("/login")
@injected("login")
def login():
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return jsonify({"message": "The email field is required."}), 422
    response = jsonify({"two_factor": False})
    response.set_cookie(current_app.config["SESSION_COOKIE_NAME_STUB"], f"session-{_next_id()}")
    response.set_cookie("XSRF-TOKEN", _new_xsrf_token())
    return response


@api_bp.get("/api/user")
@injected("user")
def current_user():
    return jsonify({"id": _next_id(), "name": "Load Test Clinician"})


@api_bp.post("/broadcasting/auth")
@injected("broadcasting_auth")
def broadcasting_auth():
    channel = request.form.get("channel_name", "")
    if not channel.startswith("presence-UserClients."):
        return jsonify({"message": "Unknown channel"}), 403
    return jsonify({"auth": f"stub:{request.form.get('socket_id', '')}", "channel_data": "{}"})


# -----------------------------------------------------------------------------
# Education content
# -----------------------------------------------------------------------------

EDUCATION_KEYS = {
    "conditions": "education_conditions",
    "treatment-categories": "education_treatment_categories",
    "risk-categories": "education_risk_categories",
    "playlist": "education_playlist",
}


@api_bp.get("/api/education-content/data/<resource>")
def education_data(resource: str):
    key = EDUCATION_KEYS.get(resource)
    if key is None:
        return jsonify({"message": "Not found"}), 404
    status = current_app.extensions["failure_plan"].next_status(key)
    if status is not None:
        return jsonify({"message": f"Injected status {status}"}), status
    return jsonify({"data": [{"id": 1, "name": resource}]})


@api_bp.post("/api/education-content-view-tracking")
@injected("content_view_tracking")
def content_view_tracking():
    return jsonify({"data": {"id": _next_id()}}), 201


@api_bp.post("/api/education-content/tracking/create")
def tracking_create():
    data = request.get_json(silent=True) or {}
    key = "tracking_create_uuid" if "uuid" in data else "tracking_create"
    status = current_app.extensions["failure_plan"].next_status(key)
    if status is not None:
        return jsonify({"message": f"Injected status {status}"}), status
    return jsonify({"data": {"id": _next_id()}})


# -----------------------------------------------------------------------------
# Patient sessions and voice notes
# -----------------------------------------------------------------------------

@api_bp.route("/api/patient-sessions", methods=["OPTIONS"])
@injected("patient_sessions_options")
def patient_sessions_preflight():
    return _preflight()


@api_bp.post("/api/patient-sessions")
@injected("patient_sessions")
def create_patient_session():
    return jsonify(
        {
            "data": {
                "patient_session": {"id": _next_id()},
                "voice_note": {"id": _next_id()},
            }
        }
    )


@api_bp.post("/api/voice-notes/<int:voice_note_id>/upload")
@injected("upload_authorization")
def upload_authorization(voice_note_id: int):
    return jsonify(
        {
            "data": {
                "upload_url": f"{request.host_url}storage",
                "segment_key": f"voice-notes/{voice_note_id}/segments",
                "upload_fields": {
                    "X-Amz-Credential": "STUB/20250101/eu-west-2/s3/aws4_request",
                    "X-Amz-Algorithm": "AWS4-HMAC-SHA256",
                    "X-Amz-Date": "20250101T000000Z",
                    "Policy": "c3R1Yi1wb2xpY3k=",
                    "X-Amz-Signature": "0" * 64,
                },
            }
        }
    )


@api_bp.post("/storage")
@injected("storage")
def storage():
    fields = list(request.form.keys())
    if fields != EXPECTED_UPLOAD_FIELDS or "file" not in request.files:
        logger.warning("Rejected upload with fields %s", fields)
        return Response("<Error><Code>InvalidPolicyDocument</Code></Error>", status=400)
    return Response(status=204)


@api_bp.post("/api/patient-sessions/<int:session_id>/stop1")
@injected("stop1")
def stop_session(session_id: int):
    return jsonify({"data": {"id": session_id, "status": "stopped"}})


@api_bp.post("/api/voice-notes/<int:voice_note_id>/transcribe")
@injected("transcribe")
def transcribe(voice_note_id: int):
    data = request.get_json(silent=True) or {}
    if not data.get("segment_key"):
        return jsonify({"message": "The segment key field is required."}), 422
    return jsonify({"data": {"id": voice_note_id, "status": "processing"}})


@api_bp.post("/api/voice-notes/create-title-voice/<int:voice_note_id>")
@injected("create_title")
def create_title(voice_note_id: int):
    return jsonify({"data": {"id": voice_note_id, "title": "Routine check-up"}})
