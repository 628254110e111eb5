"""
Series declared by the default scenarios.

Each scenario registers every series it will ever write before the first
worker starts, so a name bound to two kinds fails the build immediately
and the final report lists every series even when nothing was recorded
into it.
"""

from __future__ import annotations

from dataclasses import dataclass

from loadharness.metrics import Counter, MetricSink, Trend
from loadharness.resources import ResourceMetrics
from loadharness.steps import StepMetrics
from loadharness.upload import UploadMetrics


@dataclass(frozen=True)
class PageMetrics:
    """An HTML page load plus the batch of sub-resources it pulls in."""

    load: StepMetrics
    resources: ResourceMetrics

    @classmethod
    def declare(cls, sink: MetricSink, page: str) -> PageMetrics:
        return cls(
            load=StepMetrics.declare(
                sink,
                page,
                time=f"{page}_load_time",
                fail_rate=f"{page}_load_fail_rate",
                requests=f"{page}_total_requests",
            ),
            resources=ResourceMetrics.declare(sink, page),
        )


@dataclass(frozen=True)
class ApiScenarioMetrics:
    """Every series the HTTP workload records."""

    login_page: PageMetrics
    landing_page: PageMetrics
    voice_note_page: PageMetrics
    page_ready: Trend
    csrf: StepMetrics
    login: StepMetrics
    get_user: StepMetrics
    broadcast_auth: StepMetrics
    education_conditions: StepMetrics
    education_treatment: StepMetrics
    education_risk: StepMetrics
    education_playlist: StepMetrics
    education_content: Trend
    api_sequence: Trend
    create_session: StepMetrics
    create_voice_note: StepMetrics
    upload: UploadMetrics
    stop1: StepMetrics
    transcribe: StepMetrics
    create_title: StepMetrics
    video_playback_page: StepMetrics
    education_content_view_tracking: StepMetrics
    education_tracking_create: StepMetrics
    education_tracking_create_uuid: StepMetrics
    content_view_tracking: StepMetrics

    @classmethod
    def declare(cls, sink: MetricSink) -> ApiScenarioMetrics:
        """
        Register the HTTP workload's series on *sink*.

        Raises:
            MetricKindConflictError: If a name is already bound to a
                different kind on *sink*.
        """
        return cls(
            login_page=PageMetrics.declare(sink, "login_page"),
            landing_page=PageMetrics.declare(sink, "landing_page"),
            voice_note_page=PageMetrics.declare(sink, "voice_note_page"),
            page_ready=sink.trend("total_page_ready_time"),
            csrf=StepMetrics.declare(sink, "csrf"),
            login=StepMetrics.declare(sink, "login"),
            get_user=StepMetrics.declare(sink, "get_user"),
            broadcast_auth=StepMetrics.declare(sink, "broadcast_auth"),
            education_conditions=StepMetrics.declare(sink, "education_conditions"),
            education_treatment=StepMetrics.declare(sink, "education_treatment"),
            education_risk=StepMetrics.declare(sink, "education_risk"),
            education_playlist=StepMetrics.declare(sink, "education_playlist"),
            education_content=sink.trend("education_content_time"),
            api_sequence=sink.trend("api_sequence_time"),
            create_session=StepMetrics.declare(sink, "create_session"),
            create_voice_note=StepMetrics.declare(sink, "create_voice_note"),
            upload=UploadMetrics.declare(sink),
            stop1=StepMetrics.declare(sink, "stop1"),
            transcribe=StepMetrics.declare(sink, "transcribe"),
            create_title=StepMetrics.declare(sink, "create_title"),
            video_playback_page=StepMetrics.declare(
                sink,
                "video_playback_page",
                time="video_playback_page_load_time",
            ),
            education_content_view_tracking=StepMetrics.declare(
                sink, "education_content_view_tracking"
            ),
            education_tracking_create=StepMetrics.declare(sink, "education_tracking_create"),
            education_tracking_create_uuid=StepMetrics.declare(
                sink, "education_tracking_create_uuid"
            ),
            content_view_tracking=StepMetrics.declare(sink, "content_view_tracking"),
        )


@dataclass(frozen=True)
class BrowserScenarioMetrics:
    """Page timings recorded by the browser workload."""

    login_page_load: Trend
    voice_note_page_load: Trend
    landing_page_load: Trend
    video_playback_page_load: Trend

    @classmethod
    def declare(cls, sink: MetricSink) -> BrowserScenarioMetrics:
        return cls(
            login_page_load=sink.trend("login_page_load"),
            voice_note_page_load=sink.trend("voice_note_page_load"),
            landing_page_load=sink.trend("landing_page_load"),
            video_playback_page_load=sink.trend("video_playback_page_load"),
        )


@dataclass(frozen=True)
class IterationMetrics:
    """Iteration bookkeeping shared by every worker type."""

    iterations: Counter
    iteration_failures: Counter

    @classmethod
    def declare(cls, sink: MetricSink) -> IterationMetrics:
        return cls(
            iterations=sink.counter("iterations"),
            iteration_failures=sink.counter("iteration_failures"),
        )
