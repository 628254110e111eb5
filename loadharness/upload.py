"""
Chunked direct-to-storage upload.

The voice-note workflow records audio in short segments and posts each
one straight to object storage with a pre-signed POST policy:

1. One authorization request returns the destination URL, a segment key
   prefix and the signed policy fields.
2. Every chunk is sent as ``multipart/form-data`` whose fields appear in
   exactly the order the storage service validates: ``acl``, ``key``,
   ``X-Amz-Credential``, ``X-Amz-Algorithm``, ``X-Amz-Date``, ``Policy``,
   ``X-Amz-Signature``, ``Content-Type`` and finally ``file``.
3. Status 200 or 204 means the chunk was stored.

Selected workers also run a foreground "mid-upload" activity once the
chunk at index ``floor(total / 10)`` has been sent, imitating a user who
keeps browsing while a long recording uploads in the background.

Key Concepts Demonstrated:
- Ordered multipart encoding with ``urllib3.encode_multipart_formdata``
- One failed chunk never stops the remaining chunks
- Cooperative pacing between chunks (``gevent.sleep``)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import gevent
import requests
from urllib3 import encode_multipart_formdata

from loadharness.context import VirtualUserContext
from loadharness.errors import StepFailedError
from loadharness.fixtures import ChunkFile
from loadharness.metrics import Counter, MetricSink, Trend
from loadharness.steps import ScenarioStep, StatusPolicy, StepMetrics
from loadharness.transport import Transport

logger = logging.getLogger(__name__)

# Signed policy fields, in the order they must appear after acl and key.
SIGNED_FIELDS = (
    "X-Amz-Credential",
    "X-Amz-Algorithm",
    "X-Amz-Date",
    "Policy",
    "X-Amz-Signature",
)
STORED_CONTENT_TYPE = "audio/webm"
CHUNK_STATUS_POLICY = StatusPolicy(expected=(200, 204))


@dataclass(frozen=True)
class UploadAuthorization:
    """Destination and signed policy for one recording's chunks."""

    upload_url: str
    segment_key: str
    fields: Mapping[str, str]

    @classmethod
    def from_payload(cls, payload: Any) -> UploadAuthorization:
        """
        Parse the authorization endpoint's JSON body.

        Raises:
            ValueError: If the body lacks ``data``, the upload URL, the
                segment key or any signed field.
        """
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, Mapping):
            raise ValueError("Upload authorization response has no data")

        upload_url = data.get("upload_url")
        segment_key = data.get("segment_key")
        fields = data.get("upload_fields")
        if not upload_url or not segment_key or not isinstance(fields, Mapping):
            raise ValueError("Upload authorization is missing url, segment key or fields")

        missing = [name for name in SIGNED_FIELDS if name not in fields]
        if missing:
            raise ValueError(f"Upload authorization is missing fields: {', '.join(missing)}")

        return cls(str(upload_url), str(segment_key), dict(fields))


def chunk_key(segment_key: str, chunk: ChunkFile) -> str:
    """Object key for *chunk*: ``{segment_key}/{chunk index}``."""
    return f"{segment_key}/{chunk.index}"


def build_chunk_payload(
    auth: UploadAuthorization,
    chunk: ChunkFile,
    boundary: str | None = None,
) -> tuple[bytes, str]:
    """
    Encode one chunk as an ordered multipart body.

    Args:
        auth: The recording's upload authorization.
        chunk: The audio segment to send.
        boundary: Fixed multipart boundary (random when omitted).

    Returns:
        ``(body, content_type)`` where *content_type* carries the
        boundary parameter.
    """
    fields: list[tuple[str, Any]] = [
        ("acl", "private"),
        ("key", chunk_key(auth.segment_key, chunk)),
    ]
    fields.extend((name, auth.fields[name]) for name in SIGNED_FIELDS)
    fields.append(("Content-Type", STORED_CONTENT_TYPE))
    fields.append(("file", (chunk.name, chunk.data, chunk.content_type)))
    return encode_multipart_formdata(fields, boundary=boundary)


@dataclass(frozen=True)
class UploadMetrics:
    """Series the upload folds into."""

    chunk: StepMetrics
    responses: Counter
    chunk_size: Trend
    total_time: Trend

    @classmethod
    def declare(cls, sink: MetricSink) -> UploadMetrics:
        return cls(
            chunk=StepMetrics(
                time=sink.trend("s3_response_time"),
                fail_rate=sink.rate("s3_upload_fail_rate"),
                requests=sink.counter("s3_upload_requests"),
            ),
            responses=sink.counter("s3_response_requests"),
            chunk_size=sink.trend("chunk_size"),
            total_time=sink.trend("total_upload_time"),
        )


@dataclass
class UploadResult:
    """How many chunks were stored and how many were not."""

    succeeded: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed


class ChunkedUpload:
    """
    Send every chunk of one recording to its pre-authorized destination.

    Args:
        transport: The worker's HTTP transport.
        auth: Result of the authorization request.
        chunks: Audio segments in upload order.
        metrics: Series to record into.
        headers: Browser-like headers sent with every chunk.
        timeout: Per-chunk request timeout in seconds.
        interval: Pause between consecutive chunks in seconds.
        on_mid_upload: Foreground activity run once, after the chunk at
            :attr:`mid_upload_position`, for workers whose context has
            ``mid_upload`` set.
        sleep: Cooperative sleep taking seconds.
    """

    def __init__(
        self,
        transport: Transport,
        auth: UploadAuthorization,
        chunks: Sequence[ChunkFile],
        metrics: UploadMetrics,
        headers: Mapping[str, str] | None = None,
        timeout: float = 90,
        interval: float = 3,
        on_mid_upload: Callable[[VirtualUserContext], None] | None = None,
        sleep: Callable[[float], object] = gevent.sleep,
    ):
        self.transport = transport
        self.auth = auth
        self.chunks = list(chunks)
        self.metrics = metrics
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.interval = interval
        self.on_mid_upload = on_mid_upload
        self.sleep = sleep

    @property
    def mid_upload_position(self) -> int:
        """Zero-based position after which the mid-upload activity runs."""
        return len(self.chunks) // 10

    def _chunk_step(self, chunk: ChunkFile, position: int) -> ScenarioStep:
        def send(ctx: VirtualUserContext) -> requests.Response:
            body, content_type = build_chunk_payload(self.auth, chunk)
            self.metrics.responses.add(1)
            self.metrics.chunk_size.add(chunk.size)
            return self.transport.post(
                self.auth.upload_url,
                data=body,
                headers={**self.headers, "Content-Type": content_type},
                timeout=self.timeout,
                name="storage chunk upload",
            )

        return ScenarioStep(
            name=f"Upload chunk {position + 1}/{len(self.chunks)}",
            action=send,
            metrics=self.metrics.chunk,
            status_policy=CHUNK_STATUS_POLICY,
            status_check="Chunk upload status is 200/204",
        )

    def run(self, ctx: VirtualUserContext) -> UploadResult:
        """Upload every chunk in order and return the tally."""
        result = UploadResult()
        total = len(self.chunks)
        started = time.perf_counter()

        for position, chunk in enumerate(self.chunks):
            try:
                outcome = self._chunk_step(chunk, position).execute(ctx)
            except requests.RequestException:
                result.failed += 1
            else:
                if outcome.success:
                    result.succeeded += 1
                    logger.info(
                        "[VU %d] Chunk %d/%d uploaded (%.0fms)",
                        ctx.index,
                        position + 1,
                        total,
                        outcome.duration_ms,
                    )
                else:
                    result.failed += 1

            if position == self.mid_upload_position and ctx.mid_upload and self.on_mid_upload:
                self._run_mid_upload(ctx)

            if position < total - 1 and self.interval > 0:
                self.sleep(self.interval)

        self.metrics.total_time.add((time.perf_counter() - started) * 1000)
        logger.info(
            "[VU %d] Upload finished: %d stored, %d failed",
            ctx.index,
            result.succeeded,
            result.failed,
        )
        return result

    def _run_mid_upload(self, ctx: VirtualUserContext) -> None:
        # Foreground activity must not stop the background upload.
        try:
            self.on_mid_upload(ctx)
        except (StepFailedError, requests.RequestException) as exc:
            logger.warning("[VU %d] Mid-upload activity aborted: %s", ctx.index, exc)
