"""
Unit tests for the chunked direct-to-storage upload.

Key Concepts Demonstrated:
- Multipart field order asserted on the encoded bytes
- A failed chunk never stops the remaining chunks
- Mid-upload activity runs once, at ``floor(total / 10)``
"""

from __future__ import annotations

import re

import pytest
import requests

from loadharness.errors import StepFailedError
from loadharness.fixtures import ChunkFile
from loadharness.steps import StepOutcome
from loadharness.upload import (
    ChunkedUpload,
    UploadAuthorization,
    UploadMetrics,
    build_chunk_payload,
    chunk_key,
)
from tests.fakes import FakeResponse, FakeTransport

pytestmark = pytest.mark.unit

STORAGE_URL = "https://storage.test/bucket"


def _payload(**overrides):
    fields = {
        "X-Amz-Credential": "AKIA/20250101/eu-west-2/s3/aws4_request",
        "X-Amz-Algorithm": "AWS4-HMAC-SHA256",
        "X-Amz-Date": "20250101T000000Z",
        "Policy": "cG9saWN5",
        "X-Amz-Signature": "f00d",
    }
    data = {"upload_url": STORAGE_URL, "segment_key": "notes/77", "upload_fields": fields}
    data.update(overrides)
    return {"data": data}


@pytest.fixture
def auth():
    return UploadAuthorization.from_payload(_payload())


def _chunks(count):
    return [ChunkFile(index=i, name=f"chunk{i}.webm", data=b"x" * (i + 1)) for i in range(count)]


def test_authorization_parses_payload(auth):
    assert auth.upload_url == STORAGE_URL
    assert auth.segment_key == "notes/77"
    assert auth.fields["Policy"] == "cG9saWN5"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"data": None},
        _payload(upload_url=""),
        _payload(upload_fields={"Policy": "only"}),
    ],
)
def test_authorization_rejects_incomplete_payloads(payload):
    with pytest.raises(ValueError):
        UploadAuthorization.from_payload(payload)


def test_multipart_fields_are_in_storage_order(auth):
    # Arrange
    chunk = ChunkFile(index=4, name="chunk4.webm", data=b"OPUS")

    # Act
    body, content_type = build_chunk_payload(auth, chunk, boundary="testboundary")

    # Assert
    names = re.findall(rb'; name="([^"]+)"', body)
    assert names == [
        b"acl",
        b"key",
        b"X-Amz-Credential",
        b"X-Amz-Algorithm",
        b"X-Amz-Date",
        b"Policy",
        b"X-Amz-Signature",
        b"Content-Type",
        b"file",
    ]
    assert content_type == "multipart/form-data; boundary=testboundary"
    assert b"notes/77/4" in body
    assert b'filename="chunk4.webm"' in body
    assert b"audio/webm; codecs=opus" in body


def test_chunk_key_uses_chunk_index(auth):
    assert chunk_key("notes/77", ChunkFile(index=12, name="chunk12.webm", data=b"a")) == "notes/77/12"


def test_failed_chunk_does_not_stop_the_upload(sink, make_ctx, auth):
    # Arrange
    statuses = iter([204, 500, 200])
    transport = FakeTransport([("POST", STORAGE_URL, lambda *_: FakeResponse(next(statuses)))])
    delays = []
    upload = ChunkedUpload(
        transport, auth, _chunks(3), UploadMetrics.declare(sink), interval=3, sleep=delays.append
    )

    # Act
    result = upload.run(make_ctx())

    # Assert
    snapshot = sink.snapshot()
    assert (result.succeeded, result.failed, result.attempted) == (2, 1, 3)
    assert snapshot.values("s3_upload_fail_rate") == [0.0, 1.0, 0.0]
    assert snapshot.values("s3_response_requests") == [1.0, 1.0, 1.0]
    assert snapshot.values("chunk_size") == [1.0, 2.0, 3.0]
    assert len(snapshot.values("total_upload_time")) == 1
    assert delays == [3, 3]


def test_transport_error_on_a_chunk_is_counted_and_skipped(sink, make_ctx, auth):
    calls = {"n": 0}

    def answer(method, url, kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise requests.Timeout("slow storage")
        return FakeResponse(204)

    transport = FakeTransport([("POST", STORAGE_URL, answer)])
    upload = ChunkedUpload(transport, auth, _chunks(2), UploadMetrics.declare(sink), interval=0)

    result = upload.run(make_ctx())

    assert (result.succeeded, result.failed) == (1, 1)


def test_chunk_requests_carry_multipart_content_type(sink, make_ctx, auth):
    transport = FakeTransport([("POST", STORAGE_URL, FakeResponse(204))])
    upload = ChunkedUpload(
        transport,
        auth,
        _chunks(1),
        UploadMetrics.declare(sink),
        headers={"Origin": "https://dashboard.test"},
        timeout=90,
    )

    upload.run(make_ctx())

    _, _, kwargs = transport.calls[0]
    assert kwargs["headers"]["Content-Type"].startswith("multipart/form-data; boundary=")
    assert kwargs["headers"]["Origin"] == "https://dashboard.test"
    assert kwargs["timeout"] == 90


@pytest.mark.parametrize("total, position", [(3, 0), (10, 1), (25, 2)])
def test_mid_upload_runs_once_after_tenth_chunk(sink, make_ctx, auth, total, position):
    # Arrange
    order = []

    def answer(method, url, kwargs):
        order.append("chunk")
        return FakeResponse(204)

    transport = FakeTransport([("POST", STORAGE_URL, answer)])
    upload = ChunkedUpload(
        transport,
        auth,
        _chunks(total),
        UploadMetrics.declare(sink),
        interval=0,
        on_mid_upload=lambda ctx: order.append("mid"),
    )

    # Act
    upload.run(make_ctx(mid_upload_fraction=1.0))

    # Assert
    assert order.count("mid") == 1
    assert order.index("mid") == position + 1


def test_mid_upload_skipped_for_unselected_workers(sink, make_ctx, auth):
    seen = []
    transport = FakeTransport([("POST", STORAGE_URL, FakeResponse(204))])
    upload = ChunkedUpload(
        transport, auth, _chunks(3), UploadMetrics.declare(sink), interval=0, on_mid_upload=seen.append
    )

    upload.run(make_ctx(mid_upload_fraction=0.0))

    assert seen == []


def test_aborted_mid_upload_activity_does_not_stop_upload(sink, make_ctx, auth):
    def abort(ctx):
        raise StepFailedError(
            "Mid-Upload Landing Page Load", StepOutcome(success=False, duration_ms=1.0, status=500)
        )

    transport = FakeTransport([("POST", STORAGE_URL, FakeResponse(204))])
    upload = ChunkedUpload(
        transport, auth, _chunks(3), UploadMetrics.declare(sink), interval=0, on_mid_upload=abort
    )

    result = upload.run(make_ctx(mid_upload_fraction=1.0))

    assert result.succeeded == 3
