#!/usr/bin/env python3
"""
Tests for the HTTP surface: status mapping and response shape.
"""

import pytest
from fastapi.testclient import TestClient

from api.main import app, get_orchestrator
from core.errors import (
    IntegrityFailureError,
    InvalidInputError,
    NotFoundError,
    ThrottledError,
    UnavailableContentError,
    UnknownPipelineError,
)
from core.models import Transcript, TranscriptSegment, TranscriptSource


class StubOrchestrator:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def fetch(self, video_id, language=None):
        self.calls.append((video_id, language))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def client_for():
    def factory(orchestrator):
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()


def test_health(client_for):
    response = client_for(StubOrchestrator()).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_transcript_response_shape(client_for):
    transcript = Transcript(
        segments=(
            TranscriptSegment(text="hello", offset_ms=0.0, duration_ms=1000.0),
            TranscriptSegment(text="world", offset_ms=1000.0, duration_ms=500.0),
        ),
        source=TranscriptSource.WHISPER,
        language="ta",
    )
    stub = StubOrchestrator(result=transcript)

    response = client_for(stub).get("/transcripts/dQw4w9WgXcQ", params={"language": "ta"})

    assert response.status_code == 200
    assert response.json() == {
        "video_id": "dQw4w9WgXcQ",
        "source": "whisper",
        "language": "ta",
        "segments": [
            {"text": "hello", "offset": 0.0, "duration": 1000.0},
            {"text": "world", "offset": 1000.0, "duration": 500.0},
        ],
    }
    assert stub.calls == [("dQw4w9WgXcQ", "ta")]


def test_unavailable_is_404(client_for):
    response = client_for(StubOrchestrator(result=None)).get("/transcripts/xyz789")
    assert response.status_code == 404


@pytest.mark.parametrize("error, status", [
    (InvalidInputError("bad id"), 400),
    (NotFoundError("no such video"), 404),
    (UnavailableContentError("Private video"), 410),
    (ThrottledError("429"), 429),
    (IntegrityFailureError("no chunks"), 502),
    (UnknownPipelineError("boom"), 502),
])
def test_pipeline_errors_map_to_status(client_for, error, status):
    error.with_context(video_id="abc123", stage="download")

    response = client_for(StubOrchestrator(error=error)).get("/transcripts/abc123")

    assert response.status_code == status
    body = response.json()
    assert body["category"] == error.category.value
    assert body["video_id"] == "abc123"
    assert body["stage"] == "download"
