#!/usr/bin/env python3
"""
Tests for the error taxonomy, error classification and the shared retry policy.
"""

import asyncio

import pytest

from core.errors import (
    ErrorCategory,
    IntegrityFailureError,
    StageTimeoutError,
    ThrottledError,
    UnavailableContentError,
    UnknownPipelineError,
    classify_error,
    is_retryable,
)
from core.retry import RetryPolicy, exponential_backoff, retry_hint_backoff


class FakeResponse:
    def __init__(self, status_code, headers=None):
        self.status_code = status_code
        self.headers = headers or {}


class HTTPStatusError(Exception):
    def __init__(self, message, status_code, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.response = FakeResponse(status_code, headers)


class TestClassifyError:

    @pytest.mark.parametrize("message, expected", [
        ("ERROR: [youtube] abc: Video unavailable", ErrorCategory.UNAVAILABLE_CONTENT),
        ("ERROR: Private video. Sign in if you've been granted access", ErrorCategory.UNAVAILABLE_CONTENT),
        ("This content is not available", ErrorCategory.UNAVAILABLE_CONTENT),
        ("HTTP Error 429: Too Many Requests", ErrorCategory.THROTTLED),
        ("rate_limit_exceeded", ErrorCategory.THROTTLED),
        ("Read timed out", ErrorCategory.TIMEOUT),
        ("Connection reset by peer", ErrorCategory.TIMEOUT),
        ("something odd happened", ErrorCategory.UNKNOWN),
    ])
    def test_message_based_categories(self, message, expected):
        error = classify_error(RuntimeError(message), video_id="v", stage="download")
        assert error.category == expected
        assert error.video_id == "v"
        assert error.stage == "download"

    def test_unavailable_wins_over_throttle_markers(self):
        error = classify_error(RuntimeError("Video unavailable (HTTP 429)"))
        assert isinstance(error, UnavailableContentError)
        assert not error.retryable

    def test_status_code_and_retry_after_header(self):
        raw = HTTPStatusError("slow down", 429, {"retry-after": "7"})
        error = classify_error(raw, stage="transcribe")
        assert isinstance(error, ThrottledError)
        assert error.retry_after == 7.0

    def test_asyncio_timeout_is_retryable(self):
        error = classify_error(asyncio.TimeoutError(), stage="transcribe")
        assert isinstance(error, StageTimeoutError)
        assert is_retryable(error)

    def test_pipeline_errors_pass_through_with_context(self):
        original = IntegrityFailureError("too small")
        error = classify_error(original, video_id="v", stage="verify")
        assert error is original
        assert error.video_id == "v"
        assert error.stage == "verify"

    def test_to_dict_carries_diagnosis_fields(self):
        error = UnknownPipelineError("boom", video_id="v", stage="persist", attempt_count=2)
        assert error.to_dict() == {
            "error": "boom",
            "category": "unknown",
            "retryable": False,
            "video_id": "v",
            "stage": "persist",
            "attempt_count": 2,
        }


class TestRetryPolicy:

    def _policy(self, delays, **kwargs):
        async def record_sleep(delay):
            delays.append(delay)
        return RetryPolicy(sleep=record_sleep, **kwargs)

    def test_retryable_failure_invokes_exactly_max_attempts(self):
        calls = []
        delays = []
        policy = self._policy(delays, max_attempts=3, backoff=exponential_backoff(base=1.0))

        async def always_throttled(attempt):
            calls.append(attempt)
            raise RuntimeError("HTTP Error 429: Too Many Requests")

        with pytest.raises(ThrottledError) as exc_info:
            asyncio.run(policy.run(always_throttled, video_id="v", stage="download"))

        assert calls == [1, 2, 3]
        assert delays == [1.0, 2.0]
        assert exc_info.value.attempt_count == 3
        assert exc_info.value.stage == "download"

    def test_non_retryable_failure_is_not_retried(self):
        calls = []
        policy = self._policy([], max_attempts=5)

        async def unavailable(attempt):
            calls.append(attempt)
            raise RuntimeError("Private video")

        with pytest.raises(UnavailableContentError) as exc_info:
            asyncio.run(policy.run(unavailable))

        assert calls == [1]
        assert exc_info.value.attempt_count == 1

    def test_recovers_after_transient_failure(self):
        policy = self._policy([], max_attempts=3)

        async def flaky(attempt):
            if attempt == 1:
                raise asyncio.TimeoutError()
            return "ok"

        assert asyncio.run(policy.run(flaky)) == "ok"

    def test_invalid_attempt_budget(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestBackoff:

    def test_exponential_backoff_is_capped(self):
        backoff = exponential_backoff(base=1.0, multiplier=2.0, max_delay=5.0)
        assert [backoff(n, RuntimeError()) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_cap(self):
        backoff = exponential_backoff(base=1.0, max_delay=3.0, jitter=True)
        for attempt in range(1, 6):
            assert 0.0 <= backoff(attempt, RuntimeError()) <= 3.0

    def test_retry_hint_preferred_over_exponential(self):
        backoff = retry_hint_backoff()
        assert backoff(1, ThrottledError("x", retry_after=12)) == 12.0
        assert backoff(1, ThrottledError("x")) == 2.0
        assert backoff(2, StageTimeoutError("x")) == 4.0
