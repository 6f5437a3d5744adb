"""
Error taxonomy for the transcript pipeline.

Every fault that leaves a pipeline stage is a TranscriptPipelineError carrying
the video id, the stage it escaped from and how many attempts were made.
classify_error() maps raw library exceptions onto the taxonomy.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories used for retry decisions and caller-facing outcomes."""
    NOT_FOUND = "not_found"
    THROTTLED = "throttled"
    TIMEOUT = "timeout"
    UNAVAILABLE_CONTENT = "unavailable_content"
    INTEGRITY_FAILURE = "integrity_failure"
    INVALID_INPUT = "invalid_input"
    PREPROCESSING = "preprocessing"
    DUPLICATE_KEY = "duplicate_key"
    UNKNOWN = "unknown"


class TranscriptPipelineError(Exception):
    """Base class for every pipeline fault."""

    category = ErrorCategory.UNKNOWN
    retryable = False

    def __init__(
        self,
        message: str,
        video_id: Optional[str] = None,
        stage: Optional[str] = None,
        attempt_count: int = 0,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.video_id = video_id
        self.stage = stage
        self.attempt_count = attempt_count
        self.retry_after = retry_after

    def with_context(
        self,
        video_id: Optional[str] = None,
        stage: Optional[str] = None,
        attempt_count: Optional[int] = None,
    ) -> "TranscriptPipelineError":
        """Fill in diagnosis fields that are still unset and return self."""
        if self.video_id is None:
            self.video_id = video_id
        if self.stage is None:
            self.stage = stage
        if attempt_count is not None:
            self.attempt_count = attempt_count
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "video_id": self.video_id,
            "stage": self.stage,
            "attempt_count": self.attempt_count,
        }

    def __str__(self) -> str:
        context = [f"{k}={v}" for k, v in (
            ("video_id", self.video_id),
            ("stage", self.stage),
            ("attempts", self.attempt_count or None),
        ) if v is not None]
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class NotFoundError(TranscriptPipelineError):
    """No caption track or no video."""
    category = ErrorCategory.NOT_FOUND


class ThrottledError(TranscriptPipelineError):
    """Explicit rate-limit signal from a remote service."""
    category = ErrorCategory.THROTTLED
    retryable = True


class StageTimeoutError(TranscriptPipelineError):
    """An external call exceeded its time budget."""
    category = ErrorCategory.TIMEOUT
    retryable = True


class UnavailableContentError(TranscriptPipelineError):
    """Private, removed or restricted content."""
    category = ErrorCategory.UNAVAILABLE_CONTENT


class IntegrityFailureError(TranscriptPipelineError):
    """Undersized download, zero chunks or an empty synthesized transcript."""
    category = ErrorCategory.INTEGRITY_FAILURE


class InvalidInputError(TranscriptPipelineError):
    """Malformed video URL or identifier."""
    category = ErrorCategory.INVALID_INPUT


class PreprocessingError(TranscriptPipelineError):
    """ffmpeg failed while conditioning a chunk."""
    category = ErrorCategory.PREPROCESSING


class DuplicateTranscriptError(TranscriptPipelineError):
    """A record for this video already exists. Resolved by re-reading it."""
    category = ErrorCategory.DUPLICATE_KEY


class UnknownPipelineError(TranscriptPipelineError):
    """Anything else. Wraps the original message and aborts the run."""
    category = ErrorCategory.UNKNOWN


# Message fragments, checked in order. Permanent errors come first so a
# "video unavailable ... 429" mixed message is never retried.
_UNAVAILABLE_MARKERS = (
    "video unavailable", "private video", "this content is not available",
    "not available", "has been removed", "deleted", "age-restricted",
    "sign in to confirm your age", "copyright", "members-only",
)
_THROTTLE_MARKERS = ("429", "too many requests", "rate limit", "rate_limit")
_TIMEOUT_MARKERS = ("timed out", "timeout", "connection reset", "connection aborted")


def _status_code(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def retry_after_hint(error: BaseException) -> Optional[float]:
    """Read a provider-supplied retry-after header, in seconds, if any."""
    hint = getattr(error, "retry_after", None)
    if isinstance(hint, (int, float)):
        return float(hint)
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or getattr(error, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def classify_error(
    error: BaseException,
    video_id: Optional[str] = None,
    stage: Optional[str] = None,
) -> TranscriptPipelineError:
    """
    Map an arbitrary exception onto the pipeline taxonomy.

    Pipeline errors pass through unchanged (context is filled in where
    missing). asyncio timeouts become StageTimeoutError, HTTP 429 and
    rate-limit messages become ThrottledError, and unavailable-content
    messages become UnavailableContentError. Everything else is wrapped in
    UnknownPipelineError with the original message.
    """
    if isinstance(error, TranscriptPipelineError):
        return error.with_context(video_id=video_id, stage=stage)

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return StageTimeoutError(
            f"{stage or 'operation'} timed out", video_id=video_id, stage=stage
        )

    message = str(error) or error.__class__.__name__
    lowered = message.lower()
    status = _status_code(error)

    if any(marker in lowered for marker in _UNAVAILABLE_MARKERS):
        return UnavailableContentError(message, video_id=video_id, stage=stage)
    if status == 429 or any(marker in lowered for marker in _THROTTLE_MARKERS):
        return ThrottledError(
            message, video_id=video_id, stage=stage, retry_after=retry_after_hint(error)
        )
    if status == 408 or any(marker in lowered for marker in _TIMEOUT_MARKERS):
        return StageTimeoutError(message, video_id=video_id, stage=stage)

    return UnknownPipelineError(message, video_id=video_id, stage=stage)


def is_retryable(error: BaseException) -> bool:
    """True for the throttled/timeout class only."""
    return bool(getattr(error, "retryable", False))
