"""
Reusable retry policy shared by the download and transcription stages.

A RetryPolicy is parameterized by (max_attempts, backoff, is_retryable).
Only errors the predicate accepts are retried; anything else propagates on
the first failure. When the attempt budget is spent the last error is raised
with attempt_count set, so callers always see a bounded number of calls.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from core.errors import (
    TranscriptPipelineError,
    classify_error,
    is_retryable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int, BaseException], float]
Predicate = Callable[[BaseException], bool]


def exponential_backoff(
    base: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 30.0,
    jitter: bool = False,
) -> BackoffFn:
    """
    Delay for attempt n (1-based) is base * multiplier ** (n - 1), capped.

    With jitter, the delay is drawn uniformly from [0, capped delay]
    (full jitter).
    """
    def backoff(attempt: int, error: BaseException) -> float:
        delay = min(base * (multiplier ** (attempt - 1)), max_delay)
        if jitter:
            return random.uniform(0, delay)
        return delay

    return backoff


def retry_hint_backoff(max_delay: Optional[float] = None) -> BackoffFn:
    """
    Prefer the provider's retry-after hint, else 2 ** attempt seconds.
    """
    def backoff(attempt: int, error: BaseException) -> float:
        hint = getattr(error, "retry_after", None)
        delay = float(hint) if hint is not None else float(2 ** attempt)
        if max_delay is not None:
            delay = min(delay, max_delay)
        return delay

    return backoff


class RetryPolicy:
    """Bounded retry with pluggable backoff and retryability predicate."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff: Optional[BackoffFn] = None,
        is_retryable_error: Predicate = is_retryable,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "operation",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff = backoff or exponential_backoff()
        self.is_retryable_error = is_retryable_error
        self.sleep = sleep
        self.name = name

    async def run(
        self,
        func: Callable[[int], Awaitable[T]],
        video_id: Optional[str] = None,
        stage: Optional[str] = None,
    ) -> T:
        """
        Call func(attempt) until it succeeds or the policy gives up.

        Raw exceptions are classified into the pipeline taxonomy before the
        retry decision, so callers may raise library errors directly.

        Raises:
            TranscriptPipelineError: the last classified error, with
                attempt_count set to the number of calls made.
        """
        stage = stage or self.name

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await func(attempt)
                if attempt > 1:
                    logger.info(
                        f"{stage} succeeded on attempt {attempt} for {video_id}"
                    )
                return result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify_error(e, video_id=video_id, stage=stage)
                error.attempt_count = attempt

                if not self.is_retryable_error(error):
                    logger.error(
                        f"{stage} failed with non-retryable "
                        f"{error.category.value} error for {video_id}: {error.message}"
                    )
                    raise error from e

                if attempt >= self.max_attempts:
                    logger.error(
                        f"{stage} failed after {attempt} attempts for {video_id}: "
                        f"{error.message}"
                    )
                    raise error from e

                delay = self.backoff(attempt, error)
                logger.warning(
                    f"{stage} attempt {attempt}/{self.max_attempts} failed for "
                    f"{video_id} ({error.category.value}): {error.message}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self.sleep(delay)

        # Unreachable: the loop either returns or raises.
        raise TranscriptPipelineError(
            f"{stage} exhausted retries", video_id=video_id, stage=stage
        )
