"""
SpeechTranscriber - per-chunk speech recognition with timeout, bounded
retry and a confidence filter
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol

from core.errors import IntegrityFailureError
from core.models import AudioChunk, ChunkState, RecognizedSegment
from core.retry import BackoffFn, RetryPolicy, retry_hint_backoff
from workers.base import BaseStage

# Segments at or beyond either bound are treated as low confidence or silence
MIN_AVG_LOGPROB = -0.4
MAX_NO_SPEECH_PROB = 0.4


class SpeechClient(Protocol):
    async def transcribe(self, audio_path: Path, language: Optional[str] = None,
                         prompt: Optional[str] = None) -> List[RecognizedSegment]:
        ...


def is_confident(segment: RecognizedSegment) -> bool:
    return segment.avg_logprob > MIN_AVG_LOGPROB and segment.no_speech_prob < MAX_NO_SPEECH_PROB


def filter_segments(segments: List[RecognizedSegment]) -> List[RecognizedSegment]:
    return [segment for segment in segments if is_confident(segment)]


class SpeechTranscriber(BaseStage):
    """
    Transcribes one preprocessed chunk per call.

    Each request is raced against `timeout` seconds. Rate limits and
    timeouts are retried up to `max_attempts` times in total, waiting for the
    provider's retry-after hint when it sends one and 2 ** attempt seconds
    otherwise. Any other failure, or an exhausted budget, aborts the run.
    """

    def __init__(
        self,
        client: SpeechClient,
        timeout: float = 60.0,
        max_attempts: int = 3,
        backoff: Optional[BackoffFn] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__("transcribe")
        self.client = client
        self.timeout = timeout
        self.retry_policy = RetryPolicy(
            max_attempts=max_attempts,
            backoff=backoff or retry_hint_backoff(),
            sleep=sleep,
            name="transcribe",
        )

    async def transcribe(
        self,
        chunk: AudioChunk,
        language: Optional[str] = None,
        context_prompt: Optional[str] = None,
    ) -> List[RecognizedSegment]:
        """Return the chunk's confident segments in chunk-relative seconds."""
        if chunk.local_path is None or not Path(chunk.local_path).exists():
            raise IntegrityFailureError(
                f"No preprocessed audio for {chunk.name}",
                video_id=chunk.video_id,
                stage=self.name,
            )

        async def attempt(n: int) -> List[RecognizedSegment]:
            return await asyncio.wait_for(
                self.client.transcribe(chunk.local_path, language=language, prompt=context_prompt),
                timeout=self.timeout,
            )

        try:
            raw_segments = await self.retry_policy.run(
                attempt, video_id=chunk.video_id, stage=self.name
            )
        finally:
            Path(chunk.local_path).unlink(missing_ok=True)
            chunk.local_path = None

        chunk.state = ChunkState.TRANSCRIBED
        kept = filter_segments(raw_segments)
        self.log_with_context(
            f"Chunk {chunk.sequence_index}: kept {len(kept)}/{len(raw_segments)} segments",
            extra_context={"video_id": chunk.video_id},
        )
        return kept
