"""
Speech-to-text client for OpenAI-compatible Whisper endpoints (Groq by default).
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional

from openai import AsyncOpenAI

from core.models import RecognizedSegment

logger = logging.getLogger(__name__)


def _field(item: Any, name: str, default: Any = None) -> Any:
    # Some providers return plain dicts instead of typed segment objects
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def parse_segments(response: Any) -> List[RecognizedSegment]:
    """Convert a verbose_json transcription response into RecognizedSegments."""
    segments = []
    for raw in _field(response, "segments") or []:
        start = float(_field(raw, "start", 0.0) or 0.0)
        segments.append(RecognizedSegment(
            text=str(_field(raw, "text", "") or ""),
            start_sec=start,
            end_sec=float(_field(raw, "end", start) or start),
            avg_logprob=float(_field(raw, "avg_logprob", 0.0) or 0.0),
            no_speech_prob=float(_field(raw, "no_speech_prob", 0.0) or 0.0),
        ))
    return segments


class SpeechToTextClient:
    """One transcription request per call; retries are the caller's job."""

    def __init__(self,
                 api_key: str,
                 base_url: Optional[str] = None,
                 model: str = "whisper-large-v3",
                 client: Optional[AsyncOpenAI] = None):
        self.model = model
        # max_retries=0: the pipeline's RetryPolicy owns the attempt budget
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    async def transcribe(self,
                         audio_path: Path,
                         language: Optional[str] = None,
                         prompt: Optional[str] = None) -> List[RecognizedSegment]:
        audio = await asyncio.to_thread(Path(audio_path).read_bytes)

        request = {
            "model": self.model,
            "file": (Path(audio_path).name, audio),
            "response_format": "verbose_json",
            "temperature": 0,
        }
        if language:
            request["language"] = language
        if prompt:
            request["prompt"] = prompt

        response = await self.client.audio.transcriptions.create(**request)
        segments = parse_segments(response)
        logger.debug(f"{Path(audio_path).name}: {len(segments)} raw segments")
        return segments

    async def close(self) -> None:
        await self.client.close()
