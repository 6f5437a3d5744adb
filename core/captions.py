"""Caption Fetcher Module - authored caption tracks with language fallback"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api.proxies import GenericProxyConfig

from core.models import Transcript, TranscriptSegment, TranscriptSource

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_LANGUAGES = ["ta", "hi", "en"]


class CaptionSource(Protocol):
    """Returns caption entries {text, start, duration} (seconds) for one language."""

    def fetch(self, video_id: str, language: str) -> List[Dict[str, Any]]:
        ...


class YouTubeCaptionSource:
    """Caption source backed by youtube-transcript-api"""

    def __init__(self, proxy_url: Optional[str] = None):
        proxy_config = None
        if proxy_url:
            proxy_config = GenericProxyConfig(http_url=proxy_url, https_url=proxy_url)
        self.api = YouTubeTranscriptApi(proxy_config=proxy_config)

    def fetch(self, video_id: str, language: str) -> List[Dict[str, Any]]:
        fetched = self.api.fetch(video_id, languages=[language])
        return fetched.to_raw_data()


def language_order(preferred: Optional[str], fallbacks: Iterable[str]) -> List[str]:
    """Preferred language first, then fallbacks, without duplicates."""
    ordered = []
    for language in [preferred, *fallbacks]:
        if language and language not in ordered:
            ordered.append(language)
    return ordered


class CaptionFetcher:
    """
    Tries the preferred language, then each fallback language in order.

    A miss in one language is not a transient fault, so there is no retry
    here: the first language that yields a non-empty track wins and None
    means no authored captions exist in any candidate language.
    """

    def __init__(self,
                 source: CaptionSource,
                 fallback_languages: Optional[List[str]] = None):
        self.source = source
        self.fallback_languages = list(
            DEFAULT_FALLBACK_LANGUAGES if fallback_languages is None else fallback_languages
        )

    async def fetch(self, video_id: str, preferred_language: Optional[str] = None) -> Optional[Transcript]:
        for language in language_order(preferred_language, self.fallback_languages):
            try:
                entries = await asyncio.to_thread(self.source.fetch, video_id, language)
            except Exception as e:
                logger.warning(f"No {language} captions for {video_id}: {e.__class__.__name__}: {e}")
                continue

            if not entries:
                logger.warning(f"Empty {language} caption track for {video_id}")
                continue

            transcript = self._to_transcript(entries, language)
            logger.info(f"Fetched {len(transcript)} {language} caption segments for {video_id}")
            return transcript

        logger.info(f"No captions available for {video_id}")
        return None

    @staticmethod
    def _to_transcript(entries: List[Dict[str, Any]], language: str) -> Transcript:
        segments = [
            TranscriptSegment(
                text=str(entry.get("text", "")),
                offset_ms=float(entry.get("start", 0.0)) * 1000,
                duration_ms=float(entry.get("duration", 0.0)) * 1000,
            )
            for entry in entries
        ]
        # Stable sort keeps authored order for equal offsets
        segments.sort(key=lambda segment: segment.offset_ms)
        return Transcript(segments=tuple(segments), source=TranscriptSource.CAPTIONS, language=language)
