"""Video title/description lookup via yt-dlp info extraction (no download)."""

import asyncio
import logging
from typing import Any, Dict, Optional

import yt_dlp

from core.models import VideoMetadata, canonical_watch_url

logger = logging.getLogger(__name__)


class VideoMetadataFetcher:
    """Best-effort metadata source. Failures degrade to empty metadata."""

    def __init__(self, proxy_url: Optional[str] = None, timeout: float = 30.0):
        self.proxy_url = proxy_url
        self.timeout = timeout

    def _extract_sync(self, url: str) -> Dict[str, Any]:
        ydl_opts = {
            'quiet': True,
            'no_warnings': True,
            'skip_download': True,
            'extract_flat': False,
        }
        if self.proxy_url:
            ydl_opts['proxy'] = self.proxy_url

        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False) or {}

    async def fetch(self, video_id: str) -> VideoMetadata:
        try:
            info = await asyncio.wait_for(
                asyncio.to_thread(self._extract_sync, canonical_watch_url(video_id)),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(f"Metadata lookup failed for {video_id}: {e}")
            return VideoMetadata(video_id=video_id)

        return VideoMetadata(
            video_id=video_id,
            title=info.get('title') or "",
            description=info.get('description') or "",
        )
