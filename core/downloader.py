"""YouTube Downloader Module - fetches a video's audio track with yt-dlp"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yt_dlp

from core.errors import IntegrityFailureError

YOUTUBE_REFERER = "https://www.youtube.com/"


class YtDlpDownloader:
    """Single-file audio downloader built on the yt-dlp Python API.

    One call produces one local mp3. Identity (user agent), proxy and
    cookies are per-call options so the caller can rotate them between
    retry attempts.
    """

    def __init__(self,
                 proxy_url: Optional[str] = None,
                 cookies_file: Optional[Path] = None,
                 ffmpeg_path: str = "ffmpeg",
                 audio_format: str = "mp3",
                 timeout: float = 300.0):
        self.proxy_url = proxy_url
        self.cookies_file = Path(cookies_file) if cookies_file else None
        self.ffmpeg_path = ffmpeg_path
        self.audio_format = audio_format
        self.timeout = timeout
        self.logger = logging.getLogger('YtDlpDownloader')

    @property
    def has_cookies(self) -> bool:
        return self.cookies_file is not None and self.cookies_file.exists()

    def build_options(self,
                      output_template: str,
                      user_agent: Optional[str] = None,
                      use_cookies: bool = True) -> Dict[str, Any]:
        """yt-dlp options for an audio-only download"""
        ydl_opts: Dict[str, Any] = {
            'format': 'bestaudio/best',
            'outtmpl': output_template,
            'quiet': True,
            'no_warnings': True,
            'noplaylist': True,
            'overwrites': True,
            'postprocessors': [{
                'key': 'FFmpegExtractAudio',
                'preferredcodec': self.audio_format,
            }],
            'http_headers': {'Referer': YOUTUBE_REFERER},
        }

        if user_agent:
            ydl_opts['http_headers']['User-Agent'] = user_agent
        if self.proxy_url:
            ydl_opts['proxy'] = self.proxy_url
        if use_cookies and self.has_cookies:
            ydl_opts['cookiefile'] = str(self.cookies_file)
        if self.ffmpeg_path and self.ffmpeg_path != "ffmpeg":
            ydl_opts['ffmpeg_location'] = self.ffmpeg_path

        return ydl_opts

    def _download_sync(self, url: str, ydl_opts: Dict[str, Any]) -> None:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            ydl.download([url])

    async def download(self,
                       url: str,
                       output_dir: Path,
                       file_stem: str,
                       user_agent: Optional[str] = None,
                       use_cookies: bool = True) -> Path:
        """Download url's audio to output_dir/file_stem.<audio_format>.

        Raises:
            asyncio.TimeoutError: the attempt exceeded the configured timeout
            yt_dlp.utils.DownloadError: yt-dlp reported a failure
            IntegrityFailureError: yt-dlp finished but produced no file
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        template = str(output_dir / f"{file_stem}.%(ext)s")
        ydl_opts = self.build_options(template, user_agent=user_agent, use_cookies=use_cookies)

        self.logger.info(
            f"Downloading audio for {url} "
            f"(cookies={'cookiefile' in ydl_opts}, proxy={bool(self.proxy_url)})"
        )
        await asyncio.wait_for(
            asyncio.to_thread(self._download_sync, url, ydl_opts),
            timeout=self.timeout,
        )

        expected = output_dir / f"{file_stem}.{self.audio_format}"
        if expected.exists():
            return expected

        # Postprocessor skipped (e.g. source already in target codec)
        candidates = sorted(p for p in output_dir.glob(f"{file_stem}.*") if p.is_file())
        if candidates:
            return candidates[0]

        raise IntegrityFailureError(f"yt-dlp produced no output file for {url}", stage="download")
