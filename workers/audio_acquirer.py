"""
Audio acquisition stage.

Turns a watch URL into an ordered list of staged AudioChunks:
validate -> pre-clean -> download (retried) -> verify size -> segment -> stage.
Every exit path removes this video's local temporaries; a failed run also
purges whatever it staged remotely.
"""

import asyncio
import itertools
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional

from core.audio_tools import segment_audio
from core.downloader import YtDlpDownloader
from core.errors import ErrorCategory, IntegrityFailureError, is_retryable
from core.models import AudioChunk, belongs_to_video, chunk_prefix
from core.object_storage import ObjectStorage
from core.retry import BackoffFn, RetryPolicy, exponential_backoff
from core.youtube_validators import extract_video_id
from workers.base import BaseStage

Segmenter = Callable[..., Awaitable[List[Path]]]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def is_cookie_error(error: BaseException) -> bool:
    return "cookie" in str(error).lower()


def staging_prefix(video_id: str) -> str:
    """Object-storage key prefix owned by one video."""
    return f"{chunk_prefix(video_id)}/"


class AudioAcquirer(BaseStage):
    """Downloads, verifies, segments and stages a video's audio."""

    def __init__(
        self,
        downloader: YtDlpDownloader,
        storage: ObjectStorage,
        work_dir: Path,
        chunk_seconds: int = 60,
        min_audio_bytes: int = 1024,
        max_attempts: int = 3,
        backoff: Optional[BackoffFn] = None,
        user_agents: Optional[Iterable[str]] = None,
        staging_concurrency: int = 4,
        stage_source_audio: bool = False,
        ffmpeg_path: str = "ffmpeg",
        segmenter: Segmenter = segment_audio,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__("acquire")
        self.downloader = downloader
        self.storage = storage
        self.work_dir = Path(work_dir)
        self.chunk_seconds = chunk_seconds
        self.min_audio_bytes = min_audio_bytes
        self.max_attempts = max_attempts
        self.backoff = backoff or exponential_backoff()
        self._user_agents = itertools.cycle(list(user_agents or []) or [DEFAULT_USER_AGENT])
        self.staging_concurrency = staging_concurrency
        self.stage_source_audio = stage_source_audio
        self.ffmpeg_path = ffmpeg_path
        self.segmenter = segmenter
        self.sleep = sleep

    async def acquire(self, video_url: str) -> List[AudioChunk]:
        """
        Produce staged chunks for video_url, in sequence order.

        Raises:
            InvalidInputError: malformed URL (nothing is created)
            UnavailableContentError: private, removed or restricted video
            IntegrityFailureError: undersized download or zero chunks
            ThrottledError / StageTimeoutError: download retries exhausted
        """
        video_id = extract_video_id(video_url)
        self.work_dir.mkdir(parents=True, exist_ok=True)

        with self._execution_timer(video_id):
            await self._pre_clean(video_id)
            try:
                chunks = await self._acquire(video_url, video_id)
            except asyncio.CancelledError:
                await self.purge_remote(video_id)
                raise
            except Exception as e:
                await self.purge_remote(video_id)
                error = self.stage_error(e, video_id=video_id)
                self.log_with_context(
                    f"Acquisition failed: {error.message}",
                    level="ERROR",
                    extra_context={"video_id": video_id, "category": error.category.value},
                )
                if error is e:
                    raise
                raise error from e
            finally:
                self.remove_local(video_id)

        return chunks

    async def _acquire(self, video_url: str, video_id: str) -> List[AudioChunk]:
        source = await self._download(video_url, video_id)
        self._verify_size(source, video_id)

        if self.stage_source_audio:
            await self.storage.put(staging_prefix(video_id) + source.name, source)

        chunk_paths = await self.segmenter(
            source, self.work_dir, video_id,
            chunk_seconds=self.chunk_seconds, ffmpeg_path=self.ffmpeg_path,
        )
        if not chunk_paths:
            raise IntegrityFailureError(
                "Segmentation produced no audio chunks", video_id=video_id, stage="segment"
            )
        if len(chunk_paths) == 1:
            self.log_with_context(
                "Only one audio chunk created; video may be short or segmentation failed",
                level="WARNING",
                extra_context={"video_id": video_id},
            )

        chunks = await self._stage_chunks(video_id, chunk_paths)
        self.log_with_context(
            f"Staged {len(chunks)} chunks",
            extra_context={"video_id": video_id},
        )
        return chunks

    async def _download(self, video_url: str, video_id: str) -> Path:
        state = {"cookies": self.downloader.has_cookies, "dropped": False}

        def retryable(error: BaseException) -> bool:
            if getattr(error, "category", None) is ErrorCategory.UNAVAILABLE_CONTENT:
                state["dropped"] = False
                return False
            # A cookie rejection earns one extra try without cookies
            if state["dropped"]:
                state["dropped"] = False
                return True
            return is_retryable(error)

        async def attempt(n: int) -> Path:
            user_agent = next(self._user_agents)
            self.log_with_context(
                f"Download attempt {n}/{self.max_attempts}",
                level="DEBUG",
                extra_context={"video_id": video_id, "cookies": state["cookies"]},
            )
            try:
                return await self.downloader.download(
                    video_url,
                    self.work_dir,
                    chunk_prefix(video_id),
                    user_agent=user_agent,
                    use_cookies=state["cookies"],
                )
            except Exception as e:
                if state["cookies"] and is_cookie_error(e):
                    self.log_with_context(
                        "Cookie-related error, retrying without cookies",
                        level="WARNING",
                        extra_context={"video_id": video_id},
                    )
                    state["cookies"] = False
                    state["dropped"] = True
                raise

        policy = RetryPolicy(
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            is_retryable_error=retryable,
            sleep=self.sleep,
            name="download",
        )
        return await policy.run(attempt, video_id=video_id, stage="download")

    def _verify_size(self, source: Path, video_id: str) -> None:
        size = source.stat().st_size if source.exists() else 0
        if size < self.min_audio_bytes:
            raise IntegrityFailureError(
                f"Incomplete download: {size} bytes (minimum {self.min_audio_bytes})",
                video_id=video_id,
                stage="verify",
            )

    async def _stage_chunks(self, video_id: str, chunk_paths: List[Path]) -> List[AudioChunk]:
        semaphore = asyncio.Semaphore(self.staging_concurrency)

        async def stage(sequence_index: int, path: Path) -> AudioChunk:
            async with semaphore:
                key = await self.storage.put(staging_prefix(video_id) + path.name, path)
            return AudioChunk(video_id=video_id, sequence_index=sequence_index, storage_key=key)

        tasks = [
            asyncio.create_task(stage(index, path))
            for index, path in enumerate(chunk_paths)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _pre_clean(self, video_id: str) -> None:
        removed = self.remove_local(video_id)
        purged = await self.purge_remote(video_id)
        if removed or purged:
            self.log_with_context(
                "Removed stale artifacts",
                extra_context={"video_id": video_id, "local": removed, "remote": purged},
            )

    def remove_local(self, video_id: str) -> int:
        """Delete this video's files in the work directory. Returns the count."""
        if not self.work_dir.exists():
            return 0

        removed = 0
        for path in self.work_dir.iterdir():
            if not (path.is_file() and belongs_to_video(path.name, video_id)):
                continue
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                self.log_with_context(
                    f"Failed to delete local file {path.name}: {e}",
                    level="WARNING",
                    extra_context={"video_id": video_id},
                )
        return removed

    async def purge_remote(self, video_id: str) -> int:
        """Delete every staged object for video_id, retrying transient failures."""
        policy = RetryPolicy(
            max_attempts=3,
            backoff=lambda attempt, error: 1.0,
            is_retryable_error=lambda error: True,
            sleep=self.sleep,
            name="cleanup",
        )
        try:
            return await policy.run(
                lambda attempt: self.storage.delete_prefix(staging_prefix(video_id)),
                video_id=video_id,
                stage="cleanup",
            )
        except Exception as e:
            self.log_with_context(
                f"Failed to purge staged objects: {e}",
                level="ERROR",
                extra_context={"video_id": video_id, "prefix": staging_prefix(video_id)},
            )
            return 0

    async def release(self, video_id: str, chunks: Iterable[AudioChunk] = ()) -> None:
        """
        End-of-run cleanup: purge remote staging and local files for
        video_id, and mark every chunk DELETED.
        """
        for chunk in chunks:
            if chunk.local_path is not None:
                Path(chunk.local_path).unlink(missing_ok=True)
            chunk.mark_deleted()
        await self.purge_remote(video_id)
        self.remove_local(video_id)
