"""
Audio preprocessing stage: fetch a staged chunk and condition it for speech
recognition (voice band-pass plus 16-bit PCM WAV).
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, List

from core.audio_tools import preprocess_audio
from core.errors import PreprocessingError
from core.models import AudioChunk, ChunkState
from core.object_storage import ObjectStorage
from workers.base import BaseStage

Preprocess = Callable[..., Awaitable[Path]]


class AudioPreprocessor(BaseStage):
    """Per-chunk conditioning with bounded parallelism across chunks."""

    def __init__(
        self,
        storage: ObjectStorage,
        concurrency: int = 4,
        ffmpeg_path: str = "ffmpeg",
        preprocess: Preprocess = preprocess_audio,
    ) -> None:
        super().__init__("preprocess")
        self.storage = storage
        self.concurrency = concurrency
        self.ffmpeg_path = ffmpeg_path
        self.preprocess = preprocess

    async def process(self, chunk: AudioChunk, work_dir: Path) -> AudioChunk:
        """
        Fetch and filter one chunk. On success the chunk is PREPROCESSED and
        local_path points at the processed file; the raw copy is removed.

        Raises:
            PreprocessingError: fetch or ffmpeg failure
        """
        work_dir = Path(work_dir)
        raw_path = work_dir / chunk.name
        processed_path = work_dir / f"{raw_path.stem}_preprocessed.wav"

        try:
            await self.storage.get(chunk.storage_key, raw_path)
            await self.preprocess(raw_path, processed_path, ffmpeg_path=self.ffmpeg_path)
        except asyncio.CancelledError:
            processed_path.unlink(missing_ok=True)
            raise
        except Exception as e:
            processed_path.unlink(missing_ok=True)
            raise PreprocessingError(
                f"Preprocessing failed for {chunk.name}: {e}",
                video_id=chunk.video_id,
                stage=self.name,
            ) from e
        finally:
            raw_path.unlink(missing_ok=True)

        chunk.local_path = processed_path
        chunk.state = ChunkState.PREPROCESSED
        self.log_with_context(
            f"Preprocessed {chunk.name}",
            level="DEBUG",
            extra_context={"video_id": chunk.video_id, "sequence": chunk.sequence_index},
        )
        return chunk

    async def process_all(self, chunks: List[AudioChunk], work_dir: Path) -> List[AudioChunk]:
        """Process every chunk concurrently, preserving order. First failure cancels the rest."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(chunk: AudioChunk) -> AudioChunk:
            async with semaphore:
                return await self.process(chunk, work_dir)

        tasks = [asyncio.create_task(bounded(chunk)) for chunk in chunks]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
