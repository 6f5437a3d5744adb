"""
ffmpeg helpers for chunk segmentation and speech preprocessing.

Both operations shell out to the ffmpeg executable through asyncio
subprocesses and are bounded by a timeout.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

from core.models import chunk_prefix

logger = logging.getLogger(__name__)

SPEECH_FILTER_CHAIN = "volume=1.0,highpass=f=200,lowpass=f=3000"
SPEECH_CODEC = "pcm_s16le"


class FFmpegError(Exception):
    """ffmpeg exited non-zero or could not be started"""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


async def run_ffmpeg(args: Sequence[str], ffmpeg_path: str = "ffmpeg",
                     timeout: Optional[float] = 300.0) -> None:
    """Run ffmpeg with args, raising FFmpegError on failure."""
    cmd = [ffmpeg_path, "-hide_banner", "-loglevel", "error", "-y", *args]
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise FFmpegError(f"ffmpeg executable not found: {ffmpeg_path}") from e

    try:
        _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise FFmpegError(f"ffmpeg timed out after {timeout}s")

    if process.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip()
        raise FFmpegError(
            f"ffmpeg exited with code {process.returncode}: {message[-500:]}",
            returncode=process.returncode,
            stderr=message,
        )


def list_chunk_files(directory: Path, video_id: str) -> List[Path]:
    """
    Chunk files for one video in sequence order.

    Only names of the exact form audio_{video_id}_{NNN}.wav match, so other
    videos' artifacts in the same directory are never picked up.
    """
    pattern = re.compile(rf"^{re.escape(chunk_prefix(video_id))}_(\d{{3,}})\.wav$")
    if not directory.exists():
        return []

    matches = []
    for path in directory.iterdir():
        match = pattern.match(path.name)
        if match and path.is_file():
            matches.append((int(match.group(1)), path))
    return [path for _, path in sorted(matches)]


async def segment_audio(
    source: Path,
    output_dir: Path,
    video_id: str,
    chunk_seconds: int = 60,
    ffmpeg_path: str = "ffmpeg",
    timeout: Optional[float] = 600.0,
) -> List[Path]:
    """Split source into fixed-duration WAV chunks, returned in order."""
    output_dir.mkdir(parents=True, exist_ok=True)
    output_pattern = output_dir / f"{chunk_prefix(video_id)}_%03d.wav"

    await run_ffmpeg(
        [
            "-i", str(source),
            "-f", "segment",
            "-segment_time", str(chunk_seconds),
            "-c:a", SPEECH_CODEC,
            str(output_pattern),
        ],
        ffmpeg_path=ffmpeg_path,
        timeout=timeout,
    )
    return list_chunk_files(output_dir, video_id)


async def preprocess_audio(
    source: Path,
    destination: Path,
    ffmpeg_path: str = "ffmpeg",
    timeout: Optional[float] = 120.0,
) -> Path:
    """Band-limit to the voice range and normalize to 16-bit PCM WAV."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    await run_ffmpeg(
        [
            "-i", str(source),
            "-af", SPEECH_FILTER_CHAIN,
            "-c:a", SPEECH_CODEC,
            str(destination),
        ],
        ffmpeg_path=ffmpeg_path,
        timeout=timeout,
    )
    return destination
