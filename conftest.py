"""
Shared fakes and fixtures for the pipeline test suites.

Every external collaborator (caption source, yt-dlp, ffmpeg, speech and
text services) is replaced by an in-process fake that records its calls.
The transcript store is real, backed by a temp-file SQLite database.
"""

import shutil
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from core.captions import CaptionFetcher
from core.database import DatabaseManager
from core.models import RecognizedSegment, chunk_prefix
from core.object_storage import LocalObjectStorage
from core.transcript_store import TranscriptStore
from workers.audio_acquirer import AudioAcquirer
from workers.audio_preprocessor import AudioPreprocessor
from workers.orchestrator import PipelineOrchestrator
from workers.refiner import TextRefiner
from workers.stitcher import OffsetStitcher
from workers.transcriber import SpeechTranscriber


class CaptionsNotFound(Exception):
    pass


class FakeCaptionSource:
    def __init__(self, tracks: Optional[Dict[str, List[dict]]] = None):
        self.tracks = tracks or {}
        self.calls = []

    def fetch(self, video_id, language):
        self.calls.append((video_id, language))
        if language not in self.tracks:
            raise CaptionsNotFound(f"No transcript found for {video_id} in {language}")
        return self.tracks[language]


class FakeDownloader:
    """Writes a file of `size` bytes, or raises the next scripted error."""

    def __init__(self, size: int = 4096, errors=None, has_cookies: bool = False):
        self.size = size
        self.errors = list(errors or [])
        self.has_cookies = has_cookies
        self.calls = []

    async def download(self, url, output_dir, file_stem, user_agent=None, use_cookies=True):
        self.calls.append({"url": url, "user_agent": user_agent, "use_cookies": use_cookies})
        if self.errors:
            raise self.errors.pop(0)
        path = Path(output_dir) / f"{file_stem}.mp3"
        path.write_bytes(b"\0" * self.size)
        return path


class FakeSegmenter:
    def __init__(self, chunk_count: int = 2, error: Optional[Exception] = None):
        self.chunk_count = chunk_count
        self.error = error
        self.calls = 0

    async def __call__(self, source, output_dir, video_id, chunk_seconds=60, ffmpeg_path="ffmpeg"):
        self.calls += 1
        if self.error is not None:
            raise self.error
        paths = []
        for index in range(self.chunk_count):
            path = Path(output_dir) / f"{chunk_prefix(video_id)}_{index:03d}.wav"
            path.write_bytes(b"RIFF" + bytes([index]) * 64)
            paths.append(path)
        return paths


class FakePreprocess:
    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.calls = []

    async def __call__(self, source, destination, ffmpeg_path="ffmpeg"):
        self.calls.append(Path(source).name)
        if self.fail_on and self.fail_on in Path(source).name:
            raise RuntimeError("ffmpeg exited with code 1: Invalid data found")
        shutil.copyfile(source, destination)
        return destination


class FakeSpeechClient:
    """
    Returns scripted results in call order. Each script item is a list of
    RecognizedSegment or an exception to raise. When the script runs out,
    `default` is returned.
    """

    def __init__(self, script=None, default=None):
        self.script = list(script or [])
        self.default = default if default is not None else []
        self.calls = []

    async def transcribe(self, audio_path, language=None, prompt=None):
        self.calls.append({
            "file": Path(audio_path).name,
            "existed": Path(audio_path).exists(),
            "language": language,
            "prompt": prompt,
        })
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        return item


class FakeTextClient:
    def __init__(self, result: Optional[str] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = []

    async def correct(self, text, context_title=""):
        self.calls.append((text, context_title))
        if self.error is not None:
            raise self.error
        return text if self.result is None else self.result


class FakeMetadata:
    def __init__(self, title: str = "Test Video"):
        self.title = title
        self.calls = []

    async def fetch(self, video_id):
        from core.models import VideoMetadata
        self.calls.append(video_id)
        return VideoMetadata(video_id=video_id, title=self.title)


async def no_sleep(delay):
    return None


def segment(text, start, end, avg_logprob=-0.1, no_speech_prob=0.05):
    return RecognizedSegment(text=text, start_sec=start, end_sec=end,
                             avg_logprob=avg_logprob, no_speech_prob=no_speech_prob)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'transcripts.db'}"


@pytest.fixture
def make_store(database_url):
    """Factory: each call returns a store with its own DatabaseManager on the same file."""
    def factory(retention_days=30, clock=None):
        kwargs = {"retention_days": retention_days}
        if clock is not None:
            kwargs["clock"] = clock
        return TranscriptStore(DatabaseManager(database_url), **kwargs)
    return factory


@pytest.fixture
def make_pipeline(tmp_path, make_store):
    """
    Factory wiring a real orchestrator and real stages around fakes.

    Returns a namespace exposing the orchestrator, the store and every fake,
    plus the work and staging directories used by the run.
    """
    def factory(
        caption_tracks=None,
        speech_script=None,
        speech_default=None,
        chunk_count=2,
        downloader=None,
        segmenter=None,
        preprocess=None,
        text_client=None,
        skip_synthesis=False,
        store=None,
        fallback_languages=None,
    ):
        work_dir = tmp_path / "work"
        staging_dir = tmp_path / "staging"
        storage = LocalObjectStorage(staging_dir)

        caption_source = FakeCaptionSource(caption_tracks)
        downloader = downloader or FakeDownloader()
        segmenter = segmenter or FakeSegmenter(chunk_count)
        preprocess = preprocess or FakePreprocess()
        speech = FakeSpeechClient(speech_script, speech_default)
        text_client = text_client or FakeTextClient()
        metadata = FakeMetadata()
        store = store or make_store()

        acquirer = AudioAcquirer(
            downloader=downloader,
            storage=storage,
            work_dir=work_dir,
            min_audio_bytes=1024,
            max_attempts=3,
            segmenter=segmenter,
            sleep=no_sleep,
        )
        orchestrator = PipelineOrchestrator(
            store=store,
            captions=CaptionFetcher(caption_source, fallback_languages=fallback_languages),
            acquirer=acquirer,
            preprocessor=AudioPreprocessor(storage, concurrency=2, preprocess=preprocess),
            transcriber=SpeechTranscriber(speech, timeout=5.0, max_attempts=3, sleep=no_sleep),
            stitcher=OffsetStitcher(60),
            refiner=TextRefiner(text_client, timeout=5.0),
            metadata=metadata,
            skip_synthesis=skip_synthesis,
            preferred_language="en",
            work_dir=work_dir,
        )
        return SimpleNamespace(
            orchestrator=orchestrator,
            store=store,
            storage=storage,
            caption_source=caption_source,
            downloader=downloader,
            segmenter=segmenter,
            preprocess=preprocess,
            speech=speech,
            text_client=text_client,
            metadata=metadata,
            work_dir=work_dir,
            staging_dir=staging_dir,
        )
    return factory


def leftover_artifacts(pipeline, video_id):
    """Local and staged files still tagged with video_id."""
    local = []
    if pipeline.work_dir.exists():
        local = [p.name for p in pipeline.work_dir.iterdir() if video_id in p.name]
    remote = []
    if pipeline.staging_dir.exists():
        remote = [p.as_posix() for p in pipeline.staging_dir.rglob("*") if video_id in p.name]
    return local + remote
