"""
PipelineOrchestrator - top-level transcript resolution.

cache -> authored captions -> (optional) speech synthesis -> persist

Only one persisted record per video survives concurrent writers; losers
re-read the winner. Within one process, concurrent callers for the same
video share a single run through the in-flight registry.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.captions import CaptionFetcher
from core.errors import (
    DuplicateTranscriptError,
    IntegrityFailureError,
    InvalidInputError,
    UnknownPipelineError,
)
from core.models import (
    AudioChunk,
    ChunkTranscription,
    Transcript,
    TranscriptSource,
    VideoMetadata,
    canonical_watch_url,
)
from core.transcript_store import TranscriptStore
from core.video_metadata import VideoMetadataFetcher
from workers.audio_acquirer import AudioAcquirer
from workers.audio_preprocessor import AudioPreprocessor
from workers.base import BaseStage
from workers.refiner import TextRefiner, repartition
from workers.stitcher import OffsetStitcher
from workers.transcriber import SpeechTranscriber


class PipelineState(Enum):
    CACHE_HIT = "cache_hit"
    PUBLIC_CAPTION_ATTEMPT = "public_caption_attempt"
    WHISPER_FALLBACK = "whisper_fallback"
    PERSISTED = "persisted"
    FAILED = "failed"


def _consume_exception(future: asyncio.Future) -> None:
    # Mark the shared result as retrieved when no other caller joined
    if not future.cancelled():
        future.exception()


class PipelineOrchestrator(BaseStage):
    """
    Resolves a transcript for one video id per call.

    Outcomes: a Transcript, None ("unavailable"), or a raised
    TranscriptPipelineError. With skip_synthesis set, the speech path never
    runs and any unrecovered fault is reported as None instead of raised.
    """

    def __init__(
        self,
        store: TranscriptStore,
        captions: CaptionFetcher,
        acquirer: AudioAcquirer,
        preprocessor: AudioPreprocessor,
        transcriber: SpeechTranscriber,
        stitcher: OffsetStitcher,
        refiner: TextRefiner,
        metadata: Optional[VideoMetadataFetcher] = None,
        skip_synthesis: bool = False,
        preferred_language: str = "en",
        work_dir: Path = Path("temp"),
    ) -> None:
        super().__init__("orchestrator")
        self.store = store
        self.captions = captions
        self.acquirer = acquirer
        self.preprocessor = preprocessor
        self.transcriber = transcriber
        self.stitcher = stitcher
        self.refiner = refiner
        self.metadata = metadata
        self.skip_synthesis = skip_synthesis
        self.preferred_language = preferred_language
        self.work_dir = Path(work_dir)
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._resources: List[Any] = []

    async def fetch(self, video_id: str, language: Optional[str] = None) -> Optional[Transcript]:
        """Resolve the transcript for video_id. See class docstring for outcomes."""
        if not isinstance(video_id, str) or not video_id.strip():
            raise InvalidInputError(f"Invalid video id: {video_id!r}", stage=self.name)
        video_id = video_id.strip()

        running = self._in_flight.get(video_id)
        if running is not None:
            self.log_with_context("Joining in-flight run", extra_context={"video_id": video_id})
            return await asyncio.shield(running)

        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self._in_flight[video_id] = future
        try:
            result = await self._run(video_id, language or self.preferred_language)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(video_id, None)

    async def _run(self, video_id: str, language: str) -> Optional[Transcript]:
        with self._execution_timer(video_id):
            try:
                return await self._resolve(video_id, language)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = self.stage_error(e, video_id=video_id)
                self._transition(PipelineState.FAILED, video_id, {
                    "stage": error.stage,
                    "category": error.category.value,
                    "attempts": error.attempt_count,
                })
                if self.skip_synthesis:
                    self.log_with_context(
                        f"Reporting unavailable after failure: {error.message}",
                        level="WARNING",
                        extra_context={"video_id": video_id},
                    )
                    return None
                if error is e:
                    raise
                raise error from e

    async def _resolve(self, video_id: str, language: str) -> Optional[Transcript]:
        cached = await self.store.get(video_id)
        if cached is not None:
            self._transition(PipelineState.CACHE_HIT, video_id)
            return cached

        self._transition(PipelineState.PUBLIC_CAPTION_ATTEMPT, video_id, {"language": language})
        captions = await self.captions.fetch(video_id, language)
        if captions is not None:
            return await self._persist(video_id, captions)

        self._transition(PipelineState.WHISPER_FALLBACK, video_id)
        if self.skip_synthesis:
            self.log_with_context(
                "No captions and synthesis disabled; reporting unavailable",
                extra_context={"video_id": video_id},
            )
            return None

        transcript = await self._synthesize(video_id, language)
        return await self._persist(video_id, transcript)

    async def _persist(self, video_id: str, transcript: Transcript) -> Transcript:
        """Write transcript; if another writer got there first, return theirs."""
        try:
            await self.store.create(video_id, transcript)
        except DuplicateTranscriptError:
            winner = await self.store.get(video_id)
            if winner is None:
                raise UnknownPipelineError(
                    "Duplicate transcript vanished before it could be re-read",
                    video_id=video_id,
                    stage="persist",
                )
            self._transition(PipelineState.PERSISTED, video_id, {"writer": "concurrent"})
            return winner

        self._transition(PipelineState.PERSISTED, video_id, {
            "source": transcript.source.value,
            "segments": len(transcript),
        })
        return transcript

    async def _synthesize(self, video_id: str, language: str) -> Transcript:
        metadata = await self._fetch_metadata(video_id)
        chunks: List[AudioChunk] = []
        try:
            chunks = await self.acquirer.acquire(canonical_watch_url(video_id))
            await self.preprocessor.process_all(chunks, self.work_dir)

            # Strictly sequential: offsets depend on the previous chunk
            results = []
            for chunk in chunks:
                segments = await self.transcriber.transcribe(
                    chunk, language=language, context_prompt=metadata.title or None
                )
                results.append(ChunkTranscription(chunk.sequence_index, tuple(segments)))

            stitched = self.stitcher.stitch(results, language=language)
            if not len(stitched):
                raise IntegrityFailureError(
                    "Speech recognition produced no usable segments",
                    video_id=video_id,
                    stage="stitch",
                )

            refined_text = await self.refiner.refine(stitched.text, metadata.title)
            return Transcript(
                segments=tuple(repartition(stitched.segments, refined_text)),
                source=TranscriptSource.WHISPER,
                language=language,
            )
        finally:
            await self.acquirer.release(video_id, chunks)

    async def _fetch_metadata(self, video_id: str) -> VideoMetadata:
        if self.metadata is None:
            return VideoMetadata(video_id=video_id)
        return await self.metadata.fetch(video_id)

    def _transition(self, state: PipelineState, video_id: str,
                    context: Optional[Dict[str, Any]] = None) -> None:
        level = "ERROR" if state is PipelineState.FAILED else "INFO"
        self.log_with_context(
            f"-> {state.name}",
            level=level,
            extra_context={"video_id": video_id, **(context or {})},
        )

    def add_resource(self, resource: Any) -> None:
        """Register an object with an async close() to release in close()."""
        self._resources.append(resource)

    async def close(self) -> None:
        for resource in reversed(self._resources):
            await resource.close()
        self._resources.clear()


def build_orchestrator(settings) -> PipelineOrchestrator:
    """Construct every collaborator from settings and wire the pipeline."""
    from core.captions import YouTubeCaptionSource
    from core.database import DatabaseManager
    from core.downloader import YtDlpDownloader
    from core.object_storage import create_object_storage
    from core.retry import exponential_backoff
    from core.speech_client import SpeechToTextClient
    from core.text_client import TextCorrectionClient

    db_manager = DatabaseManager(settings.database_url)
    store = TranscriptStore(db_manager, retention_days=settings.transcript_retention_days)
    storage = create_object_storage(settings)

    acquirer = AudioAcquirer(
        downloader=YtDlpDownloader(
            proxy_url=settings.proxy_url,
            cookies_file=settings.cookies_file,
            ffmpeg_path=settings.ffmpeg_path,
            timeout=settings.download_timeout,
        ),
        storage=storage,
        work_dir=settings.temp_dir,
        chunk_seconds=settings.chunk_duration_seconds,
        min_audio_bytes=settings.min_audio_bytes,
        max_attempts=settings.download_max_attempts,
        backoff=exponential_backoff(
            base=settings.download_backoff_base,
            max_delay=settings.download_backoff_max,
            jitter=True,
        ),
        user_agents=settings.user_agents,
        staging_concurrency=settings.preprocess_concurrency,
        stage_source_audio=settings.stage_source_audio,
        ffmpeg_path=settings.ffmpeg_path,
    )

    speech_client = SpeechToTextClient(
        api_key=settings.stt_api_key,
        base_url=settings.stt_base_url,
        model=settings.stt_model,
    )
    text_client = None
    if settings.refine_enabled:
        text_client = TextCorrectionClient(
            api_key=settings.refine_api_key or settings.stt_api_key,
            base_url=settings.refine_base_url,
            model=settings.refine_model,
            max_tokens=settings.refine_max_tokens,
        )

    orchestrator = PipelineOrchestrator(
        store=store,
        captions=CaptionFetcher(
            YouTubeCaptionSource(proxy_url=settings.proxy_url),
            fallback_languages=settings.fallback_languages,
        ),
        acquirer=acquirer,
        preprocessor=AudioPreprocessor(
            storage=storage,
            concurrency=settings.preprocess_concurrency,
            ffmpeg_path=settings.ffmpeg_path,
        ),
        transcriber=SpeechTranscriber(
            speech_client,
            timeout=settings.stt_timeout,
            max_attempts=settings.stt_max_attempts,
        ),
        stitcher=OffsetStitcher(settings.chunk_duration_seconds),
        refiner=TextRefiner(text_client, timeout=settings.refine_timeout,
                            enabled=settings.refine_enabled),
        metadata=VideoMetadataFetcher(proxy_url=settings.proxy_url),
        skip_synthesis=bool(settings.skip_synthesis),
        preferred_language=settings.preferred_language,
        work_dir=settings.temp_dir,
    )
    orchestrator.add_resource(db_manager)
    orchestrator.add_resource(speech_client)
    if text_client is not None:
        orchestrator.add_resource(text_client)
    return orchestrator
