"""
TranscriptStore - persisted, expiring transcript records keyed by video id.

The store is the single source of truth for "already resolved" transcripts.
Uniqueness on video_id is enforced by the database; a losing concurrent
writer gets DuplicateTranscriptError and is expected to re-read the winner.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from core.database import DatabaseManager, TranscriptRecord
from core.errors import DuplicateTranscriptError
from core.models import Transcript, TranscriptSource

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TranscriptStore:
    """Async key-value store of transcripts with a fixed retention window."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        retention_days: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.db_manager = db_manager
        self.retention = timedelta(days=retention_days)
        self.clock = clock

    async def get(self, video_id: str) -> Optional[Transcript]:
        """Return the live (unexpired) transcript for video_id, if any."""
        async with self.db_manager.get_session() as session:
            result = await session.execute(
                select(TranscriptRecord).where(
                    TranscriptRecord.video_id == video_id,
                    TranscriptRecord.expires_at > self.clock(),
                )
            )
            record = result.scalar_one_or_none()

        if record is None:
            return None
        return self._to_transcript(record)

    async def create(self, video_id: str, transcript: Transcript) -> Transcript:
        """
        Persist a transcript for video_id.

        An expired record for the same video is replaced. A live record makes
        this call fail with DuplicateTranscriptError.
        """
        now = self.clock()
        try:
            async with self.db_manager.get_session() as session:
                await session.execute(
                    delete(TranscriptRecord).where(
                        TranscriptRecord.video_id == video_id,
                        TranscriptRecord.expires_at <= now,
                    )
                )
                session.add(TranscriptRecord(
                    video_id=video_id,
                    segments=transcript.to_records(),
                    source=transcript.source.value,
                    language=transcript.language,
                    created_at=now,
                    expires_at=now + self.retention,
                ))
        except IntegrityError as e:
            raise DuplicateTranscriptError(
                f"Transcript already stored for {video_id}",
                video_id=video_id,
                stage="persist",
            ) from e

        logger.info(
            f"Stored {transcript.source.value} transcript for {video_id} "
            f"({len(transcript)} segments)"
        )
        return transcript

    async def delete(self, video_id: str) -> bool:
        async with self.db_manager.get_session() as session:
            result = await session.execute(
                delete(TranscriptRecord).where(TranscriptRecord.video_id == video_id)
            )
        return result.rowcount > 0

    async def purge_expired(self) -> int:
        """Remove every expired record. Returns the number removed."""
        async with self.db_manager.get_session() as session:
            result = await session.execute(
                delete(TranscriptRecord).where(TranscriptRecord.expires_at <= self.clock())
            )
        if result.rowcount:
            logger.info(f"Purged {result.rowcount} expired transcripts")
        return result.rowcount

    @staticmethod
    def _to_transcript(record: TranscriptRecord) -> Transcript:
        return Transcript.from_records(
            record.segments,
            source=TranscriptSource(record.source),
            language=record.language,
        )
