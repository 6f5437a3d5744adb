"""
OffsetStitcher - merges per-chunk recognition results into one transcript
expressed in whole-video time.
"""

import logging
from typing import Iterable, List, Optional

from core.models import ChunkTranscription, Transcript, TranscriptSegment, TranscriptSource

logger = logging.getLogger(__name__)


class OffsetStitcher:
    """
    Accumulates a running offset across chunks.

    After each chunk the offset advances by the end time of the chunk's last
    retained segment, or by the nominal chunk duration when nothing was
    retained, so an empty chunk never freezes the timeline.
    """

    def __init__(self, chunk_duration_seconds: float = 60.0):
        self.chunk_duration_seconds = chunk_duration_seconds

    def stitch(self, chunk_results: Iterable[ChunkTranscription],
               language: Optional[str] = None) -> Transcript:
        offset = 0.0
        segments: List[TranscriptSegment] = []

        for result in sorted(chunk_results, key=lambda r: r.sequence_index):
            ordered = sorted(result.segments, key=lambda s: s.start_sec)
            for segment in ordered:
                segments.append(TranscriptSegment(
                    text=segment.text,
                    offset_ms=(segment.start_sec + offset) * 1000,
                    duration_ms=max(segment.end_sec - segment.start_sec, 0.0) * 1000,
                ))

            if ordered:
                last = ordered[-1]
                offset += max(last.end_sec, last.start_sec)
            else:
                offset += self.chunk_duration_seconds

        logger.debug(f"Stitched {len(segments)} segments, final offset {offset:.1f}s")
        return Transcript(segments=tuple(segments), source=TranscriptSource.WHISPER, language=language)
