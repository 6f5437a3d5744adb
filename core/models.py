"""
Domain data model for transcripts and audio chunks.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple


class TranscriptSource(Enum):
    CAPTIONS = "captions"
    WHISPER = "whisper"


@dataclass(frozen=True)
class TranscriptSegment:
    """One timed text span. Times are in milliseconds."""
    text: str
    offset_ms: float
    duration_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "offset": self.offset_ms, "duration": self.duration_ms}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSegment":
        offset = data.get("offset", data.get("offset_ms", 0))
        duration = data.get("duration", data.get("duration_ms", 0))
        return cls(text=data.get("text", ""), offset_ms=float(offset), duration_ms=float(duration))


@dataclass(frozen=True)
class Transcript:
    """
    Ordered, immutable sequence of segments.

    offset_ms is non-decreasing across the sequence; segments may overlap.
    Equality only looks at the segments, so a transcript read back from the
    store compares equal to the one that was written.
    """
    segments: Tuple[TranscriptSegment, ...]
    source: TranscriptSource = field(default=TranscriptSource.CAPTIONS, compare=False)
    language: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        # Accept any iterable, store a tuple
        object.__setattr__(self, "segments", tuple(self.segments))

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    def __getitem__(self, index: int) -> TranscriptSegment:
        return self.segments[index]

    @property
    def text(self) -> str:
        return " ".join(segment.text for segment in self.segments)

    def is_ordered(self) -> bool:
        return all(
            a.offset_ms <= b.offset_ms
            for a, b in zip(self.segments, self.segments[1:])
        )

    def to_records(self) -> List[Dict[str, Any]]:
        return [segment.to_dict() for segment in self.segments]

    @classmethod
    def from_records(
        cls,
        records: Iterable[Dict[str, Any]],
        source: TranscriptSource = TranscriptSource.CAPTIONS,
        language: Optional[str] = None,
    ) -> "Transcript":
        return cls(
            segments=tuple(TranscriptSegment.from_dict(r) for r in records),
            source=source,
            language=language,
        )


class ChunkState(Enum):
    RAW = "raw"
    PREPROCESSED = "preprocessed"
    TRANSCRIBED = "transcribed"
    DELETED = "deleted"


@dataclass
class AudioChunk:
    """A fixed-duration slice of a video's audio, owned by one pipeline run."""
    video_id: str
    sequence_index: int
    local_path: Optional[Path] = None
    storage_key: Optional[str] = None
    state: ChunkState = ChunkState.RAW

    @property
    def name(self) -> str:
        return chunk_file_name(self.video_id, self.sequence_index)

    def mark_deleted(self) -> None:
        self.local_path = None
        self.state = ChunkState.DELETED


@dataclass(frozen=True)
class RecognizedSegment:
    """One segment as returned by the speech-to-text service, in seconds."""
    text: str
    start_sec: float
    end_sec: float
    avg_logprob: float = 0.0
    no_speech_prob: float = 0.0


@dataclass(frozen=True)
class ChunkTranscription:
    """Retained segments for one chunk, in chunk-relative time."""
    sequence_index: int
    segments: Tuple[RecognizedSegment, ...] = ()


@dataclass(frozen=True)
class VideoMetadata:
    video_id: str
    title: str = ""
    description: str = ""


def chunk_prefix(video_id: str) -> str:
    """Name prefix shared by every artifact that belongs to one video."""
    return f"audio_{video_id}"


def chunk_file_name(video_id: str, sequence_index: int, suffix: str = ".wav") -> str:
    return f"{chunk_prefix(video_id)}_{sequence_index:03d}{suffix}"


def belongs_to_video(name: str, video_id: str) -> bool:
    """True if a file or object name was produced for this video."""
    prefix = chunk_prefix(video_id)
    return name.startswith(prefix + "_") or name.startswith(prefix + ".")


def canonical_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
