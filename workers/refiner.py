"""
TextRefiner - best-effort grammar and spelling correction of a synthesized
transcript, plus re-slicing of the corrected text onto the timed segments.
"""

import asyncio
from typing import List, Optional, Protocol, Sequence

from core.models import TranscriptSegment
from workers.base import BaseStage


class TextCorrector(Protocol):
    async def correct(self, text: str, context_title: str = "") -> str:
        ...


def repartition(segments: Sequence[TranscriptSegment], refined_text: str) -> List[TranscriptSegment]:
    """
    Slice refined_text back onto the original segments, in order.

    Cut points sit at each segment's end position in the space-joined
    original text, scaled by len(refined) / len(original). Timing is kept;
    the last segment absorbs any remainder. When the refined text equals the
    original the segments come back unchanged.

    Known limitation: when correction changes length unevenly, words can
    drift across segment boundaries.
    """
    segments = list(segments)
    if not segments:
        return []

    original_text = " ".join(segment.text for segment in segments)
    if refined_text == original_text:
        return segments

    scale = len(refined_text) / len(original_text) if original_text else 0.0

    pieces = []
    start = 0
    position = 0
    for index, segment in enumerate(segments):
        position += len(segment.text)
        if index == len(segments) - 1:
            end = len(refined_text)
        else:
            end = min(max(round(position * scale), start), len(refined_text))
            position += 1  # joining space
        pieces.append(refined_text[start:end].strip())
        start = end

    return [
        TranscriptSegment(text=piece, offset_ms=segment.offset_ms, duration_ms=segment.duration_ms)
        for segment, piece in zip(segments, pieces)
    ]


class TextRefiner(BaseStage):
    """
    One correction call over the whole transcript text.

    Never fails the pipeline: a disabled refiner, a timeout, an error or an
    empty answer all return the input text unchanged.
    """

    def __init__(
        self,
        client: Optional[TextCorrector],
        timeout: float = 60.0,
        enabled: bool = True,
    ) -> None:
        super().__init__("refine")
        self.client = client
        self.timeout = timeout
        self.enabled = enabled and client is not None

    async def refine(self, text: str, context_title: str = "") -> str:
        if not self.enabled or not text.strip():
            return text

        try:
            refined = await asyncio.wait_for(
                self.client.correct(text, context_title), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            self.log_with_context(
                f"Refinement timed out after {self.timeout}s, keeping raw text", level="WARNING"
            )
            return text
        except Exception as e:
            self.log_with_context(
                f"Refinement failed, keeping raw text: {e}",
                level="WARNING",
                extra_context={"error_type": e.__class__.__name__},
            )
            return text

        if not refined or not refined.strip():
            self.log_with_context("Refinement returned empty text, keeping raw text", level="WARNING")
            return text

        self.log_with_context(
            "Refined transcript received",
            extra_context={"raw_chars": len(text), "refined_chars": len(refined.strip())},
        )
        return refined.strip()

    repartition = staticmethod(repartition)
