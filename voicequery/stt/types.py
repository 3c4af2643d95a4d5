"""
voicequery/stt/types.py
========================
Transcript Types — VoiceQuery

Shared data types produced by every inference backend.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class TranscriptSegment:
    """A single time-aligned text segment."""

    segment_id: int
    start: float  # seconds from the start of the buffer
    end: float
    text: str
    confidence: float  # 0.0-1.0
    language: str

    def to_dict(self) -> dict:
        return {
            "segment_id": self.segment_id,
            "start_time": self.start,
            "end_time": self.end,
            "text": self.text,
            "confidence": self.confidence,
            "language": self.language,
        }


@dataclass(frozen=True)
class TranscriptionResult:
    """Ordered segments of one transcription plus the detected language."""

    segments: List[TranscriptSegment] = field(default_factory=list)
    detected_language: str = "unknown"

    @property
    def text(self) -> str:
        """Segment texts joined by single spaces, empty segments skipped."""
        return " ".join(seg.text for seg in self.segments if seg.text)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "detected_language": self.detected_language,
            "segments": [seg.to_dict() for seg in self.segments],
        }


def build_segments(raw_segments, default_language: str) -> List[TranscriptSegment]:
    """
    Normalize (start, end, text, confidence) tuples into TranscriptSegments.

    Text is stripped, confidence clamped to [0, 1], and start and
    end offsets are kept monotonically non-decreasing across the sequence.
    """
    segments: List[TranscriptSegment] = []
    last_start = 0.0
    last_end = 0.0
    for start, end, text, confidence in raw_segments:
        start = max(float(start), last_start)
        end = max(float(end), start, last_end)
        last_start = start
        last_end = end
        segments.append(
            TranscriptSegment(
                segment_id=len(segments),
                start=start,
                end=end,
                text=(text or "").strip(),
                confidence=min(max(float(confidence), 0.0), 1.0),
                language=default_language,
            )
        )
    return segments
