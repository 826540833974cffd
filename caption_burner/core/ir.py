"""Intermediate representation dataclasses for timed captions.

WHY: Captions arrive from several places — the segmenter (derived from
raw transcript text), HTTP clients (hand-timed segments), and CLI JSON
files. The compiler and the export pipeline need one well-typed form that
all of them consume, decoupling ingestion from rendering.

HOW: Two dataclasses:
  CaptionSegment  — one timed caption (text + start/end seconds)
  SegmentOptions  — timing knobs for deriving segments from text

RULES:
- All times are float seconds from the start of the video
- A segment is renderable only if 0 <= start_time < end_time and its text
  is non-empty after stripping; non-renderable segments are dropped by the
  compiler, never repaired
- from_dict() accepts camelCase (startTime) and snake_case (start_time) keys
- to_dict() always emits snake_case
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_CONFIDENCE = 0.9
"""Confidence assigned to segments whose timing was derived, not recognized."""


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key's value from data."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class CaptionSegment:
    """A single timed caption.

    WHY: Every stage of the pipeline — segmentation, SRT/ASS compilation,
    job validation — speaks in terms of timed text blocks.

    HOW: Plain dataclass. Construct directly or via from_dict() for
    loosely shaped JSON input.

    RULES:
    - id: unique within one caption list (not globally)
    - text: may contain literal newlines (rendered as line breaks)
    - start_time / end_time: float seconds
    - confidence: 0.0–1.0; DEFAULT_CONFIDENCE for derived timing
    """

    id: str
    text: str
    start_time: float
    end_time: float
    confidence: float = DEFAULT_CONFIDENCE

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_renderable(self) -> bool:
        """True if the segment satisfies the rendering invariant."""
        return (
            bool(self.text and self.text.strip())
            and self.start_time >= 0
            and self.end_time > self.start_time
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: Optional[int] = None) -> CaptionSegment:
        """Parse a CaptionSegment from a JSON-like dict.

        WHY: Clients send either the camelCase wire shape
        ({"startTime": 1.0}) or Python-style snake_case. Both are accepted.

        HOW: Looks up each field under its accepted spellings. A missing
        id is synthesized from the list index.

        RULES:
        - text defaults to "" (the segment is then non-renderable)
        - start/end must be numeric; ValueError otherwise
        - Missing id → "caption-{index + 1}" (or "caption" without index)

        Raises:
            ValueError: If start or end time is missing or not numeric.
        """
        start = _pick(data, "start_time", "startTime", "start")
        end = _pick(data, "end_time", "endTime", "end")
        if start is None or end is None:
            raise ValueError("Caption segment is missing startTime/endTime: {!r}".format(data))
        try:
            start_f = float(start)
            end_f = float(end)
        except (TypeError, ValueError):
            raise ValueError("Caption segment times must be numbers: {!r}".format(data))

        seg_id = _pick(data, "id")
        if seg_id is None:
            seg_id = "caption-{}".format(index + 1) if index is not None else "caption"

        return cls(
            id=str(seg_id),
            text=str(_pick(data, "text", default="")),
            start_time=start_f,
            end_time=end_f,
            confidence=float(_pick(data, "confidence", default=DEFAULT_CONFIDENCE)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "confidence": self.confidence,
        }


@dataclass
class SegmentOptions:
    """Timing options for deriving caption segments from raw text.

    RULES:
    - max_segment_duration: upper bound on each segment's duration (seconds)
    - min_segment_duration: accepted for compatibility, not enforced
    - words_per_minute: reading speed used to size each segment
    """

    max_segment_duration: float = 5.0
    min_segment_duration: float = 1.0
    words_per_minute: float = 150.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> SegmentOptions:
        """Build options from camelCase or snake_case keys, defaults for the rest."""
        data = data or {}
        defaults = cls()
        return cls(
            max_segment_duration=float(_pick(
                data, "max_segment_duration", "maxSegmentDuration",
                default=defaults.max_segment_duration,
            )),
            min_segment_duration=float(_pick(
                data, "min_segment_duration", "minSegmentDuration",
                default=defaults.min_segment_duration,
            )),
            words_per_minute=float(_pick(
                data, "words_per_minute", "wordsPerMinute", "wordPerMinute",
                default=defaults.words_per_minute,
            )),
        )
