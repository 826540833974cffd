"""Derive caption timing from a raw transcript.

WHY: Many clients only have the spoken text (a script, a pasted
transcript) and no word timings. Burn-in still needs timed cues, so we
lay the words out at a reading pace across the video duration.

HOW: Greedy fixed-size chunking, not a linguistic split:
  1. Split the transcript on whitespace.
  2. Aim for ceil(duration / max_segment_duration) segments and put
     ceil(words / target) consecutive words in each.
  3. Size each chunk by reading time (words / wpm * 60), at least 1s and
     at most max_segment_duration.
  4. Lay the chunks back-to-back from 0, clipping at the video duration
     and dropping chunks that no longer fit.

RULES:
- Output is deterministic for identical inputs (ids included)
- Segments are contiguous: segments[i + 1].start_time == segments[i].end_time
- The last end_time never exceeds total_duration
- min_segment_duration is accepted but not enforced as a floor
- Empty transcript → [] (not an error); total_duration <= 0 → []
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from caption_burner.core.ir import DEFAULT_CONFIDENCE, CaptionSegment, SegmentOptions

logger = logging.getLogger(__name__)

MIN_READING_SECONDS = 1.0


def split_words(transcript: str) -> List[str]:
    """Split a transcript into whitespace-delimited words."""
    return transcript.split()


def chunk_words(words: List[str], total_duration: float, max_segment_duration: float) -> List[List[str]]:
    """Group words into evenly sized consecutive chunks.

    WHY: The target segment count comes from the video duration, so long
    videos get more, shorter caption blocks.

    RULES:
    - Original word order is preserved
    - Every chunk except possibly the last has the same size
    """
    if not words:
        return []
    target_count = max(1, math.ceil(total_duration / max_segment_duration))
    per_segment = max(1, math.ceil(len(words) / target_count))
    return [words[i:i + per_segment] for i in range(0, len(words), per_segment)]


def reading_time(word_count: int, words_per_minute: float) -> float:
    """Seconds needed to read word_count words, never less than one second."""
    return max(word_count / words_per_minute * 60.0, MIN_READING_SECONDS)


def segment_transcript(
    transcript: str,
    total_duration: float,
    options: Optional[SegmentOptions] = None,
) -> List[CaptionSegment]:
    """Turn a transcript into back-to-back timed caption segments.

    Args:
        transcript: Raw text; any whitespace separates words.
        total_duration: Video duration in seconds.
        options: Timing options; defaults to SegmentOptions().

    Returns:
        Ordered, contiguous CaptionSegment list with ids caption-1, caption-2, ...

    Raises:
        ValueError: If max_segment_duration or words_per_minute is not positive.
    """
    opts = options or SegmentOptions()
    if opts.max_segment_duration <= 0:
        raise ValueError("max_segment_duration must be positive")
    if opts.words_per_minute <= 0:
        raise ValueError("words_per_minute must be positive")

    words = split_words(transcript or "")
    if not words or total_duration <= 0:
        return []

    segments: List[CaptionSegment] = []
    current = 0.0
    for chunk in chunk_words(words, total_duration, opts.max_segment_duration):
        duration = min(
            reading_time(len(chunk), opts.words_per_minute),
            opts.max_segment_duration,
        )
        end = min(current + duration, total_duration)
        if end <= current:
            continue
        segments.append(CaptionSegment(
            id="caption-{}".format(len(segments) + 1),
            text=" ".join(chunk),
            start_time=current,
            end_time=end,
            confidence=DEFAULT_CONFIDENCE,
        ))
        current = end

    dropped = len(words) - sum(len(s.text.split()) for s in segments)
    if dropped:
        logger.info(
            "Transcript overflows %.2fs video: %d trailing words not captioned",
            total_duration, dropped,
        )
    return segments
