"""SRT formatter — plain sidecar captions.

WHY: Not every delivery wants burned-in text. SubRip (.srt) is the
lowest-common-denominator sidecar format every player and platform
accepts, so the same timed captions can ship as a toggleable track.

HOW: format_srt() numbers renderable segments from 1 and writes
``HH:MM:SS,mmm --> HH:MM:SS,mmm`` timing lines. Style is ignored — SRT
has no reliable styling.

RULES:
- Same filtering and ordering as the ASS compiler (renderable_segments)
- Cue numbers are 1-based and contiguous after filtering
- Each cue ends with a blank line; empty input → empty string
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from caption_burner.core.ir import CaptionSegment
from caption_burner.formatters.ass import renderable_segments
from caption_burner.formatters.base import BaseFormatter, FormatterOutput


def format_srt_time(seconds: float) -> str:
    """Format seconds as SRT ``HH:MM:SS,mmm``."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3600000)
    minutes, rem = divmod(rem, 60000)
    secs, ms = divmod(rem, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, ms)


def format_srt(segments: Sequence[CaptionSegment]) -> str:
    """Render timed captions as an SRT document."""
    blocks = []
    for index, segment in enumerate(renderable_segments(segments), start=1):
        text = segment.text.replace("\r\n", "\n").strip()
        blocks.append("{}\n{} --> {}\n{}\n".format(
            index,
            format_srt_time(segment.start_time),
            format_srt_time(segment.end_time),
            text,
        ))
    return "\n".join(blocks) + ("\n" if blocks else "")


class SrtFormatter(BaseFormatter):
    """Formatter producing a single .srt sidecar file."""

    @property
    def name(self) -> str:
        return "SRT Captions"

    def format(
        self,
        segments: Sequence[CaptionSegment],
        style: Optional[Dict[str, Any]] = None,
        resolution: Optional[str] = None,
    ) -> List[FormatterOutput]:
        return [
            FormatterOutput(
                suffix=".srt",
                content=format_srt(segments),
                media_type="application/x-subrip",
            )
        ]
