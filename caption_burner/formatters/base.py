"""Abstract base formatter and output container.

WHY: Captions leave the system in more than one subtitle format (ASS for
burn-in, SRT for sidecar delivery). The CLI and API layers should be able
to pick a format by name and treat every formatter the same way.

HOW: BaseFormatter is an ABC with two requirements — a ``name`` property
and a ``format()`` method. FormatterOutput is a plain dataclass that
bundles a file suffix with its content and MIME type.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- ``format()`` returns a list so a formatter may emit several files
- ``suffix`` starts with a dot, e.g. ``".ass"``
- The caller is responsible for prepending the file stem
- Formatters never mutate the segments or the style they are given
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from caption_burner.core.ir import CaptionSegment


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the stem, e.g. ``".ass"``.
        content: The file content.
        media_type: MIME type for the content, e.g. ``"text/x-ssa"``.
    """

    suffix: str
    content: str | bytes
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all subtitle formatters.

    To add a new output format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'ASS Subtitles'."""

    @abstractmethod
    def format(
        self,
        segments: Sequence[CaptionSegment],
        style: Optional[Dict[str, Any]] = None,
        resolution: Optional[str] = None,
    ) -> List[FormatterOutput]:
        """Render timed captions into one or more subtitle files.

        Args:
            segments: Timed captions, in any order.
            style: Normalized nested caption style. Formats without
                   styling support ignore it.
            resolution: Target video resolution as "WIDTHxHEIGHT".

        Returns:
            List of FormatterOutput objects.
        """
