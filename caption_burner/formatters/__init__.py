"""Subtitle formatter registry.

WHY: The CLI and the HTTP layer both need a single lookup to find the
right formatter by name. A central dict makes adding a format trivial:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["ass"]()``.

RULES:
- Keys are lowercase identifiers (used in CLI flags and request bodies)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from caption_burner.formatters.ass import AssFormatter
from caption_burner.formatters.srt import SrtFormatter

if TYPE_CHECKING:
    from caption_burner.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "ass": AssFormatter,
    "srt": SrtFormatter,
}
