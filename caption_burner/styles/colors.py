"""CSS-style color parsing shared by validation and compilation.

WHY: Styles carry colors as CSS strings ("#fff", "#FF0000",
"rgba(0,0,0,0.5)"). The validator must accept exactly the forms the
compiler can render, so both go through one parser.

HOW: Two regexes — hex (#RGB / #RRGGBB) and functional (rgb()/rgba()).
parse_color() returns an (r, g, b, alpha) tuple or None.

RULES:
- Hex digits and the rgb/rgba keyword are case-insensitive
- Channels must be 0–255; alpha must be 0–1 (defaults to 1)
- Anything else is unparsable → None (never raises)
"""

from __future__ import annotations

import re
from typing import Any, Optional, Tuple

RGBA = Tuple[int, int, int, float]

_HEX_RE = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6})$", re.IGNORECASE)
_FUNC_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*"
    r"(?:,\s*(\d*\.?\d+)\s*)?\)$",
    re.IGNORECASE,
)


def parse_color(value: Any) -> Optional[RGBA]:
    """Parse a CSS color string into (r, g, b, alpha), or None if invalid."""
    if not isinstance(value, str):
        return None
    text = value.strip()

    match = _HEX_RE.match(text)
    if match:
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        return (
            int(digits[0:2], 16),
            int(digits[2:4], 16),
            int(digits[4:6], 16),
            1.0,
        )

    match = _FUNC_RE.match(text)
    if match:
        r, g, b = (int(match.group(i)) for i in (1, 2, 3))
        alpha = float(match.group(4)) if match.group(4) is not None else 1.0
        if max(r, g, b) > 255 or alpha > 1.0:
            return None
        return (r, g, b, alpha)

    return None


def is_color(value: Any) -> bool:
    return parse_color(value) is not None
