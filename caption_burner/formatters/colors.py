"""CSS color → ASS color conversion.

WHY: ASS stores colors as ``&HAABBGGRR`` — alpha first, then blue, green,
red, with alpha inverted (00 = opaque, FF = transparent). Style colors
arrive as CSS strings, so every color in a compiled document passes
through here.

RULES:
- Effective opacity = rgba alpha × the explicit opacity argument
- ASS alpha = round(255 × (1 − effective opacity))
- Unparsable colors become opaque white (&H00FFFFFF), never an error
- Output is always uppercase hex, 8 digits after "&H"
"""

from __future__ import annotations

from typing import Any, Optional

from caption_burner.styles.colors import parse_color

OPAQUE_WHITE = "&H00FFFFFF"
OPAQUE_BLACK = "&H00000000"


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def to_ass_color(value: Any, opacity: Optional[float] = None) -> str:
    """Convert a CSS color string to ASS ``&HAABBGGRR``.

    Args:
        value: "#RGB", "#RRGGBB", "rgb(r,g,b)" or "rgba(r,g,b,a)".
        opacity: Optional extra opacity 0–1 multiplied into the alpha.

    Returns:
        ASS color string. Invalid input yields opaque white.
    """
    parsed = parse_color(value)
    if parsed is None:
        return OPAQUE_WHITE

    r, g, b, alpha = parsed
    if opacity is not None:
        alpha *= float(opacity)
    ass_alpha = int(round(255 * (1 - _clamp_unit(alpha))))
    return "&H{:02X}{:02X}{:02X}{:02X}".format(ass_alpha, b, g, r)
