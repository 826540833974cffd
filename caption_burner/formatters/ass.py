"""ASS subtitle compiler — nested caption style → Advanced SubStation Alpha.

WHY: Burn-in renders captions with ffmpeg's ``ass`` filter (libass). ASS
is the only widely supported subtitle format that carries everything a
caption style describes: fonts, colors with alpha, outlines, shadows,
opaque boxes, absolute positioning, and timed transforms for animation.
Exports must be reproducible, so compilation is a pure function.

HOW: compile_ass() works in three steps:
  1. Layout — resolve PlayResX/Y, scale the font, pick the alignment
     code, compute margins, outline/shadow widths, and the anchor point.
  2. Header — [Script Info] + one "Default" [V4+ Styles] line built
     from the layout and the style's colors.
  3. Events — one Dialogue line per renderable segment, sorted by start,
     each with an inline override block for position and animation.

Animation variants (durations in seconds in the style, ms in the output):
  reel     — scale pulse 100→105→100→95 over three windows,
             each min(duration, cue/4) long
  bounce   — scale 110→100→110→100 over four duration/4 windows
  slide    — \\move from an offset x to the anchor over
             min(duration, cue/3); offset min(200, centerX × 0.3)
  classic  — static \\pos (also used for none / fade / typewriter)

RULES:
- Identical (segments, style, resolution, force_high_contrast) → identical bytes
- Unparsable resolution → 1080x1920
- Font size = max(MIN_FONT_SIZE, round(fontSize × max(1, min(W/1080, H/1920))))
- Outline ≥ 4px (~12% of font), shadow ≥ 3px (~8% of font) —
  legibility wins over literal style values
- shadow.enabled = false switches the shadow off entirely (depth 0); the
  3px floor only applies to an enabled shadow
- Segments that are not renderable are dropped, never repaired
- "{" / "}" in text become "(" / ")"; newlines become \\N
- Expects a normalized style (see styles.model.normalize)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from caption_burner.core.ir import CaptionSegment
from caption_burner.formatters.base import BaseFormatter, FormatterOutput
from caption_burner.formatters.colors import OPAQUE_BLACK, OPAQUE_WHITE, to_ass_color
from caption_burner.styles.model import resolve_style

logger = logging.getLogger(__name__)

BASE_WIDTH = 1080
BASE_HEIGHT = 1920
MIN_FONT_SIZE = 16
MIN_OUTLINE = 4
MIN_SHADOW = 3
OUTLINE_RATIO = 0.12
SHADOW_RATIO = 0.08
MARGIN_H_RATIO = 0.05
MARGIN_V_RATIO = 0.06
SLIDE_MAX_DISTANCE = 200
SLIDE_CENTER_RATIO = 0.3

_RESOLUTION_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")

# position.type → (left, center, right) numpad alignment codes
_ALIGNMENT_ROWS = {
    "top": (7, 8, 9),
    "center": (4, 5, 6),
    "bottom": (1, 2, 3),
}
_COLUMN = {"left": 0, "center": 1, "right": 2}

# Animation types rendered with a dedicated variant; everything else is static
_ANIMATED = ("reel", "bounce", "slide")

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
    "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, "
    "ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, "
    "MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


def _num(value: float) -> str:
    """Format a number deterministically: integers bare, else ≤2 decimals."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return "{:.2f}".format(value).rstrip("0").rstrip(".")


def parse_resolution(value: Optional[str]) -> Tuple[int, int]:
    """Parse "WIDTHxHEIGHT" into (width, height), defaulting to 1080x1920."""
    if value:
        match = _RESOLUTION_RE.match(str(value))
        if match:
            width, height = int(match.group(1)), int(match.group(2))
            if width > 0 and height > 0:
                return width, height
        logger.warning("Unparsable resolution %r, using %dx%d", value, BASE_WIDTH, BASE_HEIGHT)
    return BASE_WIDTH, BASE_HEIGHT


def scale_factor(width: int, height: int) -> float:
    """Font scale relative to the 1080x1920 reference; never below 1."""
    return max(1.0, min(width / BASE_WIDTH, height / BASE_HEIGHT))


def format_ass_time(seconds: float) -> str:
    """Format seconds as ASS ``H:MM:SS.cc`` (centisecond precision)."""
    total_cs = int(round(max(0.0, seconds) * 100))
    hours, rem = divmod(total_cs, 360000)
    minutes, rem = divmod(rem, 6000)
    secs, cs = divmod(rem, 100)
    return "{:d}:{:02d}:{:02d}.{:02d}".format(hours, minutes, secs, cs)


def escape_ass_text(text: str) -> str:
    """Make caption text safe inside a Dialogue line."""
    text = text.replace("{", "(").replace("}", ")")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.replace("\n", "\\N")


def _is_bold(weight: Any) -> bool:
    if isinstance(weight, str):
        if weight.strip().lower() in ("bold", "bolder"):
            return True
        try:
            weight = float(weight)
        except ValueError:
            return False
    if isinstance(weight, (int, float)) and not isinstance(weight, bool):
        return weight >= 600
    return False


@dataclass(frozen=True)
class AssLayout:
    """Resolved geometry for one compilation. Pixel values are in PlayRes space."""

    play_res_x: int
    play_res_y: int
    font_size: int
    alignment: int
    margin_h: int
    margin_v: int
    anchor_x: float
    anchor_y: float
    outline: int
    shadow: int
    border_style: int
    text_align: str


def compute_layout(style: Dict[str, Any], target_resolution: Optional[str] = None) -> AssLayout:
    """Derive the pixel layout for a style at a target resolution.

    RULES:
    - Horizontal margin = max(position.margin, round(W × 0.05))
    - Vertical margin = max(position.margin, round(H × 0.06))
    - custom positions anchor the text's center at (x × W, y × H)
    - Background enabled → BorderStyle 3 (opaque box) with the box size
      taken from the largest scaled padding
    """
    width, height = parse_resolution(target_resolution)
    scale = scale_factor(width, height)

    position = style["position"]
    typography = style["typography"]
    background = style["background"]
    border = style["border"]
    shadow = style["shadow"]

    font_size = max(MIN_FONT_SIZE, int(round(typography["fontSize"] * scale)))

    margin = float(position.get("margin") or 0)
    margin_h = int(max(margin, round(width * MARGIN_H_RATIO)))
    margin_v = int(max(margin, round(height * MARGIN_V_RATIO)))

    text_align = typography.get("textAlign") or "center"
    column = _COLUMN.get(text_align, 1)
    position_type = position.get("type") or "bottom"

    if position_type == "custom":
        alignment = 5
        anchor_x = float(position["x"]) * width
        anchor_y = float(position["y"]) * height
    else:
        alignment = _ALIGNMENT_ROWS.get(position_type, _ALIGNMENT_ROWS["bottom"])[column]
        anchor_x = (margin_h, width / 2, width - margin_h)[column]
        if position_type == "top":
            anchor_y = margin_v
        elif position_type == "center":
            anchor_y = height / 2
        else:
            anchor_y = height - margin_v

    if background.get("enabled"):
        border_style = 3
        padding = background.get("padding") or {}
        outline = int(round(max([float(v) for v in padding.values()] or [0]) * scale))
    else:
        border_style = 1
        outline = max(MIN_OUTLINE, int(round(font_size * OUTLINE_RATIO)))
        if border.get("enabled"):
            outline = max(outline, int(round(float(border.get("width") or 0) * scale)))

    shadow_depth = max(MIN_SHADOW, int(round(font_size * SHADOW_RATIO))) if shadow.get("enabled") else 0

    return AssLayout(
        play_res_x=width,
        play_res_y=height,
        font_size=font_size,
        alignment=alignment,
        margin_h=margin_h,
        margin_v=margin_v,
        anchor_x=anchor_x,
        anchor_y=anchor_y,
        outline=outline,
        shadow=shadow_depth,
        border_style=border_style,
        text_align=text_align,
    )


def _style_colors(style: Dict[str, Any], force_high_contrast: bool) -> Tuple[str, str, str]:
    """Return (primary, outline, back) ASS colors.

    With BorderStyle 3 libass paints the box in OutlineColour, so an
    enabled background takes the outline slot.
    """
    if force_high_contrast:
        return OPAQUE_WHITE, OPAQUE_BLACK, OPAQUE_BLACK

    effects = style["effects"]
    background = style["background"]
    border = style["border"]
    shadow = style["shadow"]

    primary = to_ass_color(style["typography"]["fontColor"], effects.get("opacity", 1))
    if background.get("enabled"):
        outline = to_ass_color(background.get("color"), background.get("opacity", 1))
    elif border.get("enabled"):
        outline = to_ass_color(border.get("color"))
    else:
        outline = OPAQUE_BLACK
    back = to_ass_color(shadow.get("color")) if shadow.get("enabled") else OPAQUE_BLACK
    return primary, outline, back


def build_header(style: Dict[str, Any], layout: AssLayout, force_high_contrast: bool = False) -> str:
    """Build [Script Info] and [V4+ Styles] sections plus the [Events] format line."""
    typography = style["typography"]
    effects = style["effects"]
    primary, outline_colour, back = _style_colors(style, force_high_contrast)
    scale_pct = _num(float(effects.get("scale", 1)) * 100)

    fields = [
        "Default",
        str(typography.get("fontFamily") or "Arial"),
        str(layout.font_size),
        primary,
        "&H000000FF",
        outline_colour,
        back,
        "-1" if _is_bold(typography.get("fontWeight")) else "0",
        "0",
        "0",
        "0",
        scale_pct,
        scale_pct,
        _num(typography.get("letterSpacing") or 0),
        _num(effects.get("rotation") or 0),
        str(layout.border_style),
        str(layout.outline),
        str(layout.shadow),
        str(layout.alignment),
        str(layout.margin_h),
        str(layout.margin_h),
        str(layout.margin_v),
        "0",
    ]

    return "\n".join([
        "[Script Info]",
        "; Generated by caption-burner",
        "Title: Burned-in captions",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        "PlayResX: {}".format(layout.play_res_x),
        "PlayResY: {}".format(layout.play_res_y),
        "",
        "[V4+ Styles]",
        STYLE_FORMAT,
        "Style: " + ",".join(fields),
        "",
        "[Events]",
        EVENT_FORMAT,
    ])


def _scale_tag(percent: float) -> str:
    value = _num(percent)
    return "\\fscx{0}\\fscy{0}".format(value)


def _transform(start_ms: int, end_ms: int, percent: float) -> str:
    return "\\t({},{},{})".format(start_ms, end_ms, _scale_tag(percent))


def build_override(segment: CaptionSegment, style: Dict[str, Any], layout: AssLayout) -> str:
    """Build the inline ``{...}`` directive block for one cue.

    HOW: Every cue gets an absolute position. Animated variants add \\t
    transforms (reel, bounce) or replace \\pos with \\move (slide). The
    animation delay shifts every transform window.

    RULES:
    - Transform windows never start after the cue ends
    - A zero-length window (very short cue or zero duration) disables
      the animation for that cue instead of emitting degenerate tags
    """
    animation = style["animation"]
    effects = style["effects"]
    kind = animation.get("type") or "classic"
    if kind not in _ANIMATED:
        kind = "classic"

    cue_ms = int(round((segment.end_time - segment.start_time) * 1000))
    anim_ms = int(round(float(animation.get("duration") or 0) * 1000))
    delay_ms = min(int(round(float(animation.get("delay") or 0) * 1000)), cue_ms)
    base_pct = float(effects.get("scale", 1)) * 100

    x = _num(layout.anchor_x)
    y = _num(layout.anchor_y)
    tags: List[str] = []

    if kind == "slide":
        window = min(anim_ms, cue_ms // 3)
        if window > 0:
            distance = min(SLIDE_MAX_DISTANCE, layout.anchor_x * SLIDE_CENTER_RATIO)
            if layout.text_align == "left":
                start_x = layout.anchor_x + distance
            else:
                start_x = layout.anchor_x - distance
            tags.append("\\move({},{},{},{},{},{})".format(
                _num(start_x), y, x, y, delay_ms, delay_ms + window,
            ))
        else:
            tags.append("\\pos({},{})".format(x, y))
    else:
        tags.append("\\pos({},{})".format(x, y))

    if kind == "reel":
        step = min(anim_ms, cue_ms // 4)
        if step > 0:
            t0 = delay_ms
            tags.append(_scale_tag(base_pct))
            tags.append(_transform(t0, t0 + step, base_pct * 1.05))
            tags.append(_transform(t0 + step, t0 + 2 * step, base_pct))
            tags.append(_transform(t0 + 2 * step, t0 + 3 * step, base_pct * 0.95))
    elif kind == "bounce":
        window = min(anim_ms // 4, cue_ms // 4)
        if window > 0:
            t0 = delay_ms
            tags.append(_scale_tag(base_pct))
            for i, factor in enumerate((1.10, 1.0, 1.10, 1.0)):
                tags.append(_transform(t0 + i * window, t0 + (i + 1) * window, base_pct * factor))

    blur = float(effects.get("blur") or 0)
    if blur > 0:
        tags.append("\\blur{}".format(_num(blur)))

    return "{" + "".join(tags) + "}"


def renderable_segments(segments: Sequence[CaptionSegment]) -> List[CaptionSegment]:
    """Drop non-renderable segments and sort the rest by start time (stable)."""
    kept = [s for s in segments if s.is_renderable]
    dropped = len(segments) - len(kept)
    if dropped:
        logger.debug("Dropped %d non-renderable caption segment(s)", dropped)
    return sorted(kept, key=lambda s: s.start_time)


def compile_ass(
    segments: Sequence[CaptionSegment],
    style: Dict[str, Any],
    target_resolution: Optional[str] = None,
    force_high_contrast: bool = False,
) -> str:
    """Compile timed captions and a normalized style into an ASS document.

    Args:
        segments: Timed captions in any order.
        style: Normalized nested caption style.
        target_resolution: "WIDTHxHEIGHT"; defaults to 1080x1920.
        force_high_contrast: Render white text on black outline/box/shadow
            regardless of the style's colors (accessibility policy).

    Returns:
        The complete ASS document, newline-terminated.
    """
    layout = compute_layout(style, target_resolution)
    lines = [build_header(style, layout, force_high_contrast)]

    for segment in renderable_segments(segments):
        lines.append("Dialogue: 0,{},{},Default,,0,0,0,,{}{}".format(
            format_ass_time(segment.start_time),
            format_ass_time(segment.end_time),
            build_override(segment, style, layout),
            escape_ass_text(segment.text),
        ))

    return "\n".join(lines) + "\n"


class AssFormatter(BaseFormatter):
    """Formatter producing the ASS document used for burn-in.

    RULES:
    - Returns a 1-element list with suffix ".ass"
    - A missing style falls back to the default preset
    """

    def __init__(self, force_high_contrast: bool = False) -> None:
        self.force_high_contrast = force_high_contrast

    @property
    def name(self) -> str:
        return "ASS Subtitles"

    def format(
        self,
        segments: Sequence[CaptionSegment],
        style: Optional[Dict[str, Any]] = None,
        resolution: Optional[str] = None,
    ) -> List[FormatterOutput]:
        content = compile_ass(
            segments,
            style if style is not None else resolve_style(None),
            resolution,
            force_high_contrast=self.force_high_contrast,
        )
        return [FormatterOutput(suffix=".ass", content=content, media_type="text/x-ssa")]
