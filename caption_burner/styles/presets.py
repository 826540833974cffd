"""Built-in caption styles, presets, and the legacy flat-field mapping.

WHY: Different looks (reel-style pulses, classic lower thirds, modern
boxed captions, minimal text-only) need complete, consistent style
values. Centralizing them as importable constants lets callers pick a
preset by name without knowing every field, and gives normalize() a
single source of defaults.

HOW: Each preset is a plain nested dict with all seven style groups
(position, typography, background, border, shadow, animation, effects).
Presets are built from DEFAULT_STYLE plus per-preset group overrides.
LEGACY_FIELD_MAP maps the old single-level style fields onto
(group, field) paths in the nested shape.

RULES:
- Presets are frozen constants — never mutate them at runtime; the style
  model deep-copies before merging
- Every preset is fully populated and passes validation
- Field names are camelCase to match the wire format clients send
- animation.duration and animation.delay are in seconds
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Tuple

STYLE_GROUPS: Tuple[str, ...] = (
    "position",
    "typography",
    "background",
    "border",
    "shadow",
    "animation",
    "effects",
)

DEFAULT_PRESET = "classic"

DEFAULT_STYLE: Dict[str, Dict[str, Any]] = {
    "position": {
        "type": "bottom",
        "x": 0.5,
        "y": 0.85,
        "margin": 40,
    },
    "typography": {
        "fontFamily": "Arial",
        "fontSize": 48,
        "fontWeight": "bold",
        "fontColor": "#FFFFFF",
        "textAlign": "center",
        "lineHeight": 1.2,
        "letterSpacing": 0,
    },
    "background": {
        "enabled": False,
        "color": "#000000",
        "opacity": 0.6,
        "borderRadius": 8,
        "padding": {"top": 8, "right": 16, "bottom": 8, "left": 16},
    },
    "border": {
        "enabled": True,
        "color": "#000000",
        "width": 2,
        "style": "solid",
    },
    "shadow": {
        "enabled": True,
        "color": "#000000",
        "blur": 4,
        "offsetX": 2,
        "offsetY": 2,
    },
    "animation": {
        "type": "classic",
        "duration": 0.3,
        "delay": 0,
        "easing": "ease-out",
    },
    "effects": {
        "opacity": 1,
        "rotation": 0,
        "scale": 1,
        "blur": 0,
    },
}


def _preset(**group_overrides: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Build a fully populated preset from DEFAULT_STYLE plus group overrides."""
    style = copy.deepcopy(DEFAULT_STYLE)
    for group, fields in group_overrides.items():
        style[group].update(copy.deepcopy(fields))
    return style


# Vertical social video: big bold text mid-screen with a scale pulse
PRESET_REEL = _preset(
    position={"type": "center", "margin": 60},
    typography={"fontFamily": "Montserrat", "fontSize": 64, "fontWeight": "800", "fontColor": "#FFFFFF"},
    border={"enabled": True, "color": "#000000", "width": 4},
    shadow={"enabled": True, "color": "#000000", "blur": 6, "offsetX": 3, "offsetY": 3},
    animation={"type": "reel", "duration": 0.25, "easing": "ease-in-out"},
)

# Traditional lower-third subtitles, no motion
PRESET_CLASSIC = _preset(
    position={"type": "bottom", "margin": 40},
    typography={"fontFamily": "Arial", "fontSize": 48, "fontWeight": "bold", "fontColor": "#FFFFFF"},
    animation={"type": "classic", "duration": 0.3},
)

# Boxed captions that slide in from the side
PRESET_MODERN = _preset(
    position={"type": "bottom", "margin": 80},
    typography={"fontFamily": "Inter", "fontSize": 52, "fontWeight": "600", "fontColor": "#FFFFFF"},
    background={"enabled": True, "color": "#111111", "opacity": 0.75, "borderRadius": 12},
    border={"enabled": False},
    shadow={"enabled": False},
    animation={"type": "slide", "duration": 0.35, "easing": "ease-out"},
)

# Plain text with a thin outline, no box, no motion
PRESET_MINIMAL = _preset(
    position={"type": "bottom", "margin": 30},
    typography={"fontFamily": "Helvetica", "fontSize": 40, "fontWeight": "normal", "fontColor": "#F5F5F5"},
    border={"enabled": True, "color": "#000000", "width": 1},
    shadow={"enabled": False},
    animation={"type": "none", "duration": 0},
)

PRESETS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "reel": PRESET_REEL,
    "classic": PRESET_CLASSIC,
    "modern": PRESET_MODERN,
    "minimal": PRESET_MINIMAL,
}

# Old single-level style fields → (group, field) in the nested shape
LEGACY_FIELD_MAP: Dict[str, Tuple[str, str]] = {
    "type": ("animation", "type"),
    "position": ("position", "type"),
    "fontSize": ("typography", "fontSize"),
    "fontFamily": ("typography", "fontFamily"),
    "fontWeight": ("typography", "fontWeight"),
    "textAlign": ("typography", "textAlign"),
    "color": ("typography", "fontColor"),
    "backgroundColor": ("background", "color"),
    "padding": ("background", "padding"),
    "borderRadius": ("background", "borderRadius"),
    "borderColor": ("border", "color"),
    "borderWidth": ("border", "width"),
    "shadowColor": ("shadow", "color"),
    "animationDuration": ("animation", "duration"),
}
