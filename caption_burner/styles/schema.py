"""JSON Schema for a normalized caption style.

WHY: Style validation has many range and conditional rules (colors only
matter when a group is enabled, x/y only when the position is custom).
Expressing them declaratively as a JSON Schema keeps the rules readable
and reviewable in one place, and jsonschema reports every violation with
its path instead of stopping at the first.

HOW: STYLE_SCHEMA is a Draft 7 schema. Color fields use the custom
"caption-color" format, registered on FORMAT_CHECKER and backed by
styles.colors.is_color. Conditional rules use if/then on "enabled" and
on position "type".

RULES:
- The schema validates NORMALIZED styles (all seven groups present)
- Unknown extra fields inside groups are allowed (forward compatibility)
- Numeric ranges: fontSize 8–200, opacities 0–1, border width 0–20,
  effects scale 0.1–5, custom x/y 0–1
"""

from __future__ import annotations

from typing import Any, Dict

import jsonschema

from caption_burner.styles.colors import is_color

COLOR_FORMAT = "caption-color"

FORMAT_CHECKER = jsonschema.FormatChecker()


@FORMAT_CHECKER.checks(COLOR_FORMAT)
def _check_color(value: Any) -> bool:
    return is_color(value)


_COLOR = {"type": "string", "format": COLOR_FORMAT}
_NUMBER = {"type": "number"}
_UNIT = {"type": "number", "minimum": 0, "maximum": 1}


def _when_enabled(then_properties: Dict[str, Any]) -> Dict[str, Any]:
    """Build an if/then clause that applies only when enabled is true."""
    return {
        "if": {"properties": {"enabled": {"const": True}}, "required": ["enabled"]},
        "then": {"properties": then_properties},
    }


STYLE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "CaptionStyle",
    "type": "object",
    "required": [
        "position", "typography", "background", "border",
        "shadow", "animation", "effects",
    ],
    "properties": {
        "position": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {"enum": ["bottom", "center", "top", "custom"]},
                "x": _NUMBER,
                "y": _NUMBER,
                "margin": {"type": "number", "minimum": 0},
            },
            "if": {"properties": {"type": {"const": "custom"}}},
            "then": {
                "required": ["x", "y"],
                "properties": {"x": _UNIT, "y": _UNIT},
            },
        },
        "typography": {
            "type": "object",
            "required": ["fontFamily", "fontSize", "fontColor"],
            "properties": {
                "fontFamily": {"type": "string", "minLength": 1},
                "fontSize": {"type": "number", "minimum": 8, "maximum": 200},
                "fontWeight": {"type": ["string", "number"]},
                "fontColor": _COLOR,
                "textAlign": {"enum": ["left", "center", "right"]},
                "lineHeight": {"type": "number", "exclusiveMinimum": 0},
                "letterSpacing": _NUMBER,
            },
        },
        "background": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "color": {"type": "string"},
                "opacity": _UNIT,
                "borderRadius": {"type": "number", "minimum": 0},
                "padding": {
                    "type": "object",
                    "properties": {
                        side: {"type": "number", "minimum": 0}
                        for side in ("top", "right", "bottom", "left")
                    },
                },
            },
            **_when_enabled({"color": _COLOR}),
        },
        "border": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "color": {"type": "string"},
                "width": _NUMBER,
                "style": {"type": "string"},
            },
            **_when_enabled({
                "color": _COLOR,
                "width": {"type": "number", "minimum": 0, "maximum": 20},
            }),
        },
        "shadow": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "color": {"type": "string"},
                "blur": {"type": "number", "minimum": 0},
                "offsetX": _NUMBER,
                "offsetY": _NUMBER,
            },
            **_when_enabled({"color": _COLOR}),
        },
        "animation": {
            "type": "object",
            "properties": {
                "type": {
                    "enum": ["none", "fade", "slide", "bounce", "typewriter", "reel", "classic"],
                },
                "duration": {"type": "number", "minimum": 0},
                "delay": {"type": "number", "minimum": 0},
                "easing": {"type": "string"},
            },
        },
        "effects": {
            "type": "object",
            "properties": {
                "opacity": _UNIT,
                "rotation": _NUMBER,
                "scale": {"type": "number", "minimum": 0.1, "maximum": 5},
                "blur": {"type": "number", "minimum": 0},
            },
        },
    },
}

STYLE_VALIDATOR = jsonschema.Draft7Validator(STYLE_SCHEMA, format_checker=FORMAT_CHECKER)
