"""Caption style resolution: presets, legacy translation, normalization, validation.

WHY: Clients describe caption looks in several shapes — a preset name, a
preset plus overrides, the old flat style object, or the full nested
style. The compiler must only ever see one shape: a complete, validated
nested style. This module is the single funnel between the two.

HOW:
  resolve_style(raw)  — dispatches on the input shape
  from_preset()       — preset lookup + group-wise deep merge of overrides
  from_legacy()       — flat fields → nested via LEGACY_FIELD_MAP
  normalize()         — fills absent groups/fields from DEFAULT_STYLE
  validate()          — JSON Schema check, returns every violation
  ensure_valid()      — validate() that raises StyleValidationError

RULES:
- normalize() fills only ABSENT values; it never repairs invalid ones
- normalize() is idempotent: normalize(normalize(s)) == normalize(s)
- Overrides merge per group and per field; a group in the overrides never
  replaces the whole preset group
- Unknown preset names fall back to "classic" (logged, not an error)
- Inputs are never mutated; results are fresh deep copies
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from caption_burner.styles.presets import (
    DEFAULT_PRESET,
    DEFAULT_STYLE,
    LEGACY_FIELD_MAP,
    PRESETS,
    STYLE_GROUPS,
)
from caption_burner.styles.schema import STYLE_VALIDATOR

logger = logging.getLogger(__name__)

Style = Dict[str, Any]


class StyleValidationError(ValueError):
    """Raised when a resolved style fails validation.

    WHY: Export jobs must reject malformed styles before a job exists.
    Callers (HTTP layer, CLI) need every violation, not just the first.

    HOW: Carries the full list of error strings from validate().

    RULES:
    - errors is never empty
    - str(exc) joins the errors with "; "
    """

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid caption style: {}".format("; ".join(self.errors)))


@dataclass
class ValidationResult:
    """Outcome of validate(): overall verdict plus every violation found."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base.

    RULES:
    - dict + dict → merged recursively
    - anything else in override replaces the base value (even if invalid)
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def normalize(style: Optional[Style]) -> Style:
    """Return a complete nested style with absent groups and fields filled in.

    WHY: The compiler reads every field of every group. Filling absences
    up front means it never needs a fallback of its own.

    HOW: For each of the seven groups, deep-merges the given group over
    the DEFAULT_STYLE group. Unknown top-level keys are dropped.

    RULES:
    - A group given as a non-dict is kept as-is so validation can flag it
    - Present-but-invalid values are preserved untouched
    """
    style = style or {}
    normalized: Style = {}
    for group in STYLE_GROUPS:
        given = style.get(group)
        if given is None:
            normalized[group] = copy.deepcopy(DEFAULT_STYLE[group])
        elif isinstance(given, dict):
            normalized[group] = _deep_merge(DEFAULT_STYLE[group], given)
        else:
            normalized[group] = copy.deepcopy(given)
    return normalized


def from_preset(name: Optional[str], overrides: Optional[Style] = None) -> Style:
    """Build a style from a named preset with optional group-wise overrides.

    Args:
        name: Preset name ("reel", "classic", "modern", "minimal").
        overrides: Partial nested style merged field-by-field over the preset.

    Returns:
        Normalized nested style.
    """
    key = (name or DEFAULT_PRESET).strip().lower()
    if key not in PRESETS:
        logger.warning("Unknown style preset %r, falling back to %r", name, DEFAULT_PRESET)
        key = DEFAULT_PRESET

    style = copy.deepcopy(PRESETS[key])
    for group, fields in (overrides or {}).items():
        if group not in STYLE_GROUPS:
            continue
        if isinstance(fields, dict):
            style[group] = _deep_merge(style[group], fields)
        else:
            style[group] = copy.deepcopy(fields)
    return normalize(style)


def is_legacy_style(style: Any) -> bool:
    """True if style uses the old flat, single-level shape.

    RULES:
    - Any nested group given as a dict means the style is NOT legacy
    - Otherwise, any key from LEGACY_FIELD_MAP marks it as legacy
    """
    if not isinstance(style, dict):
        return False
    if any(isinstance(style.get(group), dict) for group in STYLE_GROUPS):
        return False
    return any(key in style for key in LEGACY_FIELD_MAP)


def from_legacy(flat: Style) -> Style:
    """Translate a legacy flat style into the nested shape and normalize it.

    WHY: Older clients send {"type": "reel", "position": "bottom",
    "fontSize": 36, "color": "#fff", "backgroundColor": "#000", ...}.

    HOW: Each known flat field is copied to its (group, field) target from
    LEGACY_FIELD_MAP. A numeric padding applies to all four sides. A
    backgroundColor turns the background box on.

    RULES:
    - Unknown flat fields are ignored
    - The result is normalized but NOT validated
    """
    nested: Dict[str, Dict[str, Any]] = {}
    for key, value in flat.items():
        target = LEGACY_FIELD_MAP.get(key)
        if target is None:
            continue
        group, field_name = target
        if field_name == "padding" and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = {side: value for side in ("top", "right", "bottom", "left")}
        nested.setdefault(group, {})[field_name] = value

    if "backgroundColor" in flat:
        nested.setdefault("background", {}).setdefault("enabled", True)

    return normalize(nested)


def resolve_style(raw: Union[str, Style, None]) -> Style:
    """Resolve any accepted style shape into a normalized nested style.

    RULES:
    - None → the default preset
    - str → preset name
    - dict with "preset" → that preset, remaining keys as overrides
    - legacy flat dict → from_legacy()
    - nested dict → normalize()
    """
    if raw is None:
        return from_preset(DEFAULT_PRESET)
    if isinstance(raw, str):
        return from_preset(raw)
    if not isinstance(raw, dict):
        raise StyleValidationError(["style: expected an object or preset name"])
    if "preset" in raw:
        if raw["preset"] is not None and not isinstance(raw["preset"], str):
            raise StyleValidationError(["preset: expected a preset name"])
        overrides = {k: v for k, v in raw.items() if k != "preset"}
        return from_preset(raw.get("preset"), overrides)
    if is_legacy_style(raw):
        return from_legacy(raw)
    return normalize(raw)


def _format_error(error: Any) -> str:
    path = ".".join(str(part) for part in error.absolute_path) or "style"
    return "{}: {}".format(path, error.message)


def validate(style: Style) -> ValidationResult:
    """Validate a nested style against the style schema.

    HOW: Runs the Draft 7 validator and collects every error, sorted by
    field path so the output is stable.

    RULES:
    - Expects a normalized style; missing groups are reported as errors
    - Error strings start with the dotted field path, e.g.
      "typography.fontSize: 300 is greater than the maximum of 200"
    """
    errors = sorted(
        STYLE_VALIDATOR.iter_errors(style),
        key=lambda e: [str(part) for part in e.absolute_path],
    )
    messages = [_format_error(e) for e in errors]
    return ValidationResult(is_valid=not messages, errors=messages)


def ensure_valid(style: Style) -> Style:
    """Return style unchanged if valid, else raise StyleValidationError."""
    result = validate(style)
    if not result.is_valid:
        raise StyleValidationError(result.errors)
    return style
