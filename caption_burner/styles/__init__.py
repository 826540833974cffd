"""Caption style model — presets, schema, and resolution.

WHY: Styles are rich nested descriptions that arrive in several shapes.
Callers should import one small surface instead of reaching into the
preset, schema, and model modules separately.

RULES:
- resolve_style() + ensure_valid() is the only sanctioned path from raw
  client input to a style the compiler accepts
"""

from caption_burner.styles.model import (
    StyleValidationError,
    ValidationResult,
    ensure_valid,
    from_legacy,
    from_preset,
    is_legacy_style,
    normalize,
    resolve_style,
    validate,
)
from caption_burner.styles.presets import DEFAULT_STYLE, PRESETS, STYLE_GROUPS

__all__ = [
    "DEFAULT_STYLE",
    "PRESETS",
    "STYLE_GROUPS",
    "StyleValidationError",
    "ValidationResult",
    "ensure_valid",
    "from_legacy",
    "from_preset",
    "is_legacy_style",
    "normalize",
    "resolve_style",
    "validate",
]
