from __future__ import annotations

from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} must not be empty")
    return value.strip()


def require_percentage(value: float, field_name: str) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not 0.0 <= v <= 100.0:
        raise ValidationError(f"{field_name} must be within [0, 100]")
    return v


def require_non_negative_int(value: int, field_name: str) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if v < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    return v


def require_positive_int(value: int, field_name: str) -> int:
    v = require_non_negative_int(value, field_name)
    if v == 0:
        raise ValidationError(f"{field_name} must be > 0")
    return v
