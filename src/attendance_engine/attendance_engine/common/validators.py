from __future__ import annotations

from ..core.exceptions import ValidationError


def _as_float(value, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number") from e


def require_latitude(value: float, field_name: str = "latitude") -> float:
    value = _as_float(value, field_name)
    if not -90.0 <= value <= 90.0:
        raise ValidationError(f"{field_name} must be between -90 and 90, got {value}")
    return value


def require_longitude(value: float, field_name: str = "longitude") -> float:
    value = _as_float(value, field_name)
    if not -180.0 <= value <= 180.0:
        raise ValidationError(f"{field_name} must be between -180 and 180, got {value}")
    return value


def require_positive(value: float, field_name: str) -> float:
    value = _as_float(value, field_name)
    if value <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return value
