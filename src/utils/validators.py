"""Lightweight validation helpers for handler payloads."""

from typing import Any, Iterable

from utils.error_handling import ValidationError


def ensure_present(value: Any, field: str) -> None:
    """Raise ValidationError if value is falsy."""
    if value in (None, "", []) or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")


def ensure_one_of(value: Any, field: str, allowed: Iterable[str]) -> None:
    """Raise ValidationError unless value is one of the allowed strings."""
    allowed = list(allowed)
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
