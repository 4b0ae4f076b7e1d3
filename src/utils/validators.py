"""Lightweight validation helpers used by settings and handlers."""

from typing import Any

from utils.error_handling import ConfigurationError, ValidationError


def ensure_present(value: Any, field: str) -> None:
    """Raise ValidationError if value is falsy."""
    if value in (None, "", []):
        raise ValidationError(f"{field} is required")


def ensure_unit_interval(value: float, field: str) -> None:
    """Thresholds and weights must live in [0, 1]."""
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{field} must be between 0 and 1, got {value}")


def ensure_positive(value: float, field: str) -> None:
    if value <= 0:
        raise ConfigurationError(f"{field} must be positive, got {value}")
