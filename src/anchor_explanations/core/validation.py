"""Validation helpers shared across the core package.

These utilities centralize argument checks performed at construction time so
that every invalid configuration is rejected with the same error vocabulary
before any sampling happens.
"""

from __future__ import annotations

import numbers
from typing import Any

from ..utils.exceptions import ValidationError

NULL_MESSAGE = " must not be None."
NEGATIVE_VALUE_MESSAGE = " must not be negative."
NOT_PERCENTAGE_MESSAGE = " must be within [0, 1]."


def validate_not_none(value: Any, name: str) -> None:
    """Raise ``ValidationError`` when ``value`` is ``None``."""
    if value is None:
        raise ValidationError(f"{name}{NULL_MESSAGE}", details={"param": name})


def is_unsigned(value: Any) -> bool:
    """Return whether ``value`` is a non-negative integer (bools excluded)."""
    return isinstance(value, numbers.Integral) and not isinstance(value, bool) and value >= 0


def is_percentage(value: Any) -> bool:
    """Return whether ``value`` is a real number within ``[0, 1]``."""
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and 0.0 <= float(value) <= 1.0
    )


def validate_unsigned(value: Any, name: str) -> None:
    """Ensure ``value`` is a non-negative integer."""
    if not is_unsigned(value):
        raise ValidationError(
            f"{name}{NEGATIVE_VALUE_MESSAGE}",
            details={"param": name, "value": value, "requirement": "integer >= 0"},
        )


def validate_percentage(value: Any, name: str) -> None:
    """Ensure ``value`` lies within the closed unit interval."""
    if not is_percentage(value):
        raise ValidationError(
            f"{name}{NOT_PERCENTAGE_MESSAGE}",
            details={"param": name, "value": value, "requirement": "0 <= value <= 1"},
        )


def validate_callable_member(obj: Any, member: str, name: str, *, allow_callable: bool = True) -> None:
    """Ensure ``obj`` exposes a callable ``member`` (or, if allowed, is itself callable)."""
    validate_not_none(obj, name)
    if callable(getattr(obj, member, None)) or (allow_callable and callable(obj)):
        return
    raise ValidationError(
        f"{name} must provide a callable '{member}' method.",
        details={"param": name, "member": member, "type": type(obj).__name__},
    )


__all__ = [
    "NULL_MESSAGE",
    "NEGATIVE_VALUE_MESSAGE",
    "NOT_PERCENTAGE_MESSAGE",
    "validate_not_none",
    "is_unsigned",
    "is_percentage",
    "validate_unsigned",
    "validate_percentage",
    "validate_callable_member",
]
