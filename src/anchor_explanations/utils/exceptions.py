"""Custom exception hierarchy for anchor_explanations.

These exceptions standardize error signaling across the library. All of them
inherit from :class:`AnchorError` and support structured error payloads via
the ``details`` kwarg.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import-time only
    from ..core.candidate import AnchorResult

__all__ = [
    "AnchorError",
    "ValidationError",
    "ConfigurationError",
    "NoCandidateFoundError",
    "NoAnchorFoundError",
    "explain_exception",
]


class AnchorError(Exception):
    """Base class for library-specific errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Attach structured error details alongside the user-facing message."""
        super().__init__(message)
        self.details: dict[str, Any] | None = details

    def __repr__(self) -> str:  # pragma: no cover - repr stability check in tests
        """Return the exception representation with the message payload."""
        cls = self.__class__.__name__
        return f"{cls}({super().__str__()!r})"


class ValidationError(AnchorError):
    """Inputs or configuration failed validation."""


class ConfigurationError(AnchorError):
    """Invalid or conflicting configuration/parameter combination."""


class NoCandidateFoundError(AnchorError):
    """Not a single candidate with a precision greater than zero could be found.

    There is nothing to report for the explained instance; retrying without
    changing the perturbation or classification function is pointless.
    """

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        """Use a default message when none is given."""
        super().__init__(
            message or "Could not find an anchor or any candidate with a precision > 0.",
            details=details,
        )


class NoAnchorFoundError(AnchorError):
    """The search ended without a candidate satisfying the precision constraints.

    The best candidate found (by precision) is attached as :attr:`result` so
    that callers can still inspect the closest attempt.
    """

    def __init__(
        self,
        result: "AnchorResult",
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Store the best-effort result next to the message."""
        payload = dict(details or {})
        payload.setdefault("features", sorted(result.features))
        payload.setdefault("precision", result.precision)
        payload.setdefault("coverage", result.coverage)
        super().__init__(
            message or "Could not identify an anchor satisfying the parameters.",
            details=payload,
        )
        self.result = result


def explain_exception(e: Exception) -> str:
    """Return a human-readable multi-line description of an exception.

    Parameters
    ----------
    e : Exception
        The exception to format.

    Returns
    -------
    str
        Multi-line message. For :class:`AnchorError` the class name, message
        and details dict (if present) are included.

    Examples
    --------
    >>> from anchor_explanations.utils.exceptions import ValidationError, explain_exception
    >>> e = ValidationError("tau must be in [0, 1]", details={"param": "tau", "value": 2.0})
    >>> print(explain_exception(e))
    ValidationError: tau must be in [0, 1]
      Details: {'param': 'tau', 'value': 2.0}
    """
    if isinstance(e, AnchorError):
        lines = [f"{e.__class__.__name__}: {str(e)}"]
        if e.details is not None:
            lines.append(f"  Details: {e.details}")
        return "\n".join(lines)
    return str(e)
