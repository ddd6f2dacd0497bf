"""Shared utilities used across anchor explanations."""

from .exceptions import (
    AnchorError,
    ConfigurationError,
    NoAnchorFoundError,
    NoCandidateFoundError,
    ValidationError,
    explain_exception,
)

__all__ = [
    "AnchorError",
    "ConfigurationError",
    "NoAnchorFoundError",
    "NoCandidateFoundError",
    "ValidationError",
    "explain_exception",
]
