"""Logging utilities for anchor explanations.

This module provides structured logging context for the beam search so that
records emitted while explaining an instance can be correlated by explainer,
anchor size and candidate.
"""

from __future__ import annotations

import contextlib
import contextvars
import logging
import os
from typing import Any, Dict, Iterator

from .core.config_helpers import coerce_bool, read_pyproject_section

_CONTEXT_KEYS = (
    "explainer_id",
    "anchor_size",
    "candidate",
)

_context_vars = {key: contextvars.ContextVar(key, default=None) for key in _CONTEXT_KEYS}


def trace_sampling_enabled() -> bool:
    """Return whether every sampling batch should be logged at DEBUG level.

    Reads ``AE_TRACE_SAMPLING`` or ``trace_sampling`` from the
    ``[tool.anchor_explanations.logging]`` section of pyproject.toml. The
    environment variable takes precedence.
    """
    env_value = os.environ.get("AE_TRACE_SAMPLING")
    if env_value is not None:
        return coerce_bool(env_value)

    config = read_pyproject_section(("tool", "anchor_explanations", "logging"))
    return coerce_bool(config.get("trace_sampling")) if config else False


def get_logging_context() -> Dict[str, Any]:
    """Return current structured logging context."""
    return {key: var.get() for key, var in _context_vars.items() if var.get() is not None}


def update_logging_context(**kwargs: Any) -> None:
    """Update structured logging context fields present in kwargs."""
    for key, value in kwargs.items():
        if key in _context_vars:
            _context_vars[key].set(value)


@contextlib.contextmanager
def logging_context(**kwargs: Any) -> Iterator[None]:
    """Context manager to temporarily set logging context fields."""
    tokens = {}
    for key, value in kwargs.items():
        if key in _context_vars:
            tokens[key] = _context_vars[key].set(value)
    try:
        yield
    finally:
        for key, token in tokens.items():
            _context_vars[key].reset(token)


class LoggingContextFilter(logging.Filter):
    """Logging filter that injects structured context into records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject structured context into the log record."""
        context = get_logging_context()
        for key in _CONTEXT_KEYS:
            setattr(record, key, context.get(key))
        return True


def ensure_logging_context_filter(logger_name: str = "anchor_explanations") -> None:
    """Attach the context filter to the package logger once."""
    logger = logging.getLogger(logger_name)
    for existing in logger.filters:
        if isinstance(existing, LoggingContextFilter):
            return
    logger.addFilter(LoggingContextFilter())


__all__ = [
    "trace_sampling_enabled",
    "get_logging_context",
    "update_logging_context",
    "logging_context",
    "ensure_logging_context_filter",
    "LoggingContextFilter",
]
