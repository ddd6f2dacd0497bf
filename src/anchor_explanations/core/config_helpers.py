"""Configuration parsing and coercion utilities.

Helpers for reading external configuration sources such as ``pyproject.toml``
and environment variables, shared by the anchor and parallel configuration
objects.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence, Tuple

try:
    import tomllib as _tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    try:  # pragma: no cover - optional dependency path
        import tomli as _tomllib  # type: ignore[assignment]
    except ModuleNotFoundError:  # pragma: no cover - tomllib unavailable
        _tomllib = None  # type: ignore[assignment]

from ..utils.exceptions import ConfigurationError

_TRUE_TOKENS = {"1", "true", "yes", "on", "enable"}
_FALSE_TOKENS = {"0", "false", "no", "off", "disable"}


def read_pyproject_section(path: Sequence[str], root: Path | None = None) -> Dict[str, Any]:
    """Return a mapping from the requested ``pyproject.toml`` section.

    Parameters
    ----------
    path : Sequence[str]
        Nested keys to traverse, e.g. ``("tool", "anchor_explanations")``.
    root : Path, optional
        Directory holding ``pyproject.toml``; defaults to the working directory.

    Returns
    -------
    Dict[str, Any]
        The requested section, or an empty dict if the file does not exist,
        cannot be parsed or lacks the section.
    """
    if _tomllib is None:
        return {}

    candidate = (root or Path.cwd()) / "pyproject.toml"
    if not candidate.exists():
        return {}
    try:
        with candidate.open("rb") as fh:
            data = _tomllib.load(fh)
    except (OSError, _tomllib.TOMLDecodeError):  # pragma: no cover - permissive fallback
        return {}

    cursor: Any = data
    for key in path:
        if isinstance(cursor, dict) and key in cursor:
            cursor = cursor[key]
        else:
            return {}
    if isinstance(cursor, dict):
        return dict(cursor)
    return {}


def split_csv(value: str | None) -> Tuple[str, ...]:
    """Split a comma-separated environment variable into a tuple of strings.

    >>> split_csv("beam=3, tau=0.9 ,")
    ('beam=3', 'tau=0.9')
    >>> split_csv(None)
    ()
    """
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def coerce_bool(value: str | bool | None) -> bool:
    """Interpret common truthy spellings; everything else is ``False``."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_TOKENS


def parse_bool_token(key: str, value: str) -> bool:
    """Strictly parse an on/off token, raising on anything unrecognised."""
    lowered = value.strip().lower()
    if lowered in _TRUE_TOKENS:
        return True
    if lowered in _FALSE_TOKENS:
        return False
    raise ConfigurationError(
        f"Cannot interpret {value!r} as a boolean for '{key}'.",
        details={"param": key, "value": value},
    )


def parse_number_token(key: str, value: str, kind: type) -> Any:
    """Convert ``value`` with ``kind`` (``int`` or ``float``) or raise."""
    try:
        return kind(value.strip())
    except ValueError as exc:
        raise ConfigurationError(
            f"Cannot interpret {value!r} as {kind.__name__} for '{key}'.",
            details={"param": key, "value": value, "expected": kind.__name__},
        ) from exc


__all__ = [
    "read_pyproject_section",
    "split_csv",
    "coerce_bool",
    "parse_bool_token",
    "parse_number_token",
]
