"""Public configuration API."""

from .config import AnchorConfig, AnchorConstructionBuilder

__all__ = ["AnchorConfig", "AnchorConstructionBuilder"]
