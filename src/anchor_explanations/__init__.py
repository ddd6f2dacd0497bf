"""Anchor explanations (anchor_explanations).

is a Python package for explaining black-box classifiers with anchors: minimal
feature conjunctions that keep a prediction stable with high, statistically
guaranteed probability.

It is based on the paper "Anchors: High-Precision Model-Agnostic Explanations"
by Marco Tulio Ribeiro et al.
"""

import logging as _logging

from .api.config import AnchorConfig, AnchorConstructionBuilder
from .core.anchor_construction import AnchorConstruction
from .core.candidate import AnchorCandidate, AnchorResult
from .core.protocols import PerturbationResult
from .exploration.kl_lucb import KLLUCB
from .parallel import ParallelConfig
from .utils.exceptions import (
    AnchorError,
    ConfigurationError,
    NoAnchorFoundError,
    NoCandidateFoundError,
    ValidationError,
)

# Provide a default no-op handler to avoid "No handler" warnings for library users.
_logging.getLogger(__name__).addHandler(_logging.NullHandler())

__version__ = "v0.1.0"

__all__ = [
    "AnchorCandidate",
    "AnchorConfig",
    "AnchorConstruction",
    "AnchorConstructionBuilder",
    "AnchorError",
    "AnchorResult",
    "ConfigurationError",
    "KLLUCB",
    "NoAnchorFoundError",
    "NoCandidateFoundError",
    "ParallelConfig",
    "PerturbationResult",
    "ValidationError",
]
