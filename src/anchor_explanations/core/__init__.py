"""Core of the anchor search: value types, confidence bounds and the beam search."""

from __future__ import annotations

from .bernoulli import dlow_bernoulli, dup_bernoulli, kl_bernoulli
from .candidate import AnchorCandidate, AnchorResult
from .protocols import (
    BestAnchorIdentification,
    ClassificationFunction,
    CoverageIdentification,
    PerturbationFunction,
    PerturbationResult,
)
from .anchor_construction import AnchorConstruction

__all__ = [
    "AnchorCandidate",
    "AnchorConstruction",
    "AnchorResult",
    "BestAnchorIdentification",
    "ClassificationFunction",
    "CoverageIdentification",
    "PerturbationFunction",
    "PerturbationResult",
    "dlow_bernoulli",
    "dup_bernoulli",
    "kl_bernoulli",
]
