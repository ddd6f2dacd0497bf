"""Capability interfaces of the collaborators consumed by the anchor search.

Every collaborator may be given either as an object implementing the
protocol or, for the classifier, perturbation and coverage functions, as a
plain callable (e.g. a fitted model's bound ``predict`` method).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, FrozenSet, List, Optional, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - import-time only
    from ..parallel.sampling import SamplingService
    from .candidate import AnchorCandidate


@dataclass
class PerturbationResult:
    """Perturbed instances plus optional per-instance information on what changed."""

    raw_result: Any
    feature_changes: Optional[Any] = None

    def __len__(self) -> int:
        return len(self.raw_result)


@runtime_checkable
class ClassificationFunction(Protocol):
    def predict(self, instances: Any) -> Any:
        """Return one integer label per instance."""


@runtime_checkable
class PerturbationFunction(Protocol):
    def perturb(self, immutable_features: FrozenSet[int], count: int) -> PerturbationResult:
        """Return ``count`` perturbations that keep ``immutable_features`` fixed."""


@runtime_checkable
class CoverageIdentification(Protocol):
    def calculate_coverage(self, features: FrozenSet[int]) -> float:
        """Return the fraction of the input space matched by ``features``."""


@runtime_checkable
class BestAnchorIdentification(Protocol):
    def identify(
        self,
        candidates: List["AnchorCandidate"],
        sampling_service: "SamplingService",
        delta: float,
        top_n: int,
    ) -> List["AnchorCandidate"]:
        """Return ``top_n`` candidates containing the true best ones w.p. ``1 - delta``."""


class _CallableClassifier:
    def __init__(self, fn: Callable[[Any], Any]) -> None:
        self._fn = fn

    def predict(self, instances: Any) -> Any:
        return self._fn(instances)


class _CallablePerturbation:
    def __init__(self, fn: Callable[[FrozenSet[int], int], Any]) -> None:
        self._fn = fn

    def perturb(self, immutable_features: FrozenSet[int], count: int) -> PerturbationResult:
        result = self._fn(immutable_features, count)
        if isinstance(result, PerturbationResult):
            return result
        return PerturbationResult(result)


class _CallableCoverage:
    def __init__(self, fn: Callable[[FrozenSet[int]], float]) -> None:
        self._fn = fn

    def calculate_coverage(self, features: FrozenSet[int]) -> float:
        return self._fn(features)


def as_classification_function(obj: Any) -> ClassificationFunction:
    """Accept a model-like object with ``predict`` or a bare callable."""
    if callable(getattr(obj, "predict", None)):
        return obj
    return _CallableClassifier(obj)


def as_perturbation_function(obj: Any) -> PerturbationFunction:
    """Accept an object with ``perturb`` or a ``(features, count)`` callable."""
    if callable(getattr(obj, "perturb", None)):
        return obj
    return _CallablePerturbation(obj)


def as_coverage_identification(obj: Any) -> CoverageIdentification:
    """Accept an object with ``calculate_coverage`` or a ``(features)`` callable."""
    if callable(getattr(obj, "calculate_coverage", None)):
        return obj
    return _CallableCoverage(obj)


def count_matching_labels(predictions: Any, label: int) -> int:
    """Count how many predictions equal ``label``."""
    return int(np.count_nonzero(np.asarray(predictions).ravel() == label))


__all__ = [
    "PerturbationResult",
    "ClassificationFunction",
    "PerturbationFunction",
    "CoverageIdentification",
    "BestAnchorIdentification",
    "as_classification_function",
    "as_perturbation_function",
    "as_coverage_identification",
    "count_matching_labels",
]
