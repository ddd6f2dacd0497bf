"""Value types of the anchor search: candidates and results."""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from ..utils.exceptions import AnchorError, ValidationError


class AnchorCandidate:
    """A feature conjunction under evaluation, with its running sample statistics.

    The feature set is fixed at construction; extending a candidate creates a
    new one that points back to its origin through a weak reference. Sample
    counters only grow, and only through :meth:`register_samples`.

    Two candidates are equal iff their feature sets are equal, regardless of
    the order in which the features were added.
    """

    __slots__ = (
        "_ordered_features",
        "_canonical_features",
        "_parent_ref",
        "_sampled_size",
        "_positive_samples",
        "_coverage",
        "_lock",
        "__weakref__",
    )

    def __init__(self, features: Iterable[int], parent: Optional["AnchorCandidate"] = None) -> None:
        ordered = tuple(int(f) for f in features)
        if not ordered:
            raise ValidationError("A candidate needs at least one feature.", details={"param": "features"})
        if len(set(ordered)) != len(ordered):
            raise ValidationError(
                "Candidate features must be unique.",
                details={"param": "features", "value": ordered},
            )
        if any(f < 0 for f in ordered):
            raise ValidationError(
                "Candidate features must be non-negative indices.",
                details={"param": "features", "value": ordered},
            )
        self._ordered_features: Tuple[int, ...] = ordered
        self._canonical_features: FrozenSet[int] = frozenset(ordered)
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._sampled_size = 0
        self._positive_samples = 0
        self._coverage: Optional[float] = None
        self._lock = threading.Lock()

    def extend(self, feature: int) -> "AnchorCandidate":
        """Return a new candidate with ``feature`` appended and ``self`` as parent."""
        return AnchorCandidate(self._ordered_features + (int(feature),), parent=self)

    # ------------------------------------------------------------------
    # Features and lineage
    # ------------------------------------------------------------------
    @property
    def ordered_features(self) -> Tuple[int, ...]:
        """Features in the order they were added."""
        return self._ordered_features

    @property
    def canonical_features(self) -> FrozenSet[int]:
        """Features as an unordered set."""
        return self._canonical_features

    @property
    def parent(self) -> Optional["AnchorCandidate"]:
        """The candidate this one was extended from, if it is still alive."""
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def added_feature(self) -> int:
        """The last feature added when building this candidate."""
        return self._ordered_features[-1]

    def __len__(self) -> int:
        return len(self._ordered_features)

    # ------------------------------------------------------------------
    # Sample statistics
    # ------------------------------------------------------------------
    def register_samples(self, sample_count: int, positive_count: int) -> None:
        """Merge the outcome of one sampling batch into the counters."""
        if sample_count < 0 or positive_count < 0:
            raise ValidationError(
                "Sample counts must not be negative.",
                details={"sample_count": sample_count, "positive_count": positive_count},
            )
        if positive_count > sample_count:
            raise ValidationError(
                "More positive samples than samples registered.",
                details={"sample_count": sample_count, "positive_count": positive_count},
            )
        with self._lock:
            self._sampled_size += int(sample_count)
            self._positive_samples += int(positive_count)

    @property
    def sampled_size(self) -> int:
        return self._sampled_size

    @property
    def positive_samples(self) -> int:
        return self._positive_samples

    @property
    def precision(self) -> float:
        """Fraction of samples whose prediction matched the explained label."""
        with self._lock:
            if self._sampled_size == 0:
                return 0.0
            return self._positive_samples / self._sampled_size

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------
    @property
    def is_coverage_undefined(self) -> bool:
        return self._coverage is None

    @property
    def coverage(self) -> Optional[float]:
        """Coverage of the conjunction, ``None`` until it has been calculated."""
        return self._coverage

    @coverage.setter
    def coverage(self, value: float) -> None:
        if self._coverage is not None:
            raise AnchorError(
                "Coverage of a candidate may only be set once.",
                details={"features": sorted(self._canonical_features)},
            )
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ValidationError(
                "Coverage must be within [0, 1].",
                details={"param": "coverage", "value": value},
            )
        self._coverage = value

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnchorCandidate):
            return NotImplemented
        return self._canonical_features == other._canonical_features

    def __hash__(self) -> int:
        return hash(self._canonical_features)

    def __repr__(self) -> str:
        return (
            f"AnchorCandidate(features={list(self._ordered_features)}, "
            f"precision={self.precision:.4f}, coverage={self._coverage}, "
            f"sampled_size={self._sampled_size})"
        )


@dataclass(frozen=True)
class AnchorResult:
    """Outcome of an anchor construction.

    ``is_anchor`` is ``False`` for the best-effort result carried by
    :class:`~anchor_explanations.utils.exceptions.NoAnchorFoundError`.
    """

    candidate: AnchorCandidate
    instance: Any
    label: int
    is_anchor: bool = True

    @property
    def features(self) -> FrozenSet[int]:
        return self.candidate.canonical_features

    @property
    def ordered_features(self) -> Tuple[int, ...]:
        return self.candidate.ordered_features

    @property
    def precision(self) -> float:
        return self.candidate.precision

    @property
    def coverage(self) -> Optional[float]:
        return self.candidate.coverage

    @property
    def sampled_size(self) -> int:
        return self.candidate.sampled_size

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly summary of the result."""
        return {
            "features": list(self.ordered_features),
            "precision": self.precision,
            "coverage": self.coverage,
            "sampled_size": self.sampled_size,
            "positive_samples": self.candidate.positive_samples,
            "label": int(self.label),
            "is_anchor": self.is_anchor,
        }


__all__ = ["AnchorCandidate", "AnchorResult"]
