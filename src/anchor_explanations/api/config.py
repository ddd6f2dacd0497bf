"""Configuration primitives for anchor_explanations.

:class:`AnchorConfig` holds the search parameters with their defaults and can
be overridden from ``pyproject.toml`` or the ``AE_ANCHOR`` environment
variable. :class:`AnchorConstructionBuilder` assembles a validated
:class:`~anchor_explanations.core.anchor_construction.AnchorConstruction`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict

import numpy as np

from ..core.anchor_construction import AnchorConstruction, infer_feature_count
from ..core.config_helpers import (
    parse_bool_token,
    parse_number_token,
    read_pyproject_section,
    split_csv,
)
from ..core.protocols import BestAnchorIdentification, as_classification_function
from ..core.validation import validate_not_none
from ..exploration.kl_lucb import KLLUCB
from ..parallel.parallel import ParallelConfig
from ..utils.exceptions import ConfigurationError

# token name -> (field name, type); bool fields accept a bare token as "on"
_ENV_FIELDS: Dict[str, tuple[str, type]] = {
    "beam": ("beam_size", int),
    "delta": ("delta", float),
    "tau": ("tau", float),
    "tau_discrepancy": ("tau_discrepancy", float),
    "init_samples": ("init_sample_count", int),
    "max_size": ("max_anchor_size", int),
    "threads": ("thread_count", int),
    "lazy": ("lazy_coverage_evaluation", bool),
    "max_resamples": ("max_validation_resamples", int),
}


@dataclass
class AnchorConfig:
    """Parameters of an anchor construction.

    Notes
    -----
    ``max_anchor_size=None`` means "as many features as the instance has".
    Values are validated when the construction is built, not here.
    """

    max_anchor_size: int | None = None
    beam_size: int = 2
    delta: float = 0.1
    tau: float = 1.0
    tau_discrepancy: float = 0.05
    init_sample_count: int = 1
    thread_count: int = 1
    lazy_coverage_evaluation: bool = False
    max_validation_resamples: int = 1000
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    def _apply(self, key: str, raw: Any, source: str) -> None:
        if key not in _ENV_FIELDS:
            raise ConfigurationError(
                f"Unknown {source} setting {key!r}.",
                details={"source": source, "key": key},
            )
        name, kind = _ENV_FIELDS[key]
        if isinstance(raw, str):
            value = parse_bool_token(key, raw) if kind is bool else parse_number_token(key, raw, kind)
        elif kind is bool:
            value = bool(raw)
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
            value = kind(raw)
        else:
            raise ConfigurationError(
                f"Invalid value {raw!r} for {source} setting {key!r}.",
                details={"source": source, "key": key, "value": raw},
            )
        setattr(self, name, value)

    @classmethod
    def from_env(cls, base: "AnchorConfig | None" = None) -> "AnchorConfig":
        """Merge ``AE_ANCHOR`` overrides (``beam=4,tau=0.9,lazy``) into ``base``."""
        cfg = replace(base) if base is not None else cls()
        for token in split_csv(os.getenv("AE_ANCHOR")):
            key, sep, raw = token.partition("=")
            key = key.strip().lower()
            cfg._apply(key, raw if sep else "on", "AE_ANCHOR")
        cfg.parallel = ParallelConfig.from_env(cfg.parallel)
        return cfg

    @classmethod
    def from_pyproject(cls, base: "AnchorConfig | None" = None, root: Path | None = None) -> "AnchorConfig":
        """Apply the ``[tool.anchor_explanations]`` section of pyproject.toml."""
        cfg = replace(base) if base is not None else cls()
        section = read_pyproject_section(("tool", "anchor_explanations"), root=root)
        for key, value in section.items():
            if isinstance(value, dict):
                # nested tables such as [tool.anchor_explanations.logging]
                continue
            cfg._apply(key, value, "pyproject")
        return cfg


class AnchorConstructionBuilder:
    """Fluent helper to assemble an :class:`AnchorConstruction`.

    Parameters
    ----------
    classification_function
        Model (``predict``) or callable returning labels.
    perturbation_function
        Object with ``perturb(features, count)`` or equivalent callable.
    coverage_identification
        Object with ``calculate_coverage(features)`` or equivalent callable.
    explained_instance
        The instance to explain.
    explained_instance_label : int, optional
        Its label; obtained from the classification function when omitted.
    config : AnchorConfig, optional
        Starting configuration; defaults to :class:`AnchorConfig` defaults.
    """

    def __init__(
        self,
        classification_function: Any,
        perturbation_function: Any,
        coverage_identification: Any,
        explained_instance: Any,
        explained_instance_label: int | None = None,
        *,
        config: AnchorConfig | None = None,
    ) -> None:
        validate_not_none(classification_function, "Classification function")
        validate_not_none(explained_instance, "Explained instance")
        self._classification_function = classification_function
        self._perturbation_function = perturbation_function
        self._coverage_identification = coverage_identification
        self._explained_instance = explained_instance
        self._explained_instance_label = explained_instance_label
        self._best_anchor_identification: BestAnchorIdentification | None = None
        self._feature_count: int | None = None
        self._cfg = replace(config) if config is not None else AnchorConfig()

    def beam_size(self, beam_size: int) -> "AnchorConstructionBuilder":
        """Set the number of candidates kept per round."""
        self._cfg.beam_size = beam_size
        return self

    def delta(self, delta: float) -> "AnchorConstructionBuilder":
        """Set the significance level."""
        self._cfg.delta = delta
        return self

    def tau(self, tau: float) -> "AnchorConstructionBuilder":
        """Set the precision an anchor must reach."""
        self._cfg.tau = tau
        return self

    def tau_discrepancy(self, tau_discrepancy: float) -> "AnchorConstructionBuilder":
        """Set the tolerated gap between ``tau`` and the confidence bounds."""
        self._cfg.tau_discrepancy = tau_discrepancy
        return self

    def init_sample_count(self, count: int) -> "AnchorConstructionBuilder":
        """Set the samples taken per candidate before best-arm identification."""
        self._cfg.init_sample_count = count
        return self

    def max_anchor_size(self, size: int | None) -> "AnchorConstructionBuilder":
        """Limit the number of features of the anchor; ``None`` for no limit."""
        self._cfg.max_anchor_size = size
        return self

    def thread_count(self, count: int) -> "AnchorConstructionBuilder":
        """Set the number of sampling workers."""
        self._cfg.thread_count = count
        return self

    def lazy_coverage_evaluation(self, flag: bool) -> "AnchorConstructionBuilder":
        """Only compute coverage when needed."""
        self._cfg.lazy_coverage_evaluation = flag
        return self

    def max_validation_resamples(self, count: int) -> "AnchorConstructionBuilder":
        """Cap the resampling steps of the validity check."""
        self._cfg.max_validation_resamples = count
        return self

    def parallel(self, config: ParallelConfig) -> "AnchorConstructionBuilder":
        """Set the base configuration of the sampling worker pool."""
        self._cfg.parallel = config
        return self

    def feature_count(self, count: int) -> "AnchorConstructionBuilder":
        """Override the feature count inferred from the instance."""
        self._feature_count = count
        return self

    def best_anchor_identification(self, strategy: BestAnchorIdentification) -> "AnchorConstructionBuilder":
        """Set the best-arm identification strategy (default :class:`KLLUCB`)."""
        self._best_anchor_identification = strategy
        return self

    def build_config(self) -> AnchorConfig:
        """Return a copy of the assembled configuration (no side effects)."""
        return replace(self._cfg)

    def _resolve_label(self) -> int:
        if self._explained_instance_label is not None:
            return self._explained_instance_label
        classifier = as_classification_function(self._classification_function)
        prediction = np.asarray(classifier.predict(np.asarray([self._explained_instance]))).ravel()
        return int(prediction[0])

    def build(self) -> AnchorConstruction:
        """Validate the configuration and create the construction."""
        cfg = self._cfg
        feature_count = self._feature_count
        if feature_count is None:
            feature_count = infer_feature_count(self._explained_instance)
        max_anchor_size = cfg.max_anchor_size if cfg.max_anchor_size is not None else feature_count
        return AnchorConstruction(
            classification_function=self._classification_function,
            perturbation_function=self._perturbation_function,
            best_anchor_identification=self._best_anchor_identification or KLLUCB(),
            coverage_identification=self._coverage_identification,
            explained_instance=self._explained_instance,
            explained_instance_label=self._resolve_label(),
            max_anchor_size=max_anchor_size,
            beam_size=cfg.beam_size,
            delta=cfg.delta,
            tau=cfg.tau,
            tau_discrepancy=cfg.tau_discrepancy,
            init_sample_count=cfg.init_sample_count,
            thread_count=cfg.thread_count,
            lazy_coverage_evaluation=cfg.lazy_coverage_evaluation,
            max_validation_resamples=cfg.max_validation_resamples,
            feature_count=feature_count,
            parallel_config=cfg.parallel,
        )


__all__ = ["AnchorConfig", "AnchorConstructionBuilder"]
