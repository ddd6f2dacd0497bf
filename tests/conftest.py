"""Shared pytest fixtures for anchor construction tests."""

from __future__ import annotations

import pytest

from anchor_explanations.core.anchor_construction import AnchorConstruction
from anchor_explanations.exploration.kl_lucb import KLLUCB
from tests.helpers.model_utils import BinaryPerturbation, FeatureRuleClassifier, ProductCoverage


@pytest.fixture
def clean_env(monkeypatch):
    """Ensure the library's environment overrides are unset."""
    for name in ("AE_ANCHOR", "AE_PARALLEL", "AE_TRACE_SAMPLING"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def instance():
    return [1, 1, 1]


@pytest.fixture
def make_construction(instance, clean_env):
    """Factory building an AnchorConstruction around the binary test doubles."""

    def _make(**overrides):
        params = dict(
            classification_function=FeatureRuleClassifier(instance, rules=[(0,)]),
            perturbation_function=BinaryPerturbation(instance, seed=1),
            best_anchor_identification=KLLUCB(batch_size=50),
            coverage_identification=ProductCoverage([0.5, 0.5, 0.5]),
            explained_instance=instance,
            explained_instance_label=1,
            max_anchor_size=2,
            beam_size=2,
            delta=0.1,
            tau=0.95,
            tau_discrepancy=0.05,
            init_sample_count=50,
        )
        params.update(overrides)
        return AnchorConstruction(**params)

    return _make
