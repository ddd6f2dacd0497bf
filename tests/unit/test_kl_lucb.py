"""Unit tests for the KL-LUCB best-arm identification strategy."""

import numpy as np
import pytest

from anchor_explanations.core.candidate import AnchorCandidate
from anchor_explanations.exploration.kl_lucb import KLLUCB, compute_beta
from anchor_explanations.parallel.sampling import SampleOutcome, SamplingService
from anchor_explanations.utils.exceptions import ValidationError


def bernoulli_service(true_precisions, seed=0):
    rng = np.random.default_rng(seed)

    def sample(candidate, count):
        (feature,) = candidate.canonical_features
        return SampleOutcome(count, int(rng.binomial(count, true_precisions[feature])))

    return SamplingService(sample)


def test_beta_grows_with_rounds_and_arms():
    assert compute_beta(4, 2, 0.1) > compute_beta(4, 1, 0.1)
    assert compute_beta(8, 1, 0.1) > compute_beta(4, 1, 0.1)
    assert compute_beta(4, 1, 0.01) > compute_beta(4, 1, 0.1)


def test_identifies_the_best_arms():
    true_precisions = [0.3, 0.9, 0.5, 0.85, 0.1]
    candidates = [AnchorCandidate((i,)) for i in range(5)]
    service = bernoulli_service(true_precisions, seed=3)
    top = KLLUCB(epsilon=0.1, batch_size=20).identify(candidates, service, 0.05, 2)
    assert {c.ordered_features[0] for c in top} == {1, 3}
    assert top[0].precision >= top[1].precision


def test_samples_unsampled_candidates_first():
    candidates = [AnchorCandidate((i,)) for i in range(3)]
    service = bernoulli_service([0.2, 0.5, 0.8])
    top = KLLUCB().identify(candidates, service, 0.1, 3)
    assert all(c.sampled_size >= 1 for c in candidates)
    assert len(top) == 3


def test_returns_all_when_top_n_covers_everything():
    candidates = [AnchorCandidate((i,)) for i in range(2)]
    for candidate, positives in zip(candidates, (3, 9)):
        candidate.register_samples(10, positives)
    service = bernoulli_service([0.3, 0.9])
    top = KLLUCB().identify(candidates, service, 0.1, 5)
    assert [c.ordered_features for c in top] == [(1,), (0,)]
    assert service.metrics.sessions == 0


def test_nothing_requested_returns_nothing():
    service = bernoulli_service([0.5])
    assert KLLUCB().identify([AnchorCandidate((0,))], service, 0.1, 0) == []
    assert KLLUCB().identify([], service, 0.1, 1) == []


def test_max_rounds_bounds_sampling():
    candidates = [AnchorCandidate((i,)) for i in range(3)]
    service = bernoulli_service([0.5, 0.5, 0.5])
    KLLUCB(epsilon=0.0, batch_size=10, max_rounds=4).identify(candidates, service, 0.1, 1)
    # one initial session plus at most three iterations of two arms each
    assert sum(c.sampled_size for c in candidates) <= 3 + 3 * 2 * 10


@pytest.mark.parametrize("kwargs", [{"epsilon": 1.5}, {"batch_size": 0}, {"max_rounds": -1}])
def test_invalid_parameters(kwargs):
    with pytest.raises(ValidationError):
        KLLUCB(**kwargs)


def test_zero_delta_ranks_by_current_means():
    candidates = [AnchorCandidate((i,)) for i in range(3)]
    for candidate, positives in zip(candidates, (2, 9, 5)):
        candidate.register_samples(10, positives)
    service = bernoulli_service([0.2, 0.9, 0.5])
    top = KLLUCB().identify(candidates, service, 0.0, 2)
    assert [c.ordered_features for c in top] == [(1,), (2,)]
    assert service.metrics.sessions == 0
