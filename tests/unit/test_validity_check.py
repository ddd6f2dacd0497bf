"""Unit tests for the confidence-bound validity check."""

import math

import pytest

from anchor_explanations.core.anchor_construction import (
    compute_validation_beta,
    confidence_bounds,
    is_confirmed_anchor,
    is_valid_precision,
    needs_more_samples,
)
from anchor_explanations.core.candidate import AnchorCandidate
from tests.helpers.model_utils import ConstantClassifier, RandomClassifier


def test_beta_accounts_for_all_hypotheses():
    assert compute_validation_beta(0.1, 3, 5) == pytest.approx(math.log(11 / 0.1))
    assert compute_validation_beta(0.1, 1, 5) == pytest.approx(math.log(1 / 0.1))


def test_beta_with_zero_delta_is_infinite():
    assert math.isinf(compute_validation_beta(0.0, 2, 3))
    assert confidence_bounds(0.9, 100, math.inf) == (0.0, 1.0)


def test_unsampled_bounds_are_uninformative():
    assert confidence_bounds(0.0, 0, 2.0) == (0.0, 1.0)


def test_decision_is_deterministic():
    args = (0.97, 400, compute_validation_beta(0.1, 2, 3), 0.95, 0.05)
    first = is_valid_precision(*args)
    assert all(is_valid_precision(*args) == first for _ in range(5))
    assert first is True


@pytest.mark.parametrize(
    "mean, lb, ub, expected",
    [
        (0.96, 0.85, 0.99, True),  # above tau, lower bound too low
        (0.96, 0.92, 0.99, False),  # above tau, lower bound within discrepancy
        (0.80, 0.70, 0.99, False),  # below tau, upper bound below tau + discrepancy
        (0.80, 0.70, 1.00, True),  # below tau, upper bound reaches tau + discrepancy
    ],
)
def test_needs_more_samples(mean, lb, ub, expected):
    assert needs_more_samples(mean, lb, ub, tau=0.95, tau_discrepancy=0.05) is expected


def test_confirmation_requires_mean_and_lower_bound():
    assert is_confirmed_anchor(0.96, 0.91, 0.95, 0.05)
    assert not is_confirmed_anchor(0.96, 0.89, 0.95, 0.05)
    assert not is_confirmed_anchor(0.96, 0.95 - 0.05, 0.95, 0.05)
    assert not is_confirmed_anchor(0.94, 0.93, 0.95, 0.05)


class TestIsValidCandidate:
    def test_perfect_candidate_is_valid_without_resampling(self, make_construction):
        construction = make_construction(classification_function=ConstantClassifier(1))
        candidate = AnchorCandidate((0,))
        candidate.register_samples(200, 200)
        assert construction.is_valid_candidate(candidate)
        assert candidate.sampled_size == 200

    def test_undersampled_candidate_is_resampled_until_confirmed(self, make_construction):
        construction = make_construction(classification_function=ConstantClassifier(1), init_sample_count=10)
        candidate = AnchorCandidate((0,))
        candidate.register_samples(1, 1)
        assert construction.is_valid_candidate(candidate)
        assert candidate.sampled_size > 1
        assert (candidate.sampled_size - 1) % 10 == 0

    def test_clearly_bad_candidate_is_rejected(self, make_construction):
        construction = make_construction(classification_function=ConstantClassifier(0))
        candidate = AnchorCandidate((1,))
        candidate.register_samples(100, 10)
        assert not construction.is_valid_candidate(candidate)
        assert candidate.sampled_size == 100

    def test_resampling_is_capped(self, make_construction):
        construction = make_construction(
            classification_function=RandomClassifier(seed=3),
            tau=0.5,
            tau_discrepancy=0.0,
            init_sample_count=10,
            max_validation_resamples=5,
        )
        candidate = AnchorCandidate((1,))
        candidate.register_samples(10, 5)
        assert not construction.is_valid_candidate(candidate)
        assert candidate.sampled_size == 10 + 5 * 10

    def test_zero_init_sample_count_still_makes_progress(self, make_construction):
        construction = make_construction(classification_function=ConstantClassifier(1), init_sample_count=0)
        candidate = AnchorCandidate((0,))
        assert construction.is_valid_candidate(candidate)
        assert candidate.sampled_size > 0
