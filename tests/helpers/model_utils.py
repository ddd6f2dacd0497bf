"""Minimal collaborator doubles used throughout tests."""

from typing import FrozenSet, List

import numpy as np

from anchor_explanations.core.protocols import PerturbationResult


class FeatureRuleClassifier:
    """Predict 1 when any rule (a set of features) equals ``reference`` on all its features."""

    def __init__(self, reference, rules, other_label: int = 0) -> None:
        self.reference = np.asarray(reference)
        self.rules = [tuple(rule) for rule in rules]
        self.other_label = other_label
        self.calls = 0

    def predict(self, x):
        self.calls += 1
        x = np.atleast_2d(np.asarray(x))
        hits = np.zeros(len(x), dtype=bool)
        for rule in self.rules:
            cols = list(rule)
            hits |= np.all(x[:, cols] == self.reference[cols], axis=1)
        return np.where(hits, 1, self.other_label)


class RandomClassifier:
    """Predict uniformly random labels in {0, 1}, ignoring the input."""

    def __init__(self, seed: int = 0) -> None:
        self.rng = np.random.default_rng(seed)

    def predict(self, x):
        return self.rng.integers(0, 2, size=len(x))


class ConstantClassifier:
    def __init__(self, label: int = 1) -> None:
        self.label = label

    def predict(self, x):
        return np.full(len(x), self.label)


class BinaryPerturbation:
    """Keep fixed features at the instance's value, draw the others from {0, 1}."""

    def __init__(self, instance, seed: int = 0) -> None:
        self.instance = np.asarray(instance)
        self.rng = np.random.default_rng(seed)
        self.requested: List[FrozenSet[int]] = []

    def perturb(self, immutable_features, count):
        self.requested.append(frozenset(immutable_features))
        samples = self.rng.integers(0, 2, size=(count, len(self.instance)))
        fixed = sorted(immutable_features)
        samples[:, fixed] = self.instance[fixed]
        return PerturbationResult(samples)


class ProductCoverage:
    """Coverage as the product of per-feature coverages (monotone non-increasing)."""

    def __init__(self, per_feature) -> None:
        self.per_feature = list(per_feature)
        self.calls = 0

    def calculate_coverage(self, features):
        self.calls += 1
        return float(np.prod([self.per_feature[f] for f in features]))


class TabularPerturbation:
    """Draw rows from a dataset and overwrite the fixed features with the instance's values."""

    def __init__(self, data, instance, seed: int = 0) -> None:
        self.data = np.asarray(data)
        self.instance = np.asarray(instance)
        self.rng = np.random.default_rng(seed)

    def perturb(self, immutable_features, count):
        rows = self.data[self.rng.integers(0, len(self.data), size=count)].copy()
        fixed = sorted(immutable_features)
        rows[:, fixed] = self.instance[fixed]
        return PerturbationResult(rows)


class TabularCoverage:
    """Fraction of dataset rows equal to the instance on the given features."""

    def __init__(self, data, instance) -> None:
        self.data = np.asarray(data)
        self.instance = np.asarray(instance)

    def calculate_coverage(self, features):
        cols = sorted(features)
        return float(np.mean(np.all(self.data[:, cols] == self.instance[cols], axis=1)))
