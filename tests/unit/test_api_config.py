from __future__ import annotations

import pytest

from anchor_explanations.api.config import AnchorConfig, AnchorConstructionBuilder
from anchor_explanations.exploration.kl_lucb import KLLUCB
from anchor_explanations.parallel.parallel import ParallelConfig
from anchor_explanations.utils.exceptions import ConfigurationError, ValidationError
from tests.helpers.model_utils import BinaryPerturbation, ConstantClassifier, ProductCoverage


@pytest.fixture
def builder(instance):
    return AnchorConstructionBuilder(
        ConstantClassifier(1),
        BinaryPerturbation(instance),
        ProductCoverage([0.5, 0.5, 0.5]),
        instance,
    )


def test_defaults():
    cfg = AnchorConfig()
    assert cfg.max_anchor_size is None
    assert (cfg.beam_size, cfg.delta, cfg.tau, cfg.tau_discrepancy) == (2, 0.1, 1.0, 0.05)
    assert (cfg.init_sample_count, cfg.thread_count) == (1, 1)
    assert cfg.lazy_coverage_evaluation is False
    assert cfg.max_validation_resamples == 1000
    assert not cfg.parallel.enabled


def test_from_env_overrides(monkeypatch, clean_env):
    monkeypatch.setenv("AE_ANCHOR", "beam=4, tau=0.9, lazy, max_size=3, init_samples=20")
    monkeypatch.setenv("AE_PARALLEL", "enable,workers=3")
    cfg = AnchorConfig.from_env()
    assert cfg.beam_size == 4
    assert cfg.tau == pytest.approx(0.9)
    assert cfg.lazy_coverage_evaluation is True
    assert cfg.max_anchor_size == 3
    assert cfg.init_sample_count == 20
    assert cfg.parallel.enabled
    assert cfg.parallel.max_workers == 3


def test_from_env_keeps_base(monkeypatch, clean_env):
    base = AnchorConfig(delta=0.05)
    monkeypatch.setenv("AE_ANCHOR", "lazy=off")
    cfg = AnchorConfig.from_env(base)
    assert cfg.delta == 0.05
    assert cfg.lazy_coverage_evaluation is False
    assert cfg is not base


@pytest.mark.parametrize("value", ["unknown=1", "beam=wide", "lazy=maybe"])
def test_from_env_rejects_bad_tokens(monkeypatch, clean_env, value):
    monkeypatch.setenv("AE_ANCHOR", value)
    with pytest.raises(ConfigurationError):
        AnchorConfig.from_env()


def test_from_pyproject(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        "[tool.anchor_explanations]\n"
        "beam = 3\n"
        "delta = 0.2\n"
        "lazy = true\n"
        "\n"
        "[tool.anchor_explanations.logging]\n"
        "trace_sampling = true\n",
        encoding="utf-8",
    )
    cfg = AnchorConfig.from_pyproject(root=tmp_path)
    assert cfg.beam_size == 3
    assert cfg.delta == pytest.approx(0.2)
    assert cfg.lazy_coverage_evaluation is True


def test_from_pyproject_without_file(tmp_path):
    assert AnchorConfig.from_pyproject(root=tmp_path) == AnchorConfig()


def test_from_pyproject_rejects_non_numbers(tmp_path):
    (tmp_path / "pyproject.toml").write_text('[tool.anchor_explanations]\nbeam = [1, 2]\n', encoding="utf-8")
    with pytest.raises(ConfigurationError):
        AnchorConfig.from_pyproject(root=tmp_path)


def test_builder_defaults(builder):
    construction = builder.build()
    assert construction.max_anchor_size == 3
    assert construction.feature_count == 3
    assert construction.explained_instance_label == 1
    assert isinstance(construction.best_anchor_identification, KLLUCB)


def test_builder_fluent_setters(builder):
    strategy = KLLUCB(batch_size=10)
    construction = (
        builder.beam_size(4)
        .delta(0.05)
        .tau(0.9)
        .tau_discrepancy(0.01)
        .init_sample_count(10)
        .max_anchor_size(2)
        .thread_count(2)
        .lazy_coverage_evaluation(True)
        .max_validation_resamples(5)
        .parallel(ParallelConfig(min_batch_size=1))
        .best_anchor_identification(strategy)
        .build()
    )
    assert (construction.beam_size, construction.delta, construction.tau) == (4, 0.05, 0.9)
    assert construction.tau_discrepancy == 0.01
    assert construction.init_sample_count == 10
    assert construction.max_anchor_size == 2
    assert construction.lazy_coverage_evaluation is True
    assert construction.max_validation_resamples == 5
    assert construction.best_anchor_identification is strategy
    assert construction.executor.config.enabled
    assert construction.executor.config.max_workers == 2
    assert construction.executor.config.min_batch_size == 1


def test_builder_uses_given_config(instance):
    cfg = AnchorConfig(beam_size=5, tau=0.8)
    builder = AnchorConstructionBuilder(
        ConstantClassifier(0),
        BinaryPerturbation(instance),
        ProductCoverage([0.5] * 3),
        instance,
        explained_instance_label=0,
        config=cfg,
    )
    built = builder.beam_size(6).build_config()
    assert built.beam_size == 6
    assert built.tau == 0.8
    # the caller's configuration is left untouched
    assert cfg.beam_size == 5
    assert builder.build().explained_instance_label == 0


def test_builder_feature_count_override(instance):
    builder = AnchorConstructionBuilder(
        ConstantClassifier(1), BinaryPerturbation(instance), ProductCoverage([0.5] * 3), instance
    )
    assert builder.feature_count(2).build().max_anchor_size == 2


@pytest.mark.parametrize(
    "configure",
    [
        lambda b: b.beam_size(-1),
        lambda b: b.tau(1.5),
        lambda b: b.delta(-0.1),
        lambda b: b.thread_count(-2),
    ],
)
def test_builder_validates_on_build(builder, configure):
    configure(builder)
    with pytest.raises(ValidationError):
        builder.build()


def test_builder_requires_classifier(instance):
    with pytest.raises(ValidationError):
        AnchorConstructionBuilder(None, BinaryPerturbation(instance), ProductCoverage([0.5] * 3), instance)
