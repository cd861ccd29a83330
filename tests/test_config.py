"""
Tests for the YAML configuration layer.

Tests:
- get_cfg()/load_model_config(): dotted lookups, task sections, variants, overrides
- PipelineConfig / FeatureSelectionConfig / GAConfig validation
- init_logging_config(): profiles do not leak into later initializations
"""

import logging

import pytest

from CONFIG.config_loader import get_cfg, load_model_config
from CONFIG.config_schemas import (
    FeatureSelectionConfig,
    GAConfig,
    ParallelConfig,
    PipelineConfig,
    VALID_STRATEGIES,
)
from CONFIG.logging_config_utils import get_module_logging_config, init_logging_config
from ALGO_SELECTION.common.exceptions import ConfigError


class TestConfigLoader:

    def test_dotted_lookup(self):
        assert get_cfg("pipeline.scoring.feature_cost_coefficient") == 50
        assert get_cfg("pipeline.scoring.par10_multiplier") == 10

    def test_missing_key_returns_default(self):
        assert get_cfg("pipeline.no.such.key", default="fallback") == "fallback"

    def test_model_config_task_section(self):
        params = load_model_config("decision_tree", task="regression")
        assert params["criterion"] == "squared_error"
        assert params["min_samples_leaf"] == 7

    def test_model_config_variant_and_overrides(self):
        params = load_model_config("decision_tree", variant="deep", overrides={"ccp_alpha": 0.5})
        assert params["min_samples_split"] == 2
        assert params["ccp_alpha"] == 0.5

    def test_unknown_model_config_is_empty(self):
        assert load_model_config("not_a_learner") == {}

    def test_model_config_is_not_shared(self):
        params = load_model_config("svm")
        params["C"] = 99.0
        assert load_model_config("svm")["C"] == 1.0


class TestPipelineConfig:

    def test_from_config_reads_yaml(self):
        cfg = PipelineConfig.from_config()
        assert cfg.baseline == "SBS"
        assert cfg.dimensions == [2, 3, 5, 10]
        assert cfg.function_ids == list(range(1, 25))
        assert tuple(cfg.strategies) == VALID_STRATEGIES
        assert cfg.feature_selection.ga.population_size == 10
        assert cfg.feature_selection.ga2.population_size == 100

    def test_overrides_take_precedence(self):
        cfg = PipelineConfig.from_config(base_seed=7, feature_selection_scope="per_fold")
        assert cfg.base_seed == 7
        assert cfg.feature_selection_scope == "per_fold"

    @pytest.mark.parametrize("kwargs", [
        {"strategies": ["random"]},
        {"families": ["ranking"]},
        {"feature_selection_scope": "nested"},
        {"solvers": ["A", "SBS"]},
        {"par10_multiplier": 1.0},
        {"feature_cost_coefficient": -1.0},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigError) as exc:
            PipelineConfig(**kwargs)
        assert exc.value.error_code == "CONFIG_INVALID"

    def test_ga_validation(self):
        with pytest.raises(ConfigError):
            GAConfig(population_size=1)
        with pytest.raises(ConfigError):
            GAConfig(mutation_rate=1.5)

    def test_feature_selection_validation(self):
        with pytest.raises(ConfigError):
            FeatureSelectionConfig(inner_cv_folds=1)
        with pytest.raises(ConfigError):
            ParallelConfig(executor="cluster")

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            FeatureSelectionConfig(max_features=0)


class TestLoggingConfig:

    def test_profile_applied_and_not_cached(self):
        init_logging_config(profile="debug")
        assert logging.getLogger().level == logging.DEBUG
        assert get_module_logging_config("cross_validator").cv_detail is True

        init_logging_config()
        assert logging.getLogger().level == logging.INFO
        assert get_module_logging_config("cross_validator").cv_detail is False

    def test_backend_loggers_quieted(self):
        init_logging_config()
        assert logging.getLogger("xgboost").level == logging.WARNING

    def test_quiet_profile_keeps_module_flags(self):
        init_logging_config(profile="quiet")
        assert logging.getLogger().level == logging.WARNING
        assert get_module_logging_config("feature_selector").detail is False
        init_logging_config()

    def test_unknown_profile_falls_back_to_default(self):
        init_logging_config(profile="no_such_profile")
        assert logging.getLogger().level == logging.INFO
        assert get_module_logging_config("cross_validator").cv_detail is False
