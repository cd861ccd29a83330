"""
Tests for the learner registry, factory and kernel width heuristic.

Tests:
- every default family fits and predicts through the uniform contract
- unknown learners / unsupported tasks raise ConfigError
- single-class classification falls back to a constant predictor
- kernel width is recomputed from the training rows and seeded
"""

import numpy as np
import pytest

from ALGO_SELECTION.common.exceptions import ConfigError
from ALGO_SELECTION.models.factory import ModelFactory
from ALGO_SELECTION.models.kernel_width import estimate_gamma, sigma_range
from ALGO_SELECTION.models.registry import CLASSIFICATION, REGRESSION, ModelRegistry


@pytest.fixture
def toy_data():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(40, 3))
    labels = np.where(X[:, 0] > 0, "A", "B").astype(object)
    target = 2.0 * X[:, 0] + 0.1 * rng.normal(size=40)
    return X, labels, target


class TestRegistry:

    def test_default_families_registered(self):
        available = ModelRegistry().available()
        for name in ("decision_tree", "svm", "random_forest", "xgboost", "lightgbm", "spline"):
            assert name in available

    def test_spline_is_regression_only(self):
        registry = ModelRegistry()
        assert "spline" in registry.available(REGRESSION)
        assert "spline" not in registry.available(CLASSIFICATION)

    def test_duplicate_registration_rejected(self):
        registry = ModelRegistry()
        with pytest.raises(ValueError):
            registry.register(registry.get("svm"))

    def test_singletons(self):
        assert ModelRegistry() is ModelRegistry()
        assert ModelFactory() is ModelFactory()


class TestFactory:

    @pytest.mark.parametrize("learner", ["decision_tree", "svm", "random_forest", "xgboost", "lightgbm"])
    def test_classification_round_trip_labels(self, toy_data, learner):
        X, labels, _ = toy_data
        model = ModelFactory().fit(learner, CLASSIFICATION, X, labels, seed=3)
        pred = model.predict(X)
        assert pred.shape == (40,)
        assert set(pred) <= {"A", "B"}
        assert model.predict_one(X[0]) in {"A", "B"}

    @pytest.mark.parametrize("learner", ["decision_tree", "svm", "random_forest", "xgboost", "lightgbm", "spline"])
    def test_regression_predicts_floats(self, toy_data, learner):
        X, _, target = toy_data
        model = ModelFactory().fit(learner, REGRESSION, X, target, seed=3)
        pred = model.predict(X)
        assert pred.dtype == float
        assert np.all(np.isfinite(pred))

    def test_seeded_fits_are_reproducible(self, toy_data):
        X, _, target = toy_data
        factory = ModelFactory()
        a = factory.fit("random_forest", REGRESSION, X, target, seed=11).predict(X)
        b = factory.fit("random_forest", REGRESSION, X, target, seed=11).predict(X)
        np.testing.assert_array_equal(a, b)

    def test_unknown_learner(self, toy_data):
        X, labels, _ = toy_data
        with pytest.raises(ConfigError) as exc:
            ModelFactory().fit("perceptron", CLASSIFICATION, X, labels, seed=0)
        assert exc.value.error_code == "LEARNER_UNKNOWN"

    def test_unsupported_task(self, toy_data):
        X, labels, _ = toy_data
        with pytest.raises(ConfigError) as exc:
            ModelFactory().fit("spline", CLASSIFICATION, X, labels, seed=0)
        assert exc.value.error_code == "LEARNER_UNSUPPORTED"

    def test_single_class_constant_predictor(self, toy_data):
        X, _, _ = toy_data
        labels = np.array(["A"] * len(X), dtype=object)
        model = ModelFactory().fit("svm", CLASSIFICATION, X, labels, seed=0)
        assert set(model.predict(X)) == {"A"}

    def test_svm_gamma_from_training_rows(self, toy_data):
        X, labels, _ = toy_data
        factory = ModelFactory()
        spec = factory.get_spec("svm", CLASSIFICATION)
        params = factory.resolve_params(spec, CLASSIFICATION, X, seed=5)
        scaled = factory.resolve_params(spec, CLASSIFICATION, X * 10.0, seed=5)
        assert params["gamma"] > 0
        assert scaled["gamma"] == pytest.approx(params["gamma"] / 100.0)
        assert "random_state" not in params

    def test_overrides_reach_estimator(self, toy_data):
        X, labels, _ = toy_data
        model = ModelFactory().fit("decision_tree", CLASSIFICATION, X, labels, seed=0,
                                   overrides={"max_depth": 1})
        assert model.model.get_depth() == 1

    def test_backend_verbosity_from_logging_config(self, toy_data):
        X, _, target = toy_data
        model = ModelFactory().fit("lightgbm", REGRESSION, X, target, seed=0)
        assert model.params["verbose"] == -1


class TestKernelWidth:

    def test_sigma_range_ordering(self):
        X = np.random.default_rng(0).normal(size=(50, 4))
        lower, median, upper = sigma_range(X, np.random.default_rng(1))
        assert lower <= median <= upper

    def test_seeded(self):
        X = np.random.default_rng(0).normal(size=(50, 4))
        assert estimate_gamma(X, np.random.default_rng(9)) == estimate_gamma(X, np.random.default_rng(9))

    def test_identical_rows_fall_back(self):
        X = np.ones((10, 4))
        assert estimate_gamma(X, np.random.default_rng(0)) == pytest.approx(0.25)
