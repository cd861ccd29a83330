"""Shared fixtures: small scored tables and in-process test learners."""

from functools import partial

import numpy as np
import pandas as pd
import pytest
from sklearn.linear_model import LinearRegression

from CONFIG.config_schemas import FeatureSelectionConfig, GAConfig, ParallelConfig, PipelineConfig
from ALGO_SELECTION.common.run_context import RunContext
from ALGO_SELECTION.data.tables import FeatureTable, PerformanceTable
from ALGO_SELECTION.models.registry import REGRESSION, LearnerSpec, ModelRegistry
from ALGO_SELECTION.scoring.performance_scorer import score_performance


def make_tables(feature_rows, performance_rows, baseline="SBS"):
    features = FeatureTable.from_frame(pd.DataFrame(feature_rows))
    performance = PerformanceTable.from_frame(pd.DataFrame(performance_rows), baseline)
    return features, performance


@pytest.fixture
def three_instance_tables():
    """
    3 instances, solvers X and Y, raw ERT (10, 20), (30, 15), (inf, 5).

    Features are the true relERT columns, so a linear model without
    intercept fitted on any two rows predicts the third exactly.
    """
    keys = [(2, 1), (2, 2), (2, 3)]
    rel = [(1.0, 2.0), (2.0, 1.0), (20.0, 1.0)]
    raw = [(10.0, 20.0), (30.0, 15.0), (np.inf, 5.0)]
    feature_rows = [
        {"dimension": d, "function_id": f, "f_x": rx, "f_y": ry}
        for (d, f), (rx, ry) in zip(keys, rel)
    ]
    performance_rows = [
        {"dimension": d, "function_id": f, "X": x, "Y": y, "SBS": y}
        for (d, f), (x, y) in zip(keys, raw)
    ]
    return make_tables(feature_rows, performance_rows)


@pytest.fixture
def three_instance_scored(three_instance_tables):
    features, performance = three_instance_tables
    return score_performance(features, performance)


@pytest.fixture
def synthetic_tables():
    """24 instances, 3 solvers whose ranking depends on feature f1 only."""
    rng = np.random.default_rng(0)
    feature_rows, performance_rows = [], []
    for dimension in (2, 3):
        for function_id in range(1, 13):
            f = rng.normal(size=4)
            feature_rows.append({"dimension": dimension, "function_id": function_id,
                                 "f1": f[0], "f2": f[1], "f3": f[2], "f4": f[3]})
            a = 100.0 * np.exp(2.0 * f[0])
            b = 100.0 * np.exp(-2.0 * f[0])
            c = 150.0 + 10.0 * f[1] ** 2 if f[2] < 1.0 else np.inf
            performance_rows.append({"dimension": dimension, "function_id": function_id,
                                     "A": a, "B": b, "C": c, "SBS": b * 1.1})
    return make_tables(feature_rows, performance_rows)


@pytest.fixture
def synthetic_scored(synthetic_tables):
    features, performance = synthetic_tables
    return score_performance(features, performance)


@pytest.fixture
def linear_oracle():
    """Regression-only learner: least squares without intercept."""
    registry = ModelRegistry()
    spec = LearnerSpec(
        name="linear_oracle",
        builders={REGRESSION: partial(LinearRegression, fit_intercept=False)},
        seed_param=None,
        description="Exact linear fit for tests",
    )
    registry.register(spec, replace=True)
    yield spec.name
    registry.unregister(spec.name)


@pytest.fixture
def failing_learner():
    """Learner whose fit always raises."""

    class _Broken:
        def __init__(self, **kwargs):
            pass

        def fit(self, X, y):
            raise np.linalg.LinAlgError("singular matrix")

    registry = ModelRegistry()
    spec = LearnerSpec(name="broken", builders={REGRESSION: _Broken}, seed_param=None)
    registry.register(spec, replace=True)
    yield spec.name
    registry.unregister(spec.name)


@pytest.fixture
def small_selection_config():
    return FeatureSelectionConfig(
        inner_cv_folds=3,
        ga=GAConfig(population_size=4, offspring_size=2, generations=3),
        ga2_population_multiplier=2,
    )


@pytest.fixture
def sequential_context(small_selection_config):
    """Run context without a worker pool (in-process learners stay visible)."""
    def build(**overrides):
        values = dict(
            parallel=ParallelConfig(max_workers=1, executor="thread"),
            feature_selection=small_selection_config,
        )
        values.update(overrides)
        return RunContext(PipelineConfig(**values))
    return build
