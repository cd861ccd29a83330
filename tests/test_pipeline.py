"""
Tests for the pipeline driver, the aggregator and the CLI.

Tests:
- empty feature subsets skip a (learner, strategy) pair for every family
- per-fold feature searches run once per fold and serve every family
- fold failures are reported by combination name and reason
- summary / best_per_family / best and SBS / VBS reference rows
- outcome tables with the wrong row count are rejected
- algosel-run end to end on CSV files
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.dummy import DummyClassifier, DummyRegressor

from ALGO_SELECTION.cli import main
from ALGO_SELECTION.common.exceptions import ConfigError, ResultContractError
from ALGO_SELECTION.models.registry import CLASSIFICATION, REGRESSION, LearnerSpec, ModelRegistry
from ALGO_SELECTION.orchestration.cross_validator import Combination, outcomes_frame
from ALGO_SELECTION.orchestration.metrics_aggregator import (
    EMPTY_FEATURE_SET,
    FEATURE_SELECTION_ERROR,
    FOLD_ERROR,
    ResultAggregator,
)
from ALGO_SELECTION.orchestration.pipeline import AlgorithmSelectionPipeline
from ALGO_SELECTION.orchestration.selector_families import SelectionOutcome
from ALGO_SELECTION.ranking.feature_selector import FeatureSelector

DEEP_TREE = {"decision_tree": {"min_samples_split": 2, "min_samples_leaf": 1}}


@pytest.fixture
def constant_both():
    """Classification + regression learner that ignores its features."""
    registry = ModelRegistry()
    spec = LearnerSpec(
        name="constant_both",
        builders={CLASSIFICATION: DummyClassifier, REGRESSION: DummyRegressor},
        seed_param=None,
    )
    registry.register(spec, replace=True)
    yield spec.name
    registry.unregister(spec.name)


class TestPipeline:

    def test_all_combinations_evaluated(self, synthetic_tables, sequential_context):
        ctx = sequential_context(learners=["decision_tree"], strategies=["all", "sffs"],
                                 model_overrides=DEEP_TREE)
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert sorted(result.aggregator.results) == sorted(
            f"{family}.decision_tree.{strategy}"
            for family in ("classification", "regression", "pairwise_regression")
            for strategy in ("all", "sffs")
        )
        assert ("decision_tree", "sffs") in result.subsets
        best = result.aggregator.best()
        assert best is not None and best.learner == "decision_tree"

    def test_regression_only_learner_skips_classification(self, synthetic_tables, sequential_context,
                                                          linear_oracle):
        ctx = sequential_context(learners=[linear_oracle], strategies=["all"])
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert set(result.aggregator.results) == {
            f"regression.{linear_oracle}.all", f"pairwise_regression.{linear_oracle}.all"
        }

    def test_empty_subset_skips_every_family(self, synthetic_tables, sequential_context, constant_both):
        ctx = sequential_context(learners=[constant_both], strategies=["sffs"])
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert result.aggregator.results == {}
        assert result.subsets[(constant_both, "sffs")].is_empty
        failures = result.aggregator.failures_frame()
        assert len(failures) == 3
        assert set(failures["reason"]) == {EMPTY_FEATURE_SET}

    def test_fold_error_reported_by_name(self, synthetic_tables, sequential_context, failing_learner):
        ctx = sequential_context(learners=[failing_learner], strategies=["all"])
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        failures = {f.combination.name: f for f in result.aggregator.failures}
        assert set(failures) == {f"regression.{failing_learner}.all", f"pairwise_regression.{failing_learner}.all"}
        assert all(f.reason == FOLD_ERROR for f in failures.values())
        assert "LinAlgError" in failures[f"regression.{failing_learner}.all"].message

    def test_feature_selection_error_reported(self, synthetic_tables, sequential_context, failing_learner):
        ctx = sequential_context(learners=[failing_learner], strategies=["sfbs"])
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert {f.reason for f in result.aggregator.failures} == {FEATURE_SELECTION_ERROR}

    def test_unknown_learner_is_fatal(self, synthetic_tables, sequential_context):
        ctx = sequential_context(learners=["perceptron"], strategies=["all"])
        with pytest.raises(ConfigError):
            AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)

    def test_instance_grid_restriction(self, synthetic_tables, sequential_context):
        ctx = sequential_context(learners=["decision_tree"], strategies=["all"],
                                 families=["classification"], dimensions=[2])
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert result.table.n_instances == 12
        assert len(result.aggregator.results["classification.decision_tree.all"]) == 12

    def test_reproducible(self, synthetic_tables, sequential_context):
        ctx = sequential_context(learners=["decision_tree"], strategies=["ga"],
                                 families=["regression"], model_overrides=DEEP_TREE)
        a = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        b = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        pd.testing.assert_frame_equal(a.summary(), b.summary())

    def test_per_fold_search_runs_once_for_all_families(self, synthetic_tables, sequential_context,
                                                        monkeypatch):
        calls = []
        original = FeatureSelector.select

        def counting(self, learner, table, strategy, seed):
            calls.append(seed)
            return original(self, learner, table, strategy, seed)

        monkeypatch.setattr(FeatureSelector, "select", counting)
        ctx = sequential_context(learners=["decision_tree"], strategies=["all"],
                                 feature_selection_scope="per_fold", model_overrides=DEEP_TREE)
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert len(result.aggregator.results) == 3
        assert len(calls) == result.table.n_instances
        assert len(set(calls)) == len(calls)

    def test_per_fold_empty_subset_skips_every_family(self, synthetic_tables, sequential_context,
                                                      constant_both):
        ctx = sequential_context(learners=[constant_both], strategies=["sffs"],
                                 feature_selection_scope="per_fold")
        result = AlgorithmSelectionPipeline(ctx).run(*synthetic_tables)
        assert result.aggregator.results == {}
        assert {f.reason for f in result.aggregator.failures} == {EMPTY_FEATURE_SET}
        assert len(result.aggregator.failures) == 3


class TestResultAggregator:

    def _outcomes(self, table, solver):
        return outcomes_frame([
            SelectionOutcome(k, solver, float(table.rel_ert.loc[tuple(k), solver]),
                             float(table.rel_ert_fc.loc[tuple(k), solver]))
            for k in table.keys
        ])

    def test_summary_and_best(self, three_instance_scored):
        agg = ResultAggregator(3)
        agg.add_result(Combination("regression", "a", "all"), self._outcomes(three_instance_scored, "X"))
        agg.add_result(Combination("regression", "b", "all"), self._outcomes(three_instance_scored, "Y"))
        agg.add_result(Combination("classification", "a", "all"), self._outcomes(three_instance_scored, "Y"))
        summary = agg.summary()
        assert summary["mean_relERT"].is_monotonic_increasing
        assert summary.iloc[0]["mean_relERT"] == pytest.approx((2 + 1 + 1) / 3)
        per_family = agg.best_per_family()
        assert per_family.loc["regression", "learner"] == "b"
        assert agg.best() == Combination("classification", "a", "all")

    def test_references(self, three_instance_scored):
        agg = ResultAggregator(3)
        agg.add_references(three_instance_scored)
        summary = agg.summary(include_references=True).set_index("learner")
        assert summary.loc["VBS", "mean_relERT"] == pytest.approx(1.0)
        assert summary.loc["SBS", "mean_relERT"] == pytest.approx(4.0 / 3.0)

    def test_row_count_contract(self, three_instance_scored):
        agg = ResultAggregator(3)
        short = self._outcomes(three_instance_scored, "X").iloc[:2]
        with pytest.raises(ResultContractError) as exc:
            agg.add_result(Combination("regression", "a", "all"), short)
        assert exc.value.error_code == "RESULT_ROW_COUNT"

    def test_duplicate_combination(self, three_instance_scored):
        agg = ResultAggregator(3)
        combo = Combination("regression", "a", "all")
        agg.add_failure(combo, EMPTY_FEATURE_SET)
        with pytest.raises(ResultContractError) as exc:
            agg.add_result(combo, self._outcomes(three_instance_scored, "X"))
        assert exc.value.error_code == "RESULT_DUPLICATE"

    def test_empty(self):
        agg = ResultAggregator(3)
        assert agg.best() is None
        assert agg.best_per_family().empty


class TestCLI:

    def _write(self, tmp_path, synthetic_tables):
        features, performance = synthetic_tables
        feature_csv = tmp_path / "features.csv"
        performance_csv = tmp_path / "performance.csv"
        features.frame.reset_index().to_csv(feature_csv, index=False)
        performance.frame.replace(np.inf, np.nan).reset_index().to_csv(performance_csv, index=False)
        return feature_csv, performance_csv

    def test_run_writes_results(self, tmp_path, synthetic_tables):
        feature_csv, performance_csv = self._write(tmp_path, synthetic_tables)
        out = tmp_path / "out"
        code = main([
            "--features", str(feature_csv), "--performance", str(performance_csv),
            "--learners", "decision_tree", "--strategies", "all", "--families", "classification",
            "--workers", "1", "--executor", "thread", "--output-dir", str(out),
        ])
        assert code == 0
        summary = pd.read_csv(out / "summary.csv")
        assert "classification" in set(summary["family"])
        assert (out / "outcomes_classification.decision_tree.all.csv").exists()

    def test_input_error_exit_code(self, tmp_path, synthetic_tables):
        feature_csv, performance_csv = self._write(tmp_path, synthetic_tables)
        code = main([
            "--features", str(feature_csv), "--performance", str(performance_csv),
            "--baseline", "NOT_A_COLUMN", "--workers", "1",
        ])
        assert code == 1
