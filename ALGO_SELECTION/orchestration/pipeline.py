# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Algorithm Selection Pipeline

Driver for one run:

    FeatureTable + PerformanceTable
        -> score_performance (relERT, relERT_FC, Best labels)
        -> for each learner x strategy: FeatureSelector (once globally, or once
           per LOOCV fold, shared by all families)
        -> for each family: CrossValidator (LOOCV)
        -> ResultAggregator

An empty feature subset skips the (learner, strategy) pair for every family;
a failing fold aborts only its own combination. Both are reported by name.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ALGO_SELECTION.common.exceptions import FeatureSelectionError, FoldError
from ALGO_SELECTION.common.run_context import RunContext
from ALGO_SELECTION.data.tables import (
    FeatureTable,
    PerformanceTable,
    ScoredTable,
    drop_near_constant_features,
    restrict_instances,
)
from ALGO_SELECTION.models.factory import ModelFactory
from ALGO_SELECTION.ranking.feature_selector import FeatureSelector, FeatureSubset, selection_task
from ALGO_SELECTION.scoring.performance_scorer import score_performance
from .cross_validator import Combination, CrossValidator
from .metrics_aggregator import (
    EMPTY_FEATURE_SET,
    FEATURE_SELECTION_ERROR,
    FOLD_ERROR,
    ResultAggregator,
)
from .selector_families import get_family

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Scored table, aggregated outcomes and the global feature subsets of a run."""
    table: ScoredTable
    aggregator: ResultAggregator
    subsets: Dict[Tuple[str, str], FeatureSubset] = field(default_factory=dict)

    def summary(self) -> pd.DataFrame:
        return self.aggregator.summary(include_references=True)

    def subsets_frame(self) -> pd.DataFrame:
        rows = [
            {"learner": s.learner, "strategy": s.strategy, "n_features": len(s),
             "features": ",".join(s.features), "cv_error": s.error}
            for s in self.subsets.values()
        ]
        return pd.DataFrame(rows, columns=["learner", "strategy", "n_features", "features", "cv_error"])


class AlgorithmSelectionPipeline:
    """Evaluates every configured (learner, strategy, family) combination."""

    def __init__(self, ctx: Optional[RunContext] = None, factory: Optional[ModelFactory] = None):
        self.ctx = ctx or RunContext()
        self.factory = factory or ModelFactory()

    @property
    def config(self):
        return self.ctx.config

    def prepare(self, features: FeatureTable, performance: PerformanceTable,
                drop_constant: bool = False) -> ScoredTable:
        """
        Restrict both tables to the configured instance grid and score them.

        Args:
            features: Feature table
            performance: Raw performance table
            drop_constant: Drop features with too few distinct values first

        Returns:
            ScoredTable
        """
        cfg = self.config
        feature_frame = restrict_instances(features.frame, cfg.dimensions, cfg.function_ids)
        if drop_constant:
            feature_frame = drop_near_constant_features(feature_frame, cfg.min_distinct_values)
        performance_frame = restrict_instances(performance.frame, cfg.dimensions, cfg.function_ids)

        return score_performance(
            FeatureTable.from_frame(feature_frame),
            PerformanceTable.from_frame(performance_frame, performance.baseline),
            solvers=cfg.solvers or None,
            feature_cost_coefficient=cfg.feature_cost_coefficient,
            par10_multiplier=cfg.par10_multiplier,
            base_seed=cfg.base_seed,
        )

    def _families_for(self, learner: str) -> List[str]:
        families = []
        for name in self.config.families:
            if self.factory.supports(learner, get_family(name).task):
                families.append(name)
            else:
                logger.debug(f"{learner} has no {get_family(name).task} variant, skipping {name}")
        return families

    def run_table(self, table: ScoredTable) -> PipelineResult:
        """Evaluate all combinations on an already scored table."""
        cfg = self.config
        # Unknown learners are configuration errors, fatal before any fitting
        for learner in cfg.learners:
            selection_task(learner, self.factory)

        aggregator = ResultAggregator(table.n_instances)
        aggregator.add_references(table)
        result = PipelineResult(table=table, aggregator=aggregator)
        selector = FeatureSelector(cfg.feature_selection, self.factory, cfg.model_overrides)
        validator = CrossValidator(self.ctx)

        logger.info(
            f"Evaluating {len(cfg.learners)} learners x {len(cfg.strategies)} strategies x "
            f"{len(cfg.families)} families on {table.n_instances} instances "
            f"(feature selection scope: {cfg.feature_selection_scope})"
        )

        for learner in cfg.learners:
            families = self._families_for(learner)
            for strategy in cfg.strategies:
                combos = [Combination(f, learner, strategy) for f in families]

                features = None
                fold_subsets = None
                if cfg.feature_selection_scope == "per_fold":
                    try:
                        fold_subsets = validator.select_per_fold(learner, strategy, table)
                    except FeatureSelectionError as e:
                        for combo in combos:
                            aggregator.add_failure(combo, FEATURE_SELECTION_ERROR, str(e))
                        continue
                    except FoldError as e:
                        for combo in combos:
                            aggregator.add_failure(combo, FOLD_ERROR, str(e))
                        continue
                    empty = [key for key, subset in fold_subsets.items() if subset.is_empty]
                    if empty:
                        logger.info(f"[{learner}/{strategy}] fold {empty[0]} kept no feature, skipping")
                        for combo in combos:
                            aggregator.add_failure(combo, EMPTY_FEATURE_SET, "per-fold selection kept no feature")
                        continue
                elif cfg.feature_selection_scope == "global":
                    try:
                        subset = selector.select(
                            learner, table, strategy,
                            seed=self.ctx.seed_for("feature_selection", learner, strategy),
                        )
                    except FeatureSelectionError as e:
                        for combo in combos:
                            aggregator.add_failure(combo, FEATURE_SELECTION_ERROR, str(e))
                        continue
                    result.subsets[(learner, strategy)] = subset
                    if subset.is_empty:
                        for combo in combos:
                            aggregator.add_failure(combo, EMPTY_FEATURE_SET)
                        continue
                    features = subset.features

                for combo in combos:
                    try:
                        outcomes = validator.run(combo, table, features, fold_subsets=fold_subsets)
                    except FoldError as e:
                        aggregator.add_failure(combo, FOLD_ERROR, str(e))
                        continue
                    if outcomes is None:
                        aggregator.add_failure(combo, EMPTY_FEATURE_SET, "per-fold selection kept no feature")
                    else:
                        aggregator.add_result(combo, outcomes)

        best = aggregator.best()
        logger.info(
            f"Finished: {len(aggregator.results)} combinations evaluated, "
            f"{len(aggregator.failures)} skipped/failed; best: {best if best else 'none'}"
        )
        return result

    def run(self, features: FeatureTable, performance: PerformanceTable,
            drop_constant: bool = False) -> PipelineResult:
        """Score the raw tables and evaluate all combinations."""
        return self.run_table(self.prepare(features, performance, drop_constant=drop_constant))
