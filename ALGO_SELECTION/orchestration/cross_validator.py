# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Leave-One-Instance-Out Cross-Validation

Runs one (family, learner, strategy) combination over every instance: hold
the instance out, fit the family's models on the remaining N-1 rows, choose a
solver for the held-out row and record the relERT it achieves (plain and
feature-cost variant).

Folds are independent and may run on a worker pool. Each fold is described by
a picklable FoldPlan plus the held-out InstanceKey; results are merged by key,
never by completion order. Fold seeds derive from (base seed, combination,
instance), so the outcome does not depend on scheduling.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sklearn.model_selection import LeaveOneOut

from CONFIG.config_schemas import FeatureSelectionConfig
from CONFIG.logging_config_utils import get_module_logging_config
from ALGO_SELECTION.common.determinism import stable_seed_from
from ALGO_SELECTION.common.exceptions import FeatureSelectionError, FoldError, LeakageError
from ALGO_SELECTION.common.parallel_exec import ParallelTaskError, execute_parallel
from ALGO_SELECTION.common.run_context import RunContext
from ALGO_SELECTION.data.tables import InstanceKey, ScoredTable
from ALGO_SELECTION.ranking.feature_selector import FeatureSelector, FeatureSubset
from .selector_families import SelectionOutcome, get_family

logger = logging.getLogger(__name__)

OUTCOME_COLUMNS = ["dimension", "function_id", "solver", "relERT", "relERT_FC"]


@dataclass(frozen=True)
class Combination:
    """One evaluated (family, learner, strategy) triple."""
    family: str
    learner: str
    strategy: str

    @property
    def name(self) -> str:
        return f"{self.family}.{self.learner}.{self.strategy}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FoldPlan:
    """Everything a fold needs; shared by all folds of one combination."""
    combination: Combination
    table: ScoredTable
    base_seed: int
    # None = select features inside each fold on its training rows
    features: Optional[Tuple[str, ...]] = None
    selection: Optional[FeatureSelectionConfig] = None
    overrides: Optional[Dict] = None
    # Per-fold subsets already searched for this (learner, strategy)
    fold_subsets: Optional[Dict[InstanceKey, FeatureSubset]] = None


class EmptyFoldSubset(Exception):
    """Per-fold feature selection kept no feature."""


def fold_seed(base_seed: int, combination: Combination, key: InstanceKey) -> int:
    return stable_seed_from([base_seed, combination.name, key.dimension, key.function_id])


def fold_selection_seed(base_seed: int, learner: str, strategy: str, key: InstanceKey) -> int:
    """Seed of a fold's feature search; independent of the selector family."""
    return stable_seed_from([base_seed, "feature_selection", learner, strategy,
                             key.dimension, key.function_id])


def _training_split(plan: FoldPlan, key: InstanceKey) -> ScoredTable:
    train = plan.table.without(key)
    if key in set(train.keys):
        raise LeakageError(
            f"Held-out instance {key} is part of its own training split",
            stage="CROSS_VALIDATION", instance=str(key), combination=plan.combination.name,
        )
    return train


def select_fold_features(plan: FoldPlan, key: InstanceKey) -> FeatureSubset:
    """Run the feature search on every instance but `key`."""
    combo = plan.combination
    train = _training_split(plan, key)
    selector = FeatureSelector(plan.selection, model_overrides={combo.learner: plan.overrides or {}})
    return selector.select(
        combo.learner, train, combo.strategy,
        seed=fold_selection_seed(plan.base_seed, combo.learner, combo.strategy, key),
    )


def run_fold(plan: FoldPlan, key: InstanceKey) -> SelectionOutcome:
    """Fit on every instance but `key`, choose a solver for `key`."""
    combo = plan.combination
    train = _training_split(plan, key)

    seed = fold_seed(plan.base_seed, combo, key)
    features = plan.features
    if features is None:
        subset = (plan.fold_subsets or {}).get(key)
        if subset is None:
            subset = select_fold_features(plan, key)
        if subset.is_empty:
            raise EmptyFoldSubset(str(key))
        features = subset.features

    X_train = train.feature_matrix(features)
    x_test = plan.table.subset([key]).feature_matrix(features)[0]

    family = get_family(combo.family)
    selector = family.fit(combo.learner, X_train, train, seed, overrides=plan.overrides)
    solver = selector.choose(x_test)

    row = (key.dimension, key.function_id)
    outcome = SelectionOutcome(
        key=key,
        solver=solver,
        rel_ert=float(plan.table.rel_ert.loc[row, solver]),
        rel_ert_fc=float(plan.table.rel_ert_fc.loc[row, solver]),
    )
    if get_module_logging_config("cross_validator").cv_detail:
        logger.info(f"[{combo}] fold {key}: chose {solver} (relERT {outcome.rel_ert:.3f}, best {plan.table.best.loc[row]})")
    return outcome


def outcomes_frame(outcomes: List[SelectionOutcome]) -> pd.DataFrame:
    """Outcome table, one row per instance, ordered by instance key."""
    rows = [
        (o.key.dimension, o.key.function_id, o.solver, o.rel_ert, o.rel_ert_fc)
        for o in sorted(outcomes, key=lambda o: o.key)
    ]
    return pd.DataFrame(rows, columns=OUTCOME_COLUMNS)


class CrossValidator:
    """LOOCV over a scored table for one combination at a time."""

    def __init__(self, ctx: Optional[RunContext] = None):
        self.ctx = ctx or RunContext()

    def _plan(self, combination: Combination, table: ScoredTable, **kwargs) -> FoldPlan:
        config = self.ctx.config
        return FoldPlan(
            combination=combination,
            table=table,
            base_seed=self.ctx.base_seed,
            selection=config.feature_selection,
            overrides=config.model_overrides.get(combination.learner),
            **kwargs,
        )

    def _execute(self, func, plan: FoldPlan, desc: str) -> Dict[InstanceKey, object]:
        keys = plan.table.keys
        held_out = [keys[test[0]] for _, test in LeaveOneOut().split(keys)]
        with self.ctx.worker_pool(n_tasks=len(held_out)) as pool:
            return execute_parallel(partial(func, plan), held_out, executor=pool, desc=desc)

    def select_per_fold(self, learner: str, strategy: str,
                        table: ScoredTable) -> Dict[InstanceKey, FeatureSubset]:
        """
        Feature search inside every LOOCV fold, on that fold's training rows.

        The subsets do not depend on the selector family, so one call serves
        every family of the (learner, strategy) pair through `run(fold_subsets=...)`.

        Raises:
            FeatureSelectionError: The wrapped learner failed in some fold
            FoldError: A fold's search failed for another reason
        """
        combination = Combination("feature_selection", learner, strategy)
        plan = self._plan(combination, table)
        logger.info(f"[{learner}/{strategy}] per-fold feature selection over {table.n_instances} instances")
        try:
            return self._execute(select_fold_features, plan, desc=f"selection {learner}/{strategy}")
        except ParallelTaskError as e:
            cause = e.error
            if isinstance(cause, FeatureSelectionError):
                raise FeatureSelectionError(
                    f"{cause} (fold {e.item})", stage="FEATURE_SELECTION",
                    error_code=cause.error_code, learner=learner, strategy=strategy,
                ) from cause
            raise self._fold_error(combination, e) from cause

    @staticmethod
    def _fold_error(combination: Combination, e: ParallelTaskError) -> Exception:
        cause = e.error
        if isinstance(cause, LeakageError):
            return LeakageError(
                str(cause), stage="CROSS_VALIDATION",
                instance=str(e.item), combination=combination.name,
            )
        return FoldError(
            f"{combination} failed on fold {e.item}: {type(cause).__name__}: {cause}",
            stage="CROSS_VALIDATION",
            combination=combination.name,
            instance=str(e.item),
            cause=type(cause).__name__,
        )

    def run(self, combination: Combination, table: ScoredTable,
            features: Optional[Tuple[str, ...]] = None,
            fold_subsets: Optional[Dict[InstanceKey, FeatureSubset]] = None) -> Optional[pd.DataFrame]:
        """
        Evaluate one combination.

        Args:
            combination: (family, learner, strategy)
            table: Scored table with all instances
            features: Globally selected features; None selects per fold
            fold_subsets: Per-fold subsets from `select_per_fold`; folds
                missing from it run their own search

        Returns:
            Outcome table with exactly one row per instance, or None when a
            per-fold feature search kept no feature (combination skipped)

        Raises:
            FoldError: A fold failed to fit or predict
            LeakageError: A fold's training split contained its held-out row
        """
        plan = self._plan(
            combination, table,
            features=tuple(features) if features is not None else None,
            fold_subsets=fold_subsets,
        )

        logger.info(f"[{combination}] LOOCV over {table.n_instances} instances")
        try:
            results = self._execute(run_fold, plan, desc=f"LOOCV {combination}")
        except ParallelTaskError as e:
            if isinstance(e.error, EmptyFoldSubset):
                logger.info(f"[{combination}] fold {e.item} kept no feature, skipping combination")
                return None
            raise self._fold_error(combination, e) from e.error

        frame = outcomes_frame(list(results.values()))
        logger.info(
            f"[{combination}] mean relERT {frame['relERT'].mean():.4f}, "
            f"mean relERT_FC {frame['relERT_FC'].mean():.4f}"
        )
        return frame
