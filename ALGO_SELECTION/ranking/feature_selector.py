# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Feature Selection Module

Wrapper feature selection for the selector meta-models. A strategy searches
the space of feature subsets, scoring each candidate with the cross-validated
error of the wrapped learner:

- all:   every candidate feature, no search
- sffs:  sequential floating forward search (start empty, add, conditionally remove)
- sfbs:  sequential floating backward search (start full, remove, conditionally add)
- ga:    (mu + lambda) evolutionary search over inclusion bitmasks
- ga2:   same search with a 10x larger population

The inner cross-validation is a seeded k-fold split of the rows handed in; it
never reuses the outer LOOCV fold structure. An empty result is a valid
outcome: the caller skips the (learner, strategy) combination.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.dummy import DummyClassifier, DummyRegressor
from sklearn.model_selection import KFold

from CONFIG.config_schemas import FeatureSelectionConfig, GAConfig, VALID_STRATEGIES
from CONFIG.logging_config_utils import get_module_logging_config
from ALGO_SELECTION.common.determinism import stable_seed_from
from ALGO_SELECTION.common.exceptions import ConfigError, FeatureSelectionError
from ALGO_SELECTION.data.tables import ScoredTable
from ALGO_SELECTION.models.factory import ModelFactory
from ALGO_SELECTION.models.registry import CLASSIFICATION, REGRESSION

logger = logging.getLogger(__name__)

Mask = Tuple[bool, ...]


@dataclass(frozen=True)
class FeatureSubset:
    """Features retained by one (learner, strategy) search."""
    learner: str
    strategy: str
    features: Tuple[str, ...]
    error: Optional[float] = None
    n_evaluations: int = 0

    @property
    def is_empty(self) -> bool:
        return len(self.features) == 0

    def __len__(self) -> int:
        return len(self.features)


def selection_task(learner: str, factory: Optional[ModelFactory] = None) -> str:
    """
    Task the learner is wrapped on during selection.

    Classification-capable learners are scored on predicting the Best label;
    regression-only learners on predicting every solver's relERT.
    """
    factory = factory or ModelFactory()
    if factory.supports(learner, CLASSIFICATION):
        return CLASSIFICATION
    factory.get_spec(learner, REGRESSION)
    return REGRESSION


class SubsetEvaluator:
    """
    Cross-validated error of a learner on feature subsets, cached per mask.

    Classification error is the pooled misclassification rate of the Best
    label; regression error is the mean over solvers of the pooled squared
    error of that solver's relERT. The empty subset is scored with a
    constant predictor (majority label / training mean).
    """

    def __init__(self, learner: str, table: ScoredTable, n_folds: int, seed: int,
                 factory: Optional[ModelFactory] = None,
                 overrides: Optional[Dict] = None):
        self.learner = learner
        self.factory = factory or ModelFactory()
        self.task = selection_task(learner, self.factory)
        self.feature_names = table.feature_names
        self.overrides = overrides
        self.seed = seed
        self.X = table.feature_matrix(self.feature_names)

        if self.task == CLASSIFICATION:
            self.targets = [table.best.to_numpy(dtype=object)]
        else:
            rel = table.rel_ert_matrix()
            self.targets = [rel[:, j] for j in range(rel.shape[1])]

        n_rows = self.X.shape[0]
        if n_rows < 2:
            raise FeatureSelectionError(
                f"Feature search needs at least 2 instances, got {n_rows}",
                stage="FEATURE_SELECTION",
                error_code="FEATURE_SELECTION_TOO_FEW_ROWS",
                learner=learner,
            )
        splitter = KFold(n_splits=min(n_folds, n_rows), shuffle=True, random_state=seed)
        self.folds = list(splitter.split(self.X))
        self._cache: Dict[Mask, float] = {}

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    @property
    def n_evaluations(self) -> int:
        return len(self._cache)

    def names(self, mask: Sequence[bool]) -> Tuple[str, ...]:
        return tuple(name for name, keep in zip(self.feature_names, mask) if keep)

    def error(self, mask: Sequence[bool]) -> float:
        key = tuple(bool(m) for m in mask)
        if key not in self._cache:
            self._cache[key] = self._cv_error(np.asarray(key, dtype=bool))
        return self._cache[key]

    def _constant_model(self):
        if self.task == CLASSIFICATION:
            return DummyClassifier(strategy="most_frequent")
        return DummyRegressor(strategy="mean")

    def _cv_error(self, columns: np.ndarray) -> float:
        losses = []
        for y in self.targets:
            wrong = 0.0
            for fold_idx, (train_idx, test_idx) in enumerate(self.folds):
                if columns.any():
                    X_train = self.X[train_idx][:, columns]
                    X_test = self.X[test_idx][:, columns]
                    try:
                        model = self.factory.fit(
                            self.learner, self.task, X_train, y[train_idx],
                            seed=stable_seed_from([self.seed, fold_idx]),
                            overrides=self.overrides,
                        )
                        pred = model.predict(X_test)
                    except Exception as e:
                        raise FeatureSelectionError(
                            f"{self.learner} failed on inner fold {fold_idx}: {type(e).__name__}: {e}",
                            stage="FEATURE_SELECTION",
                            learner=self.learner,
                        ) from e
                else:
                    model = self._constant_model().fit(np.zeros((len(train_idx), 1)), y[train_idx])
                    pred = model.predict(np.zeros((len(test_idx), 1)))

                if self.task == CLASSIFICATION:
                    wrong += float(np.sum(pred != y[test_idx]))
                else:
                    wrong += float(np.sum((np.asarray(pred, dtype=float) - y[test_idx].astype(float)) ** 2))
            losses.append(wrong / len(y))
        return float(np.mean(losses))


# =============================================================================
# Search strategies
# =============================================================================

def _best_move(evaluator: SubsetEvaluator, current: List[bool],
               candidates: Sequence[int]) -> Tuple[Optional[int], float]:
    """Index whose flip gives the lowest error (first wins ties)."""
    best_idx, best_err = None, np.inf
    for idx in candidates:
        trial = list(current)
        trial[idx] = not trial[idx]
        err = evaluator.error(trial)
        if err < best_err:
            best_idx, best_err = idx, err
    return best_idx, best_err


def sequential_floating_search(evaluator: SubsetEvaluator, forward: bool,
                               min_improvement: float = 0.0,
                               max_features: Optional[int] = None) -> Tuple[List[bool], float]:
    """
    Sequential floating search (SFFS when forward, SFBS otherwise).

    Each main step flips in (forward) or out (backward) the single feature
    that lowers the error most. After each main step, conditional steps
    flip features the other way while that still lowers the error; the
    feature just moved is not eligible. Every accepted move lowers the error
    by more than `min_improvement`, so the search terminates; it stops when
    no main step improves the estimate.

    A backward search starting above `max_features` first removes features
    one at a time, improving or not, until the subset fits the cap.
    """
    n = evaluator.n_features
    current = [not forward] * n
    current_err = evaluator.error(current)

    if not forward and max_features is not None:
        while sum(current) > max_features:
            on = [i for i in range(n) if current[i]]
            moved, err = _best_move(evaluator, current, on)
            if moved is None:
                moved = on[0]
                err = evaluator.error([c and i != moved for i, c in enumerate(current)])
            current[moved] = False
            current_err = err
        logger.debug(f"Backward search trimmed to {sum(current)} features (cap {max_features})")

    while True:
        if forward:
            if max_features is not None and sum(current) >= max_features:
                break
            candidates = [i for i in range(n) if not current[i]]
        else:
            candidates = [i for i in range(n) if current[i]]
        if not candidates:
            break

        moved, err = _best_move(evaluator, current, candidates)
        if moved is None or current_err - err <= min_improvement:
            break
        current[moved] = not current[moved]
        current_err = err

        # Conditional steps in the opposite direction
        while True:
            if forward:
                back = [i for i in range(n) if current[i] and i != moved]
            else:
                back = [i for i in range(n) if not current[i] and i != moved]
                if max_features is not None and sum(current) >= max_features:
                    back = []
            if not back:
                break
            flipped, err = _best_move(evaluator, current, back)
            if flipped is None or current_err - err <= min_improvement:
                break
            current[flipped] = not current[flipped]
            current_err = err

    return current, current_err


def genetic_search(evaluator: SubsetEvaluator, ga: GAConfig, rng: np.random.Generator,
                   max_features: Optional[int] = None) -> Tuple[List[bool], float]:
    """
    (mu + lambda) evolutionary search on feature inclusion bitmasks.

    Parents are drawn uniformly, children get uniform crossover with
    probability `crossover_rate` and independent bit flips with probability
    `mutation_rate`; the `population_size` fittest of parents + children
    survive. Returns the best mask ever evaluated.
    """
    n = evaluator.n_features
    log = logger.info if get_module_logging_config("feature_selector").detail else logger.debug

    def clip(mask: np.ndarray) -> np.ndarray:
        # Keep a random subset of max_features when over budget
        if max_features is not None and mask.sum() > max_features:
            on = np.flatnonzero(mask)
            keep = rng.choice(on, size=max_features, replace=False)
            mask = np.zeros(n, dtype=bool)
            mask[keep] = True
        return mask

    population = [clip(rng.random(n) < ga.initial_inclusion_probability)
                  for _ in range(ga.population_size)]
    fitness = [evaluator.error(m) for m in population]

    for generation in range(ga.generations):
        offspring = []
        for _ in range(ga.offspring_size):
            i, j = rng.choice(len(population), size=2, replace=False)
            child = population[i].copy()
            if rng.random() < ga.crossover_rate:
                take_other = rng.random(n) < 0.5
                child = np.where(take_other, population[j], population[i])
            child = clip(child ^ (rng.random(n) < ga.mutation_rate))
            offspring.append(child)

        pool = population + offspring
        pool_fitness = fitness + [evaluator.error(m) for m in offspring]
        order = np.argsort(pool_fitness, kind="stable")[:ga.population_size]
        population = [pool[k] for k in order]
        fitness = [pool_fitness[k] for k in order]
        log(f"GA generation {generation + 1}/{ga.generations}: best error {fitness[0]:.4f}")

    return [bool(b) for b in population[0]], fitness[0]


class FeatureSelector:
    """Runs one feature selection strategy for a learner on a labeled table."""

    def __init__(self, config: Optional[FeatureSelectionConfig] = None,
                 factory: Optional[ModelFactory] = None,
                 model_overrides: Optional[Dict[str, Dict]] = None):
        self.config = config or FeatureSelectionConfig()
        self.factory = factory or ModelFactory()
        self.model_overrides = model_overrides or {}

    def select(self, learner: str, table: ScoredTable, strategy: str, seed: int) -> FeatureSubset:
        """
        Select a feature subset.

        Args:
            learner: Learner family wrapped by the search
            table: Labeled rows to search on (all instances, or a fold's training rows)
            strategy: One of all, sffs, sfbs, ga, ga2
            seed: Seed for the inner CV split and the evolutionary search

        Returns:
            FeatureSubset (possibly empty)
        """
        if strategy not in VALID_STRATEGIES:
            raise ConfigError(f"Unknown feature selection strategy '{strategy}'")

        if strategy == "all":
            # Still validates that the learner exists for some task
            selection_task(learner, self.factory)
            return FeatureSubset(learner, strategy, tuple(table.feature_names))

        evaluator = SubsetEvaluator(
            learner, table,
            n_folds=self.config.inner_cv_folds,
            seed=stable_seed_from([seed, "inner_cv"]),
            factory=self.factory,
            overrides=self.model_overrides.get(learner),
        )

        if strategy in ("sffs", "sfbs"):
            mask, err = sequential_floating_search(
                evaluator,
                forward=(strategy == "sffs"),
                min_improvement=self.config.min_improvement,
                max_features=self.config.max_features,
            )
        else:
            ga = self.config.ga if strategy == "ga" else self.config.ga2
            mask, err = genetic_search(
                evaluator, ga,
                rng=np.random.default_rng(stable_seed_from([seed, "ga"])),
                max_features=self.config.max_features,
            )

        subset = FeatureSubset(learner, strategy, evaluator.names(mask), error=err,
                               n_evaluations=evaluator.n_evaluations)
        logger.info(
            f"[{learner}/{strategy}] selected {len(subset)}/{evaluator.n_features} features "
            f"(cv error {err:.4f}, {subset.n_evaluations} subsets evaluated)"
        )
        return subset
