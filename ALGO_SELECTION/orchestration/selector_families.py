# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Selector Families

Three policies for turning learner output into one chosen solver per instance.
They share the LOOCV skeleton and differ only in what is fitted per fold:

- classification:       1 classifier, features -> Best label
- regression:           S regressors, one per solver, predicting its relERT;
                        choose the smallest prediction
- pairwise_regression:  S(S-1)/2 regressors, one per unordered solver pair
                        (A, B), predicting relERT(A) - relERT(B); the
                        predictions fill an antisymmetric S x S matrix and the
                        solver with the smallest row sum is chosen

Cost per fold therefore grows O(1) -> O(S) -> O(S^2) in fitted models. The
pairwise family pays the quadratic fit count so that each sub-model learns a
simpler two-solver contrast instead of an absolute runtime scale.

Ties are broken by solver order (first solver wins).
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ALGO_SELECTION.common.determinism import stable_seed_from
from ALGO_SELECTION.common.exceptions import ConfigError
from ALGO_SELECTION.data.tables import InstanceKey, ScoredTable
from ALGO_SELECTION.models.factory import ModelFactory
from ALGO_SELECTION.models.model_wrapper import FittedLearner
from ALGO_SELECTION.models.registry import CLASSIFICATION, REGRESSION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionOutcome:
    """Solver chosen for one held-out instance and what it achieved."""
    key: InstanceKey
    solver: str
    rel_ert: float
    rel_ert_fc: float


def argmin_solver(scores: Sequence[float], solvers: Sequence[str]) -> str:
    """Solver with the smallest score, first in solver order on ties."""
    scores = np.asarray(scores, dtype=float)
    if scores.shape != (len(solvers),):
        raise ValueError(f"Expected {len(solvers)} scores, got shape {scores.shape}")
    if not np.all(np.isfinite(scores)):
        raise ValueError(f"Non-finite selector scores {scores.tolist()}")
    return solvers[int(np.argmin(scores))]


def solver_pairs(n_solvers: int) -> List[Tuple[int, int]]:
    """Unordered pairs (i, j), i < j, in solver order."""
    return [(i, j) for i in range(n_solvers) for j in range(i + 1, n_solvers)]


def pairwise_difference_matrix(differences: Dict[Tuple[int, int], float], n_solvers: int) -> np.ndarray:
    """
    Antisymmetric matrix from predicted pair differences.

    Args:
        differences: {(i, j): predicted relERT(i) - relERT(j)} for every i < j
        n_solvers: S

    Returns:
        S x S matrix D with D[i, j] = -D[j, i] and zero diagonal
    """
    matrix = np.zeros((n_solvers, n_solvers), dtype=float)
    for (i, j), diff in differences.items():
        if i >= j:
            raise ValueError(f"Pair ({i}, {j}) is not in solver order")
        matrix[i, j] = diff
        matrix[j, i] = -diff
    return matrix


class FittedSelector:
    """Fitted models of one family for one fold."""

    def __init__(self, solvers: Sequence[str]):
        self.solvers = tuple(solvers)

    def choose(self, x: np.ndarray) -> str:
        raise NotImplementedError


class ClassificationSelector(FittedSelector):

    def __init__(self, solvers: Sequence[str], model: FittedLearner):
        super().__init__(solvers)
        self.model = model

    def choose(self, x: np.ndarray) -> str:
        solver = str(self.model.predict_one(x))
        if solver not in self.solvers:
            raise ValueError(f"Classifier predicted unknown solver '{solver}'")
        return solver


class RegressionSelector(FittedSelector):

    def __init__(self, solvers: Sequence[str], models: Sequence[FittedLearner]):
        super().__init__(solvers)
        self.models = list(models)

    def predict_all(self, x: np.ndarray) -> np.ndarray:
        return np.array([m.predict_one(x) for m in self.models], dtype=float)

    def choose(self, x: np.ndarray) -> str:
        return argmin_solver(self.predict_all(x), self.solvers)


class PairwiseSelector(FittedSelector):

    def __init__(self, solvers: Sequence[str], models: Dict[Tuple[int, int], FittedLearner]):
        super().__init__(solvers)
        self.models = dict(models)

    def difference_matrix(self, x: np.ndarray) -> np.ndarray:
        diffs = {pair: float(m.predict_one(x)) for pair, m in self.models.items()}
        return pairwise_difference_matrix(diffs, len(self.solvers))

    def choose(self, x: np.ndarray) -> str:
        return argmin_solver(self.difference_matrix(x).sum(axis=1), self.solvers)


class SelectorFamily:
    """How a family fits its models on a fold's training rows."""

    name: str = ""
    task: str = ""

    def n_models(self, n_solvers: int) -> int:
        raise NotImplementedError

    def fit(self, learner: str, X: np.ndarray, train: ScoredTable, seed: int,
            factory: Optional[ModelFactory] = None,
            overrides: Optional[Dict] = None) -> FittedSelector:
        raise NotImplementedError


class ClassificationFamily(SelectorFamily):
    name = "classification"
    task = CLASSIFICATION

    def n_models(self, n_solvers: int) -> int:
        return 1

    def fit(self, learner, X, train, seed, factory=None, overrides=None):
        factory = factory or ModelFactory()
        model = factory.fit(learner, self.task, X, train.best.to_numpy(dtype=object),
                            seed=seed, overrides=overrides)
        return ClassificationSelector(train.solvers, model)


class RegressionFamily(SelectorFamily):
    name = "regression"
    task = REGRESSION

    def n_models(self, n_solvers: int) -> int:
        return n_solvers

    def fit(self, learner, X, train, seed, factory=None, overrides=None):
        factory = factory or ModelFactory()
        rel = train.rel_ert_matrix()
        models = [
            factory.fit(learner, self.task, X, rel[:, j],
                        seed=stable_seed_from([seed, solver]), overrides=overrides)
            for j, solver in enumerate(train.solvers)
        ]
        return RegressionSelector(train.solvers, models)


class PairwiseRegressionFamily(SelectorFamily):
    name = "pairwise_regression"
    task = REGRESSION

    def n_models(self, n_solvers: int) -> int:
        return n_solvers * (n_solvers - 1) // 2

    def fit(self, learner, X, train, seed, factory=None, overrides=None):
        factory = factory or ModelFactory()
        rel = train.rel_ert_matrix()
        solvers = train.solvers
        models = {}
        for i, j in solver_pairs(len(solvers)):
            models[(i, j)] = factory.fit(
                learner, self.task, X, rel[:, i] - rel[:, j],
                seed=stable_seed_from([seed, solvers[i], solvers[j]]), overrides=overrides,
            )
        return PairwiseSelector(solvers, models)


FAMILIES: Dict[str, SelectorFamily] = {
    f.name: f for f in (ClassificationFamily(), RegressionFamily(), PairwiseRegressionFamily())
}


def get_family(name: str) -> SelectorFamily:
    try:
        return FAMILIES[name]
    except KeyError:
        raise ConfigError(f"Unknown selector family '{name}', expected one of {list(FAMILIES)}") from None
