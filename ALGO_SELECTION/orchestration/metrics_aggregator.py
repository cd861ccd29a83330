# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Metrics Aggregator

Collects the LOOCV outcome table of every evaluated combination together with
skipped/failed combinations, and summarizes them by mean relERT. Reference
rows for the baseline (SBS) and the virtual best solver (VBS) give the scale
against which a selector is judged.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from ALGO_SELECTION.common.exceptions import ResultContractError
from ALGO_SELECTION.data.tables import ScoredTable
from .cross_validator import OUTCOME_COLUMNS, Combination

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["family", "learner", "strategy", "n", "mean_relERT", "mean_relERT_FC"]

# Failure reasons
EMPTY_FEATURE_SET = "empty_feature_set"
FOLD_ERROR = "fold_error"
FEATURE_SELECTION_ERROR = "feature_selection_error"


@dataclass(frozen=True)
class CombinationFailure:
    """A combination absent from the results, with the reason why."""
    combination: Combination
    reason: str
    message: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "combination": self.combination.name,
            "family": self.combination.family,
            "learner": self.combination.learner,
            "strategy": self.combination.strategy,
            "reason": self.reason,
            "message": self.message,
        }


class ResultAggregator:
    """
    Aggregates per-combination outcome tables.

    Every combination ends up in exactly one of `results` or `failures`.
    """

    def __init__(self, n_instances: int):
        self.n_instances = n_instances
        self._results: Dict[str, pd.DataFrame] = {}
        self._combinations: Dict[str, Combination] = {}
        self._failures: Dict[str, CombinationFailure] = {}
        self._references: Dict[str, pd.DataFrame] = {}

    def _check_new(self, combination: Combination) -> None:
        if combination.name in self._results or combination.name in self._failures:
            raise ResultContractError(
                f"Combination {combination} reported twice",
                stage="AGGREGATION", error_code="RESULT_DUPLICATE",
                combination=combination.name,
            )

    def add_result(self, combination: Combination, outcomes: pd.DataFrame) -> None:
        """Record the outcome table of a completed combination."""
        self._check_new(combination)
        missing = [c for c in OUTCOME_COLUMNS if c not in outcomes.columns]
        if missing:
            raise ResultContractError(
                f"Outcome table for {combination} lacks columns {missing}",
                stage="AGGREGATION", combination=combination.name,
            )
        keys = outcomes[["dimension", "function_id"]]
        if len(outcomes) != self.n_instances or keys.duplicated().any():
            raise ResultContractError(
                f"Outcome table for {combination} has {len(outcomes)} rows "
                f"({int(keys.duplicated().sum())} duplicated), expected one per instance ({self.n_instances})",
                stage="AGGREGATION", error_code="RESULT_ROW_COUNT",
                combination=combination.name,
            )
        self._results[combination.name] = outcomes
        self._combinations[combination.name] = combination

    def add_failure(self, combination: Combination, reason: str, message: str = "") -> None:
        """Record a skipped or failed combination with its reason."""
        self._check_new(combination)
        self._failures[combination.name] = CombinationFailure(combination, reason, message)
        log = logger.info if reason == EMPTY_FEATURE_SET else logger.warning
        log(f"[{combination}] {reason}{': ' + message if message else ''}")

    def add_references(self, table: ScoredTable) -> None:
        """Baseline (SBS) and virtual best solver (VBS) outcome tables."""
        keys = table.keys
        base = pd.DataFrame({
            "dimension": [k.dimension for k in keys],
            "function_id": [k.function_id for k in keys],
            "solver": table.baseline,
            "relERT": table.baseline_rel_ert.to_numpy(dtype=float),
            "relERT_FC": table.baseline_rel_ert_fc.to_numpy(dtype=float),
        })
        vbs_solver = table.best.to_numpy(dtype=object)
        vbs = pd.DataFrame({
            "dimension": base["dimension"],
            "function_id": base["function_id"],
            "solver": vbs_solver,
            "relERT": [float(table.rel_ert.iloc[i][s]) for i, s in enumerate(vbs_solver)],
            "relERT_FC": [float(table.rel_ert_fc.iloc[i][s]) for i, s in enumerate(vbs_solver)],
        })
        self._references = {"SBS": base, "VBS": vbs}

    @property
    def results(self) -> Dict[str, pd.DataFrame]:
        return dict(self._results)

    @property
    def failures(self) -> List[CombinationFailure]:
        return list(self._failures.values())

    def failures_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [f.to_dict() for f in self._failures.values()],
            columns=["combination", "family", "learner", "strategy", "reason", "message"],
        )

    def summary(self, include_references: bool = False) -> pd.DataFrame:
        """Mean relERT per combination, best first."""
        rows = []
        for name, frame in self._results.items():
            combo = self._combinations[name]
            rows.append((combo.family, combo.learner, combo.strategy, len(frame),
                         frame["relERT"].mean(), frame["relERT_FC"].mean()))
        if include_references:
            for ref, frame in self._references.items():
                rows.append(("reference", ref, "", len(frame),
                             frame["relERT"].mean(), frame["relERT_FC"].mean()))
        summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
        return summary.sort_values(["mean_relERT", "family", "learner", "strategy"],
                                   kind="mergesort").reset_index(drop=True)

    def best_per_family(self) -> pd.DataFrame:
        """Row of the lowest mean relERT for every family with results."""
        summary = self.summary()
        if summary.empty:
            return summary
        return summary.groupby("family", sort=True).head(1).set_index("family")

    def best(self) -> Optional[Combination]:
        """Combination with the lowest mean relERT overall (None if nothing succeeded)."""
        summary = self.summary()
        if summary.empty:
            return None
        top = summary.iloc[0]
        return Combination(top["family"], top["learner"], top["strategy"])
