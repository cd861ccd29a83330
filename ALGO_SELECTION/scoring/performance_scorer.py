# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Performance Scorer

Turns raw per-instance, per-solver ERT estimates into relative ERT:

    relERT(s, i) = ERT(s, i) / min_s' ERT(s', i)

Non-finite ERTs (the solver never converged) are replaced by one PAR10
constant per table: par10_multiplier x the largest finite relERT in the
whole table. The feature-cost variant adds a fixed surcharge of
feature_cost_coefficient x dimension to every solver's ERT first and is then
rescaled on its own (own row minima, own PAR10).

All functions are pure: inputs are never modified.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ALGO_SELECTION.common.determinism import rng_for
from ALGO_SELECTION.common.exceptions import DataIntegrityError
from ALGO_SELECTION.data.tables import FeatureTable, PerformanceTable, ScoredTable, join_tables

logger = logging.getLogger(__name__)


def _row_minimum(values: np.ndarray) -> np.ndarray:
    """Minimum finite value per row (inf for rows without a finite entry)."""
    finite = np.isfinite(values)
    return np.where(finite, values, np.inf).min(axis=1)


def _check_row_minimum(row_min: np.ndarray, index: pd.Index, table: str) -> None:
    zero_rows = np.flatnonzero(row_min == 0)
    if len(zero_rows):
        raise DataIntegrityError(
            f"{table}: ERT of 0 makes relERT undefined for instances "
            f"{[tuple(index[i]) for i in zero_rows[:10]]}",
            stage="SCORING",
            error_code="DATA_INVALID_VALUE",
            table=table,
        )
    no_finite = np.flatnonzero(~np.isfinite(row_min))
    if len(no_finite):
        logger.warning(
            f"{table}: {len(no_finite)} instances have no converged solver; "
            f"every solver gets PAR10 there: {[tuple(index[i]) for i in no_finite[:10]]}"
        )


def scale_rel_ert(raw: pd.DataFrame, par10_multiplier: float = 10.0,
                  table: str = "relERT") -> Tuple[pd.DataFrame, float]:
    """
    Normalize a raw ERT table to relERT with PAR10 substitution.

    Args:
        raw: Instances x solvers raw ERT (non-finite = not converged)
        par10_multiplier: Penalty factor applied to the largest finite relERT
        table: Name used in log/error messages

    Returns:
        (relERT frame, PAR10 constant)
    """
    values = raw.to_numpy(dtype=float)
    if not np.isfinite(values).any():
        raise DataIntegrityError(
            f"{table}: no finite runtime in the whole table, PAR10 is undefined",
            stage="SCORING",
            error_code="DATA_NAN_INF",
            table=table,
        )

    row_min = _row_minimum(values)
    _check_row_minimum(row_min, raw.index, table)

    with np.errstate(invalid="ignore", divide="ignore"):
        rel = values / row_min[:, None]

    finite = np.isfinite(rel)
    par10 = float(par10_multiplier * rel[finite].max())
    rel = np.where(finite, rel, par10)

    logger.debug(f"{table}: PAR10={par10:.4g}, {int((~finite).sum())} penalized entries")
    return pd.DataFrame(rel, index=raw.index, columns=raw.columns), par10


def score_reference(raw_reference: pd.Series, raw_candidates: pd.DataFrame, par10: float) -> pd.Series:
    """
    relERT of a reference column (the baseline) against the candidates' row minima.

    Non-finite reference runtimes get the candidates' PAR10 constant, and so
    does every instance where no candidate converged: the reference is scored
    exactly like the candidates there.
    """
    row_min = _row_minimum(raw_candidates.to_numpy(dtype=float))
    with np.errstate(invalid="ignore", divide="ignore"):
        rel = raw_reference.to_numpy(dtype=float) / row_min
    rel = np.where(np.isfinite(rel) & np.isfinite(row_min), rel, par10)
    return pd.Series(rel, index=raw_reference.index, name=raw_reference.name)


def apply_feature_cost(raw: pd.DataFrame, coefficient: float = 50.0) -> pd.DataFrame:
    """
    Add the feature-computation surcharge `coefficient x dimension` to every solver.

    The surcharge is applied uniformly (finite and non-finite entries alike);
    non-finite entries stay non-finite.
    """
    dimensions = raw.index.get_level_values("dimension").to_numpy(dtype=float)
    surcharge = coefficient * dimensions
    return raw.add(surcharge, axis=0)


def best_labels(rel_ert: pd.DataFrame, base_seed: int) -> pd.Series:
    """
    Solver with the minimum relERT per instance.

    Ties are broken by a uniform choice from a generator seeded with
    (base_seed, instance), so labels are reproducible and independent of
    row order.
    """
    solvers = np.asarray(rel_ert.columns, dtype=object)
    values = rel_ert.to_numpy(dtype=float)
    labels = []
    n_ties = 0
    for (dimension, function_id), row in zip(rel_ert.index, values):
        tied = np.flatnonzero(row == row.min())
        if len(tied) == 1:
            labels.append(str(solvers[tied[0]]))
            continue
        n_ties += 1
        rng = rng_for(base_seed, "best_label", int(dimension), int(function_id))
        labels.append(str(solvers[tied[rng.integers(len(tied))]]))

    if n_ties:
        logger.debug(f"Broke {n_ties} Best-label ties with seeded choice")
    return pd.Series(labels, index=rel_ert.index, name="best", dtype=object)


def score_performance(
    features: FeatureTable,
    performance: PerformanceTable,
    solvers: Optional[Sequence[str]] = None,
    feature_cost_coefficient: float = 50.0,
    par10_multiplier: float = 10.0,
    base_seed: int = 42,
) -> ScoredTable:
    """
    Build the labeled training table.

    Args:
        features: Feature table
        performance: Raw performance table (with baseline column)
        solvers: Candidate solvers in tie-break order (None = all non-baseline columns)
        feature_cost_coefficient: Surcharge per unit of dimension
        par10_multiplier: PAR10 factor
        base_seed: Seed for Best-label tie-breaking

    Returns:
        ScoredTable with relERT, relERT_FC and Best labels
    """
    features, performance = join_tables(features, performance)
    solver_names = performance.solver_names(solvers)
    raw = performance.frame.loc[:, solver_names]
    baseline_raw = performance.frame[performance.baseline]

    rel_ert, par10 = scale_rel_ert(raw, par10_multiplier, table="relERT")

    raw_fc = apply_feature_cost(raw, feature_cost_coefficient)
    rel_ert_fc, par10_fc = scale_rel_ert(raw_fc, par10_multiplier, table="relERT_FC")

    # The baseline computes no features: unsurcharged, but measured against the surcharged candidates
    baseline_rel = score_reference(baseline_raw, raw, par10)
    baseline_rel_fc = score_reference(baseline_raw, raw_fc, par10_fc)

    best = best_labels(rel_ert, base_seed)
    logger.info(
        f"Scored {len(rel_ert)} instances x {len(solver_names)} solvers "
        f"(PAR10={par10:.4g}, PAR10_FC={par10_fc:.4g})"
    )

    return ScoredTable(
        features=features.frame,
        rel_ert=rel_ert,
        rel_ert_fc=rel_ert_fc,
        best=best,
        solvers=tuple(solver_names),
        baseline=performance.baseline,
        baseline_rel_ert=baseline_rel,
        baseline_rel_ert_fc=baseline_rel_fc,
        par10=par10,
        par10_fc=par10_fc,
    )
