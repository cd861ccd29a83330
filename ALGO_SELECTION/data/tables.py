# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Instance-keyed tables

Read-only inputs of the pipeline, all indexed by the instance key
(dimension, function_id):

- FeatureTable: instance x feature name -> finite scaled value
- PerformanceTable: instance x solver -> raw ERT (non-finite = did not converge)
- ScoredTable: joined features plus relERT / relERT_FC / Best label records

Per-fold training and validation splits are views produced by
``ScoredTable.subset``; source tables are never mutated.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ALGO_SELECTION.common.exceptions import DataIntegrityError

logger = logging.getLogger(__name__)

INDEX_NAMES = ("dimension", "function_id")


class InstanceKey(NamedTuple):
    """Problem instance identity: join key across every table."""
    dimension: int
    function_id: int

    def __str__(self) -> str:
        return f"{self.dimension}D_f{self.function_id}"


def _index_keys(index: pd.Index) -> List[InstanceKey]:
    return [InstanceKey(int(d), int(f)) for d, f in index]


def _ensure_instance_index(frame: pd.DataFrame, table: str) -> pd.DataFrame:
    """
    Return a copy of `frame` indexed by (dimension, function_id), sorted.

    Accepts either an existing 2-level index or the two key columns.
    """
    if all(name in frame.columns for name in INDEX_NAMES):
        frame = frame.set_index(list(INDEX_NAMES))
    elif tuple(frame.index.names) != INDEX_NAMES:
        raise DataIntegrityError(
            f"{table} must be indexed by {INDEX_NAMES} or carry them as columns "
            f"(got index {list(frame.index.names)})",
            stage="DATA",
            error_code="DATA_MISSING_REQUIRED",
            table=table,
        )

    frame = frame.copy()
    try:
        frame.index = pd.MultiIndex.from_tuples(
            [(int(d), int(f)) for d, f in frame.index], names=list(INDEX_NAMES)
        )
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(
            f"{table} has non-integer instance keys: {e}",
            stage="DATA",
            error_code="DATA_INVALID_VALUE",
            table=table,
        ) from e

    duplicated = frame.index[frame.index.duplicated()].unique()
    if len(duplicated) > 0:
        raise DataIntegrityError(
            f"{table} has duplicate instances: {[str(k) for k in _index_keys(duplicated)][:10]}",
            stage="DATA",
            error_code="DATA_DUPLICATE_KEY",
            table=table,
        )
    return frame.sort_index()


@dataclass(frozen=True)
class FeatureTable:
    """Landscape features per instance (finite, scaled)."""
    frame: pd.DataFrame

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "FeatureTable":
        frame = _ensure_instance_index(frame, "FeatureTable")
        if frame.shape[1] == 0:
            raise DataIntegrityError(
                "FeatureTable has no feature columns",
                stage="DATA",
                error_code="DATA_MISSING_REQUIRED",
                table="FeatureTable",
            )
        try:
            frame = frame.astype(float)
        except (TypeError, ValueError) as e:
            raise DataIntegrityError(
                f"FeatureTable holds non-numeric values: {e}",
                stage="DATA",
                error_code="DATA_INVALID_VALUE",
                table="FeatureTable",
            ) from e

        bad = ~np.isfinite(frame.to_numpy())
        if bad.any():
            columns = [c for c, flag in zip(frame.columns, bad.any(axis=0)) if flag]
            raise DataIntegrityError(
                f"FeatureTable has missing or non-finite values in {columns[:10]}",
                stage="DATA",
                error_code="DATA_NAN_INF",
                table="FeatureTable",
                column=str(columns[0]),
            )
        return cls(frame)

    @property
    def feature_names(self) -> List[str]:
        return [str(c) for c in self.frame.columns]

    @property
    def keys(self) -> List[InstanceKey]:
        return _index_keys(self.frame.index)


@dataclass(frozen=True)
class PerformanceTable:
    """Raw ERT per instance and solver, plus the reserved baseline column."""
    frame: pd.DataFrame
    baseline: str

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, baseline: str) -> "PerformanceTable":
        frame = _ensure_instance_index(frame, "PerformanceTable")
        if baseline not in frame.columns:
            raise DataIntegrityError(
                f"PerformanceTable is missing the baseline solver column '{baseline}'",
                stage="DATA",
                error_code="BASELINE_MISSING",
                table="PerformanceTable",
                column=baseline,
            )
        try:
            frame = frame.astype(float)
        except (TypeError, ValueError) as e:
            raise DataIntegrityError(
                f"PerformanceTable holds non-numeric values: {e}",
                stage="DATA",
                error_code="DATA_INVALID_VALUE",
                table="PerformanceTable",
            ) from e

        values = frame.to_numpy()
        negative = (values < 0) & ~np.isnan(values)
        if negative.any():
            columns = [c for c, flag in zip(frame.columns, negative.any(axis=0)) if flag]
            raise DataIntegrityError(
                f"PerformanceTable has negative runtimes in {columns}",
                stage="DATA",
                error_code="DATA_INVALID_VALUE",
                table="PerformanceTable",
                column=str(columns[0]),
            )
        return cls(frame, baseline)

    def solver_names(self, candidates: Optional[Sequence[str]] = None) -> List[str]:
        """
        Candidate solvers in tie-break order.

        Args:
            candidates: Configured solver names (empty/None = every non-baseline column)
        """
        if not candidates:
            return [str(c) for c in self.frame.columns if c != self.baseline]

        missing = [s for s in candidates if s not in self.frame.columns]
        if missing:
            raise DataIntegrityError(
                f"PerformanceTable is missing configured solver columns {missing}",
                stage="DATA",
                error_code="DATA_MISSING_REQUIRED",
                table="PerformanceTable",
                column=str(missing[0]),
            )
        return list(candidates)

    @property
    def keys(self) -> List[InstanceKey]:
        return _index_keys(self.frame.index)


def join_tables(
    features: FeatureTable,
    performance: PerformanceTable,
) -> Tuple[FeatureTable, PerformanceTable]:
    """
    Align both tables on the instance key.

    Unmatched instances are never dropped silently: any key present in only
    one of the tables raises DataIntegrityError(INSTANCE_KEY_MISMATCH).
    """
    feature_keys = set(features.keys)
    performance_keys = set(performance.keys)
    only_features = sorted(feature_keys - performance_keys)
    only_performance = sorted(performance_keys - feature_keys)

    if only_features or only_performance:
        raise DataIntegrityError(
            f"Instance keys differ between tables: {len(only_features)} only in FeatureTable "
            f"{[str(k) for k in only_features[:10]]}, {len(only_performance)} only in "
            f"PerformanceTable {[str(k) for k in only_performance[:10]]}",
            stage="DATA",
            error_code="INSTANCE_KEY_MISMATCH",
            context={
                "only_features": [str(k) for k in only_features],
                "only_performance": [str(k) for k in only_performance],
            },
        )

    index = features.frame.index
    return features, PerformanceTable(performance.frame.loc[index], performance.baseline)


def restrict_instances(
    frame: pd.DataFrame,
    dimensions: Iterable[int],
    function_ids: Iterable[int],
) -> pd.DataFrame:
    """Keep the configured (dimension, function_id) grid; logs what is excluded."""
    dims = set(int(d) for d in dimensions)
    fids = set(int(f) for f in function_ids)
    mask = [(int(d) in dims and int(f) in fids) for d, f in frame.index]
    kept = frame.loc[mask]
    excluded = len(frame) - len(kept)
    if excluded:
        logger.info(f"Excluded {excluded} instances outside the configured dimension/function grid")
    return kept


def drop_near_constant_features(frame: pd.DataFrame, min_distinct: int) -> pd.DataFrame:
    """
    Drop features with `min_distinct` or fewer distinct values across instances.

    Args:
        frame: Feature frame (instances x features)
        min_distinct: Features need strictly more distinct values than this

    Returns:
        Frame without near-constant features
    """
    n_unique = frame.nunique(dropna=True)
    dropped = [str(c) for c in n_unique.index[n_unique <= min_distinct]]
    if dropped:
        logger.info(f"Dropping {len(dropped)} near-constant features: {dropped[:10]}{'...' if len(dropped) > 10 else ''}")
    return frame.drop(columns=dropped)


@dataclass(frozen=True)
class ScoredTable:
    """
    Labeled training table: features joined with both relERT variants.

    relERT and relERT_FC live in separate frames with identical index and
    solver columns; the baseline reference is kept apart from the candidates.
    """
    features: pd.DataFrame
    rel_ert: pd.DataFrame
    rel_ert_fc: pd.DataFrame
    best: pd.Series
    solvers: Tuple[str, ...]
    baseline: str
    baseline_rel_ert: pd.Series
    baseline_rel_ert_fc: pd.Series
    par10: float
    par10_fc: float

    @property
    def keys(self) -> List[InstanceKey]:
        return _index_keys(self.features.index)

    @property
    def n_instances(self) -> int:
        return len(self.features)

    @property
    def feature_names(self) -> List[str]:
        return [str(c) for c in self.features.columns]

    def feature_matrix(self, feature_names: Sequence[str]) -> np.ndarray:
        return self.features.loc[:, list(feature_names)].to_numpy(dtype=float)

    def rel_ert_matrix(self) -> np.ndarray:
        return self.rel_ert.loc[:, list(self.solvers)].to_numpy(dtype=float)

    def subset(self, keys: Sequence[InstanceKey]) -> "ScoredTable":
        """View restricted to `keys` (in the given order)."""
        index = pd.MultiIndex.from_tuples([tuple(k) for k in keys], names=list(INDEX_NAMES))
        return ScoredTable(
            features=self.features.loc[index],
            rel_ert=self.rel_ert.loc[index],
            rel_ert_fc=self.rel_ert_fc.loc[index],
            best=self.best.loc[index],
            solvers=self.solvers,
            baseline=self.baseline,
            baseline_rel_ert=self.baseline_rel_ert.loc[index],
            baseline_rel_ert_fc=self.baseline_rel_ert_fc.loc[index],
            par10=self.par10,
            par10_fc=self.par10_fc,
        )

    def without(self, key: InstanceKey) -> "ScoredTable":
        """Training view for a LOOCV fold holding out `key`."""
        return self.subset([k for k in self.keys if k != key])
