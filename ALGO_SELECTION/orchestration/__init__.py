# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

from .cross_validator import (
    Combination,
    CrossValidator,
    FoldPlan,
    outcomes_frame,
    run_fold,
    select_fold_features,
)
from .metrics_aggregator import CombinationFailure, ResultAggregator
from .pipeline import AlgorithmSelectionPipeline, PipelineResult
from .selector_families import (
    FAMILIES,
    SelectionOutcome,
    SelectorFamily,
    get_family,
    pairwise_difference_matrix,
)

__all__ = [
    'AlgorithmSelectionPipeline',
    'Combination',
    'CombinationFailure',
    'CrossValidator',
    'FAMILIES',
    'FoldPlan',
    'PipelineResult',
    'ResultAggregator',
    'SelectionOutcome',
    'SelectorFamily',
    'get_family',
    'outcomes_frame',
    'pairwise_difference_matrix',
    'run_fold',
    'select_fold_features',
]
