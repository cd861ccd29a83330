# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

from .feature_selector import (
    FeatureSelector,
    FeatureSubset,
    SubsetEvaluator,
    genetic_search,
    selection_task,
    sequential_floating_search,
)

__all__ = [
    'FeatureSelector',
    'FeatureSubset',
    'SubsetEvaluator',
    'genetic_search',
    'selection_task',
    'sequential_floating_search',
]
