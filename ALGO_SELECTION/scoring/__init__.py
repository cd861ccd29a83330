# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

from .performance_scorer import (
    apply_feature_cost,
    best_labels,
    scale_rel_ert,
    score_performance,
    score_reference,
)

__all__ = [
    'apply_feature_cost',
    'best_labels',
    'scale_rel_ert',
    'score_performance',
    'score_reference',
]
