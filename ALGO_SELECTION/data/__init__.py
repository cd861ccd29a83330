# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

from .tables import (
    FeatureTable,
    InstanceKey,
    PerformanceTable,
    ScoredTable,
    drop_near_constant_features,
    join_tables,
    restrict_instances,
)

__all__ = [
    'FeatureTable',
    'InstanceKey',
    'PerformanceTable',
    'ScoredTable',
    'drop_near_constant_features',
    'join_tables',
    'restrict_instances',
]
