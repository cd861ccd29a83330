# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
ALGO_SELECTION - Per-instance algorithm selection for continuous black-box optimization

Feature selection, three selector families (classification, per-solver
regression, pairwise regression) and leave-one-instance-out evaluation of
every (learner x strategy x family) combination under relERT scoring.
"""


__version__ = "1.0.0"
