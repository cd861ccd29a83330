# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Shared infrastructure: exception taxonomy, deterministic seeding,
thread limits and parallel execution.
"""
