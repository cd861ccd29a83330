# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Deterministic seeding.

Every randomized operation (tie-breaking, evolutionary search, inner CV
shuffles, learner initialization) derives its seed from the run's base seed
plus a stable identity (combination name, instance key, ...). Seeds never
depend on thread scheduling or on Python's salted ``hash()``.

Usage:
    seed = stable_seed_from([base_seed, "classification.svm.sffs", 2, 7])
    rng = rng_for(base_seed, "best_label", 2, 7)
"""

import hashlib
from typing import Any, Iterable

import numpy as np

BASE_SEED = 42

_SEED_MODULO = 2**31 - 1


def stable_seed_from(parts: Iterable[Any], modulo: int = _SEED_MODULO) -> int:
    """
    Derive a seed from an ordered sequence of parts.

    Args:
        parts: Items identifying the operation; rendered with str()
        modulo: Upper bound (exclusive) of the returned seed

    Returns:
        Integer seed in [0, modulo)
    """
    payload = "|".join(str(p) for p in parts).encode("utf-8")
    digest = hashlib.sha256(payload).digest()
    return int.from_bytes(digest[:8], "big") % modulo


def rng_for(base_seed: int, *parts: Any) -> np.random.Generator:
    """Independent numpy generator for (base_seed, *parts)."""
    return np.random.default_rng(stable_seed_from([base_seed, *parts]))
