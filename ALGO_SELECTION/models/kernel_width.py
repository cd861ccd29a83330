# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Kernel width heuristic for RBF kernel machines.

Closed-form estimate from the training data: sample random row pairs,
take squared distances, and use the inverse of their 0.9 / 0.1 quantiles.
Any width between those two bounds gives good results in practice; the
midpoint is used as the RBF gamma (k(x, x') = exp(-gamma * ||x - x'||^2)).

Recomputed on every fit, since the training rows change from fold to fold.
"""

import logging

import numpy as np
from sklearn.metrics.pairwise import paired_euclidean_distances

logger = logging.getLogger(__name__)


def sigma_range(X: np.ndarray, rng: np.random.Generator, sample_fraction: float = 0.5) -> np.ndarray:
    """
    Inverse squared-distance quantiles (0.9, 0.5, 0.1) of random row pairs.

    Args:
        X: Training features (n_samples, n_features)
        rng: Seeded generator for pair sampling
        sample_fraction: Fraction of rows used as number of sampled pairs

    Returns:
        Array [lower, median, upper] of candidate gamma values, or an empty
        array when every sampled pair is identical
    """
    n_rows = X.shape[0]
    n_pairs = max(1, int(np.floor(sample_fraction * n_rows)))
    left = rng.integers(n_rows, size=n_pairs)
    right = rng.integers(n_rows, size=n_pairs)

    sq_dist = paired_euclidean_distances(X[left], X[right]) ** 2
    sq_dist = sq_dist[sq_dist > 0]
    if sq_dist.size == 0:
        return np.array([])
    return 1.0 / np.quantile(sq_dist, [0.9, 0.5, 0.1])


def estimate_gamma(X: np.ndarray, rng: np.random.Generator, sample_fraction: float = 0.5) -> float:
    """RBF gamma: midpoint of the lower and upper sigma_range bounds."""
    srange = sigma_range(X, rng, sample_fraction)
    if srange.size == 0:
        gamma = 1.0 / max(1, X.shape[1])
        logger.warning(f"All sampled row pairs identical, using gamma=1/n_features={gamma:.4g}")
        return gamma
    return float(np.mean(srange[[0, 2]]))
