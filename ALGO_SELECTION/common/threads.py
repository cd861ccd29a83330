# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

from __future__ import annotations

import os
import logging
from contextlib import contextmanager

from threadpoolctl import threadpool_limits

logger = logging.getLogger(__name__)


# ============= CPU Affinity Helpers =============

def allowed_cpus() -> list[int]:
    """
    Get list of CPUs this process is allowed to use (respects cgroup/taskset).

    Returns:
        Sorted list of CPU IDs we're allowed to use
    """
    try:
        return sorted(os.sched_getaffinity(0))
    except AttributeError:
        # Windows or macOS - assume all CPUs available
        return list(range(os.cpu_count() or 1))


def default_threads() -> int:
    """Default worker count when none is configured: max(1, allowed CPUs - 1)."""
    return max(1, len(allowed_cpus()) - 1)


def effective_threads(requested: int | None = None) -> int:
    """
    Cap requested threads by what we're actually allowed to use.

    Args:
        requested: Desired thread count (None = use default)

    Returns:
        Thread count capped by allowed CPUs
    """
    n_allowed = len(allowed_cpus())
    req = requested if (requested and requested > 0) else default_threads()
    return max(1, min(req, n_allowed))


@contextmanager
def thread_guard(blas: int = 1, omp: int | None = None):
    """
    Clamp BLAS and OpenMP pools via threadpoolctl for the duration of the block.

    Examples:
        with thread_guard(blas=1, omp=1):
            model.fit(X, y)
    """
    omp = blas if omp is None else omp
    with threadpool_limits(limits=omp, user_api="openmp"):
        with threadpool_limits(limits=blas, user_api="blas"):
            yield


def init_worker_threads(blas: int = 1) -> None:
    """
    Process-pool initializer: clamp native thread pools for the worker's lifetime.

    Folds already run in parallel across workers, so nested BLAS/OpenMP
    parallelism only oversubscribes the machine.
    """
    threadpool_limits(limits=blas)
    logger.debug(f"Worker {os.getpid()} limited to {blas} native threads")
