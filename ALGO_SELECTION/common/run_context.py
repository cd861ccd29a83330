# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Run Context

Explicit per-run state handed to every stage (scoring, feature selection,
cross-validation): the validated configuration, the base seed and the worker
pool factory. Nothing in the pipeline reads seeds or pools from module globals.
"""

import logging
import multiprocessing
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Iterator, Optional

from CONFIG.config_schemas import PipelineConfig
from ALGO_SELECTION.common.determinism import stable_seed_from
from ALGO_SELECTION.common.threads import effective_threads, init_worker_threads, thread_guard

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Seed, configuration and worker pool for one pipeline run."""
    config: PipelineConfig = field(default_factory=PipelineConfig)

    @property
    def base_seed(self) -> int:
        return self.config.base_seed

    def seed_for(self, *parts: Any) -> int:
        """Seed derived from the base seed and a stable identity."""
        return stable_seed_from([self.base_seed, *parts])

    def max_workers(self) -> int:
        return effective_threads(self.config.parallel.max_workers)

    @contextmanager
    def worker_pool(self, n_tasks: Optional[int] = None) -> Iterator[Optional[Executor]]:
        """
        Acquire the fold worker pool for one CV run.

        Yields None when a pool would be pointless (one worker or one task);
        callers then run sequentially. The pool is shut down on every exit
        path, pending futures are cancelled on failure.
        """
        parallel = self.config.parallel
        workers = self.max_workers()
        if n_tasks is not None:
            workers = min(workers, n_tasks)

        if workers <= 1:
            with thread_guard(blas=parallel.threads_per_worker):
                yield None
            return

        if parallel.executor == "process":
            # 'spawn' avoids fork deadlocks with locks held by logging handlers/registries
            pool: Executor = ProcessPoolExecutor(
                max_workers=workers,
                mp_context=multiprocessing.get_context("spawn"),
                initializer=partial(init_worker_threads, parallel.threads_per_worker),
            )
        else:
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fold")

        logger.debug(f"Acquired {parallel.executor} pool with {workers} workers")
        ok = False
        try:
            if parallel.executor == "thread":
                with thread_guard(blas=parallel.threads_per_worker):
                    yield pool
            else:
                yield pool
            ok = True
        finally:
            pool.shutdown(wait=True, cancel_futures=not ok)
            logger.debug("Released worker pool")
