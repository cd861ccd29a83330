# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable
from concurrent.futures import Executor, as_completed
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=Hashable)
R = TypeVar('R')


class ParallelTaskError(RuntimeError):
    """A task failed; carries the failing item, the original error is chained as __cause__."""

    def __init__(self, item, error: BaseException):
        super().__init__(f"Task failed for {item}: {type(error).__name__}: {error}")
        self.item = item
        self.error = error


def execute_parallel(
    func: Callable[[T], R],
    items: Iterable[T],
    executor: Executor | None = None,
    desc: str = "Processing",
    show_progress: bool = True
) -> dict[T, R]:
    """
    Execute function on items, returning results keyed by item.

    Results are merged by item identity, never by completion order. Execution
    is fail-closed: the first failing task cancels everything still pending
    and is re-raised as ParallelTaskError.

    Args:
        func: Function to execute on each item (must be picklable for process pools)
        items: Iterable of hashable items to process
        executor: Pool to submit to (None = run sequentially in-process)
        desc: Description for logging
        show_progress: Whether to log progress

    Returns:
        Dict mapping each item to its result

    Example:
        with ctx.worker_pool() as pool:
            outcomes = execute_parallel(run_fold, fold_tasks, executor=pool, desc="LOOCV")
    """
    items_list = list(items)
    if not items_list:
        return {}

    n_items = len(items_list)
    results: dict[T, R] = {}

    # No pool or a single item: run sequentially
    if executor is None or n_items == 1:
        if show_progress:
            logger.debug(f"{desc}: Running sequentially ({n_items} items)")
        for item in items_list:
            try:
                results[item] = func(item)
            except Exception as e:
                logger.error(f"{desc}: Failed for {item}: {e}")
                raise ParallelTaskError(item, e) from e
        return results

    if show_progress:
        logger.debug(f"{desc}: Running in parallel ({n_items} items)")

    completed = 0
    future_to_item = {executor.submit(func, item): item for item in items_list}
    try:
        # Process results as they complete
        for future in as_completed(future_to_item):
            item = future_to_item[future]
            try:
                results[item] = future.result()
            except Exception as e:
                logger.error(f"{desc}: Failed for {item}: {e}")
                raise ParallelTaskError(item, e) from e
            completed += 1
            if show_progress and completed % max(1, n_items // 10) == 0:
                logger.debug(f"{desc}: Completed {completed}/{n_items} ({100*completed//n_items}%)")
    finally:
        for future in future_to_item:
            future.cancel()

    return results
