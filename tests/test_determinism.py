"""Tests for seed derivation and the fold execution helpers."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from CONFIG.config_schemas import ParallelConfig, PipelineConfig
from ALGO_SELECTION.common.determinism import rng_for, stable_seed_from
from ALGO_SELECTION.common.parallel_exec import ParallelTaskError, execute_parallel
from ALGO_SELECTION.common.run_context import RunContext
from ALGO_SELECTION.common.threads import allowed_cpus, default_threads, effective_threads


class TestStableSeed:

    def test_same_parts_same_seed(self):
        assert stable_seed_from([42, "regression.svm.all", 2, 7]) == stable_seed_from([42, "regression.svm.all", 2, 7])

    def test_parts_are_order_sensitive(self):
        assert stable_seed_from([42, 2, 7]) != stable_seed_from([42, 7, 2])

    def test_seed_within_modulo(self):
        assert 0 <= stable_seed_from(["x"], modulo=1000) < 1000

    def test_rng_streams_reproducible(self):
        assert rng_for(1, "a").integers(1 << 30) == rng_for(1, "a").integers(1 << 30)


def _square(x):
    return x * x


def _fail_on_three(x):
    if x == 3:
        raise ValueError("boom")
    return x


class TestExecuteParallel:

    def test_sequential_results_keyed_by_item(self):
        assert execute_parallel(_square, [3, 1, 2]) == {3: 9, 1: 1, 2: 4}

    def test_pool_results_keyed_by_item(self):
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = execute_parallel(_square, range(20), executor=pool)
        assert results == {i: i * i for i in range(20)}

    def test_failure_names_item(self):
        with ThreadPoolExecutor(max_workers=2) as pool:
            with pytest.raises(ParallelTaskError) as exc:
                execute_parallel(_fail_on_three, range(6), executor=pool)
        assert exc.value.item == 3
        assert isinstance(exc.value.error, ValueError)

    def test_empty_items(self):
        assert execute_parallel(_square, []) == {}


class TestRunContext:

    def test_single_worker_yields_no_pool(self):
        ctx = RunContext(PipelineConfig(parallel=ParallelConfig(max_workers=1)))
        with ctx.worker_pool() as pool:
            assert pool is None

    @pytest.mark.skipif(len(allowed_cpus()) < 2, reason="needs 2 CPUs for a pool")
    def test_thread_pool_released_after_failure(self):
        ctx = RunContext(PipelineConfig(parallel=ParallelConfig(max_workers=2, executor="thread")))
        with pytest.raises(RuntimeError):
            with ctx.worker_pool(n_tasks=4) as pool:
                assert pool is not None
                raise RuntimeError("fold failed")
        with pytest.raises(RuntimeError):
            pool.submit(_square, 2)

    def test_seed_for_uses_base_seed(self):
        a = RunContext(PipelineConfig(base_seed=1)).seed_for("x")
        b = RunContext(PipelineConfig(base_seed=2)).seed_for("x")
        assert a != b


class TestThreadCounts:

    def test_default_leaves_one_cpu_free(self):
        assert default_threads() == max(1, len(allowed_cpus()) - 1)

    def test_unset_max_workers_uses_default(self):
        assert effective_threads(None) == default_threads()
        assert RunContext(PipelineConfig(parallel=ParallelConfig(max_workers=None))).max_workers() == default_threads()

    def test_request_capped_by_allowed_cpus(self):
        assert effective_threads(10_000) == len(allowed_cpus())
