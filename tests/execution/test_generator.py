"""Tests for WorkGenerator."""

import uuid

import pytest

from claimrun.core.errors import RunInvalidError, TransientStorageError
from claimrun.core.states import ProcessState
from claimrun.execution.cancel import CancellationToken
from claimrun.execution.generator import GeneratorConfig, GeneratorStats, WorkGenerator
from claimrun.execution.retry import RetryPolicy


class TestGeneratorConfig:
    def test_defaults(self):
        cfg = GeneratorConfig()
        assert (cfg.target_count, cfg.chunk_size, cfg.delay) == (1_000_000, 1000, 0.5)

    @pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"target_count": -1}, {"delay": -0.1}])
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            GeneratorConfig(**kwargs)


class TestWorkGenerator:
    @pytest.mark.asyncio
    async def test_five_chunks_of_one_thousand(self, flaky_store, recording_logger):
        store = flaky_store()
        generator = WorkGenerator(
            store,
            GeneratorConfig(target_count=5000, chunk_size=1000, delay=0),
            logger=recording_logger,
        )
        stats = await generator.run()

        assert store.appended_chunks == [1000] * 5
        assert stats.chunks == 5
        assert stats.generated == 5000
        assert generator.generated == 5000
        assert stats.cancelled is False
        assert store.inner.count_by_state()[ProcessState.PENDING] == 5000
        assert recording_logger.find("generator.completed")[0]["generated"] == 5000
        assert recording_logger.events("debug").count("generator.chunk_appended") == 5
        assert recording_logger.events("info") == ["generator.started", "generator.completed"]

    @pytest.mark.asyncio
    async def test_last_chunk_is_truncated(self, flaky_store):
        store = flaky_store()
        stats = await WorkGenerator(store, GeneratorConfig(target_count=250, chunk_size=100, delay=0)).run()
        assert store.appended_chunks == [100, 100, 50]
        assert stats.generated == 250

    @pytest.mark.asyncio
    async def test_zero_target_appends_nothing(self, flaky_store):
        store = flaky_store()
        stats = await WorkGenerator(store, GeneratorConfig(target_count=0, chunk_size=10, delay=0)).run()
        assert stats == GeneratorStats(generated=0, chunks=0, cancelled=False, duration_seconds=stats.duration_seconds)
        assert store.appended_chunks == []

    @pytest.mark.asyncio
    async def test_names_are_uuid4(self, memory_store):
        await WorkGenerator(memory_store, GeneratorConfig(target_count=3, chunk_size=3, delay=0)).run()
        names = [item.name for item in memory_store.list_work_items()]
        assert len(set(names)) == 3
        assert all(uuid.UUID(name).version == 4 for name in names)

    @pytest.mark.asyncio
    async def test_custom_name_factory(self, memory_store):
        counter = iter(range(100))
        generator = WorkGenerator(
            memory_store,
            GeneratorConfig(target_count=3, chunk_size=2, delay=0),
            name_factory=lambda: f"job-{next(counter)}",
        )
        await generator.run()
        assert [i.name for i in memory_store.list_work_items()] == ["job-0", "job-1", "job-2"]

    @pytest.mark.asyncio
    async def test_append_failure_propagates_without_budget(self, flaky_store):
        store = flaky_store(append_work_items=1)
        generator = WorkGenerator(store, GeneratorConfig(target_count=10, chunk_size=5, delay=0))
        with pytest.raises(TransientStorageError):
            await generator.run()
        assert generator.generated == 0

    @pytest.mark.asyncio
    async def test_append_budget_absorbs_transient_failures(self, flaky_store, recording_logger):
        store = flaky_store(append_work_items=2)
        policy = RetryPolicy(max_attempts=3, delay=0)
        generator = WorkGenerator(
            store,
            GeneratorConfig(target_count=10, chunk_size=5, delay=0),
            logger=recording_logger,
            append_budget=lambda: policy.budget("append_work_items", logger=recording_logger),
        )
        stats = await generator.run()
        assert stats.generated == 10
        assert store.appended_chunks == [5, 5]
        assert len(recording_logger.find("retry.transient_failure")) == 2

    @pytest.mark.asyncio
    async def test_append_budget_exhaustion(self, flaky_store):
        store = flaky_store(append_work_items=3)
        policy = RetryPolicy(max_attempts=3, delay=0)
        generator = WorkGenerator(
            store,
            GeneratorConfig(target_count=10, chunk_size=5, delay=0),
            append_budget=lambda: policy.budget("append_work_items"),
        )
        with pytest.raises(RunInvalidError):
            await generator.run()

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, flaky_store):
        store = flaky_store()
        token = CancellationToken()
        token.request_cancel("stop")
        stats = await WorkGenerator(store, GeneratorConfig(target_count=10, chunk_size=5), cancel_token=token).run()
        assert stats.cancelled is True
        assert stats.generated == 0
        assert store.appended_chunks == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_inter_chunk_delay(self, flaky_store):
        store = flaky_store()
        token = CancellationToken()
        names = iter(range(1000))

        def name_then_cancel() -> str:
            n = next(names)
            if n == 9:
                token.request_cancel("test")
            return f"n{n}"

        generator = WorkGenerator(
            store,
            GeneratorConfig(target_count=100, chunk_size=10, delay=30),
            cancel_token=token,
            name_factory=name_then_cancel,
        )
        stats = await generator.run()
        assert stats.cancelled is True
        assert stats.chunks == 1
        assert stats.generated == 10
        assert stats.duration_seconds < 30
