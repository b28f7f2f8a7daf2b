"""Tests for the concurrent batch embedding pipeline."""

from __future__ import annotations

import time

import pytest

from changescope.embeddings.pipeline import BatchEmbeddingPipeline
from changescope.exceptions import BatchPipelineError, EmbeddingServerError

from conftest import keyword_vector


class TestBatching:
    def test_make_batches(self, make_pool):
        pool, _ = make_pool(True)
        pipeline = BatchEmbeddingPipeline(pool, batch_size=2, dispatch_delay=0)
        assert pipeline.make_batches(["a", "b", "c", "d", "e"]) == [["a", "b"], ["c", "d"], ["e"]]

    def test_rejects_zero_batch_size(self, make_pool):
        pool, _ = make_pool(True)
        with pytest.raises(ValueError):
            BatchEmbeddingPipeline(pool, batch_size=0)

    @pytest.mark.asyncio
    async def test_empty_input(self, make_pool):
        pool, backends = make_pool(True)
        assert await BatchEmbeddingPipeline(pool, dispatch_delay=0).embed([]) == []
        assert backends[0].calls == []


class TestOrdering:
    @pytest.mark.asyncio
    async def test_results_follow_input_order_when_first_worker_is_slow(self, make_pool):
        pool, (slow, fast) = make_pool(True, True)
        slow.delays = [0.2]
        fast.delay = 0.0
        texts = ["user", "order", "payment", "logger", "invoice", "session"]

        vectors = await BatchEmbeddingPipeline(pool, batch_size=2, dispatch_delay=0).embed(texts)

        assert vectors == [keyword_vector(t) for t in texts]
        # The slow worker finished its first batch last
        assert len(slow.calls) == 1
        assert len(fast.calls) == 2

    @pytest.mark.asyncio
    async def test_one_worker_per_server_capped_by_batches(self, make_pool):
        pool, backends = make_pool(True, True, True)
        vectors = await BatchEmbeddingPipeline(pool, batch_size=10, dispatch_delay=0).embed(
            ["a", "b", "c"]
        )
        assert len(vectors) == 3
        assert [len(b.calls) for b in backends] == [1, 0, 0]

    @pytest.mark.asyncio
    async def test_workers_share_the_batches(self, make_pool):
        pool, backends = make_pool(True, True, delay=0.01)
        texts = [f"text {i}" for i in range(8)]
        await BatchEmbeddingPipeline(pool, batch_size=1, dispatch_delay=0).embed(texts)
        assert sum(len(b.calls) for b in backends) == 8
        assert all(len(b.calls) >= 1 for b in backends)


class TestDispatchDelay:
    @pytest.mark.asyncio
    async def test_delay_between_consecutive_dispatches(self, make_pool):
        pool, (backend,) = make_pool(True)
        pipeline = BatchEmbeddingPipeline(pool, batch_size=1, dispatch_delay=0.1)

        start = time.perf_counter()
        await pipeline.embed(["a", "b", "c"])
        elapsed = time.perf_counter() - start

        assert len(backend.calls) == 3
        assert elapsed >= 0.2

    @pytest.mark.asyncio
    async def test_no_delay_before_first_dispatch(self, make_pool):
        pool, _ = make_pool(True, True)
        pipeline = BatchEmbeddingPipeline(pool, batch_size=1, dispatch_delay=5.0)

        start = time.perf_counter()
        await pipeline.embed(["a", "b"])

        assert time.perf_counter() - start < 1.0


class TestFailures:
    @pytest.mark.asyncio
    async def test_all_servers_down_mid_batch(self, make_pool):
        pool, backends = make_pool(True, True, True, fail_after=1)
        texts = [f"chunk {i}" for i in range(12)]
        pipeline = BatchEmbeddingPipeline(pool, batch_size=2, dispatch_delay=0)

        with pytest.raises(BatchPipelineError) as exc_info:
            await pipeline.embed(texts)

        assert isinstance(exc_info.value.__cause__, EmbeddingServerError)

    @pytest.mark.asyncio
    async def test_single_server_failure_is_absorbed(self, make_pool):
        pool, (down, up) = make_pool(False, True)
        texts = ["user", "order", "payment", "logger"]

        vectors = await BatchEmbeddingPipeline(pool, batch_size=1, dispatch_delay=0).embed(texts)

        assert vectors == [keyword_vector(t) for t in texts]
        assert len(down.calls) >= 1

    @pytest.mark.asyncio
    async def test_wrong_vector_count_is_an_error(self, make_pool):
        pool, (backend,) = make_pool(True)

        async def short(texts):
            return [[1.0]]

        backend.embed_many = short
        with pytest.raises(BatchPipelineError, match="returned 1 vectors for 2 texts"):
            await BatchEmbeddingPipeline(pool, batch_size=2, dispatch_delay=0).embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_failure_stops_further_batches(self, make_pool):
        pool, (backend,) = make_pool(True, fail_after=1)
        pipeline = BatchEmbeddingPipeline(pool, batch_size=1, dispatch_delay=0.01)

        with pytest.raises(BatchPipelineError, match="Batch 2/4"):
            await pipeline.embed(["t0", "t1", "t2", "t3"])

        assert backend.calls == [["t0"], ["t1"]]

    @pytest.mark.asyncio
    async def test_waiting_worker_drops_out_after_failure(self, make_pool):
        # Both workers sleep between dispatches; the one that wakes first
        # fails on every server, so the other must not send its next batch.
        pool, (a, b) = make_pool(True, True, fail_after=1)
        pipeline = BatchEmbeddingPipeline(pool, batch_size=1, dispatch_delay=0.05)

        with pytest.raises(BatchPipelineError):
            await pipeline.embed(["t0", "t1", "t2", "t3"])

        sent = [text for call in a.calls + b.calls for text in call]
        assert "t3" not in sent
        assert sorted(set(sent)) == ["t0", "t1", "t2"]
