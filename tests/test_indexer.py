"""Tests for building and querying the semantic index."""

from __future__ import annotations

from pathlib import Path

import pytest

from changescope.embeddings.cache import EmbeddingCache
from changescope.embeddings.chunker import TextChunker
from changescope.embeddings.pipeline import BatchEmbeddingPipeline
from changescope.exceptions import BatchPipelineError, UninitializedIndexError
from changescope.models import SourceFile
from changescope.rag.indexer import SemanticIndexer


@pytest.fixture
def cache(tmp_path: Path) -> EmbeddingCache:
    return EmbeddingCache(tmp_path / "embeddings")


@pytest.fixture
def corpus(sample_sources) -> list[SourceFile]:
    return [SourceFile(path=p, content=c) for p, c in sample_sources.items()]


def make_indexer(pool, cache, **kwargs) -> SemanticIndexer:
    pipeline = BatchEmbeddingPipeline(pool, batch_size=2, dispatch_delay=0)
    return SemanticIndexer(pool, cache, pipeline=pipeline, **kwargs)


class TestIndexFiles:
    @pytest.mark.asyncio
    async def test_first_run_embeds_everything(self, make_pool, cache, corpus):
        pool, backends = make_pool(True)
        indexer = make_indexer(pool, cache)

        stats = await indexer.index_files(corpus)

        assert stats.files == 4
        assert stats.cache_hits == 0
        assert stats.cache_misses == 4
        assert stats.chunks == 4
        assert len(indexer.index) == 4
        assert sum(len(call) for call in backends[0].calls) == 4

    @pytest.mark.asyncio
    async def test_second_run_is_served_from_cache(self, make_pool, cache, corpus):
        pool, backends = make_pool(True)
        await make_indexer(pool, cache).index_files(corpus)
        backends[0].calls.clear()

        indexer = make_indexer(pool, cache)
        stats = await indexer.index_files(corpus)

        assert stats.cache_hits == 4
        assert stats.cache_misses == 0
        assert stats.hit_rate == 1.0
        assert backends[0].calls == []
        assert sorted(d.path for d in indexer.index.documents) == sorted(f.path for f in corpus)

    @pytest.mark.asyncio
    async def test_identical_content_shares_an_entry(self, make_pool, cache):
        pool, backends = make_pool(True)
        indexer = make_indexer(pool, cache)
        await indexer.index_files([SourceFile("a/index.ts", "export * from './lib';")])

        stats = await indexer.index_files(
            [SourceFile("b/index.ts", "export * from './lib';", status="added")]
        )

        assert stats.cache_hits == 1
        doc = indexer.index.documents[0]
        assert doc.path == "b/index.ts"
        assert doc.metadata.status == "added"
        assert len(list(cache.cache_dir.glob("*.json"))) == 1

    @pytest.mark.asyncio
    async def test_diff_gets_its_own_chunk(self, make_pool, cache):
        pool, _ = make_pool(True)
        indexer = make_indexer(pool, cache)
        file = SourceFile(
            "src/a.ts", "function findMany() {}", status="modified",
            diff_text="@@ -1 +1 @@\n-function find() {}\n+function findMany() {}",
        )

        await indexer.index_files([file])

        kinds = [d.kind for d in indexer.index.documents]
        assert kinds == ["content", "diff"]
        diff_doc = indexer.index.documents[1]
        assert diff_doc.text.startswith("File: src/a.ts\nStatus: modified")
        assert "+function findMany() {}" in diff_doc.text

    @pytest.mark.asyncio
    async def test_empty_files_skipped(self, make_pool, cache):
        pool, backends = make_pool(True)
        indexer = make_indexer(pool, cache)
        stats = await indexer.index_files([SourceFile("empty.ts", "")])
        assert stats.files == 0
        assert indexer.index.is_empty
        assert backends[0].calls == []

    @pytest.mark.asyncio
    async def test_long_files_are_chunked(self, make_pool, cache):
        pool, _ = make_pool(True)
        indexer = make_indexer(pool, cache, chunker=TextChunker(chunk_size=100, chunk_overlap=20))
        content = "\n".join(f"const value{i} = {i};" for i in range(40))

        stats = await indexer.index_files([SourceFile("big.ts", content)])

        assert stats.chunks > 1
        assert all(d.path == "big.ts" for d in indexer.index.documents)

    @pytest.mark.asyncio
    async def test_failure_leaves_no_index_and_no_cache(self, make_pool, cache, corpus):
        pool, _ = make_pool(False, False, False)
        indexer = make_indexer(pool, cache)

        with pytest.raises(BatchPipelineError):
            await indexer.index_files(corpus)

        assert indexer.index is None
        assert not cache.cache_dir.exists() or not list(cache.cache_dir.glob("*.json"))


class TestAddFile:
    @pytest.mark.asyncio
    async def test_add_file_uses_cache(self, make_pool, cache):
        pool, backends = make_pool(True)
        indexer = make_indexer(pool, cache)

        assert await indexer.add_file(SourceFile("a.ts", "function order() {}")) is False
        assert await indexer.add_file(SourceFile("b.ts", "function order() {}")) is True
        assert len(backends[0].calls) == 1
        assert [d.path for d in indexer.index.documents] == ["a.ts", "b.ts"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_relevant_code(self, make_pool, cache, corpus):
        pool, _ = make_pool(True)
        indexer = make_indexer(pool, cache)
        await indexer.index_files(corpus)

        results = await indexer.search_relevant_code("logger", top_k=1)

        assert len(results) == 1
        assert results[0].startswith("File: src/logger.ts\n")

    @pytest.mark.asyncio
    async def test_search_before_indexing(self, make_pool, cache):
        pool, _ = make_pool(True)
        assert await make_indexer(pool, cache).search_relevant_code("x") == []

    @pytest.mark.asyncio
    async def test_search_failure_returns_nothing(self, make_pool, cache, corpus):
        pool, backends = make_pool(True)
        indexer = make_indexer(pool, cache)
        await indexer.index_files(corpus)
        backends[0].healthy = False

        assert await indexer.search_relevant_code("logger") == []

    @pytest.mark.asyncio
    async def test_multiple_queries_deduplicated(self, make_pool, cache, corpus):
        pool, _ = make_pool(True)
        indexer = make_indexer(pool, cache, top_k=2)
        await indexer.index_files(corpus)

        merged = await indexer.search_multiple_queries(["findMany", "findMany", "logger"])

        assert len(merged) == len(set(merged))
        assert any(r.startswith("File: src/logger.ts") for r in merged)

    @pytest.mark.asyncio
    async def test_require_index(self, make_pool, cache, corpus):
        pool, _ = make_pool(True)
        indexer = make_indexer(pool, cache)
        with pytest.raises(UninitializedIndexError):
            indexer.require_index()

        await indexer.index_files(corpus)
        assert indexer.require_index() is indexer.index

        indexer.clear()
        with pytest.raises(UninitializedIndexError):
            indexer.require_index()
