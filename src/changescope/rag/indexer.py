"""Build the semantic index for a corpus, reusing cached embeddings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from changescope.embeddings.cache import EmbeddingCache
from changescope.embeddings.chunker import TextChunker
from changescope.embeddings.hashing import content_digest
from changescope.embeddings.pipeline import BatchEmbeddingPipeline
from changescope.embeddings.pool import EmbeddingClientPool
from changescope.exceptions import EmbeddingError, UninitializedIndexError
from changescope.models import ChunkMetadata, DocumentChunk, SourceFile
from changescope.rag.vector_store import SemanticIndex

logger = logging.getLogger(__name__)


@dataclass
class IndexStats:
    files: int = 0
    chunks: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total if total else 0.0


@dataclass
class _PendingFile:
    file: SourceFile
    digest: str
    start: int
    count: int


def diff_chunk(file: SourceFile) -> DocumentChunk:
    """A single chunk carrying a file's diff, embedded alongside its content."""
    return DocumentChunk(
        text=f"File: {file.path}\nStatus: {file.status}\n\nDiff:\n{file.diff_text}",
        metadata=ChunkMetadata(path=file.path, status=file.status, kind="diff"),
    )


class SemanticIndexer:
    """Owns the semantic index for one session and the path into it.

    Content that was embedded before (same digest, same model) is served from
    the on-disk cache; everything else is chunked and embedded in one
    pipeline call.
    """

    def __init__(
        self,
        pool: EmbeddingClientPool,
        cache: EmbeddingCache,
        chunker: TextChunker | None = None,
        pipeline: BatchEmbeddingPipeline | None = None,
        top_k: int = 5,
    ) -> None:
        self.pool = pool
        self.cache = cache
        self.chunker = chunker or TextChunker()
        self.pipeline = pipeline or BatchEmbeddingPipeline(pool)
        self.top_k = top_k
        self.index: SemanticIndex | None = None

    @property
    def model(self) -> str:
        return self.pool.model

    def chunk_file(self, file: SourceFile) -> list[DocumentChunk]:
        chunks = self.chunker.create_chunks(file.content, file.path, file.status)
        if file.diff_text:
            chunks.append(diff_chunk(file))
        return chunks

    async def index_files(self, files: list[SourceFile]) -> IndexStats:
        """Replace the index with the given corpus.

        Raises:
            BatchPipelineError: If embedding the cache misses fails. The
                index is left unset in that case.
        """
        self.index = None
        stats = IndexStats()
        documents: list[DocumentChunk] = []
        vectors: list[list[float]] = []
        pending: list[_PendingFile] = []
        miss_chunks: list[DocumentChunk] = []

        for file in files:
            if not file.content:
                continue
            stats.files += 1
            digest = content_digest(file.content)
            cached = self.cache.load(digest, self.model)
            if cached is not None:
                chunks, cached_vectors = cached
                documents.extend(c.with_source(file.path, file.status) for c in chunks)
                vectors.extend(cached_vectors)
                stats.cache_hits += 1
                continue

            chunks = self.chunk_file(file)
            pending.append(_PendingFile(file, digest, len(miss_chunks), len(chunks)))
            miss_chunks.extend(chunks)
            stats.cache_misses += 1

        logger.info(
            "Cache: %d hit(s), %d miss(es) (%.0f%% reused)",
            stats.cache_hits, stats.cache_misses, stats.hit_rate * 100,
        )

        if miss_chunks:
            logger.info("Embedding %d new chunk(s)", len(miss_chunks))
            new_vectors = await self.pipeline.embed([c.text for c in miss_chunks])
            for entry in pending:
                end = entry.start + entry.count
                self.cache.save(
                    entry.digest, self.model, miss_chunks[entry.start:end],
                    new_vectors[entry.start:end],
                )
            documents.extend(miss_chunks)
            vectors.extend(new_vectors)

        index = SemanticIndex(embedder=self.pool)
        index.add(vectors, documents)
        self.index = index
        stats.chunks = len(documents)

        if not documents:
            logger.warning("No documents to index")
        else:
            logger.info("Indexed %d chunk(s) from %d file(s)", stats.chunks, stats.files)
        return stats

    async def add_file(self, file: SourceFile) -> bool:
        """Add one file to the current index. Returns True on a cache hit."""
        if self.index is None:
            self.index = SemanticIndex(embedder=self.pool)

        async def compute():
            chunks = self.chunk_file(file)
            return chunks, await self.pipeline.embed([c.text for c in chunks])

        lookup = await self.cache.get_or_compute(file.content, self.model, compute)
        chunks = [c.with_source(file.path, file.status) for c in lookup.chunks]
        self.index.add(lookup.vectors, chunks)
        return lookup.hit

    def require_index(self) -> SemanticIndex:
        if self.index is None or self.index.is_empty:
            raise UninitializedIndexError("The semantic index has not been built")
        return self.index

    async def search_relevant_code(self, query: str, top_k: int | None = None) -> list[str]:
        """Return formatted snippets of the chunks nearest to `query`."""
        if self.index is None:
            logger.warning("Semantic index has not been built")
            return []
        try:
            results = await self.index.search(query, top_k or self.top_k)
        except EmbeddingError as e:
            logger.error("Code search failed: %s", e)
            return []
        return [f"File: {doc.path or 'unknown'}\n{doc.text}" for doc in results]

    async def search_multiple_queries(self, queries: list[str]) -> list[str]:
        """Search several queries and merge results, dropping duplicates."""
        merged: list[str] = []
        seen: set[str] = set()
        for query in queries:
            for result in await self.search_relevant_code(query):
                if result not in seen:
                    seen.add(result)
                    merged.append(result)
        return merged

    def clear(self) -> None:
        """Drop the in-memory index."""
        self.index = None
