"""Embedding backends, caching and batched dispatch."""

from changescope.embeddings.backend import EmbeddingBackend, OpenAIEmbeddingBackend
from changescope.embeddings.cache import CacheLookup, EmbeddingCache
from changescope.embeddings.chunker import TextChunker
from changescope.embeddings.hashing import content_digest
from changescope.embeddings.pipeline import BatchEmbeddingPipeline
from changescope.embeddings.pool import EmbeddingClientPool, EmbeddingServer

__all__ = [
    "BatchEmbeddingPipeline",
    "CacheLookup",
    "EmbeddingBackend",
    "EmbeddingCache",
    "EmbeddingClientPool",
    "EmbeddingServer",
    "OpenAIEmbeddingBackend",
    "TextChunker",
    "content_digest",
]
