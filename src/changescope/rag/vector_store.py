"""In-memory vector store with cosine-similarity search."""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

from changescope.models import DocumentChunk

logger = logging.getLogger(__name__)


class QueryEmbedder(Protocol):
    async def embed_one(self, text: str) -> list[float]: ...


class SemanticIndex:
    """Ephemeral store of (vector, chunk) pairs for one analysis session.

    Not safe for concurrent population and querying.
    """

    def __init__(self, embedder: QueryEmbedder | None = None) -> None:
        self.embedder = embedder
        self._matrix: np.ndarray | None = None
        self._norms: np.ndarray | None = None
        self._documents: list[DocumentChunk] = []

    def __len__(self) -> int:
        return len(self._documents)

    @property
    def is_empty(self) -> bool:
        return not self._documents

    @property
    def documents(self) -> list[DocumentChunk]:
        return list(self._documents)

    def add(self, vectors: list[list[float]], documents: list[DocumentChunk]) -> None:
        """Add vectors and the chunks they were computed from."""
        if len(vectors) != len(documents):
            raise ValueError(
                f"Got {len(vectors)} vectors for {len(documents)} documents"
            )
        if not vectors:
            return

        block = np.asarray(vectors, dtype=np.float64)
        if block.ndim != 2:
            raise ValueError("All vectors must have the same dimension")
        if self._matrix is not None and block.shape[1] != self._matrix.shape[1]:
            raise ValueError(
                f"Vector dimension {block.shape[1]} does not match "
                f"index dimension {self._matrix.shape[1]}"
            )

        self._matrix = block if self._matrix is None else np.vstack([self._matrix, block])
        self._norms = np.linalg.norm(self._matrix, axis=1)
        self._documents.extend(documents)

    def search_by_vector(
        self, vector: list[float], top_k: int = 5
    ) -> list[tuple[DocumentChunk, float]]:
        """Return up to `top_k` (chunk, cosine similarity) pairs, best first."""
        if self._matrix is None or top_k <= 0:
            return []

        query = np.asarray(vector, dtype=np.float64)
        if query.shape != (self._matrix.shape[1],):
            raise ValueError(
                f"Query dimension {query.shape} does not match index dimension "
                f"{self._matrix.shape[1]}"
            )
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        scores = self._matrix @ query / (self._norms * query_norm + 1e-8)
        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [(self._documents[i], float(scores[i])) for i in order]

    async def search_with_scores(
        self, query: str, top_k: int = 5
    ) -> list[tuple[DocumentChunk, float]]:
        """Embed `query` and return the nearest chunks with their scores."""
        if self.is_empty:
            logger.debug("Search on an empty index; returning no results")
            return []
        if self.embedder is None:
            raise ValueError("SemanticIndex has no embedder for text queries")
        vector = await self.embedder.embed_one(query)
        return self.search_by_vector(vector, top_k)

    async def search(self, query: str, top_k: int = 5) -> list[DocumentChunk]:
        """Embed `query` and return the nearest chunks, best first."""
        return [doc for doc, _ in await self.search_with_scores(query, top_k)]
