"""Content-addressed on-disk cache of chunk/embedding pairs.

One JSON record per content digest lives under the cache directory. Records
carry the embedding model they were computed with; a record produced by any
other model is ignored. Records never store the originating file path, so two
files with identical content share one entry and callers attribute the chunks
to a path when they read them back.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Union

from pydantic import BaseModel, ValidationError, model_validator

from changescope.embeddings.hashing import content_digest
from changescope.exceptions import CacheIntegrityError
from changescope.models import ChunkMetadata, DocumentChunk

logger = logging.getLogger(__name__)

Vector = list[float]
ComputeResult = tuple[list[DocumentChunk], list[Vector]]
ComputeFn = Callable[[], Union[ComputeResult, Awaitable[ComputeResult]]]


class CachedChunk(BaseModel):
    text: str
    kind: str = "content"


class CacheRecord(BaseModel):
    """Persisted form of a cache entry."""

    digest: str
    model: str
    chunks: list[CachedChunk]
    vectors: list[list[float]]

    @model_validator(mode="after")
    def _check_lengths(self) -> CacheRecord:
        if len(self.chunks) != len(self.vectors):
            raise ValueError(
                f"{len(self.chunks)} chunks but {len(self.vectors)} vectors"
            )
        return self


@dataclass
class CacheLookup:
    """Result of `EmbeddingCache.get_or_compute`."""

    chunks: list[DocumentChunk]
    vectors: list[Vector]
    hit: bool


class EmbeddingCache:
    """File-per-digest store of (chunks, vectors) keyed by content."""

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)

    def path_for(self, digest: str) -> Path:
        return self.cache_dir / f"{digest}.json"

    def load(
        self, digest: str, model_identity: str
    ) -> tuple[list[DocumentChunk], list[Vector]] | None:
        """Return the cached pair for `digest`, or None if absent or unusable."""
        try:
            record = self._read(digest, model_identity)
        except CacheIntegrityError as e:
            logger.debug("Cache miss for %s: %s", digest[:12], e)
            return None

        chunks = [
            DocumentChunk(text=c.text, metadata=ChunkMetadata(kind=c.kind))
            for c in record.chunks
        ]
        return chunks, [list(v) for v in record.vectors]

    def save(
        self,
        digest: str,
        model_identity: str,
        chunks: list[DocumentChunk],
        vectors: list[Vector],
    ) -> bool:
        """Persist an entry. Returns False (after logging) if the write fails."""
        if len(chunks) != len(vectors):
            raise ValueError(
                f"Cannot cache {len(chunks)} chunks with {len(vectors)} vectors"
            )
        record = CacheRecord(
            digest=digest,
            model=model_identity,
            chunks=[CachedChunk(text=c.text, kind=c.kind) for c in chunks],
            vectors=vectors,
        )
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.path_for(digest).write_text(record.model_dump_json(), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write cache entry %s: %s", digest[:12], e)
            return False
        return True

    async def get_or_compute(
        self, content: str, model_identity: str, compute: ComputeFn
    ) -> CacheLookup:
        """Return cached chunks/vectors for `content`, computing them on a miss.

        Args:
            content: The raw file content the entry is keyed on.
            model_identity: Embedding model name; entries from other models are ignored.
            compute: Callable (sync or async) returning (chunks, vectors).

        Returns:
            CacheLookup with `hit=True` when `compute` was not invoked.
        """
        digest = content_digest(content)
        cached = self.load(digest, model_identity)
        if cached is not None:
            logger.debug("Cache hit for %s", digest[:12])
            return CacheLookup(chunks=cached[0], vectors=cached[1], hit=True)

        result = compute()
        if inspect.isawaitable(result):
            result = await result
        chunks, vectors = result
        self.save(digest, model_identity, chunks, vectors)
        return CacheLookup(chunks=list(chunks), vectors=list(vectors), hit=False)

    def clear(self) -> int:
        """Delete every cache record. Returns the number of files removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)
        return removed

    def _read(self, digest: str, model_identity: str) -> CacheRecord:
        path = self.path_for(digest)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CacheIntegrityError("no record") from None
        except OSError as e:
            raise CacheIntegrityError(f"unreadable record: {e}") from e

        try:
            record = CacheRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed cache record %s", path.name)
            raise CacheIntegrityError(f"malformed record: {e}") from e

        if record.digest != digest:
            raise CacheIntegrityError("digest mismatch")
        if record.model != model_identity:
            raise CacheIntegrityError(
                f"computed with model '{record.model}', expected '{model_identity}'"
            )
        return record
