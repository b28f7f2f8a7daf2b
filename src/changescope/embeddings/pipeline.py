"""Concurrent batch embedding with order-preserving reassembly.

Texts are cut into fixed-size batches. One worker runs per embedding server,
each pinned to its own server, and workers claim batch indices from a shared
counter. A worker waits ``dispatch_delay`` seconds between its own
consecutive requests so a single backend is never flooded. Batches are
reassembled by index once every worker is done, so the output order always
matches the input order.
"""

from __future__ import annotations

import asyncio
import logging

from changescope.embeddings.backend import Vector
from changescope.embeddings.pool import EmbeddingClientPool, EmbeddingServer
from changescope.exceptions import BatchPipelineError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_DISPATCH_DELAY = 1.0


class BatchEmbeddingPipeline:
    """Embed a list of texts through a pool using a bounded set of workers."""

    def __init__(
        self,
        pool: EmbeddingClientPool,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dispatch_delay: float = DEFAULT_DISPATCH_DELAY,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.pool = pool
        self.batch_size = batch_size
        self.dispatch_delay = dispatch_delay

    def make_batches(self, texts: list[str]) -> list[list[str]]:
        return [
            texts[i:i + self.batch_size]
            for i in range(0, len(texts), self.batch_size)
        ]

    async def embed(self, texts: list[str]) -> list[Vector]:
        """Embed all texts, returning vectors in input order.

        Raises:
            BatchPipelineError: If any batch fails. No partial result is returned.
        """
        if not texts:
            return []

        batches = self.make_batches(texts)
        servers = self.pool.servers
        worker_count = max(1, min(len(servers), len(batches)))
        logger.info(
            "Embedding %d text(s) in %d batch(es) with %d worker(s)",
            len(texts), len(batches), worker_count,
        )

        results: dict[int, list[Vector]] = {}
        next_index = 0
        abort = asyncio.Event()

        def claim() -> int | None:
            nonlocal next_index
            if abort.is_set() or next_index >= len(batches):
                return None
            index = next_index
            next_index += 1
            return index

        async def worker(server: EmbeddingServer) -> None:
            dispatched = 0
            while True:
                index = claim()
                if index is None:
                    return
                if dispatched and self.dispatch_delay > 0:
                    await asyncio.sleep(self.dispatch_delay)
                    if abort.is_set():
                        return
                batch = batches[index]
                logger.debug(
                    "Batch %d/%d (%d texts) -> server [%d]",
                    index + 1, len(batches), len(batch), server.ordinal + 1,
                )
                try:
                    vectors = await self.pool.embed_batch_pinned(server, batch)
                except Exception as e:
                    abort.set()
                    raise BatchPipelineError(
                        f"Batch {index + 1}/{len(batches)} failed: {e}"
                    ) from e
                if len(vectors) != len(batch):
                    abort.set()
                    raise BatchPipelineError(
                        f"Batch {index + 1}/{len(batches)} returned "
                        f"{len(vectors)} vectors for {len(batch)} texts"
                    )
                results[index] = vectors
                dispatched += 1

        outcomes = await asyncio.gather(
            *(worker(servers[i]) for i in range(worker_count)),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error("Embedding pipeline aborted: %s", outcome)
                raise outcome

        ordered: list[Vector] = []
        for index in range(len(batches)):
            ordered.extend(results[index])
        return ordered
