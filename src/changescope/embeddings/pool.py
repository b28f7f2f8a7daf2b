"""Round-robin pool of embedding servers with per-request failover."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from changescope.embeddings.backend import EmbeddingBackend, OpenAIEmbeddingBackend, Vector
from changescope.exceptions import ConfigError, EmbeddingServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EmbeddingServer:
    endpoint: str
    ordinal: int


class EmbeddingClientPool:
    """Holds N embedding servers and a rotating cursor over them.

    Every call starts at the server under the cursor and, on failure, moves on
    to the next one, trying each configured server at most once. Servers are
    never health-checked up front.
    """

    def __init__(self, backends: Sequence[EmbeddingBackend]) -> None:
        if not backends:
            raise ConfigError("At least one embedding server is required")
        self._backends = list(backends)
        self._servers = [
            EmbeddingServer(endpoint=b.endpoint, ordinal=i)
            for i, b in enumerate(self._backends)
        ]
        self._cursor = 0
        logger.info(
            "Embedding pool ready: %d server(s), model %s",
            len(self._servers), self.model,
        )

    @classmethod
    def from_urls(
        cls,
        urls: Sequence[str],
        model: str,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> EmbeddingClientPool:
        """Build a pool of OpenAI-compatible backends, one per URL."""
        backends = [
            OpenAIEmbeddingBackend(url, model=model, api_key=api_key, timeout=timeout)
            for url in urls
            if url.strip()
        ]
        return cls(backends)

    @property
    def servers(self) -> list[EmbeddingServer]:
        return list(self._servers)

    @property
    def model(self) -> str:
        return self._backends[0].model

    def __len__(self) -> int:
        return len(self._servers)

    def next_server(self) -> EmbeddingServer:
        """Return the server under the cursor and advance the cursor."""
        server = self._servers[self._cursor]
        self._cursor = (self._cursor + 1) % len(self._servers)
        return server

    def backend_for(self, server: EmbeddingServer) -> EmbeddingBackend:
        return self._backends[server.ordinal]

    async def embed_batch(self, texts: list[str]) -> list[Vector]:
        """Embed a batch on the next server, failing over to the others."""
        return await self._with_failover(
            lambda backend: backend.embed_many(texts),
            servers=(self.next_server() for _ in range(len(self._servers))),
            label=f"batch of {len(texts)}",
        )

    async def embed_one(self, text: str) -> Vector:
        """Embed a single text on the next server, failing over to the others."""
        return await self._with_failover(
            lambda backend: backend.embed_one(text),
            servers=(self.next_server() for _ in range(len(self._servers))),
            label="query",
        )

    async def embed_batch_pinned(
        self, server: EmbeddingServer, texts: list[str]
    ) -> list[Vector]:
        """Embed a batch starting on `server`, without moving the shared cursor.

        Failover continues through the remaining servers in ordinal order
        after `server`, wrapping around.
        """
        n = len(self._servers)
        order = (self._servers[(server.ordinal + i) % n] for i in range(n))
        return await self._with_failover(
            lambda backend: backend.embed_many(texts),
            servers=order,
            label=f"batch of {len(texts)}",
        )

    async def _with_failover(
        self,
        call: Callable[[EmbeddingBackend], Awaitable[T]],
        servers,
        label: str,
    ) -> T:
        last_error: Exception | None = None
        attempts = 0
        for server in servers:
            attempts += 1
            backend = self.backend_for(server)
            start = time.perf_counter()
            try:
                result = await call(backend)
            except Exception as e:
                last_error = e
                logger.warning(
                    "Embedding server [%d] %s failed (%s): %s",
                    server.ordinal + 1, server.endpoint, label, str(e)[:100],
                )
                if attempts < len(self._servers):
                    logger.info("Falling back to the next embedding server")
                continue
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(
                "Embedded %s on server [%d] in %.0fms", label, server.ordinal + 1, elapsed
            )
            return result

        logger.error("All embedding servers failed (%d attempts)", attempts)
        raise EmbeddingServerError(
            f"All {attempts} embedding server(s) failed: {last_error}"
        ) from last_error

    def stats(self) -> dict[str, object]:
        return {
            "total_servers": len(self._servers),
            "current_index": self._cursor,
            "model": self.model,
        }
