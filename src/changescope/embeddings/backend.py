"""Embedding backend interface and the OpenAI-compatible implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Vector = list[float]


class EmbeddingBackend(ABC):
    """A single embedding server."""

    def __init__(self, endpoint: str, model: str) -> None:
        self.endpoint = endpoint
        self.model = model

    @abstractmethod
    async def embed_many(self, texts: list[str]) -> list[Vector]:
        """Embed several texts in one request, preserving order."""
        ...

    async def embed_one(self, text: str) -> Vector:
        """Embed a single text."""
        vectors = await self.embed_many([text])
        return vectors[0]


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """Backend for the OpenAI embeddings API and compatible servers (Ollama, vLLM, etc.)."""

    def __init__(
        self,
        endpoint: str,
        model: str = "nomic-embed-text",
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        super().__init__(endpoint.strip(), model)
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                from changescope.exceptions import ProviderNotAvailableError
                raise ProviderNotAvailableError("openai", "openai")

            kwargs: dict[str, Any] = {
                "base_url": self.endpoint,
                # Local servers ignore the key, but the SDK refuses to start without one
                "api_key": self.api_key or "unused",
                "timeout": self.timeout,
                "max_retries": 0,
            }
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def embed_many(self, texts: list[str]) -> list[Vector]:
        if not texts:
            return []
        client = self._get_client()
        response = await client.embeddings.create(model=self.model, input=texts)
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]

    def __repr__(self) -> str:
        return f"OpenAIEmbeddingBackend(endpoint={self.endpoint!r}, model={self.model!r})"
