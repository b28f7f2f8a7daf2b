"""Round-robin failover across several reasoning servers."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from changescope.exceptions import ConfigError, ReasoningBackendError
from changescope.llm.base import LLMProvider, LLMResponse, Message, ToolDefinition

logger = logging.getLogger(__name__)


class BalancedProvider(LLMProvider):
    """Spread completions over several providers serving the same model.

    Each request starts at the provider under the cursor and falls through
    to the next one on failure, trying every provider at most once.
    """

    def __init__(self, providers: Sequence[LLMProvider]) -> None:
        if not providers:
            raise ConfigError("At least one reasoning server is required")
        first = providers[0]
        super().__init__(first.model, first.api_key, first.base_url)
        self.providers = list(providers)
        self._cursor = 0

    def next_provider(self) -> tuple[int, LLMProvider]:
        index = self._cursor
        self._cursor = (self._cursor + 1) % len(self.providers)
        return index, self.providers[index]

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        last_error: Exception | None = None
        for _ in range(len(self.providers)):
            index, provider = self.next_provider()
            start = time.perf_counter()
            try:
                response = await provider.complete(
                    messages, tools=tools, temperature=temperature, max_tokens=max_tokens
                )
            except ReasoningBackendError as e:
                last_error = e
                logger.warning(
                    "Reasoning server [%d] %s failed: %s",
                    index + 1, provider.endpoint, str(e)[:100],
                )
                continue
            logger.debug(
                "Reasoning server [%d] answered in %.0fms",
                index + 1, (time.perf_counter() - start) * 1000,
            )
            return response

        raise ReasoningBackendError(
            f"All {len(self.providers)} reasoning server(s) failed: {last_error}"
        ) from last_error

    def stats(self) -> dict[str, object]:
        return {
            "total_servers": len(self.providers),
            "current_index": self._cursor,
            "model": self.model,
        }
