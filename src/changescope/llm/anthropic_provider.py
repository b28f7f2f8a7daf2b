"""Anthropic Claude reasoning backend."""

from __future__ import annotations

import logging
from typing import Any

from changescope.exceptions import ReasoningBackendError
from changescope.llm.base import (
    LLMProvider,
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


def to_anthropic_messages(messages: list[Message]) -> tuple[str, list[dict]]:
    """Split out the system prompt and convert the rest to Messages API turns.

    Tool results become ``tool_result`` blocks in a user turn. Results that
    follow each other share one turn, since the API expects every result for
    an assistant turn's tool calls in the very next user turn.
    """
    system = ""
    turns: list[dict] = []

    for msg in messages:
        if msg.role == "system":
            system = msg.content
        elif msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
            }
            if turns and _is_tool_result_turn(turns[-1]):
                turns[-1]["content"].append(block)
            else:
                turns.append({"role": "user", "content": [block]})
        elif msg.tool_calls:
            blocks = [{"type": "text", "text": msg.content}] if msg.content else []
            blocks.extend(
                {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments}
                for tc in msg.tool_calls
            )
            turns.append({"role": "assistant", "content": blocks})
        else:
            turns.append({"role": msg.role, "content": msg.content})

    return system, turns


def _is_tool_result_turn(turn: dict) -> bool:
    content = turn["content"]
    return (
        turn["role"] == "user"
        and isinstance(content, list)
        and all(block.get("type") == "tool_result" for block in content)
    )


def parse_response(response) -> LLMResponse:
    """Flatten text blocks and collect tool_use blocks from a Messages API reply."""
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use":
            arguments = block.input if isinstance(block.input, dict) else {}
            tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=arguments))

    usage = response.usage
    return LLMResponse(
        content="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=response.stop_reason or "",
        usage={
            "prompt_tokens": usage.input_tokens if usage else 0,
            "completion_tokens": usage.output_tokens if usage else 0,
        },
    )


class AnthropicProvider(LLMProvider):
    """Reasoning backend for Anthropic's Claude models.

    SDK retries are disabled; failover between servers is the job of
    `BalancedProvider`.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(model, api_key, base_url)
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError:
                from changescope.exceptions import ProviderNotAvailableError
                raise ProviderNotAvailableError("anthropic", "anthropic")

            options: dict[str, Any] = {"timeout": self.timeout, "max_retries": 0}
            if self.api_key:
                options["api_key"] = self.api_key
            if self.base_url:
                options["base_url"] = self.base_url
            self._client = AsyncAnthropic(**options)
        return self._client

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        system, turns = to_anthropic_messages(messages)
        request: dict[str, Any] = {
            "model": self.model,
            "messages": turns,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in tools
            ]

        client = self._get_client()
        logger.debug("Anthropic request: %d turn(s), %d tool(s)", len(turns), len(tools or []))
        try:
            response = await client.messages.create(**request)
        except Exception as e:
            raise ReasoningBackendError(f"Anthropic {self.endpoint} ({self.model}) failed: {e}") from e
        return parse_response(response)
