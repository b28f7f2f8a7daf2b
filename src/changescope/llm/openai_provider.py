"""OpenAI-compatible reasoning backend (OpenAI, Ollama, vLLM, etc.)."""

from __future__ import annotations

import json
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


def to_chat_messages(messages: list[Message]) -> list[dict]:
    """Convert the conversation to chat-completions messages."""
    converted: list[dict] = []
    for msg in messages:
        if msg.role == "tool":
            converted.append(
                {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
            )
            continue

        entry: dict[str, Any] = {"role": msg.role, "content": msg.content}
        if msg.tool_calls:
            # An assistant turn that only calls tools has null content
            entry["content"] = msg.content or None
            entry["tool_calls"] = [_function_call(tc) for tc in msg.tool_calls]
        converted.append(entry)
    return converted


def _function_call(call: ToolCall) -> dict:
    return {
        "id": call.id,
        "type": "function",
        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
    }


def to_chat_tools(tools: list[ToolDefinition]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def parse_tool_calls(raw_calls) -> list[ToolCall]:
    """Decode tool calls, tolerating the quirks of self-hosted servers.

    Arguments that are not a JSON object become ``{}``, leaving the tool
    registry to report the missing fields back to the model. Calls without
    an id get a positional one.
    """
    calls: list[ToolCall] = []
    for position, raw in enumerate(raw_calls or []):
        name = raw.function.name
        try:
            arguments = json.loads(raw.function.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning("Unparseable arguments for tool call %s", name)
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        calls.append(ToolCall(id=raw.id or f"call_{position}", name=name, arguments=arguments))
    return calls


class OpenAIProvider(LLMProvider):
    """Reasoning backend for the chat completions API and servers that mimic it.

    SDK retries are disabled; failover between servers is the job of
    `BalancedProvider`.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(model, api_key, base_url)
        self.timeout = timeout
        self._async_client = None

    def _get_client(self):
        if self._async_client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                from changescope.exceptions import ProviderNotAvailableError
                raise ProviderNotAvailableError("openai", "openai")

            options: dict[str, Any] = {"timeout": self.timeout, "max_retries": 0}
            if self.base_url:
                options["base_url"] = self.base_url
                # Self-hosted servers ignore the key, but the SDK requires one
                options["api_key"] = self.api_key or "unused"
            elif self.api_key:
                options["api_key"] = self.api_key
            self._async_client = AsyncOpenAI(**options)
        return self._async_client

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": to_chat_messages(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            request["tools"] = to_chat_tools(tools)

        client = self._get_client()
        try:
            response = await client.chat.completions.create(**request)
        except Exception as e:
            raise ReasoningBackendError(f"{self.endpoint} ({self.model}) failed: {e}") from e

        if not response.choices:
            raise ReasoningBackendError(f"{self.endpoint} returned no choices")
        choice = response.choices[0]
        usage = response.usage

        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=parse_tool_calls(choice.message.tool_calls),
            finish_reason=choice.finish_reason or "",
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
            },
        )
