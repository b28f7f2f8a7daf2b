"""Reasoning backend abstraction layer."""

from changescope.llm.balanced import BalancedProvider
from changescope.llm.base import LLMProvider, LLMResponse, Message, ToolCall, ToolResult
from changescope.llm.factory import create_provider

__all__ = [
    "BalancedProvider",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ToolCall",
    "ToolResult",
    "create_provider",
]
