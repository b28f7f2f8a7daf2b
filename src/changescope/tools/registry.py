"""Tool registry for agent tools."""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from changescope.exceptions import ToolExecutionError
from changescope.llm.base import ToolCall, ToolDefinition, ToolResult
from changescope.tools.requests import (
    REQUEST_TYPES,
    definition_for,
    parse_tool_call,
    tool_name,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class ToolRegistry:
    """Dispatches validated tool requests to their handlers.

    Every request variant must have a handler; a registry missing one
    fails at construction rather than at the first call. Variants listed
    in `disabled` are hidden from the model and rejected if requested.
    """

    def __init__(
        self,
        handlers: dict[type[BaseModel], Handler],
        disabled: tuple[type[BaseModel], ...] = (),
    ) -> None:
        missing = [t.__name__ for t in REQUEST_TYPES if t not in handlers]
        if missing:
            raise ValueError(f"No handler registered for: {', '.join(missing)}")
        unknown = [t.__name__ for t in handlers if t not in REQUEST_TYPES]
        if unknown:
            raise ValueError(f"Not a tool request type: {', '.join(unknown)}")

        self._handlers = dict(handlers)
        self._enabled = [t for t in REQUEST_TYPES if t not in disabled]
        self._definitions = [definition_for(t) for t in self._enabled]

    def list_tools(self) -> list[str]:
        """List the names of all enabled tools."""
        return [tool_name(t) for t in self._enabled]

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all enabled tool definitions (for passing to the LLM)."""
        return list(self._definitions)

    def is_enabled(self, name: str) -> bool:
        return name in self.list_tools()

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute one tool call. Failures become error results, never exceptions."""
        if not self.is_enabled(call.name):
            return self._error(call, f"Unknown tool '{call.name}'")

        try:
            request = parse_tool_call(call)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'][1:]) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            return self._error(call, f"Invalid arguments for '{call.name}': {details}")

        handler = self._handlers[type(request)]
        start = time.perf_counter()
        try:
            if inspect.iscoroutinefunction(handler):
                output = await handler(request)
            else:
                output = handler(request)
        except ToolExecutionError as e:
            logger.info("Tool %s failed: %s", call.name, e)
            return self._error(call, str(e))
        except Exception as e:
            logger.warning("Tool %s raised %s: %s", call.name, type(e).__name__, e)
            return self._error(call, f"Error executing tool '{call.name}': {e}")

        logger.debug("Tool %s finished in %.0fms", call.name, (time.perf_counter() - start) * 1000)
        return ToolResult(
            tool_call_id=call.id,
            name=call.name,
            content=str(output) if output is not None else "Done.",
        )

    @staticmethod
    def _error(call: ToolCall, message: str) -> ToolResult:
        return ToolResult(
            tool_call_id=call.id,
            name=call.name,
            content=f"Error: {message}",
            is_error=True,
        )
