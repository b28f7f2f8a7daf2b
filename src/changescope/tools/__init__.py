"""Agent tools."""

from changescope.tools.definitions import CodeAnalysisTools, get_all_tools
from changescope.tools.registry import ToolRegistry

__all__ = ["CodeAnalysisTools", "ToolRegistry", "get_all_tools"]
