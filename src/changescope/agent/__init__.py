"""Impact analysis agent."""

from changescope.agent.loop import (
    INCOMPLETE_ANALYSIS_TEXT,
    MAX_ITERATIONS,
    AgentResult,
    AgentState,
    AgentStep,
    ToolInvocationAgent,
)

__all__ = [
    "INCOMPLETE_ANALYSIS_TEXT",
    "MAX_ITERATIONS",
    "AgentResult",
    "AgentState",
    "AgentStep",
    "ToolInvocationAgent",
]
