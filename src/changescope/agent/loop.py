"""Tool-using agent loop for impact analysis.

The loop is a small state machine:
1. AWAITING_MODEL: send the conversation to the reasoning backend
2. EXECUTING_TOOLS: run the requested tools and append their results
3. TERMINAL: the model answered in plain text, or the budget ran out

Every model call counts against `max_iterations`, including calls that came
back empty, so the loop always terminates.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

from changescope.agent.prompts import CONTINUE_PROMPT, build_seed_message, get_system_prompt
from changescope.llm.base import LLMProvider, LLMResponse, Message, ToolCall, ToolResult
from changescope.models import Candidate, ChangedFile
from changescope.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 40

INCOMPLETE_ANALYSIS_TEXT = (
    "The analysis did not finish within the iteration limit. "
    "Review the candidate files listed above manually."
)


class AgentState(enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    TERMINAL = "terminal"


@dataclass
class AgentStep:
    """A single step in the agent loop."""

    iteration: int
    thought: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    response: str = ""
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class AgentResult:
    """Final result from the agent loop."""

    answer: str
    steps: list[AgentStep]
    total_iterations: int
    total_tokens: int
    success: bool = True
    state: AgentState = AgentState.TERMINAL


class ToolInvocationAgent:
    """Drives a reasoning backend through tool calls to a final answer.

    Each run owns its conversation. Backend failures propagate as
    `ReasoningBackendError`; tool failures are reported back to the model
    as error results and never end the run.
    """

    def __init__(
        self,
        llm: LLMProvider,
        tools: ToolRegistry,
        max_iterations: int = MAX_ITERATIONS,
        project_name: str = "",
        on_step: Callable[[AgentStep], None] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.llm = llm
        self.tools = tools
        self.max_iterations = max_iterations
        self.project_name = project_name
        self.on_step = on_step
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def analyze(
        self, changed_files: list[ChangedFile], candidates: list[Candidate]
    ) -> AgentResult:
        """Run an impact analysis seeded with the change and its candidates."""
        return await self.run(build_seed_message(changed_files, candidates))

    async def run(self, task: str) -> AgentResult:
        """Run the loop for `task`.

        Raises:
            ReasoningBackendError: If the backend cannot be reached.
        """
        messages: list[Message] = [
            Message.system(get_system_prompt(self.project_name)),
            Message.user(task),
        ]
        steps: list[AgentStep] = []
        total_tokens = 0
        last_text = ""
        state = AgentState.AWAITING_MODEL
        response: LLMResponse | None = None
        iteration = 0

        while state is not AgentState.TERMINAL:
            if state is AgentState.AWAITING_MODEL:
                if iteration >= self.max_iterations:
                    logger.warning("Agent stopped after %d iteration(s)", iteration)
                    return AgentResult(
                        answer=last_text or INCOMPLETE_ANALYSIS_TEXT,
                        steps=steps,
                        total_iterations=iteration,
                        total_tokens=total_tokens,
                        success=False,
                    )
                iteration += 1
                logger.debug("Agent iteration %d", iteration)
                response = await self.llm.complete(
                    messages=messages,
                    tools=self.tools.get_definitions(),
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
                total_tokens += sum(response.usage.values())
                if response.has_text:
                    last_text = response.content

                if response.has_tool_calls:
                    state = AgentState.EXECUTING_TOOLS
                elif response.has_text:
                    step = AgentStep(
                        iteration=iteration, response=response.content, usage=response.usage
                    )
                    self._record(steps, step)
                    state = AgentState.TERMINAL
                else:
                    logger.info("Empty response at iteration %d; nudging the model", iteration)
                    self._record(steps, AgentStep(iteration=iteration, usage=response.usage))
                    messages.append(Message.user(CONTINUE_PROMPT))

            elif state is AgentState.EXECUTING_TOOLS:
                step = AgentStep(
                    iteration=iteration,
                    thought=response.content,
                    tool_calls=response.tool_calls,
                    usage=response.usage,
                )
                messages.append(Message.assistant(response.content, response.tool_calls))
                for tc in response.tool_calls:
                    logger.info("Tool call: %s(%s)", tc.name, tc.arguments)
                    result = await self.tools.execute(tc)
                    step.tool_results.append(result)
                    messages.append(result.to_message())
                self._record(steps, step)
                state = AgentState.AWAITING_MODEL

        return AgentResult(
            answer=last_text,
            steps=steps,
            total_iterations=iteration,
            total_tokens=total_tokens,
            success=True,
        )

    def _record(self, steps: list[AgentStep], step: AgentStep) -> None:
        steps.append(step)
        if self.on_step:
            self.on_step(step)
