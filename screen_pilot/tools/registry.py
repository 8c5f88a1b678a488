"""Tool registry, base tool class and the dispatch boundary."""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Union

from pydantic import BaseModel, ValidationError

from screen_pilot.agent_log import ToolCallLogEntry, message_to_log
from screen_pilot.exceptions import (
    ToolArgumentsError,
    ToolCallError,
    ToolNotFoundError,
)
from screen_pilot.instructions import InstructionLoader
from screen_pilot.llm import (
    AIProvider,
    AgentMessage,
    ToolCall,
    ToolDefinition,
    UserMessage,
    user_text,
)
from screen_pilot.logging import get_logger

log = get_logger(__name__)


@dataclass
class ToolContext:
    """What a tool may know about the call site."""

    session_id: str
    step: int
    tool_call_id: str = ""
    messages: list[AgentMessage] = field(default_factory=list)


@dataclass
class ToolResponse:
    """Continue the loop with ``message`` injected into the conversation."""

    message: UserMessage
    log_entry: ToolCallLogEntry | None = None
    type: Literal["response"] = "response"


@dataclass
class ToolCompletion:
    """The task is finished; ``output`` is its typed result."""

    output: Any
    type: Literal["completion"] = "completion"


ToolOutcome = Union[ToolResponse, ToolCompletion]


def text_response(text: str) -> UserMessage:
    """Single text item user message, the usual tool reply."""
    return user_text(text)


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    args_model: type[BaseModel]
    timeout_seconds: float | None = None

    @abstractmethod
    async def execute(self, args: Any, context: ToolContext) -> ToolOutcome:
        """Execute the tool.

        Args:
            args: Validated instance of ``args_model``
            context: Session id, step and conversation history

        Returns:
            ToolResponse to continue, ToolCompletion to finish the task
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.args_model.model_json_schema(by_alias=True),
        )

    def validate_arguments(self, arguments: dict[str, Any]) -> BaseModel:
        """Validate raw arguments against ``args_model``.

        Raises:
            pydantic.ValidationError if invalid
        """
        return self.args_model.model_validate(arguments)

    def log_entry(
        self,
        context: ToolContext,
        args: BaseModel,
        response: UserMessage,
        **extra: Any,
    ) -> ToolCallLogEntry:
        """Build the trace entry for a response produced by this tool."""
        image_url = extra.pop("image_url", None)
        return ToolCallLogEntry(
            tool_call_id=context.tool_call_id,
            tool_name=self.name,
            args=args.model_dump(mode="json", by_alias=True),
            response=message_to_log(response, image_url=image_url),
            **extra,
        )


class ArgumentRepairer(Protocol):
    """Hook that tries to fix arguments which failed validation."""

    async def repair(
        self,
        tool: Tool,
        tool_call: ToolCall,
        error: ValidationError,
    ) -> dict[str, Any] | None:
        ...


class ModelArgumentRepairer:
    """Re-ask a model to produce arguments that satisfy the tool's schema."""

    def __init__(self, provider: AIProvider, instructions: InstructionLoader | None = None):
        self.provider = provider
        self.instructions = instructions or InstructionLoader()

    async def repair(
        self,
        tool: Tool,
        tool_call: ToolCall,
        error: ValidationError,
    ) -> dict[str, Any] | None:
        prompt = self.instructions.render(
            "argument_repair.md",
            tool_name=tool_call.name,
            arguments=json.dumps(tool_call.arguments, default=str),
            error=str(error),
            schema=json.dumps(tool.args_model.model_json_schema()),
        )
        log.info("Repairing tool call", tool=tool_call.name, call_id=tool_call.id)
        try:
            result = await self.provider.generate_object(
                schema=tool.args_model,
                messages=[user_text(prompt)],
            )
        except Exception as e:
            log.warning("Tool call repair failed", tool=tool_call.name, error=str(e))
            return None
        repaired = result.object
        if isinstance(repaired, BaseModel):
            return repaired.model_dump(by_alias=True)
        if isinstance(repaired, dict):
            return repaired
        return None


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self, repairer: ArgumentRepairer | None = None):
        self._tools: dict[str, Tool] = {}
        self.repairer = repairer

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        return [tool.get_definition() for tool in self._tools.values()]

    async def _validated_arguments(self, tool: Tool, tool_call: ToolCall) -> BaseModel:
        arguments = tool_call.arguments
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {"raw": arguments}
        try:
            return tool.validate_arguments(arguments)
        except ValidationError as first_error:
            if self.repairer is None:
                raise ToolArgumentsError(tool.name, str(first_error)) from first_error
            repaired = await self.repairer.repair(tool, tool_call, first_error)
            if repaired is None:
                raise ToolArgumentsError(tool.name, str(first_error)) from first_error
            try:
                validated = tool.validate_arguments(repaired)
            except ValidationError as second_error:
                raise ToolArgumentsError(tool.name, str(second_error)) from second_error
            log.info("Tool call repaired", tool=tool.name, call_id=tool_call.id)
            return validated

    async def dispatch(self, tool_call: ToolCall, context: ToolContext) -> ToolOutcome:
        """Validate and execute one tool call.

        Returns:
            The tool's outcome

        Raises:
            ToolNotFoundError if the tool is not registered
            ToolCallError if validation or execution fails
        """
        tool = self.get(tool_call.name)
        try:
            args = await self._validated_arguments(tool, tool_call)
        except ToolArgumentsError as e:
            raise ToolCallError(tool_call.name, tool_call.arguments, str(e)) from e

        try:
            log.info("Executing tool", tool=tool.name, call_id=tool_call.id, step=context.step)
            if tool.timeout_seconds:
                outcome = await asyncio.wait_for(
                    tool.execute(args, context), timeout=tool.timeout_seconds
                )
            else:
                outcome = await tool.execute(args, context)
        except asyncio.TimeoutError as e:
            message = str(e) or "Execution timed out"
            if tool.timeout_seconds:
                message = f"Execution timed out after {tool.timeout_seconds}s"
            raise ToolCallError(tool.name, tool_call.arguments, message) from e
        except Exception as e:
            log.error("Tool execution failed", tool=tool.name, error=str(e))
            raise ToolCallError(tool.name, tool_call.arguments, str(e)) from e

        if not isinstance(outcome, (ToolResponse, ToolCompletion)):
            raise ToolCallError(tool.name, tool_call.arguments, "Tool returned invalid result payload")
        log.info("Tool executed", tool=tool.name, outcome=outcome.type)
        return outcome
