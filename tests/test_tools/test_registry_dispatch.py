import asyncio

import pytest
from pydantic import BaseModel

from screen_pilot.exceptions import ToolCallError, ToolNotFoundError
from screen_pilot.llm import AIProvider, GenerateObjectResult, GenerateTextResult, ToolCall
from screen_pilot.tools.registry import (
    ModelArgumentRepairer,
    Tool,
    ToolCompletion,
    ToolContext,
    ToolRegistry,
    ToolResponse,
    text_response,
)


class EchoArgs(BaseModel):
    text: str
    times: int = 1


class EchoTool(Tool):
    name = "echo"
    description = "Echo text back"
    args_model = EchoArgs

    def __init__(self):
        self.seen: list[EchoArgs] = []

    async def execute(self, args: EchoArgs, context: ToolContext) -> ToolResponse:
        self.seen.append(args)
        return ToolResponse(message=text_response(args.text * args.times))


class BrokenTool(Tool):
    name = "broken"
    description = "Always fails"
    args_model = EchoArgs

    async def execute(self, args: EchoArgs, context: ToolContext) -> ToolResponse:
        raise RuntimeError("disk on fire")


class SlowTool(Tool):
    name = "slow"
    description = "Sleeps past its timeout"
    args_model = EchoArgs
    timeout_seconds = 0.01

    async def execute(self, args: EchoArgs, context: ToolContext) -> ToolResponse:
        await asyncio.sleep(1)
        return ToolResponse(message=text_response("late"))


class FinishTool(Tool):
    name = "finish"
    description = "Finishes"
    args_model = EchoArgs

    async def execute(self, args: EchoArgs, context: ToolContext) -> ToolCompletion:
        return ToolCompletion(output={"value": args.text})


class RepairProvider(AIProvider):
    def __init__(self, repaired: dict | None = None, fail: bool = False):
        self.repaired = repaired
        self.fail = fail
        self.object_calls = 0

    async def model_name(self) -> str:
        return "repair-model"

    async def generate_text(self, *, messages, tools, system_prompt=None) -> GenerateTextResult:
        return GenerateTextResult()

    async def generate_object(self, *, schema, messages=None, system_prompt=None) -> GenerateObjectResult:
        self.object_calls += 1
        if self.fail:
            raise RuntimeError("provider down")
        return GenerateObjectResult(object=schema.model_validate(self.repaired))


def _context() -> ToolContext:
    return ToolContext(session_id="session_1", step=1, tool_call_id="call_1")


@pytest.mark.asyncio
async def test_dispatch_validates_arguments_into_args_model():
    registry = ToolRegistry()
    tool = EchoTool()
    registry.register(tool)

    outcome = await registry.dispatch(
        ToolCall(id="call_1", name="echo", arguments={"text": "ab", "times": 2}), _context()
    )

    assert isinstance(outcome, ToolResponse)
    assert outcome.message.content[0].text == "abab"
    assert tool.seen == [EchoArgs(text="ab", times=2)]


@pytest.mark.asyncio
async def test_dispatch_unknown_tool_raises_not_found():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError):
        await registry.dispatch(ToolCall(id="c", name="ghost", arguments={}), _context())


@pytest.mark.asyncio
async def test_execution_error_is_wrapped_with_name_and_arguments():
    registry = ToolRegistry()
    registry.register(BrokenTool())

    with pytest.raises(ToolCallError) as exc_info:
        await registry.dispatch(ToolCall(id="c", name="broken", arguments={"text": "x"}), _context())

    error = exc_info.value
    assert error.tool_name == "broken"
    assert error.tool_args == {"text": "x"}
    assert "disk on fire" in str(error)
    assert isinstance(error.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_timeout_is_reported_as_tool_call_error():
    registry = ToolRegistry()
    registry.register(SlowTool())

    with pytest.raises(ToolCallError, match="timed out"):
        await registry.dispatch(ToolCall(id="c", name="slow", arguments={"text": "x"}), _context())


@pytest.mark.asyncio
async def test_invalid_arguments_without_repairer_fail():
    registry = ToolRegistry()
    registry.register(EchoTool())

    with pytest.raises(ToolCallError, match="Invalid arguments for tool 'echo'"):
        await registry.dispatch(ToolCall(id="c", name="echo", arguments={"times": 2}), _context())


@pytest.mark.asyncio
async def test_invalid_arguments_are_repaired_by_model():
    provider = RepairProvider(repaired={"text": "fixed"})
    registry = ToolRegistry(repairer=ModelArgumentRepairer(provider))
    tool = EchoTool()
    registry.register(tool)

    outcome = await registry.dispatch(
        ToolCall(id="c", name="echo", arguments={"txt": "fixed"}), _context()
    )

    assert provider.object_calls == 1
    assert outcome.message.content[0].text == "fixed"


@pytest.mark.asyncio
async def test_failed_repair_surfaces_original_validation_error():
    provider = RepairProvider(fail=True)
    registry = ToolRegistry(repairer=ModelArgumentRepairer(provider))
    registry.register(EchoTool())

    with pytest.raises(ToolCallError, match="Invalid arguments"):
        await registry.dispatch(ToolCall(id="c", name="echo", arguments={}), _context())


@pytest.mark.asyncio
async def test_completion_outcome_passes_through():
    registry = ToolRegistry()
    registry.register(FinishTool())

    outcome = await registry.dispatch(ToolCall(id="c", name="finish", arguments={"text": "42"}), _context())

    assert outcome == ToolCompletion(output={"value": "42"})


def test_definitions_use_args_model_schema():
    registry = ToolRegistry()
    registry.register(EchoTool())

    (definition,) = registry.get_definitions()

    assert definition.name == "echo"
    assert definition.parameters["required"] == ["text"]
    assert registry.has_tool("echo")
    registry.unregister("echo")
    assert registry.list_tools() == []
