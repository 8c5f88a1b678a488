"""The step loop: generate, dispatch, repeat until the task completes."""

import inspect
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel

from screen_pilot.agent_log import (
    SCREENSHOT_PLACEHOLDER,
    AgentLog,
    StepUsage,
    TextLogEntry,
    ToolCallLogEntry,
)
from screen_pilot.computer import ComputerProvider
from screen_pilot.config import AgentConfig, get_config
from screen_pilot.conversation import ConversationWindow
from screen_pilot.exceptions import (
    AIProviderError,
    ComputerProviderError,
    StepBudgetExceeded,
    ToolCallError,
)
from screen_pilot.instructions import InstructionLoader
from screen_pilot.llm import (
    AgentMessage,
    AIProvider,
    GenerateTextResult,
    ImageContent,
    TextContent,
    ToolCall,
    UserMessage,
    assistant_text,
    user_text,
)
from screen_pilot.logging import get_logger, task_context
from screen_pilot.session import Task
from screen_pilot.tools.complete_task import COMPLETE_TASK_TOOL
from screen_pilot.tools.memory import MemoryStore
from screen_pilot.tools.registry import ToolCompletion, ToolContext, ToolRegistry
from screen_pilot.tools.todo import ToDoListStore
from screen_pilot.transport import ImageResolver, prepare_messages

log = get_logger(__name__)

T = TypeVar("T")

StepCallback = Callable[[AgentLog], Any]

CONTINUE_MESSAGE = (
    "Please continue with the task with what you think is best. If you or the user believe "
    "the task is complete and all requirements have been met, use the complete_task tool."
)


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if a callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def tool_not_found_message(name: str) -> str:
    return f"Tool {name} not found. Please select another tool."


def tool_error_message(error: ToolCallError) -> str:
    return f"{error}. Please fix the arguments or choose a different approach."


class StepLoop:
    """Drives one task on one session until completion or the step budget runs out.

    Tool responses land in the next step's chunk, except completion
    reflections which land in the current one so the model sees the feedback
    on its very next generation.
    """

    def __init__(
        self,
        *,
        session_id: str,
        task: Task,
        ground: AIProvider,
        computer: ComputerProvider,
        registry: ToolRegistry,
        memory: MemoryStore,
        todos: ToDoListStore,
        alternate_ground: AIProvider | None = None,
        config: AgentConfig | None = None,
        max_steps: int | None = None,
        loader: InstructionLoader | None = None,
        resolver: ImageResolver | None = None,
        on_step_complete: StepCallback | None = None,
    ):
        self.session_id = session_id
        self.task = task
        self.ground = ground
        self.alternate_ground = alternate_ground
        self.computer = computer
        self.registry = registry
        self.memory = memory
        self.todos = todos
        self.config = config or get_config().agent
        self.max_steps = max_steps or self.config.max_steps
        self.loader = loader or InstructionLoader()
        self.resolver = resolver
        self.on_step_complete = on_step_complete
        self.window = ConversationWindow(
            lookback=self.config.lookback,
            first_chunk_policy=self.config.first_chunk_policy,
        )
        self.step = 1
        self._screenshot = SCREENSHOT_PLACEHOLDER
        self._system_prompt = ""

    async def _computer_call(self, what: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except ComputerProviderError:
            raise
        except Exception as e:
            raise ComputerProviderError(f"Failed to {what}: {e}") from e

    def _model_for_step(self, step: int) -> AIProvider:
        if self.config.alternate_models and self.alternate_ground is not None and step % 2 == 0:
            return self.alternate_ground
        return self.ground

    async def _initialize(self) -> None:
        """Capture the first screen and seed chunk 1 with the instructions."""
        session_id = self.session_id
        if self.task.initial_url:
            await self._computer_call(
                "navigate to initial url",
                lambda: self.computer.navigate_to(session_id=session_id, url=self.task.initial_url),
            )
        size = await self._computer_call("read screen size", self.computer.screen_size)
        self._system_prompt = self.loader.render(
            "system_prompt.md", width=size.width, height=size.height
        )
        screenshot = await self._computer_call(
            "take screenshot", lambda: self.computer.take_screenshot(session_id)
        )
        image_url = await self._computer_call(
            "upload screenshot",
            lambda: self.computer.upload_screenshot(base64=screenshot, session_id=session_id, step=0),
        )
        self._screenshot = image_url or SCREENSHOT_PLACEHOLDER
        image = ImageContent.from_url(image_url) if image_url else ImageContent.from_base64(screenshot)
        self.window.record(
            1,
            [
                UserMessage(
                    content=(
                        TextContent(
                            text=f"{self.task.instructions}\n\nHere is the current state of the screen:"
                        ),
                        image,
                    )
                )
            ],
        )

    async def _context_messages(self) -> list[AgentMessage]:
        """Todo list and memory, rendered fresh for every generation."""
        messages: list[AgentMessage] = []
        for text in (await self.todos.context(), await self.memory.context()):
            if text:
                messages.append(user_text(text))
        return messages

    async def _generate(self, model: AIProvider, model_name: str) -> GenerateTextResult:
        view = [*await self._context_messages(), *self.window.view(self.step)]
        messages = await prepare_messages(view, model_name, resolver=self.resolver)
        try:
            return await model.generate_text(
                messages=messages,
                tools=self.registry.get_definitions(),
                system_prompt=self._system_prompt,
            )
        except AIProviderError:
            raise
        except Exception as e:
            raise AIProviderError(f"Generation failed for {model_name}: {e}") from e

    async def _dispatch(self, call: ToolCall, agent_log: AgentLog) -> ToolCompletion | None:
        step = self.step
        if not self.registry.has_tool(call.name):
            log.warning("Tool not found", tool=call.name, step=step)
            self.window.record(step, [assistant_text(tool_not_found_message(call.name))])
            return None

        context = ToolContext(
            session_id=self.session_id,
            step=step,
            tool_call_id=call.id,
            messages=self.window.history,
        )
        try:
            outcome = await self.registry.dispatch(call, context)
        except ToolCallError as e:
            log.error("Tool call failed", tool=call.name, step=step, error=str(e))
            agent_log.model_output.append(
                ToolCallLogEntry(
                    tool_call_id=call.id,
                    tool_name=call.name,
                    args=call.arguments if isinstance(call.arguments, dict) else {},
                    error=str(e),
                )
            )
            if self.config.tool_error_policy == "raise":
                raise
            self.window.record(step + 1, [user_text(tool_error_message(e))])
            return None

        if isinstance(outcome, ToolCompletion):
            return outcome

        if outcome.log_entry is not None:
            agent_log.apply(outcome.log_entry)
            if outcome.log_entry.override_screenshot and outcome.log_entry.screenshot:
                self._screenshot = outcome.log_entry.screenshot
        target = step if call.name == COMPLETE_TASK_TOOL else step + 1
        self.window.record(target, [outcome.message])
        return None

    async def _finish_step(self, agent_log: AgentLog) -> None:
        agent_log.current_url = await self._computer_call(
            "read current url", lambda: self.computer.get_current_url(self.session_id)
        )
        self.task.logs.append(agent_log)
        if self.on_step_complete is not None:
            await maybe_await(self.on_step_complete(agent_log))

    async def _run_step(self) -> ToolCompletion | None:
        step = self.step
        model = self._model_for_step(step)
        model_name = await model.model_name()
        result = await self._generate(model, model_name)
        log.info(
            "Generation complete",
            step=step,
            model=model_name,
            tool_calls=[call.name for call in result.tool_calls],
        )

        self.task.add_usage(result.usage)
        agent_log = AgentLog(
            step=step,
            screenshot=self._screenshot,
            usage=StepUsage.from_usage(model_name, result.usage),
        )
        if result.text:
            agent_log.model_output.append(
                TextLogEntry(text=result.text, reasoning=result.reasoning or "")
            )
        if result.text or result.tool_calls:
            # recorded before dispatch so the completion tool sees this attempt
            self.window.record(step, [assistant_text(result.text, result.tool_calls)])

        completion: ToolCompletion | None = None
        if not result.tool_calls:
            self.window.record(step + 1, [user_text(CONTINUE_MESSAGE)])
        for call in result.tool_calls:
            completion = await self._dispatch(call, agent_log)
            if completion is not None:
                break

        await self._finish_step(agent_log)
        return completion

    async def run(self) -> BaseModel:
        """Run the task to completion.

        Returns:
            The finalized output, an instance of the task's output schema

        Raises:
            StepBudgetExceeded if the step budget runs out first
            AIProviderError / ComputerProviderError on collaborator failure
            ToolCallError when the tool error policy is ``raise``
        """
        with task_context(self.session_id, self.task.id):
            log.info("Task started", max_steps=self.max_steps)
            await self._initialize()
            while self.step < self.max_steps:
                completion = await self._run_step()
                if completion is not None:
                    self.task.result = completion.output
                    log.info("Task completed", step=self.step)
                    return completion.output
                self.step += 1

            log.error("Step budget exceeded", max_steps=self.max_steps)
            raise StepBudgetExceeded(self.max_steps)
