"""Agent orchestration for Screen Pilot."""

from typing import Any, Callable

from pydantic import BaseModel

from screen_pilot.agent_log import AgentLog
from screen_pilot.computer import ComputerProvider
from screen_pilot.config import Config, get_config
from screen_pilot.exceptions import ComputerProviderError
from screen_pilot.instructions import InstructionLoader
from screen_pilot.llm import AIProvider
from screen_pilot.logging import get_logger
from screen_pilot.session import Session, SessionRegistry, SessionStore, Task
from screen_pilot.step_loop import StepLoop, maybe_await
from screen_pilot.tools import (
    CompleteTaskTool,
    ComputerTool,
    DefaultOutput,
    MemoryTool,
    ModelArgumentRepairer,
    SessionMemoryStore,
    SessionToDoListStore,
    Tool,
    TodoTool,
    ToolRegistry,
    WaitTool,
)
from screen_pilot.transport import ImageResolver

log = get_logger(__name__)


class _UseGround:
    def __repr__(self) -> str:
        return "USE_GROUND"


# evaluator default: reuse the ground model; pass None to disable evaluation
USE_GROUND: Any = _UseGround()


class Agent:
    """Main agent orchestrator."""

    def __init__(
        self,
        *,
        ground: AIProvider,
        computer: ComputerProvider,
        alternate_ground: AIProvider | None = None,
        evaluator: AIProvider | None = USE_GROUND,
        store: SessionStore | None = None,
        config: Config | None = None,
        instructions: InstructionLoader | None = None,
        resolver: ImageResolver | None = None,
    ):
        """Initialize the agent.

        Args:
            ground: Model that acts each step and produces the final result
            computer: Remote desktop/browser backend
            alternate_ground: Optional model used on even steps
            evaluator: Model that vets completion claims; defaults to ``ground``,
                ``None`` disables evaluation
            store: Session storage backend (in-memory by default)
            config: Configuration override
            instructions: Prompt template loader
            resolver: Image resolver override
        """
        self.ground = ground
        self.alternate_ground = alternate_ground
        self.evaluator = ground if evaluator is USE_GROUND else evaluator
        self.computer = computer
        self.config = config or get_config()
        self.sessions = SessionRegistry(store)
        self.instructions = instructions or InstructionLoader(self.config.agent.prompts_dir)
        self._owns_resolver = resolver is None
        self.resolver = resolver or ImageResolver(
            config=self.config.transport,
            retry=self.config.retry,
        )
        self._memories: dict[str, SessionMemoryStore] = {}
        self._todos: dict[str, SessionToDoListStore] = {}

    async def initialize_session(
        self,
        session_id: str | None = None,
        provider_options: dict[str, Any] | None = None,
    ) -> "AgentSession":
        """Create a session and start its computer; the session ends up ``idle``."""
        session = await self.sessions.create(session_id)
        try:
            started = await self.computer.start(session.id, provider_options)
        except Exception as e:
            await self.sessions.update(session.id, status="stopped")
            log.error("Computer start failed", session_id=session.id, error=str(e))
            if isinstance(e, ComputerProviderError):
                raise
            raise ComputerProviderError(f"Failed to start session {session.id}: {e}") from e

        await self.sessions.update(
            session.id,
            status="idle",
            provider_id=started.provider_id,
            live_url=started.live_url,
        )
        log.info("Session initialized", session_id=session.id, provider_id=started.provider_id)
        return AgentSession(self, session.id)

    async def restore_session(self, session_id: str, provider_id: str, **kwargs: Any) -> "AgentSession":
        """Reattach to a computer session started elsewhere."""
        try:
            restored = await self.computer.restore_session(session_id, provider_id, **kwargs)
        except Exception as e:
            raise ComputerProviderError(f"Failed to restore session {session_id}: {e}") from e
        if restored is None:
            raise ComputerProviderError("Computer provider does not support session restore")

        session = await self.sessions.store.get(session_id)
        if session is None:
            session = await self.sessions.create(session_id)
        await self.sessions.update(
            session_id,
            status="idle",
            provider_id=restored.provider_id,
            live_url=restored.live_url,
        )
        log.info("Session restored", session_id=session_id, provider_id=restored.provider_id)
        return AgentSession(self, session_id)

    async def get_session(self, session_id: str) -> "AgentSession":
        """Get a handle to an existing session.

        Raises:
            SessionNotFoundError if the id is unknown
        """
        await self.sessions.get(session_id)
        return AgentSession(self, session_id)

    def memory_for(self, session_id: str) -> SessionMemoryStore:
        return self._memories.setdefault(session_id, SessionMemoryStore())

    def todos_for(self, session_id: str) -> SessionToDoListStore:
        return self._todos.setdefault(session_id, SessionToDoListStore())

    def build_registry(
        self,
        session_id: str,
        task: Task,
        output_schema: type[BaseModel],
        custom_tools: list[Tool] | None = None,
    ) -> ToolRegistry:
        """Core tools for one task, with ``custom_tools`` registered over them."""
        registry = ToolRegistry(repairer=ModelArgumentRepairer(self.ground, self.instructions))
        core: list[Tool] = [
            ComputerTool(self.computer),
            CompleteTaskTool(
                ground=self.ground,
                evaluator=self.evaluator,
                instructions=task.instructions,
                output_schema=output_schema,
                loader=self.instructions,
                config=self.config.completion,
                resolver=self.resolver,
            ),
            MemoryTool(self.memory_for(session_id)),
            TodoTool(self.todos_for(session_id)),
            WaitTool(),
        ]
        for tool in [*core, *(custom_tools or [])]:
            registry.register(tool)
        return registry

    async def run_task(
        self,
        session_id: str,
        instructions: str,
        *,
        output_schema: type[BaseModel] = DefaultOutput,
        initial_url: str | None = None,
        custom_tools: list[Tool] | None = None,
        max_steps: int | None = None,
        on_step_complete: Callable[[AgentLog], Any] | None = None,
        on_task_complete: Callable[[Task], Any] | None = None,
    ) -> BaseModel:
        """Run one task on an idle session and return its typed result.

        Raises:
            SessionNotFoundError / SessionBusyError if the session cannot run a task
            StepBudgetExceeded if the task does not complete within the step budget
        """
        session = await self.sessions.claim(session_id)
        task = Task(
            instructions=instructions,
            initial_url=initial_url,
            output_schema=output_schema.model_json_schema(),
        )
        session.tasks.append(task)
        await self.sessions.save(session)
        log.info("Running task", session_id=session_id, task_id=task.id)

        try:
            loop = StepLoop(
                session_id=session_id,
                task=task,
                ground=self.ground,
                alternate_ground=self.alternate_ground,
                computer=self.computer,
                registry=self.build_registry(session_id, task, output_schema, custom_tools),
                memory=self.memory_for(session_id),
                todos=self.todos_for(session_id),
                config=self.config.agent,
                max_steps=max_steps,
                loader=self.instructions,
                resolver=self.resolver,
                on_step_complete=on_step_complete,
            )
            output = await loop.run()
        finally:
            await self.sessions.save(session)
            await self.sessions.release(session_id)

        if on_task_complete is not None:
            await maybe_await(on_task_complete(task))
        return output

    async def end_session(self, session_id: str) -> None:
        """Stop the computer and mark the session ``stopped``."""
        await self.sessions.get(session_id)
        try:
            await self.computer.stop(session_id)
        except Exception as e:
            raise ComputerProviderError(f"Failed to stop session {session_id}: {e}") from e
        finally:
            await self.sessions.update(session_id, status="stopped", live_url=None, provider_id=None)
            self._memories.pop(session_id, None)
            self._todos.pop(session_id, None)
        log.info("Session ended", session_id=session_id)

    async def close(self) -> None:
        """Release the image download client if this agent created it."""
        if self._owns_resolver:
            await self.resolver.close()


class AgentSession:
    """Handle bound to one session id."""

    def __init__(self, agent: Agent, session_id: str):
        self.agent = agent
        self.id = session_id

    async def get(self) -> Session:
        return await self.agent.sessions.get(self.id)

    async def get_task(self, task_id: str) -> Task | None:
        session = await self.get()
        return session.get_task(task_id)

    async def run_task(self, instructions: str, **options: Any) -> BaseModel:
        return await self.agent.run_task(self.id, instructions, **options)

    async def end(self) -> None:
        await self.agent.end_session(self.id)
