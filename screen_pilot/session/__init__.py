"""Session and task state behind a pluggable store."""

import asyncio
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from screen_pilot.agent_log import AgentLog
from screen_pilot.exceptions import SessionBusyError, SessionExistsError, SessionNotFoundError
from screen_pilot.logging import get_logger

log = get_logger(__name__)

SessionStatus = Literal["queued", "running", "idle", "stopped"]


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def new_session_id() -> str:
    return f"session_{uuid.uuid4()}"


class Task(BaseModel):
    """A single instruction executed within a session."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    instructions: str
    initial_url: str | None = None
    output_schema: dict[str, Any] | None = None
    logs: list[AgentLog] = Field(default_factory=list)
    result: Any = None
    usage: dict[str, int] = Field(
        default_factory=lambda: {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    )
    created_at: str = Field(default_factory=_utcnow_iso)

    def add_usage(self, usage: dict[str, int] | None) -> None:
        """Add one generation's usage into the task totals."""
        if not usage:
            return
        prompt = int(usage.get("prompt_tokens", 0) or 0)
        completion = int(usage.get("completion_tokens", 0) or 0)
        total = int(usage.get("total_tokens", prompt + completion) or 0)
        self.usage["prompt_tokens"] += prompt
        self.usage["completion_tokens"] += completion
        self.usage["total_tokens"] += total


class Session(BaseModel):
    """A long-lived handle to one remote computer-use environment."""

    id: str
    status: SessionStatus = "queued"
    live_url: str | None = None
    provider_id: str | None = None
    tasks: list[Task] = Field(default_factory=list)
    created_at: str = Field(default_factory=_utcnow_iso)
    updated_at: str = Field(default_factory=_utcnow_iso)

    def get_task(self, task_id: str) -> Task | None:
        return next((task for task in self.tasks if task.id == task_id), None)

    def touch(self) -> None:
        self.updated_at = _utcnow_iso()


class SessionStore(ABC):
    """Storage backend for sessions."""

    @abstractmethod
    async def get(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    async def put(self, session: Session) -> None:
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def list_ids(self) -> list[str]:
        pass


class InMemorySessionStore(SessionStore):
    """Process-local session store."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def put(self, session: Session) -> None:
        self._sessions[session.id] = session

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def list_ids(self) -> list[str]:
        return list(self._sessions.keys())


class SessionRegistry:
    """Session lookup plus the one-task-per-session guard."""

    def __init__(self, store: SessionStore | None = None):
        self.store = store or InMemorySessionStore()
        self._lock = asyncio.Lock()

    async def create(self, session_id: str | None = None) -> Session:
        """Register a new ``queued`` session.

        Raises:
            SessionBusyError if a task is running under ``session_id``
            SessionExistsError if ``session_id`` is otherwise taken
        """
        async with self._lock:
            session = Session(id=session_id or new_session_id())
            existing = await self.store.get(session.id)
            if existing is not None:
                if existing.status == "running":
                    raise SessionBusyError(session.id, existing.status)
                raise SessionExistsError(session.id, existing.status)
            await self.store.put(session)
        log.info("Session created", session_id=session.id)
        return session

    async def get(self, session_id: str) -> Session:
        """Get a session.

        Raises:
            SessionNotFoundError if the id is unknown
        """
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def save(self, session: Session) -> None:
        session.touch()
        await self.store.put(session)

    async def update(self, session_id: str, **fields: Any) -> Session:
        async with self._lock:
            session = await self.get(session_id)
            for key, value in fields.items():
                setattr(session, key, value)
            await self.save(session)
            return session

    async def claim(self, session_id: str) -> Session:
        """Atomically move a session to ``running``.

        Raises:
            SessionNotFoundError if the id is unknown
            SessionBusyError unless the session is idle
        """
        async with self._lock:
            session = await self.get(session_id)
            if session.status != "idle":
                raise SessionBusyError(session_id, session.status)
            session.status = "running"
            await self.save(session)
            return session

    async def release(self, session_id: str, status: SessionStatus = "idle") -> None:
        """Leave ``running`` once a task finishes or fails."""
        async with self._lock:
            session = await self.store.get(session_id)
            if session is None or session.status != "running":
                return
            session.status = status
            await self.save(session)
