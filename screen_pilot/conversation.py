"""Step-keyed conversation storage with a bounded lookback view."""

from typing import Literal

from screen_pilot.llm import AgentMessage, UserMessage
from screen_pilot.logging import get_logger

log = get_logger(__name__)

FirstChunkPolicy = Literal["user_only", "full"]


class ConversationWindow:
    """Stores messages per step and produces the bounded view sent to the model.

    ``record`` only ever appends: a step's chunk can receive the model's own
    turn plus tool results aimed at the following step. ``view`` returns the
    most recent ``lookback`` chunks in step order. Once the step counter moves
    past the lookback, chunk 1 (the task instructions) is prepended so the
    original framing is never scrolled away.
    """

    def __init__(self, lookback: int = 7, first_chunk_policy: FirstChunkPolicy = "user_only"):
        if lookback < 1:
            raise ValueError("lookback must be at least 1")
        self.lookback = lookback
        self.first_chunk_policy = first_chunk_policy
        self._chunks: dict[int, list[AgentMessage]] = {}
        self._history: list[AgentMessage] = []

    def record(self, step: int, messages: list[AgentMessage]) -> None:
        """Append messages to the chunk for ``step``."""
        if step < 1:
            raise ValueError(f"step must be positive, got {step}")
        if not messages:
            return
        self._chunks.setdefault(step, []).extend(messages)
        self._history.extend(messages)

    def chunk(self, step: int) -> list[AgentMessage]:
        return list(self._chunks.get(step, []))

    def steps(self) -> list[int]:
        return sorted(self._chunks)

    @property
    def history(self) -> list[AgentMessage]:
        """Every recorded message in recording order, unbounded."""
        return list(self._history)

    def view_steps(self, step: int) -> list[int]:
        """Chunk step numbers that ``view(step)`` draws from, ascending."""
        recent = self.steps()[-self.lookback:]
        if step > self.lookback and 1 in self._chunks and 1 not in recent:
            return [1, *recent]
        return recent

    def _first_chunk(self) -> list[AgentMessage]:
        messages = self._chunks.get(1, [])
        if self.first_chunk_policy == "user_only":
            return [m for m in messages if isinstance(m, UserMessage)]
        return list(messages)

    def view(self, step: int) -> list[AgentMessage]:
        """Bounded, causally ordered messages for the generation at ``step``."""
        recent = self.steps()[-self.lookback:]
        messages: list[AgentMessage] = []
        if step > self.lookback and 1 in self._chunks and 1 not in recent:
            messages.extend(self._first_chunk())
        for chunk_step in recent:
            messages.extend(self._chunks[chunk_step])
        return messages
