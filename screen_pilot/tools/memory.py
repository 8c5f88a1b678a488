"""Key/value memory that survives the conversation lookback window."""

from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel, Field

from screen_pilot.logging import get_logger
from screen_pilot.tools.registry import Tool, ToolContext, ToolResponse, text_response

log = get_logger(__name__)


class MemoryStore(ABC):
    """Session-scoped string store, mutated only through the memory tool."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def list(self) -> list[str]:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def context(self) -> str:
        """Stored memory rendered for injection at the top of every view."""
        return ""


class SessionMemoryStore(MemoryStore):
    """Dict-backed memory for one session."""

    def __init__(self, data: dict[str, str] | None = None):
        self._store: dict[str, str] = dict(data or {})

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> bool:
        if key not in self._store:
            return False
        del self._store[key]
        return True

    async def list(self) -> list[str]:
        return list(self._store.keys())

    async def clear(self) -> None:
        self._store.clear()

    async def context(self) -> str:
        if not self._store:
            return ""
        lines = "\n".join(f"{key}: {value}" for key, value in self._store.items())
        return f"PERSISTENT MEMORY:\n{lines}\n"


class MemoryArgs(BaseModel):
    key: str = Field(
        default="",
        description="Unique identifier for this piece of information (e.g. 'customer_counts', 'running_total')",
    )
    data: str = Field(
        default="",
        description="Information to store or update. Use structured text or JSON for complex data.",
    )
    action: Literal["store", "update", "retrieve", "delete", "list"] = Field(
        description=(
            "Memory action: store (new), update (modify existing), retrieve (get), "
            "delete (remove), or list (show all keys)"
        ),
    )


_PROCEED = "Please proceed with the next step."


class MemoryTool(Tool):
    """Store, update, retrieve, delete and list remembered values."""

    name = "memory"
    description = (
        "Store, update, retrieve, or manage important information that persists across all steps. "
        "Use this to maintain running calculations, accumulated data, intermediate results, and any "
        "information you need to remember throughout the entire task."
    )
    args_model = MemoryArgs

    def __init__(self, store: MemoryStore):
        self.store = store

    async def execute(self, args: MemoryArgs, context: ToolContext) -> ToolResponse:
        text = await self._run(args)
        log.debug("Memory tool", action=args.action, key=args.key)
        response = text_response(text)
        return ToolResponse(message=response, log_entry=self.log_entry(context, args, response))

    async def _run(self, args: MemoryArgs) -> str:
        key = args.key
        if args.action == "store":
            await self.store.set(key, args.data)
            return f"Successfully stored data under key '{key}'.\n{_PROCEED}"
        if args.action == "update":
            existing = await self.store.get(key)
            await self.store.set(key, args.data)
            if existing is None:
                return f"Key '{key}' didn't exist, successfully stored new data.\n{_PROCEED}"
            return f"Successfully updated data for key '{key}'.\n{_PROCEED}"
        if args.action == "retrieve":
            value = await self.store.get(key)
            if value is None:
                return f"No data found for key '{key}'. {_PROCEED}"
            return f"Successfully retrieved data for key '{key}': {value}.\n{_PROCEED}"
        if args.action == "delete":
            if await self.store.delete(key):
                return f"Successfully deleted data for key '{key}'. {_PROCEED}"
            return f"No data found for key '{key}'. {_PROCEED}"
        keys = await self.store.list()
        if not keys:
            return f"No data stored in memory. {_PROCEED}"
        return f"Successfully retrieved keys. Keys: {', '.join(keys)}. {_PROCEED}"
