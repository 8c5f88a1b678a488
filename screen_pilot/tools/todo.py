"""Todo tool for tracking the sub-steps of the current task."""

from abc import ABC, abstractmethod
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, RootModel

from screen_pilot.logging import get_logger
from screen_pilot.tools.registry import Tool, ToolContext, ToolResponse, text_response

log = get_logger(__name__)

TodoStatus = Literal["pending", "in-progress", "completed", "cancelled"]


class ToDo(BaseModel):
    id: str
    description: str
    status: TodoStatus = "pending"


class ToDoUpdate(BaseModel):
    id: str = Field(description="The ID of the task to update.")
    status: TodoStatus | None = Field(default=None, description="The new status of the task.")
    description: str | None = Field(default=None, description="A new description for the task.")


class ToDoListStore(ABC):
    """Session-scoped ordered todo list, mutated only through the todo tool."""

    @abstractmethod
    async def add(self, descriptions: list[str]) -> list[ToDo]:
        pass

    @abstractmethod
    async def update(self, updates: list[ToDoUpdate]) -> list[ToDo | None]:
        pass

    @abstractmethod
    async def get(self, todo_id: str) -> ToDo | None:
        pass

    @abstractmethod
    async def list(self) -> list[ToDo]:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def context(self) -> str:
        """Todo list rendered for injection at the top of every view."""
        return ""


def format_todos(items: list[ToDo]) -> str:
    return "\n".join(f"[{item.status}] {item.id}: {item.description}" for item in items)


class SessionToDoListStore(ToDoListStore):
    """In-memory todo list with per-session monotonically increasing ids."""

    def __init__(self) -> None:
        self._items: dict[str, ToDo] = {}
        self._next_id = 1

    def _generate_id(self) -> str:
        todo_id = str(self._next_id)
        self._next_id += 1
        return todo_id

    async def add(self, descriptions: list[str]) -> list[ToDo]:
        created: list[ToDo] = []
        for description in descriptions:
            item = ToDo(id=self._generate_id(), description=description)
            self._items[item.id] = item
            created.append(item)
        return created

    async def update(self, updates: list[ToDoUpdate]) -> list[ToDo | None]:
        results: list[ToDo | None] = []
        for update in updates:
            item = self._items.get(update.id)
            if item is None:
                results.append(None)
                continue
            if update.status:
                item.status = update.status
            if update.description:
                item.description = update.description
            results.append(item)
        return results

    async def get(self, todo_id: str) -> ToDo | None:
        return self._items.get(todo_id)

    async def list(self) -> list[ToDo]:
        return list(self._items.values())

    async def clear(self) -> None:
        # ids keep increasing so a cleared id is never reused
        self._items.clear()

    async def context(self) -> str:
        if not self._items:
            return ""
        return f"CURRENT TASK LIST:\n{format_todos(list(self._items.values()))}\n"


class NewToDo(BaseModel):
    description: str = Field(description="The description of the task to add.")


class AddTodos(BaseModel):
    action: Literal["add"]
    tasks: list[NewToDo] = Field(description="Tasks to add to the list.")


class UpdateTodos(BaseModel):
    action: Literal["update"]
    tasks: list[ToDoUpdate] = Field(description="Tasks to update.")


class ListTodos(BaseModel):
    action: Literal["list"]


class TodoArgs(RootModel[Annotated[Union[AddTodos, UpdateTodos, ListTodos], Field(discriminator="action")]]):
    pass


_PROCEED = "Please proceed with the next step."


class TodoTool(Tool):
    """Maintain a todo list for breaking the task into steps."""

    name = "todo_list"
    description = (
        "Create, manage, and track a list of tasks to complete the user's request. "
        "Use action 'add' to append tasks, 'update' to change status or description by id, "
        "and 'list' to show the current list."
    )
    args_model = TodoArgs

    def __init__(self, store: ToDoListStore):
        self.store = store

    async def execute(self, args: TodoArgs, context: ToolContext) -> ToolResponse:
        command = args.root
        if isinstance(command, AddTodos):
            created = await self.store.add([task.description for task in command.tasks])
            text = (
                f"Successfully added {len(created)} task(s). Here is the updated task list:\n"
                f"{format_todos(await self.store.list())}\n{_PROCEED}"
            )
        elif isinstance(command, UpdateTodos):
            results = await self.store.update(command.tasks)
            missing = [u.id for u, r in zip(command.tasks, results) if r is None]
            if missing:
                log.debug("Todo update skipped unknown ids", ids=missing)
            text = "Successfully updated task(s)."
            if missing:
                text += f" Unknown task id(s) ignored: {', '.join(missing)}."
            text += f" Here is the updated task list:\n{format_todos(await self.store.list())}\n{_PROCEED}"
        else:
            items = await self.store.list()
            if items:
                text = f"Current task list:\n{format_todos(items)}\n{_PROCEED}"
            else:
                text = "The task list is empty. Please add tasks to get started."
        response = text_response(text)
        return ToolResponse(message=response, log_entry=self.log_entry(context, args, response))
