"""Tools package for Screen Pilot."""

from screen_pilot.tools.registry import (
    ArgumentRepairer,
    ModelArgumentRepairer,
    Tool,
    ToolCompletion,
    ToolContext,
    ToolOutcome,
    ToolRegistry,
    ToolResponse,
    text_response,
)
from screen_pilot.tools.computer import ComputerTool, ComputerToolArgs
from screen_pilot.tools.complete_task import (
    COMPLETE_TASK_TOOL,
    CompleteTaskArgs,
    CompleteTaskTool,
    DefaultOutput,
    EvaluationResult,
)
from screen_pilot.tools.memory import MemoryStore, MemoryTool, SessionMemoryStore
from screen_pilot.tools.todo import SessionToDoListStore, ToDo, ToDoListStore, TodoTool
from screen_pilot.tools.wait import WaitTool

__all__ = [
    "ArgumentRepairer",
    "ModelArgumentRepairer",
    "Tool",
    "ToolCompletion",
    "ToolContext",
    "ToolOutcome",
    "ToolRegistry",
    "ToolResponse",
    "text_response",
    "ComputerTool",
    "ComputerToolArgs",
    "COMPLETE_TASK_TOOL",
    "CompleteTaskArgs",
    "CompleteTaskTool",
    "DefaultOutput",
    "EvaluationResult",
    "MemoryStore",
    "MemoryTool",
    "SessionMemoryStore",
    "SessionToDoListStore",
    "ToDo",
    "ToDoListStore",
    "TodoTool",
    "WaitTool",
]
