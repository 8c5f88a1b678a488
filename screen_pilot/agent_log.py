"""Per-step trace records."""

from datetime import UTC, datetime
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from screen_pilot.llm import AgentMessage

SCREENSHOT_PLACEHOLDER = "[screenshot removed to preserve size]"


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


class PlanningData(BaseModel):
    """Self-reported planning fields; advisory only."""

    previous_step_evaluation: str = ""
    current_step_reasoning: str = ""
    next_step_goal: str = ""


class StepUsage(BaseModel):
    model: str = ""
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_usage(cls, model: str, usage: dict[str, int] | None) -> "StepUsage":
        usage = usage or {}
        return cls(
            model=model,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
        )


class TextLogEntry(BaseModel):
    type: Literal["text"] = "text"
    text: str
    reasoning: str = ""


class ToolCallLogEntry(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    reasoning: str | None = None
    screenshot: str | None = None
    override_screenshot: bool = False
    planning: PlanningData | None = None
    response: dict[str, Any] | None = None
    error: str | None = None


LogEntry = Union[TextLogEntry, ToolCallLogEntry]


class AgentLog(BaseModel):
    """Trace of one step: model output, tool calls, usage and planning data."""

    step: int
    timestamp: str = Field(default_factory=_utcnow_iso)
    screenshot: str = ""
    current_url: str | None = None
    model_output: list[LogEntry] = Field(default_factory=list)
    usage: StepUsage = Field(default_factory=StepUsage)
    planning: PlanningData | None = None

    def apply(self, entry: ToolCallLogEntry) -> None:
        """Attach a tool call entry, promoting its screenshot and planning data."""
        self.model_output.append(entry)
        if entry.override_screenshot and entry.screenshot:
            self.screenshot = entry.screenshot
        if entry.planning is not None:
            self.planning = entry.planning


def message_to_log(message: AgentMessage, image_url: str | None = None) -> dict[str, Any]:
    """Serialize a message for the log, replacing inline image data.

    Images become ``image_url`` when the screenshot was uploaded, otherwise a
    placeholder, so logs stay small.
    """
    content: list[dict[str, Any]] = []
    for item in message.content:
        if item.type == "text":
            content.append({"type": "text", "text": item.text})
        elif item.is_url:
            content.append({"type": "image", "image": item.image})
        else:
            content.append({"type": "image", "image": image_url or SCREENSHOT_PLACEHOLDER})
    return {"role": message.role, "content": content}
