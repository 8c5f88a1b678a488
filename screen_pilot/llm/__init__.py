"""Conversation message types and the AI provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel


@dataclass(frozen=True)
class TextContent:
    """A text item inside a message."""

    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ImageContent:
    """An image item, either inline base64 data or a URL reference."""

    image: str
    source: Literal["base64", "url"] = "base64"
    type: Literal["image"] = "image"

    @property
    def is_url(self) -> bool:
        return self.source == "url"

    @classmethod
    def from_url(cls, url: str) -> "ImageContent":
        return cls(image=url, source="url")

    @classmethod
    def from_base64(cls, data: str) -> "ImageContent":
        return cls(image=data, source="base64")


ContentItem = Union[TextContent, ImageContent]


@dataclass(frozen=True)
class ToolCall:
    """A tool call from the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class UserMessage:
    """User-role message: ordered text and image items."""

    content: tuple[ContentItem, ...]
    role: Literal["user"] = "user"

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", tuple(self.content))


@dataclass(frozen=True)
class AssistantMessage:
    """Assistant-role message: text plus zero or more tool calls."""

    content: tuple[TextContent, ...]
    tool_calls: tuple[ToolCall, ...] = ()
    role: Literal["assistant"] = "assistant"

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", tuple(self.content))
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))


AgentMessage = Union[UserMessage, AssistantMessage]


def user_text(*texts: str) -> UserMessage:
    """Build a user message made of text items only."""
    return UserMessage(content=tuple(TextContent(text=t) for t in texts))


def assistant_text(text: str, tool_calls: list[ToolCall] | None = None) -> AssistantMessage:
    """Build an assistant message with a single text item."""
    return AssistantMessage(
        content=(TextContent(text=text),) if text else (),
        tool_calls=tuple(tool_calls or ()),
    )


def count_images(message: AgentMessage) -> int:
    return sum(1 for item in message.content if item.type == "image")


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


@dataclass
class GenerateTextResult:
    """Response from a text generation call."""

    text: str = ""
    reasoning: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class GenerateObjectResult:
    """Response from a structured generation call."""

    object: Any
    usage: dict[str, int] = field(default_factory=dict)


class AIProvider(ABC):
    """Abstract base class for model backends.

    Concrete OpenAI/Anthropic/Google wrappers live outside this package.
    """

    @abstractmethod
    async def model_name(self) -> str:
        pass

    @abstractmethod
    async def generate_text(
        self,
        *,
        messages: list[AgentMessage],
        tools: list[ToolDefinition],
        system_prompt: str | None = None,
    ) -> GenerateTextResult:
        pass

    @abstractmethod
    async def generate_object(
        self,
        *,
        schema: type[BaseModel],
        messages: list[AgentMessage] | None = None,
        system_prompt: str | None = None,
    ) -> GenerateObjectResult:
        pass
