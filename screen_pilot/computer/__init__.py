"""Computer action vocabulary and the computer provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union, assert_never

from pydantic import BaseModel, Field, TypeAdapter


class Point(BaseModel):
    x: float
    y: float


class ClickAction(BaseModel):
    """Click one of the mouse buttons at a certain coordinate."""

    type: Literal["click"] = "click"
    x: float = Field(description="X coordinate for the click")
    y: float = Field(description="Y coordinate for the click")
    button: Literal["left", "right", "wheel"] = Field(description="Mouse button to use for the click")


class DoubleClickAction(BaseModel):
    """Double click the left mouse button at a certain coordinate."""

    type: Literal["double_click"] = "double_click"
    x: float = Field(description="X coordinate for the double click")
    y: float = Field(description="Y coordinate for the double click")


class DragAction(BaseModel):
    """Click and drag the left mouse button along a path."""

    type: Literal["drag"] = "drag"
    path: list[Point] = Field(min_length=2, description="Coordinates for the drag path")


class KeypressAction(BaseModel):
    """Press a certain key or combination of keys."""

    type: Literal["keypress"] = "keypress"
    keys: list[str] = Field(min_length=1, description="Keys to press")


class MoveAction(BaseModel):
    """Move the mouse to a certain coordinate."""

    type: Literal["move"] = "move"
    x: float = Field(description="X coordinate to move the mouse to")
    y: float = Field(description="Y coordinate to move the mouse to")


class ScrollAction(BaseModel):
    """Scroll at a coordinate. One of scroll_x or scroll_y should be non-zero."""

    type: Literal["scroll"] = "scroll"
    x: float = Field(description="X coordinate for the scroll")
    y: float = Field(description="Y coordinate for the scroll")
    scroll_x: float = Field(description="Horizontal scroll amount")
    scroll_y: float = Field(description="Vertical scroll amount")


class TypeAction(BaseModel):
    """Type a certain text."""

    type: Literal["type"] = "type"
    text: str = Field(min_length=1, description="Text to type")


class WaitAction(BaseModel):
    """Wait for a certain duration, normally for a page to load."""

    type: Literal["wait"] = "wait"
    duration: float = Field(ge=0, description="Duration to wait in seconds")


ComputerAction = Annotated[
    Union[
        ClickAction,
        DoubleClickAction,
        DragAction,
        KeypressAction,
        MoveAction,
        ScrollAction,
        TypeAction,
        WaitAction,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[ComputerAction] = TypeAdapter(ComputerAction)


def parse_action(data: Any) -> ComputerAction:
    """Validate a raw action payload into its tagged model."""
    return _action_adapter.validate_python(data)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def describe_action(action: ComputerAction) -> str:
    """Human readable summary of an action, used for logs and provider results."""
    if isinstance(action, ClickAction):
        return f"Clicked (button: {action.button}) at position ({_fmt(action.x)}, {_fmt(action.y)})"
    if isinstance(action, DoubleClickAction):
        return f"Double clicked at position ({_fmt(action.x)}, {_fmt(action.y)})"
    if isinstance(action, DragAction):
        start, end = action.path[0], action.path[-1]
        return (
            f"Dragged from ({_fmt(start.x)}, {_fmt(start.y)}) "
            f"to ({_fmt(end.x)}, {_fmt(end.y)})"
        )
    if isinstance(action, KeypressAction):
        return f"Pressed keys: {'+'.join(action.keys)}"
    if isinstance(action, MoveAction):
        return f"Moved mouse to ({_fmt(action.x)}, {_fmt(action.y)})"
    if isinstance(action, ScrollAction):
        return (
            f"Scrolled by ({_fmt(action.scroll_x)}, {_fmt(action.scroll_y)}) "
            f"at position ({_fmt(action.x)}, {_fmt(action.y)})"
        )
    if isinstance(action, TypeAction):
        return f"Typed text: {action.text}"
    if isinstance(action, WaitAction):
        return f"Waited for {_fmt(action.duration)} seconds"
    assert_never(action)


@dataclass
class ComputerActionResult:
    """Outcome reported by the provider after performing an action."""

    type: str
    action_performed: str
    reasoning: str
    timestamp: str


@dataclass
class StartedSession:
    provider_id: str
    live_url: str | None = None


@dataclass
class ScreenSize:
    width: int
    height: int


class ComputerProvider(ABC):
    """Abstract base class for remote desktop/browser backends.

    Cloud sandboxes and their HTTP/CDP protocols live outside this package.
    ``upload_screenshot`` and ``restore_session`` are optional; the defaults
    signal "not supported".
    """

    @abstractmethod
    async def start(self, session_id: str, options: dict[str, Any] | None = None) -> StartedSession:
        pass

    @abstractmethod
    async def stop(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def screen_size(self) -> ScreenSize:
        pass

    @abstractmethod
    async def take_screenshot(self, session_id: str) -> str:
        """Return the current screen as a base64 string."""
        pass

    async def upload_screenshot(self, *, base64: str, session_id: str, step: int) -> str | None:
        """Upload a screenshot and return its public URL, or None when unsupported."""
        return None

    @abstractmethod
    async def perform_action(
        self,
        action: ComputerAction,
        *,
        session_id: str,
        step: int,
        reasoning: str | None = None,
    ) -> ComputerActionResult:
        pass

    @abstractmethod
    async def navigate_to(self, *, session_id: str, url: str) -> None:
        pass

    @abstractmethod
    async def get_current_url(self, session_id: str) -> str | None:
        pass

    async def restore_session(self, session_id: str, provider_id: str, **kwargs: Any) -> StartedSession | None:
        """Reattach to an existing provider session; None when unsupported."""
        return None
