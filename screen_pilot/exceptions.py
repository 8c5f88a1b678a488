"""Custom exceptions for Screen Pilot."""

from typing import Any

import httpx


class ScreenPilotError(Exception):
    """Base exception for Screen Pilot."""

    pass


class ConfigurationError(ScreenPilotError):
    """Configuration-related errors."""

    pass


class AgentError(ScreenPilotError):
    """Agent orchestration errors."""

    pass


class SessionError(ScreenPilotError):
    """Session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found for session_id: {session_id}")
        self.session_id = session_id


class SessionExistsError(SessionError):
    """A session with this id is already registered."""

    def __init__(self, session_id: str, status: str):
        super().__init__(f"Session {session_id} already exists ({status})")
        self.session_id = session_id
        self.status = status


class SessionBusyError(SessionError):
    """A task is already running on the session."""

    def __init__(self, session_id: str, status: str):
        super().__init__(f"Session {session_id} cannot start a task while {status}")
        self.session_id = session_id
        self.status = status


class AIProviderError(ScreenPilotError):
    """Generation call failed (network, auth, malformed response)."""

    pass


class ComputerProviderError(ScreenPilotError):
    """Session lifecycle or action execution failed at the provider boundary."""

    pass


class ImageDownloadError(ScreenPilotError):
    """Image reference could not be resolved to inline data."""

    def __init__(self, url: str, status_code: int | None = None):
        suffix = f" ({status_code})" if status_code is not None else ""
        super().__init__(f"Failed to download image from {url}{suffix}")
        self.url = url
        self.status_code = status_code


class ToolError(ScreenPilotError):
    """Tool errors."""

    pass


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolArgumentsError(ToolError):
    """Tool arguments failed validation and could not be repaired."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Invalid arguments for tool '{tool_name}': {message}")
        self.tool_name = tool_name


class ToolCallError(ToolError):
    """A tool's own execution raised."""

    def __init__(self, tool_name: str, tool_args: Any, message: str):
        super().__init__(f"Error executing tool call: {tool_name}: {message}")
        self.tool_name = tool_name
        self.tool_args = tool_args


class StepBudgetExceeded(AgentError):
    """The step loop reached its ceiling without a completion."""

    def __init__(self, max_steps: int):
        super().__init__(f"Agent has reached maximum steps of {max_steps}.")
        self.max_steps = max_steps


def _status_of(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_retryable_error(error: BaseException) -> bool:
    """Return whether an error is transient: HTTP 5xx, network failure or timeout."""
    if isinstance(error, httpx.TransportError):
        return True
    status = _status_of(error)
    if status is not None:
        return status >= 500
    return "timed out" in str(error).lower()
