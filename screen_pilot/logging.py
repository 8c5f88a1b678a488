"""Structured logging for Screen Pilot.

Screenshots travel through the loop as base64 strings, so the processor chain
shortens any inline image payload to a size marker before rendering.
"""

import logging
import re
import sys
from contextlib import contextmanager
from typing import Any, Callable, Iterator

import structlog

from screen_pilot.config import LoggingConfig, get_config

_IMAGE_DATA_RE = re.compile(r"(?:data:image/[\w.+-]+;base64,)?([A-Za-z0-9+/]{256,}={0,2})")

_log_sink: Callable[[str], None] | None = None


def set_log_sink(sink: Callable[[str], None] | None) -> None:
    """Send rendered log lines to ``sink`` instead of stderr (applied by ``configure_logging``)."""
    global _log_sink
    _log_sink = sink


def _image_marker(value: str) -> str | None:
    match = _IMAGE_DATA_RE.fullmatch(value)
    if match is None:
        return None
    payload = match.group(1)
    padding = len(payload) - len(payload.rstrip("="))
    return f"<image {len(payload) * 3 // 4 - padding} bytes>"


def shorten_inline_images(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace base64 screenshot payloads in event values with ``<image N bytes>``."""
    for key, value in event_dict.items():
        if isinstance(value, str) and len(value) >= 256:
            marker = _image_marker(value)
            if marker is not None:
                event_dict[key] = marker
    return event_dict


def _forward_to(sink: Callable[[str], None]) -> Callable[..., Any]:
    def forward(logger: Any, method_name: str, rendered: str) -> Any:
        sink(rendered)
        raise structlog.DropEvent

    return forward


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog from ``config`` (defaults to the global ``Config.logging``)."""
    config = config or get_config().logging
    log_level = getattr(logging, config.level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        shorten_inline_images,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    if _log_sink is not None:
        processors.append(_forward_to(_log_sink))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def task_context(session_id: str, task_id: str) -> Iterator[None]:
    """Bind ``session_id`` and ``task_id`` to every event logged while a task runs."""
    with structlog.contextvars.bound_contextvars(session_id=session_id, task_id=task_id):
        yield


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
