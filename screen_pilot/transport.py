"""Message transport guard: image resolution and per-model payload budgets.

Before every generation call the outgoing history is passed through
``prepare_messages``, which

1. resolves image URL references to inline base64 data (downloads are retried
   with backoff and cached in a small LRU keyed by URL), and
2. trims the history to the payload budget of the target model family.

Both budget algorithms walk the history newest to oldest, never split a single
content item, and drop a message entirely when none of its items fit.
"""

import base64
import re
from dataclasses import replace
from typing import Literal

import httpx

from screen_pilot.backoff import retry_with_backoff
from screen_pilot.cache import LRUCache
from screen_pilot.config import RetryConfig, TransportConfig, get_config
from screen_pilot.exceptions import ImageDownloadError
from screen_pilot.llm import (
    AgentMessage,
    AssistantMessage,
    ContentItem,
    ImageContent,
    UserMessage,
    count_images,
)
from screen_pilot.logging import get_logger

log = get_logger(__name__)

ModelFamily = Literal["count_bounded", "byte_bounded"]

_BASE64_RUN_RE = re.compile(r"[A-Za-z0-9+/=]{100,}")


def model_family(model_name: str) -> ModelFamily | None:
    """Classify a model by the kind of payload ceiling its API enforces.

    Anthropic caps attachments at 100 images; OpenAI reasoning models fill
    their context with ~1100 tokens per screenshot, so both are capped by
    image count. Gemini caps the request at 20MB, so it is capped by bytes.
    """
    name = (model_name or "").lower()
    if "anthropic" in name or "claude" in name:
        return "count_bounded"
    if any(token in name for token in ("openai", "gpt", "o1", "o3", "o4")):
        return "count_bounded"
    if "gemini" in name or "google" in name:
        return "byte_bounded"
    return None


def estimate_base64_size(value: str) -> int:
    """Decoded byte size of base64 data, ignoring any data URI prefix."""
    payload = value
    if value.startswith("data:") and "," in value:
        payload = value.split(",", 1)[1]
    padding = 2 if payload.endswith("==") else 1 if payload.endswith("=") else 0
    return max(0, (len(payload) * 3) // 4 - padding)


def content_item_size(item: ContentItem, url_estimate: int | None = None) -> int:
    """Estimated encoded size of a content item in bytes."""
    if item.type == "text":
        return len(item.text.encode("utf-8"))
    if url_estimate is None:
        url_estimate = get_config().transport.url_image_estimate_bytes
    if item.is_url:
        return url_estimate
    if item.image.startswith("data:") or _BASE64_RUN_RE.search(item.image):
        return estimate_base64_size(item.image)
    # short strings that are not base64 are treated as unresolved references
    return url_estimate


def _with_content(message: AgentMessage, content: list[ContentItem]) -> AgentMessage:
    return replace(message, content=tuple(content))


def limit_by_image_count(messages: list[AgentMessage], max_images: int) -> list[AgentMessage]:
    """Keep the newest messages while the running image count stays within ``max_images``.

    The first message that would overflow keeps all of its text and only its
    newest images that still fit; older messages are dropped.
    """
    kept: list[AgentMessage] = []
    image_count = 0

    for message in reversed(messages):
        if not isinstance(message, UserMessage):
            kept.append(message)
            continue

        message_images = count_images(message)
        if image_count + message_images <= max_images:
            kept.append(message)
            image_count += message_images
            continue

        slots = max(0, max_images - image_count)
        keep_image_ids: set[int] = set()
        for idx in range(len(message.content) - 1, -1, -1):
            if len(keep_image_ids) >= slots:
                break
            if message.content[idx].type == "image":
                keep_image_ids.add(idx)
        partial = [
            item
            for idx, item in enumerate(message.content)
            if item.type == "text" or idx in keep_image_ids
        ]
        if partial:
            kept.append(_with_content(message, partial))
        image_count += len(keep_image_ids)
        break

    kept.reverse()
    return kept


def limit_by_total_size(
    messages: list[AgentMessage],
    max_bytes: int,
    url_estimate: int | None = None,
) -> list[AgentMessage]:
    """Keep the newest messages while the estimated payload stays within ``max_bytes``.

    A message that does not fit whole keeps the text items that fit, then
    fills the remaining budget with its images.
    """
    if url_estimate is None:
        url_estimate = get_config().transport.url_image_estimate_bytes

    kept: list[AgentMessage] = []
    total = 0

    for message in reversed(messages):
        sizes = [content_item_size(item, url_estimate) for item in message.content]
        message_size = sum(sizes)
        if total + message_size <= max_bytes:
            kept.append(message)
            total += message_size
        else:
            selected: set[int] = set()
            for kind in ("text", "image"):
                for idx, item in enumerate(message.content):
                    if item.type != kind:
                        continue
                    if total + sizes[idx] <= max_bytes:
                        selected.add(idx)
                        total += sizes[idx]
            partial = [item for idx, item in enumerate(message.content) if idx in selected]
            if partial:
                kept.append(_with_content(message, partial))

        if total >= max_bytes:
            break

    kept.reverse()
    return kept


def limit_by_item_count(messages: list[AgentMessage], max_items: int) -> list[AgentMessage]:
    """Keep the newest ``max_items`` content items, dropping oldest first."""
    kept: list[AgentMessage] = []
    remaining = max_items

    for message in reversed(messages):
        if remaining <= 0:
            break
        if len(message.content) <= remaining:
            kept.append(message)
            remaining -= len(message.content)
            continue
        kept.append(_with_content(message, list(message.content[-remaining:])))
        remaining = 0

    kept.reverse()
    return kept


def limit_messages(
    messages: list[AgentMessage],
    model_name: str,
    config: TransportConfig | None = None,
) -> list[AgentMessage]:
    """Apply the payload budget of ``model_name``'s family; unknown families pass through."""
    cfg = config or get_config().transport
    family = model_family(model_name)
    if family == "count_bounded":
        limited = limit_by_image_count(messages, cfg.max_images)
    elif family == "byte_bounded":
        limited = limit_by_total_size(messages, cfg.max_payload_bytes, cfg.url_image_estimate_bytes)
    else:
        return list(messages)
    if len(limited) != len(messages):
        log.debug(
            "Trimmed message history to payload budget",
            model=model_name,
            family=family,
            before=len(messages),
            after=len(limited),
        )
    return limited


class ImageResolver:
    """Resolve image URL references to inline base64, with an LRU cache keyed by URL.

    The resolver carries the transport budgets of whoever built it, so
    ``prepare_messages`` trims with the same settings it downloaded with.
    """

    def __init__(
        self,
        cache: LRUCache[str] | None = None,
        client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
        initial_delay: float | None = None,
        *,
        config: TransportConfig | None = None,
        retry: RetryConfig | None = None,
    ):
        self.config = config or get_config().transport
        retry = retry or get_config().retry
        self.cache: LRUCache[str] = (
            cache if cache is not None else LRUCache(self.config.image_cache_size)
        )
        self.client = client or httpx.AsyncClient(
            timeout=self.config.download_timeout,
            follow_redirects=True,
        )
        self.max_attempts = retry.max_attempts if max_attempts is None else max_attempts
        self.initial_delay = retry.initial_delay if initial_delay is None else initial_delay

    async def _fetch(self, url: str) -> bytes:
        response = await self.client.get(url)
        if not response.is_success:
            raise ImageDownloadError(url, status_code=response.status_code)
        return response.content

    async def download(self, url: str) -> str:
        """Download an image and return it base64 encoded."""
        body = await retry_with_backoff(
            lambda: self._fetch(url),
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            label="image_download",
        )
        return base64.b64encode(body).decode("ascii")

    async def resolve_image(self, item: ImageContent) -> ImageContent:
        if not item.is_url:
            return item
        data = self.cache.get(item.image)
        if data is None:
            log.debug("Downloading image", url=item.image)
            data = await self.download(item.image)
            self.cache.set(item.image, data)
        return ImageContent.from_base64(data)

    async def resolve(self, messages: list[AgentMessage]) -> list[AgentMessage]:
        """Return a copy of ``messages`` with every URL image inlined."""
        resolved: list[AgentMessage] = []
        for message in messages:
            if isinstance(message, AssistantMessage) or count_images(message) == 0:
                resolved.append(message)
                continue
            content: list[ContentItem] = []
            for item in message.content:
                if item.type == "image":
                    content.append(await self.resolve_image(item))
                else:
                    content.append(item)
            resolved.append(_with_content(message, content))
        return resolved

    async def close(self) -> None:
        await self.client.aclose()


# Global resolver (one image cache per process)
_resolver: ImageResolver | None = None


def get_image_resolver() -> ImageResolver:
    """Get the global image resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = ImageResolver()
    return _resolver


async def prepare_messages(
    messages: list[AgentMessage],
    model_name: str,
    resolver: ImageResolver | None = None,
) -> list[AgentMessage]:
    """Resolve image references and enforce the model family's payload budget."""
    active = resolver or get_image_resolver()
    resolved = await active.resolve(messages)
    return limit_messages(resolved, model_name, active.config)
