import base64

import httpx
import pytest

from screen_pilot.cache import LRUCache
from screen_pilot.config import RetryConfig, TransportConfig
from screen_pilot.exceptions import ImageDownloadError
from screen_pilot.llm import ImageContent, TextContent, UserMessage, assistant_text
from screen_pilot.transport import ImageResolver, prepare_messages


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_repeated_url_is_downloaded_once():
    requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return httpx.Response(200, content=b"png-bytes")

    resolver = ImageResolver(cache=LRUCache(7), client=_client(handler), initial_delay=0)
    shot = ImageContent.from_url("https://cdn.example.com/step-1.png")
    messages = [
        UserMessage(content=(TextContent(text="first"), shot)),
        assistant_text("looking"),
        UserMessage(content=(shot,)),
    ]

    resolved = await resolver.resolve(messages)
    await resolver.close()

    expected = base64.b64encode(b"png-bytes").decode("ascii")
    assert requests == ["https://cdn.example.com/step-1.png"]
    assert resolved[0].content[1] == ImageContent.from_base64(expected)
    assert resolved[2].content[0] == ImageContent.from_base64(expected)
    assert resolved[1] is messages[1]


@pytest.mark.asyncio
async def test_server_error_is_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, content=b"ok")

    resolver = ImageResolver(cache=LRUCache(2), client=_client(handler), initial_delay=0)

    data = await resolver.download("https://cdn.example.com/flaky.png")
    await resolver.close()

    assert calls["count"] == 2
    assert data == base64.b64encode(b"ok").decode("ascii")


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(404)

    resolver = ImageResolver(cache=LRUCache(2), client=_client(handler), initial_delay=0)

    with pytest.raises(ImageDownloadError) as exc_info:
        await resolver.download("https://cdn.example.com/missing.png")
    await resolver.close()

    assert calls["count"] == 1
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_prepare_messages_resolves_then_limits():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=request.url.path.encode())

    resolver = ImageResolver(cache=LRUCache(7), client=_client(handler), initial_delay=0)
    messages = [
        UserMessage(content=(ImageContent.from_url(f"https://cdn.example.com/{i}.png"),))
        for i in range(100)
    ]

    prepared = await prepare_messages(messages, "claude-sonnet-4", resolver=resolver)
    await resolver.close()

    assert len(prepared) == 95
    assert all(not item.is_url for message in prepared for item in message.content)


@pytest.mark.asyncio
async def test_resolver_applies_its_own_transport_and_retry_settings():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if request.url.path == "/flaky.png":
            return httpx.Response(503)
        return httpx.Response(200, content=b"img")

    resolver = ImageResolver(
        client=_client(handler),
        config=TransportConfig(max_images=2, image_cache_size=3),
        retry=RetryConfig(max_attempts=1, initial_delay=0),
    )
    messages = [
        UserMessage(content=(ImageContent.from_url(f"https://cdn.example.com/{i}.png"),))
        for i in range(4)
    ]

    prepared = await prepare_messages(messages, "claude-sonnet-4", resolver=resolver)
    with pytest.raises(ImageDownloadError):
        await resolver.download("https://cdn.example.com/flaky.png")
    await resolver.close()

    assert len(prepared) == 2
    assert resolver.cache.capacity == 3
    assert calls["count"] == 5
