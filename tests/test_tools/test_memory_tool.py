import pytest

from screen_pilot.tools.memory import MemoryArgs, MemoryTool, SessionMemoryStore
from screen_pilot.tools.registry import ToolContext


def _text(response) -> str:
    return response.message.content[0].text


async def _run(tool: MemoryTool, **kwargs) -> str:
    context = ToolContext(session_id="session_1", step=3, tool_call_id="call_1")
    return _text(await tool.execute(MemoryArgs(**kwargs), context))


@pytest.mark.asyncio
async def test_store_then_retrieve():
    store = SessionMemoryStore()
    tool = MemoryTool(store)

    stored = await _run(tool, action="store", key="count", data="3")
    retrieved = await _run(tool, action="retrieve", key="count")

    assert stored.startswith("Successfully stored data under key 'count'.")
    assert "count" in retrieved and "3" in retrieved
    assert await store.get("count") == "3"


@pytest.mark.asyncio
async def test_update_missing_key_behaves_like_store():
    store = SessionMemoryStore()
    tool = MemoryTool(store)

    text = await _run(tool, action="update", key="total", data="12")

    assert text.startswith("Key 'total' didn't exist, successfully stored new data.")
    assert await store.get("total") == "12"


@pytest.mark.asyncio
async def test_update_existing_key_replaces_value():
    store = SessionMemoryStore({"total": "1"})
    tool = MemoryTool(store)

    text = await _run(tool, action="update", key="total", data="2")

    assert text.startswith("Successfully updated data for key 'total'.")
    assert await store.get("total") == "2"


@pytest.mark.asyncio
async def test_missing_key_on_retrieve_and_delete_is_not_an_error():
    tool = MemoryTool(SessionMemoryStore())

    assert (await _run(tool, action="retrieve", key="nope")).startswith("No data found for key 'nope'")
    assert (await _run(tool, action="delete", key="nope")).startswith("No data found for key 'nope'")


@pytest.mark.asyncio
async def test_delete_and_list():
    store = SessionMemoryStore({"a": "1", "b": "2"})
    tool = MemoryTool(store)

    await _run(tool, action="delete", key="a")
    listed = await _run(tool, action="list")

    assert await store.list() == ["b"]
    assert "Keys: b" in listed


@pytest.mark.asyncio
async def test_response_is_logged_with_tool_call_id():
    tool = MemoryTool(SessionMemoryStore())
    context = ToolContext(session_id="session_1", step=2, tool_call_id="call_9")

    response = await tool.execute(MemoryArgs(action="store", key="k", data="v"), context)

    assert response.type == "response"
    assert response.log_entry.tool_call_id == "call_9"
    assert response.log_entry.tool_name == "memory"
    assert response.log_entry.args == {"key": "k", "data": "v", "action": "store"}


@pytest.mark.asyncio
async def test_memory_context_lists_entries():
    store = SessionMemoryStore()
    assert await store.context() == ""

    await store.set("count", "3")

    assert await store.context() == "PERSISTENT MEMORY:\ncount: 3\n"
