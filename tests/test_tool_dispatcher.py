from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from cognito.models.schemas import ChatConfig
from cognito.services.collaborator import InMemoryCollaborator, MessageType
from cognito.tools.definitions import TOOL_DEFINITIONS, ToolName, is_plannable, resolve_tool_name
from cognito.tools.dispatcher import ToolDispatcher


@pytest.fixture
def collaborator():
    return InMemoryCollaborator()


@pytest.fixture
def llm():
    mock = MagicMock()
    mock.complete = AsyncMock(return_value="optimized")
    return mock


@pytest.fixture
def search():
    mock = MagicMock()
    mock.batch_search = AsyncMock(return_value="batch results")
    mock.wikipedia = AsyncMock(return_value="wiki results")
    return mock


@pytest.fixture
def dispatcher(collaborator, llm, search):
    return ToolDispatcher(ChatConfig(), collaborator, llm, search)


def test_every_tool_has_a_definition():
    names = {definition["function"]["name"] for definition in TOOL_DEFINITIONS}
    assert names == {tool.value for tool in ToolName}


def test_resolve_tool_name_handles_aliases():
    assert resolve_tool_name("save_note") == ToolName.NOTE_SAVE
    assert resolve_tool_name(" fetcher ") == ToolName.FETCHER
    assert resolve_tool_name("nope") is None
    assert not is_plannable("executor")


@pytest.mark.asyncio
async def test_unknown_tool(dispatcher):
    result = await dispatcher.dispatch("teleport", "{}", "call_1")
    assert result.tool_call_id == "call_1"
    assert result.name == "teleport"
    assert result.result == "Error: Unknown tool 'teleport'"


@pytest.mark.asyncio
async def test_unparseable_arguments(dispatcher):
    result = await dispatcher.dispatch("fetcher", "definitely not json")
    assert result.result.startswith("Error: Could not parse arguments for tool fetcher.")
    assert "Raw arguments: definitely not json" in result.result
    assert result.tool_call_id.startswith("call_")


@pytest.mark.asyncio
async def test_handler_errors_become_strings(dispatcher):
    result = await dispatcher.dispatch("fetcher", '{"url": "ftp://example.com"}')
    assert result.result.startswith("Error executing tool fetcher:")


@pytest.mark.asyncio
async def test_alias_routes_to_note_save(dispatcher, collaborator):
    result = await dispatcher.dispatch("save_note", '{"content": "remember this", "tags": "a, b"}')

    assert result.result.startswith("Note saved to system successfully by tool!")
    message_type, payload = collaborator.requests[-1]
    assert message_type == MessageType.SAVE_NOTE_REQUEST
    assert payload["tags"] == ["a", "b"]


@pytest.mark.asyncio
async def test_arguments_may_arrive_as_tool_call_envelope(dispatcher, search):
    raw = json.dumps({"tool_name": "wikipedia_search", "tool_arguments": {"query": "Ada Lovelace"}})
    result = await dispatcher.dispatch("wikipedia_search", raw)
    assert result.result == "wiki results"
    search.wikipedia.assert_awaited_once()
    assert search.wikipedia.await_args.args[0] == "Ada Lovelace"


@pytest.mark.asyncio
async def test_planner_tool_returns_raw_draft(dispatcher, llm):
    llm.complete.return_value = '{"steps": []}'
    result = await dispatcher.dispatch("planner", '{"task": "plan a trip"}')
    assert result.result == '{"steps": []}'
    assert llm.complete.await_args.kwargs["caller"] == "planner"


@pytest.mark.asyncio
async def test_executor_tool_runs_plan_through_dispatch(dispatcher, search):
    plan = {"steps": [{"tool_name": "web_search", "tool_arguments": {"queries": [{"query": "x"}]}}]}
    result = await dispatcher.dispatch("executor", json.dumps({"plan": plan}))
    assert result.result == "batch results"


@pytest.mark.asyncio
async def test_executor_tool_rejects_malformed_plan(dispatcher):
    result = await dispatcher.dispatch("executor", '{"plan": {"stages": []}}')
    assert result.result.startswith("Error: Invalid plan format.")


@pytest.mark.asyncio
async def test_smart_dispatcher_tool_end_to_end(dispatcher, llm, search):
    llm.complete.return_value = json.dumps(
        {"steps": [{"tool_name": "wikipedia_search", "tool_arguments": {"query": "Turing"}}]}
    )
    result = await dispatcher.dispatch("smart_dispatcher", '{"task": "who was Turing"}')
    assert result.result == "wiki results"


@pytest.mark.asyncio
async def test_cancellation_passes_through(dispatcher, search):
    search.batch_search.side_effect = asyncio.CancelledError()
    with pytest.raises(asyncio.CancelledError):
        await dispatcher.dispatch("web_search", '{"queries": [{"query": "x"}]}')
