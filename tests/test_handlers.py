from __future__ import annotations

import json
import re
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from cognito.models.schemas import ChatConfig
from cognito.models.search import SearchEngine, SearchQuery
from cognito.services.collaborator import InMemoryCollaborator, MessageType
from cognito.tools import handlers
from cognito.tools.handlers import ToolContext, default_note_title, normalize_tags, parse_search_queries
from cognito.tools.search_provider import SearchAggregator


def _context(collaborator=None, llm=None, search=None, config=None) -> ToolContext:
    return ToolContext(
        config=config or ChatConfig(),
        collaborator=collaborator or InMemoryCollaborator(),
        llm=llm or MagicMock(),
        search=search or MagicMock(),
    )


# --- note.save ---


@pytest.mark.asyncio
async def test_save_note_synthesizes_title_and_empty_tags():
    collaborator = InMemoryCollaborator()
    result = await handlers.save_note({"content": "hi"}, _context(collaborator))

    assert result.startswith("Note saved to system successfully by tool! (id: note_")
    (note,) = collaborator.notes.values()
    assert re.fullmatch(r"Note from AI - \w{3} \d{2}, \d{4}, \d{2}:\d{2} (AM|PM)", note["title"])
    assert note["tags"] == []
    assert note["content"] == "hi"


@pytest.mark.asyncio
async def test_save_note_reports_collaborator_failure():
    collaborator = MagicMock()
    collaborator.request = AsyncMock(return_value={"success": False, "error": "disk full"})

    result = await handlers.save_note({"content": "hi", "title": "T"}, _context(collaborator))

    assert result == "Failed to save note: disk full"
    message_type, payload = collaborator.request.await_args.args
    assert message_type == MessageType.SAVE_NOTE_REQUEST
    assert payload["title"] == "T"


@pytest.mark.asyncio
async def test_save_note_requires_content():
    with pytest.raises(ValueError, match="content cannot be empty"):
        await handlers.save_note({"content": "  "}, _context())


def test_normalize_tags():
    assert normalize_tags("a, b,,c ") == ["a", "b", "c"]
    assert normalize_tags(["x", " ", "y"]) == ["x", "y"]
    assert normalize_tags(None) == []
    assert normalize_tags(42) == []


def test_default_note_title_format():
    assert default_note_title(datetime(2024, 3, 5, 14, 7)) == "Note from AI - Mar 05, 2024, 02:07 PM"


# --- memory.update ---


@pytest.mark.asyncio
async def test_update_memory_appends_timestamped_entries():
    config = ChatConfig(note_content="Existing")
    ctx = _context(config=config)

    result = await handlers.update_memory({"summary": "Prefers Python"}, ctx)

    assert result == "Memory updated in popover note."
    assert config.note_content.startswith("Existing\n\nPrefers Python (on ")


@pytest.mark.asyncio
async def test_update_memory_on_empty_note():
    config = ChatConfig()
    await handlers.update_memory({"summary": "First"}, _context(config=config))
    assert config.note_content.startswith("First (on ")


# --- fetcher ---


@pytest.mark.asyncio
async def test_fetcher_returns_page_text_and_error_notes():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "broken.com":
            return httpx.Response(500)
        return httpx.Response(200, headers={"content-type": "text/html"}, text="<article>Readable text</article>")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    ctx = _context(search=SearchAggregator(client))

    assert await handlers.fetcher({"url": "https://ok.com"}, ctx) == "Readable text"
    broken = await handlers.fetcher({"url": "https://broken.com"}, ctx)
    assert broken.startswith("[Error scraping URL: https://broken.com - ")
    await client.aclose()


# --- web_search / wikipedia_search ---


def test_parse_search_queries_accepts_several_shapes():
    assert parse_search_queries({"queries": [{"query": " a ", "engine": "brave"}, "b"]}) == [
        SearchQuery("a", SearchEngine.BRAVE),
        SearchQuery("b", None),
    ]
    assert parse_search_queries({"query": "solo"}) == [SearchQuery("solo", None)]
    assert parse_search_queries({"queries": {"query": "one", "engine": "Unknown"}}) == [SearchQuery("one", None)]


@pytest.mark.parametrize("args", [{}, {"queries": []}, {"queries": [{"query": ""}]}, ["a"]])
def test_parse_search_queries_rejects_bad_input(args):
    with pytest.raises(ValueError):
        parse_search_queries(args)


@pytest.mark.asyncio
async def test_web_search_delegates_to_batch():
    search = MagicMock()
    search.batch_search = AsyncMock(return_value="joined")
    ctx = _context(search=search)

    assert await handlers.web_search({"queries": [{"query": "x"}]}, ctx) == "joined"
    queries, config = search.batch_search.await_args.args
    assert queries == [SearchQuery("x", None)]
    assert config is ctx.config


# --- retriever ---


@pytest.mark.asyncio
async def test_retriever_serializes_results():
    async def retrieve(query: str, top_k: int):
        return [{"text": f"chunk about {query}", "score": 0.5, "top_k": top_k}]

    result = await handlers.retriever({"query": "python"}, _context(InMemoryCollaborator(retriever=retrieve)))

    assert json.loads(result) == [{"text": "chunk about python", "score": 0.5, "top_k": 10}]


@pytest.mark.asyncio
async def test_retriever_without_backend_reports_error():
    result = await handlers.retriever({"query": "python"}, _context(InMemoryCollaborator()))
    assert result == "Error performing retrieval: No retriever configured"


# --- prompt_optimizer ---


@pytest.mark.asyncio
async def test_prompt_optimizer_uses_llm_and_folds_failures():
    llm = MagicMock()
    llm.complete = AsyncMock(return_value="Better prompt")
    assert await handlers.prompt_optimizer({"prompt": "make it good"}, _context(llm=llm)) == "Better prompt"
    assert 'Original prompt: "make it good"' in llm.complete.await_args.args[0]

    llm.complete.side_effect = RuntimeError("rate limited")
    assert await handlers.prompt_optimizer({"prompt": "x"}, _context(llm=llm)) == "Error optimizing prompt: rate limited"
