"""Handlers for the leaf tools.

Each handler takes parsed arguments and returns the result string. Invalid
arguments raise ValueError; the dispatcher turns any exception into an
error string.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from cognito.models.schemas import ChatConfig
from cognito.models.search import SearchEngine, SearchQuery
from cognito.services.collaborator import Collaborator, MessageType
from cognito.services.logger import logger
from cognito.services.prompt_store import render_prompt
from cognito.tools.content_extractor import extract_main_content
from cognito.tools.scraper import fetch_page
from cognito.tools.search_provider import SearchAggregator
from cognito.tools.web_utils import is_valid_url

RETRIEVER_TOP_K = 10


@dataclass
class ToolContext:
    """Everything a handler may touch during one send."""

    config: ChatConfig
    collaborator: Collaborator
    llm: Any
    search: SearchAggregator


Handler = Callable[[Any, ToolContext], Awaitable[str]]


def require_object(args: Any) -> dict[str, Any]:
    if not isinstance(args, dict):
        raise ValueError("Arguments must be a JSON object.")
    return args


def require_text(args: dict[str, Any], key: str, message: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(message)
    return value.strip()


def normalize_tags(tags: Any) -> list[str]:
    """Tags from a comma-separated string or a list; blanks dropped."""
    if isinstance(tags, str):
        items = tags.split(",")
    elif isinstance(tags, (list, tuple)):
        items = [str(tag) for tag in tags]
    else:
        return []
    return [tag.strip() for tag in items if tag.strip()]


def default_note_title(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"Note from AI - {now.strftime('%b %d, %Y, %I:%M %p')}"


async def save_note(args: Any, ctx: ToolContext) -> str:
    args = require_object(args)
    content = args.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValueError("Note content cannot be empty for saving to system.")

    title = args.get("title")
    note = {
        "title": title.strip() if isinstance(title, str) and title.strip() else default_note_title(),
        "content": content,
        "tags": normalize_tags(args.get("tags")),
    }
    if args.get("id"):
        note["id"] = args["id"]
    if args.get("url"):
        note["url"] = args["url"]

    response = await ctx.collaborator.request(MessageType.SAVE_NOTE_REQUEST, note)
    if not response.get("success"):
        return f"Failed to save note: {response.get('error') or 'Unknown error saving note.'}"
    return f"Note saved to system successfully by tool! (id: {response.get('note_id', 'unknown')})"


async def update_memory(args: Any, ctx: ToolContext) -> str:
    args = require_object(args)
    summary = require_text(args, "summary", "Memory summary cannot be empty.")
    entry = f"{summary} (on {datetime.now().strftime('%b %d, %Y')})"
    current = ctx.config.note_content or ""
    ctx.config.note_content = f"{current}\n\n{entry}" if current else entry
    return "Memory updated in popover note."


async def fetcher(args: Any, ctx: ToolContext) -> str:
    args = require_object(args)
    url = require_text(args, "url", "A valid http(s) URL is required for fetcher.")
    if not is_valid_url(url):
        raise ValueError(f"A valid http(s) URL is required for fetcher, got: {url}")
    try:
        html = await fetch_page(ctx.search.client, url)
    except TimeoutError:
        return f"[Scraping URL aborted: {url}]"
    except Exception as e:
        return f"[Error scraping URL: {url} - {e}]"
    return extract_main_content(url, html, max_chars=ctx.config.page_char_limit).text


def parse_search_queries(args: Any) -> list[SearchQuery]:
    """Accept `{"queries": [...]}` or a single `{"query", "engine"}` object."""
    args = require_object(args)
    raw = args.get("queries")
    if raw is None and "query" in args:
        raw = [args]
    if isinstance(raw, (str, dict)):
        raw = [raw]
    if not isinstance(raw, list) or not raw:
        raise ValueError('"queries" must be a non-empty array of objects, each with a non-empty "query" string.')

    queries: list[SearchQuery] = []
    for item in raw:
        if isinstance(item, str):
            item = {"query": item}
        text = item.get("query") if isinstance(item, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise ValueError('"queries" must be a non-empty array of objects, each with a non-empty "query" string.')
        queries.append(SearchQuery(query=text.strip(), engine=SearchEngine.parse(item.get("engine"))))
    return queries


async def web_search(args: Any, ctx: ToolContext) -> str:
    return await ctx.search.batch_search(parse_search_queries(args), ctx.config)


async def wikipedia_search(args: Any, ctx: ToolContext) -> str:
    args = require_object(args)
    query = require_text(args, "query", '"query" must be a non-empty string.')
    return await ctx.search.wikipedia(query, ctx.config)


async def retriever(args: Any, ctx: ToolContext) -> str:
    args = require_object(args)
    query = require_text(args, "query", "Query cannot be empty for retriever.")
    response = await ctx.collaborator.request(
        MessageType.GET_HYBRID_SEARCH_RESULTS,
        {"query": query, "top_k": args.get("top_k", RETRIEVER_TOP_K)},
    )
    if not response.get("success"):
        return f"Error performing retrieval: {response.get('error') or 'Unknown error from retriever'}"
    return json.dumps(response.get("results", []))


async def prompt_optimizer(args: Any, ctx: ToolContext) -> str:
    args = require_object(args)
    prompt = require_text(args, "prompt", "Prompt cannot be empty for prompt_optimizer.")
    try:
        return await ctx.llm.complete(
            render_prompt("prompt_optimizer.prompt", prompt=prompt),
            ctx.config,
            caller="prompt_optimizer",
        )
    except Exception as e:
        logger.warning(f"prompt_optimizer failed: {e}")
        return f"Error optimizing prompt: {e}"
