"""Context gathering and system-prompt assembly for one send."""
from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx

from cognito.models.chat import MessageTurn
from cognito.models.schemas import ChatConfig
from cognito.models.search import SearchEngine
from cognito.services.collaborator import Collaborator, MessageType
from cognito.services.logger import logger
from cognito.services.prompt_store import render_prompt
from cognito.tools.scraper import scrape_url
from cognito.tools.search_provider import SearchAggregator
from cognito.tools.web_utils import extract_urls

_THINK_RE = re.compile(r"<think>[\s\S]*?</think>")


async def scrape_message_urls(client: httpx.AsyncClient, message: str) -> str:
    """Scrape every URL in the user's message concurrently."""
    urls = extract_urls(message)
    if not urls:
        return ""
    scraped = await asyncio.gather(*(scrape_url(client, url) for url in urls))
    return "\n\n".join(f"Content from [{url}]:\n{text}" for url, (text, _status) in zip(urls, scraped))


def clean_optimized_query(text: str) -> str:
    return _THINK_RE.sub("", text).replace('"', "").replace("'", "").strip()


async def optimize_search_query(
    llm: Any,
    config: ChatConfig,
    message: str,
    history: list[MessageTurn],
) -> str:
    """Rewrite the message into a search query; the raw message on failure."""
    formatted_history = "\n".join(f"{{{{{turn.role}}}}}: {turn.content}" for turn in history)
    prompt = render_prompt("search.query_optimizer", history=formatted_history, query=message)
    try:
        optimized = clean_optimized_query(await llm.complete(prompt, config, caller="query_optimizer"))
    except Exception as e:
        logger.warning(f"Query optimization failed, using the raw message: {e}")
        return message
    return optimized or message


async def gather_web_context(
    llm: Any,
    search: SearchAggregator,
    config: ChatConfig,
    message: str,
    history: list[MessageTurn],
) -> str:
    query = await optimize_search_query(llm, config, message, history)
    logger.info(f"Web mode query: '{query[:120]}'")
    return await search.search_with_fallback(query, config, SearchEngine.parse(config.web_mode))


async def gather_page_context(collaborator: Collaborator, config: ChatConfig) -> str:
    response = await collaborator.request(MessageType.GET_PAGE_CONTENT, {})
    if not response.get("success"):
        return f"Error accessing page content: {response.get('error') or 'Unknown error'}"
    content = str(response.get("content") or "")
    limit = config.page_char_limit
    return content if limit is None else content[:limit]


def _user_context_statement(config: ChatConfig) -> str:
    name = config.user_name.strip()
    profile = config.user_profile.strip()
    if name and name.lower() != "user":
        statement = f'You are interacting with a user named "{name}".'
        if profile:
            statement += f' Their provided profile information is: "{profile}".'
        return statement
    if profile:
        return f'You are interacting with a user. Their provided profile information is: "{profile}".'
    return ""


def build_system_prompt(
    config: ChatConfig,
    *,
    page_content: str = "",
    web_content: str = "",
    scraped_content: str = "",
    retrieved_context: str = "",
    session_context: str = "",
    tool_instructions: str = "",
) -> str:
    persona = config.personas.get(config.persona, "") if config.persona else ""
    page_context = ""
    if config.chat_mode == "page" and page_content:
        lens = f"{config.reader_lens}\n\n" if config.reader_lens else ""
        page_context = f"Use the following page content for context: {lens}{page_content}"
    web_context = (
        f"Refer to this web search summary: {web_content}"
        if config.chat_mode == "web" and web_content
        else ""
    )
    note_context = (
        f"Refer to this note for context: {config.note_content}"
        if config.use_note and config.note_content
        else ""
    )

    parts = [
        persona,
        _user_context_statement(config),
        note_context,
        render_prompt("chat.user_note_instruction"),
        f"Use the following scraped content from URLs in the user's message:\n{scraped_content}" if scraped_content else "",
        page_context,
        web_context,
        retrieved_context,
        render_prompt("chat.citation_instruction") if retrieved_context.strip() else "",
        session_context,
        tool_instructions,
    ]
    return "\n\n".join(part for part in parts if part).strip()
