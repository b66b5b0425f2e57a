"""Multi-engine web search with fallback, retry and page scraping."""
from __future__ import annotations

import asyncio
from collections import Counter
from typing import Iterable

import httpx

from cognito.config import settings
from cognito.models.schemas import ChatConfig
from cognito.models.search import (
    FALLBACK_CHAIN,
    SERP_ENGINES,
    SearchEngine,
    SearchQuery,
    SearchResult,
)
from cognito.services.logger import log_search_attempt, logger
from cognito.services.retry import AttemptFailure, FallbackExhaustedError, RetryPolicy, run_with_fallback
from cognito.tools import google_custom_search, serp_search, wikipedia_search
from cognito.tools.scraper import scrape_url

BATCH_SEPARATOR = "\n\n---\n\n"


def compose_results(query: str, engine: SearchEngine, results: list[SearchResult], visited: int) -> str:
    """One text block per query: every result, with page content for the visited ones."""
    lines = [f'Search results for "{query}" using {engine}:', ""]
    for index, result in enumerate(results):
        lines.append(f"[Result {index + 1}: {result.title}]")
        lines.append(f"URL: {result.url or '[No URL Found]'}")
        lines.append(f"Snippet: {result.snippet or '[No Snippet]'}")
        if index < visited:
            lines.append(f"Content:\n{result.scraped_content or ''}")
        else:
            lines.append("Content: [Not fetched due to link limit]")
        lines.append("")
    return "\n".join(lines).strip()


def resolve_engines(engine: SearchEngine | None, config: ChatConfig) -> list[SearchEngine]:
    """Order in which engines are tried for one query."""
    if engine == SearchEngine.WIKIPEDIA:
        return [SearchEngine.WIKIPEDIA]
    ordered: list[SearchEngine] = []
    if engine is not None:
        ordered.append(engine)
    else:
        api_key, cx = config.google_credentials
        if api_key and cx:
            ordered.append(SearchEngine.GOOGLE_CUSTOM_SEARCH)
    for fallback in FALLBACK_CHAIN:
        if fallback not in ordered:
            ordered.append(fallback)
    return ordered


class SearchAggregator:
    """Resolves queries against the configured engines.

    Every outbound request runs under its own deadline inside the caller's
    task, so cancelling the caller cancels all outstanding fetches.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.search_timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _visit(self, results: list[SearchResult], config: ChatConfig) -> int:
        to_visit = [r for r in results[: max(config.serp_max_links_to_visit, 0)] if r.url]
        scraped = await asyncio.gather(
            *(scrape_url(self.client, r.url, max_chars=config.web_char_limit) for r in to_visit)
        )
        for result, (content, status) in zip(to_visit, scraped):
            result.scraped_content = content
            result.status = status
        return len(to_visit)

    async def search_engine(self, engine: SearchEngine, query: str, config: ChatConfig) -> str:
        """Run one query on one engine. Raises when the engine fails."""
        if engine == SearchEngine.WIKIPEDIA:
            blocks = await wikipedia_search.search(
                self.client,
                query,
                num_blocks=config.wiki_num_blocks,
                rerank=config.wiki_rerank,
                num_blocks_to_rerank=config.wiki_num_blocks_to_rerank,
            )
            return wikipedia_search.format_blocks(query, blocks)

        if engine == SearchEngine.GOOGLE_CUSTOM_SEARCH:
            api_key, cx = config.google_credentials
            results = await google_custom_search.search(
                self.client,
                query,
                api_key=api_key,
                cx=cx,
                max_results=config.serp_max_links_to_visit,
            )
            if not results:
                return f'No Google Custom Search results found for "{query}".'
        elif engine in SERP_ENGINES:
            results = await serp_search.search(self.client, engine, query)
            if not results:
                return "No results found."
        else:
            raise ValueError(f"Unsupported search engine: {engine}")

        visited = await self._visit(results, config)
        return compose_results(query, engine, results, visited)

    async def search_with_fallback(
        self,
        query: str,
        config: ChatConfig,
        engine: SearchEngine | None = None,
    ) -> str:
        """Search one query, falling back across engines. Never raises on failure."""
        policy = RetryPolicy.of(
            resolve_engines(engine, config),
            attempts_per_item=settings.search_attempts_per_engine,
        )

        failed_attempts: Counter[SearchEngine] = Counter()

        def on_failure(failure: AttemptFailure) -> None:
            failed_attempts[failure.item] += 1
            log_search_attempt(query, str(failure.item), failure.attempt, "error", str(failure.error))

        try:
            used, text = await run_with_fallback(
                policy,
                lambda candidate: self.search_engine(candidate, query, config),
                on_failure=on_failure,
            )
        except FallbackExhaustedError as e:
            logger.error(f"All engines failed for '{query[:80]}': {e}")
            if engine == SearchEngine.WIKIPEDIA:
                return f"Error performing Wikipedia search: {e}"
            return f'Error performing web search for "{query}": {e}'

        log_search_attempt(query, str(used), failed_attempts[used] + 1, "success")
        return f'Results for "{query}" (using {used}):\n{text}'

    async def batch_search(self, queries: Iterable[SearchQuery], config: ChatConfig) -> str:
        """Search every query concurrently; always yields one section per query."""
        queries = list(queries)
        sections = await asyncio.gather(
            *(self.search_with_fallback(q.query, config, q.engine) for q in queries),
            return_exceptions=True,
        )
        joined: list[str] = []
        for query, section in zip(queries, sections):
            if isinstance(section, asyncio.CancelledError):
                raise section
            if isinstance(section, BaseException):
                section = f'Error performing web search for "{query.query}": {section}'
            joined.append(section)
        return BATCH_SEPARATOR.join(joined)

    async def wikipedia(self, query: str, config: ChatConfig) -> str:
        return await self.search_with_fallback(query, config, SearchEngine.WIKIPEDIA)
