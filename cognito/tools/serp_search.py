"""HTML results-page scraping for DuckDuckGo, Google and Brave."""
from __future__ import annotations

import asyncio
import re
from typing import Callable
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup

from cognito.config import settings
from cognito.models.search import SearchEngine, SearchResult
from cognito.services.logger import logger
from cognito.tools.scraper import browser_headers
from cognito.tools.web_utils import is_valid_url, unwrap_redirect

SERP_URLS = {
    SearchEngine.DUCKDUCKGO: "https://html.duckduckgo.com/html/?q={query}",
    SearchEngine.GOOGLE: "https://www.google.com/search?q={query}&hl=en&gl=us",
    SearchEngine.BRAVE: "https://search.brave.com/search?q={query}",
}

SERP_REFERERS = {
    SearchEngine.GOOGLE: "https://www.google.com/",
    SearchEngine.BRAVE: "https://search.brave.com/",
}

GOOGLE_SNIPPET_SELECTORS = (
    'div[style="-webkit-line-clamp:2"], div[data-sncf="1"], .VwiC3b span, .MUxGbd span'
)


def _text(element) -> str:
    if element is None:
        return ""
    return re.sub(r"\s+", " ", element.get_text(" ")).strip()


def parse_duckduckgo(html: str) -> list[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    for block in soup.select(".web-result"):
        link = block.select_one(".result__a")
        title = _text(link)
        url = unwrap_redirect(link.get("href", "")) if link is not None else ""
        if title and url:
            results.append(SearchResult(title=title, snippet=_text(block.select_one(".result__snippet")), url=url))
    return results


def parse_google(html: str) -> list[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    seen: set[str] = set()
    for block in soup.select("div.g, div.MjjYud, div.hlcw0c"):
        link = block.select_one("a[href]")
        url = link.get("href", "") if link is not None else ""
        title = _text(block.select_one("h3"))
        if not title or not is_valid_url(url) or url in seen:
            continue
        snippet_parts = [_text(el) for el in block.select(GOOGLE_SNIPPET_SELECTORS)]
        snippet = " ".join(part for part in snippet_parts if part)
        if not snippet:
            container_text = _text(block)
            index = container_text.find(title)
            if index != -1:
                snippet = container_text[index + len(title):].strip()[:300]
        seen.add(url)
        results.append(SearchResult(title=title, snippet=snippet, url=url))
    return results


def parse_brave(html: str) -> list[SearchResult]:
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []
    for block in soup.select('#results .snippet[data-type="web"]'):
        link = block.select_one("a[href]")
        url = link.get("href", "") if link is not None else ""
        title = _text(link.select_one(".title")) if link is not None else ""
        if title and is_valid_url(url):
            results.append(SearchResult(title=title, snippet=_text(block.select_one(".snippet-description")), url=url))
    if results:
        return results

    for block in soup.select(".organic-result"):
        link = block.select_one("a[href]")
        url = link.get("href", "") if link is not None else ""
        title = _text(block.select_one("h3"))
        if title and is_valid_url(url):
            results.append(SearchResult(title=title, snippet=_text(block.select_one(".snippet-content")), url=url))
    return results


PARSERS: dict[SearchEngine, Callable[[str], list[SearchResult]]] = {
    SearchEngine.DUCKDUCKGO: parse_duckduckgo,
    SearchEngine.GOOGLE: parse_google,
    SearchEngine.BRAVE: parse_brave,
}


async def search(client: httpx.AsyncClient, engine: SearchEngine, query: str) -> list[SearchResult]:
    """Fetch and parse one results page. Raises on transport errors and timeouts."""
    if engine not in SERP_URLS:
        raise ValueError(f"Not a results-page engine: {engine}")

    url = SERP_URLS[engine].format(query=quote_plus(query))
    headers = browser_headers()
    if engine in SERP_REFERERS:
        headers["Referer"] = SERP_REFERERS[engine]

    try:
        async with asyncio.timeout(settings.search_timeout_s):
            response = await client.get(url, headers=headers, follow_redirects=True)
    except TimeoutError as e:
        raise TimeoutError(f"{engine} search timed out after {settings.search_timeout_s:g}s") from e
    if response.status_code >= 400:
        raise RuntimeError(f"Web search failed ({engine}) with status: {response.status_code}")

    results = PARSERS[engine](response.text)
    logger.info(f"[{engine}] Parsed {len(results)} results for '{query[:80]}'")
    return results
