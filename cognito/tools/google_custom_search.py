from __future__ import annotations

import asyncio

import httpx

from cognito.config import settings
from cognito.models.search import SearchResult

CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
MAX_RESULTS = 10


async def search(
    client: httpx.AsyncClient,
    query: str,
    *,
    api_key: str,
    cx: str,
    max_results: int = MAX_RESULTS,
) -> list[SearchResult]:
    """Query the Google Custom Search JSON API and normalize results."""
    if not api_key or not cx:
        raise RuntimeError("Google API Key or CX ID is not configured.")

    params = {
        "key": api_key,
        "cx": cx,
        "q": query,
        "num": max(1, min(max_results, MAX_RESULTS)),
    }
    try:
        async with asyncio.timeout(settings.search_timeout_s):
            response = await client.get(CUSTOM_SEARCH_URL, params=params, headers={"Accept": "application/json"})
    except TimeoutError as e:
        raise TimeoutError(f"Google Custom Search timed out after {settings.search_timeout_s:g}s") from e

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if response.status_code >= 400 or payload.get("error"):
        message = (payload.get("error") or {}).get("message") or f"API request failed with status {response.status_code}"
        raise RuntimeError(message)

    return [
        SearchResult(
            title=item.get("title", ""),
            snippet=item.get("snippet", ""),
            url=item.get("link", ""),
        )
        for item in payload.get("items") or []
        if item.get("link")
    ]
