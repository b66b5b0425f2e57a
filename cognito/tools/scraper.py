"""Fetch a single web page and reduce it to readable text."""
from __future__ import annotations

import asyncio

import httpx

from cognito.config import settings
from cognito.models.search import PageStatus
from cognito.services.logger import logger
from cognito.tools.content_extractor import extract_main_content

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class PageFetchError(Exception):
    pass


def browser_headers(**extra: str) -> dict[str, str]:
    return {"User-Agent": settings.http_user_agent, **BROWSER_HEADERS, **extra}


async def fetch_page(client: httpx.AsyncClient, url: str, *, timeout_s: float | None = None) -> str:
    """Return the raw HTML of `url` within the page-scrape deadline.

    Raises TimeoutError when the deadline passes and PageFetchError for
    non-2xx responses or non-HTML content.
    """
    async with asyncio.timeout(timeout_s if timeout_s is not None else settings.page_scrape_timeout_s):
        response = await client.get(url, headers=browser_headers(), follow_redirects=True)
        if response.status_code >= 400:
            raise PageFetchError(f"Failed to fetch {url} - Status: {response.status_code}")
        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type:
            raise PageFetchError(f"Skipping non-HTML content ({content_type or 'unknown'}) from {url}")
        return response.text


async def scrape_url(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_chars: int | None = None,
) -> tuple[str, PageStatus]:
    """Scrape one page to `(text, status)`; failures become bracketed notes."""
    try:
        html = await fetch_page(client, url)
    except TimeoutError:
        logger.warning(f"Page scrape for {url} timed out after {settings.page_scrape_timeout_s}s")
        return f"[Timeout fetching: {url}]", PageStatus.ABORTED
    except Exception as e:
        logger.warning(f"Page scrape for {url} failed: {e}")
        return f"[Error fetching/processing: {e}]", PageStatus.ERROR
    extracted = extract_main_content(url, html, max_chars=max_chars)
    return extracted.text, PageStatus.SUCCESS
