from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from cognito.config import settings
from cognito.models.schemas import ChatConfig
from cognito.models.search import PageStatus, SearchEngine, SearchQuery, SearchResult, WikiBlock
from cognito.tools import google_custom_search, search_provider, wikipedia_search
from cognito.tools.content_extractor import extract_main_content
from cognito.tools.scraper import scrape_url
from cognito.tools.search_provider import BATCH_SEPARATOR, SearchAggregator, compose_results, resolve_engines
from cognito.tools.serp_search import parse_brave, parse_duckduckgo, parse_google
from cognito.tools.web_utils import extract_urls, unwrap_redirect

DDG_HTML = """
<div class="results">
  <div class="result web-result">
    <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fpage&rut=abc">Example Page</a>
    <a class="result__snippet">An example snippet.</a>
  </div>
  <div class="result web-result"><a class="result__a">No link</a></div>
</div>
"""

GOOGLE_HTML = """
<div class="g"><a href="https://a.com"><h3>Alpha</h3></a><div class="VwiC3b"><span>Alpha snippet</span></div></div>
<div class="MjjYud"><a href="https://a.com"><h3>Alpha again</h3></a></div>
<div class="g"><a href="/search?q=related"><h3>Internal</h3></a></div>
<div class="g"><a href="https://b.com"><h3>Beta</h3></a><span>Beta fallback text</span></div>
"""

BRAVE_FALLBACK_HTML = """
<div class="organic-result">
  <a href="https://brave-result.com"><h3>Brave Result</h3></a>
  <p class="snippet-content">Found by the fallback selectors.</p>
</div>
"""

PAGE_HTML = """
<html><head><title>Article</title><script>var x = 1;</script></head>
<body><nav>Menu</nav><main><h1>Heading</h1><p>Body text here.</p></main><footer>Footer</footer></body></html>
"""


@pytest.fixture
def no_google_credentials(monkeypatch):
    monkeypatch.setattr(settings, "google_api_key", "")
    monkeypatch.setattr(settings, "google_cx", "")


def _aggregator(handler) -> SearchAggregator:
    return SearchAggregator(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# --- Parsing and URL helpers ---


def test_parse_duckduckgo_unwraps_redirects():
    results = parse_duckduckgo(DDG_HTML)
    assert len(results) == 1
    assert results[0].url == "https://example.com/page"
    assert results[0].title == "Example Page"
    assert results[0].snippet == "An example snippet."


def test_parse_google_dedupes_and_skips_internal_links():
    results = parse_google(GOOGLE_HTML)
    assert [r.url for r in results] == ["https://a.com", "https://b.com"]
    assert results[0].snippet == "Alpha snippet"
    assert results[1].snippet == "Beta fallback text"


def test_parse_brave_falls_back_to_organic_results():
    results = parse_brave(BRAVE_FALLBACK_HTML)
    assert len(results) == 1
    assert results[0].url == "https://brave-result.com"
    assert results[0].snippet == "Found by the fallback selectors."


def test_url_helpers():
    assert extract_urls("see https://a.com/x. and (https://b.com) or https://a.com/x") == [
        "https://a.com/x",
        "https://b.com",
    ]
    assert unwrap_redirect("https://plain.com") == "https://plain.com"


def test_extract_main_content_prefers_main_and_prunes():
    extracted = extract_main_content("https://a.com", PAGE_HTML)
    assert extracted.method == "main"
    assert extracted.title == "Article"
    assert "Body text here." in extracted.text
    assert "Menu" not in extracted.text
    assert "var x" not in extracted.text


def test_extract_main_content_truncates():
    extracted = extract_main_content("https://a.com", "<body><p>" + "x" * 50 + "</p></body>", max_chars=10)
    assert extracted.method == "body"
    assert extracted.text == "x" * 10 + "..."


# --- Engine resolution and composition ---


def test_resolve_engines_orders_specified_engine_first(no_google_credentials):
    config = ChatConfig()
    assert resolve_engines(SearchEngine.BRAVE, config) == [
        SearchEngine.BRAVE,
        SearchEngine.GOOGLE,
        SearchEngine.DUCKDUCKGO,
    ]
    assert resolve_engines(None, config) == [SearchEngine.GOOGLE, SearchEngine.DUCKDUCKGO, SearchEngine.BRAVE]
    assert resolve_engines(SearchEngine.WIKIPEDIA, config) == [SearchEngine.WIKIPEDIA]


def test_resolve_engines_prefers_custom_search_with_credentials():
    config = ChatConfig(google_api_key="key", google_cx="cx")
    assert resolve_engines(None, config)[0] == SearchEngine.GOOGLE_CUSTOM_SEARCH


def test_compose_results_notes_unvisited_links():
    results = [
        SearchResult(title="One", snippet="s1", url="https://1.com", scraped_content="page one"),
        SearchResult(title="Two", snippet="", url="https://2.com"),
    ]
    text = compose_results("q", SearchEngine.GOOGLE, results, visited=1)
    assert text.startswith('Search results for "q" using Google:')
    assert "Content:\npage one" in text
    assert "Snippet: [No Snippet]" in text
    assert "Content: [Not fetched due to link limit]" in text


# --- Fetching ---


@pytest.mark.asyncio
async def test_scrape_url_reports_errors_as_text():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "pdf.com":
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")
        if request.url.host == "missing.com":
            return httpx.Response(404)
        return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE_HTML)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        text, status = await scrape_url(client, "https://ok.com")
        assert status == PageStatus.SUCCESS
        assert "Body text here." in text

        text, status = await scrape_url(client, "https://pdf.com")
        assert status == PageStatus.ERROR
        assert text.startswith("[Error fetching/processing: Skipping non-HTML content")

        text, status = await scrape_url(client, "https://missing.com")
        assert status == PageStatus.ERROR
        assert "404" in text


@pytest.mark.asyncio
async def test_search_engine_scrapes_top_results(no_google_credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "html.duckduckgo.com":
            return httpx.Response(200, text=DDG_HTML)
        return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE_HTML)

    aggregator = _aggregator(handler)
    text = await aggregator.search_engine(SearchEngine.DUCKDUCKGO, "example", ChatConfig())

    assert "[Result 1: Example Page]" in text
    assert "Body text here." in text
    await aggregator.client.aclose()


@pytest.mark.asyncio
async def test_search_with_fallback_moves_to_next_engine(no_google_credentials, monkeypatch):
    monkeypatch.setattr(settings, "serp_max_links_to_visit", 0)
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        if request.url.host == "www.google.com":
            return httpx.Response(429)
        return httpx.Response(200, text=DDG_HTML)

    aggregator = _aggregator(handler)
    text = await aggregator.search_with_fallback("example", ChatConfig())

    assert text.startswith('Results for "example" (using DuckDuckGo):')
    assert requested == ["www.google.com", "www.google.com", "html.duckduckgo.com"]
    await aggregator.client.aclose()


@pytest.mark.asyncio
async def test_search_with_fallback_returns_error_when_exhausted(no_google_credentials):
    aggregator = _aggregator(lambda request: httpx.Response(503))
    text = await aggregator.search_with_fallback("nothing", ChatConfig())

    assert text.startswith('Error performing web search for "nothing":')
    assert "Brave" in text
    await aggregator.client.aclose()


@pytest.mark.asyncio
async def test_batch_search_isolates_failing_queries(monkeypatch):
    async def fake_search_engine(self, engine, query, config):
        if query == "a":
            raise RuntimeError("engine down")
        return f"results for {query}"

    monkeypatch.setattr(SearchAggregator, "search_engine", fake_search_engine)
    aggregator = SearchAggregator()

    text = await aggregator.batch_search([SearchQuery("a"), SearchQuery("b")], ChatConfig())
    sections = text.split(BATCH_SEPARATOR)

    assert len(sections) == 2
    assert sections[0] == 'Error performing web search for "a": engine down'
    assert sections[1].startswith('Results for "b" (using')
    assert sections[1].endswith("results for b")


@pytest.mark.asyncio
async def test_scrape_url_times_out_as_aborted(monkeypatch):
    monkeypatch.setattr(settings, "page_scrape_timeout_s", 0.05)

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE_HTML)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        text, status = await scrape_url(client, "https://slow.com")

    assert status == PageStatus.ABORTED
    assert text == "[Timeout fetching: https://slow.com]"


@pytest.mark.asyncio
async def test_engine_timeout_falls_through_to_next_engine(no_google_credentials, monkeypatch):
    monkeypatch.setattr(settings, "search_timeout_s", 0.05)
    monkeypatch.setattr(settings, "serp_max_links_to_visit", 0)
    attempt_log = MagicMock()
    monkeypatch.setattr(search_provider, "log_search_attempt", attempt_log)

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.google.com":
            await asyncio.sleep(5)
        return httpx.Response(200, text=DDG_HTML)

    aggregator = _aggregator(handler)
    text = await aggregator.search_with_fallback("example", ChatConfig())
    await aggregator.client.aclose()

    assert text.startswith('Results for "example" (using DuckDuckGo):')
    failures = [c.args for c in attempt_log.call_args_list if c.args[3] == "error"]
    assert [(engine, attempt) for _q, engine, attempt, _s, _e in failures] == [("Google", 1), ("Google", 2)]
    assert failures[0][4] == "Google search timed out after 0.05s"


@pytest.mark.asyncio
async def test_success_logs_the_attempt_that_succeeded(no_google_credentials, monkeypatch):
    monkeypatch.setattr(settings, "serp_max_links_to_visit", 0)
    attempt_log = MagicMock()
    monkeypatch.setattr(search_provider, "log_search_attempt", attempt_log)
    google_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        google_calls.append(request.url.host)
        if len(google_calls) == 1:
            return httpx.Response(429)
        return httpx.Response(200, text=GOOGLE_HTML)

    aggregator = _aggregator(handler)
    text = await aggregator.search_with_fallback("example", ChatConfig())
    await aggregator.client.aclose()

    assert text.startswith('Results for "example" (using Google):')
    assert attempt_log.call_args_list[-1].args == ("example", "Google", 2, "success")


@pytest.mark.asyncio
async def test_cancelling_batch_search_cancels_every_fetch(no_google_credentials):
    started: list[str] = []
    cancelled: list[str] = []

    async def hang(label: str) -> None:
        started.append(label)
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(label)
            raise

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "html.duckduckgo.com":
            if request.url.params["q"] == "stuck engine":
                await hang("engine")
            return httpx.Response(200, text=DDG_HTML)
        await hang("page")
        return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE_HTML)

    aggregator = _aggregator(handler)
    queries = [
        SearchQuery("stuck engine", SearchEngine.DUCKDUCKGO),
        SearchQuery("stuck page", SearchEngine.DUCKDUCKGO),
    ]
    task = asyncio.create_task(aggregator.batch_search(queries, ChatConfig()))
    for _ in range(500):
        if len(started) == 2:
            break
        await asyncio.sleep(0.01)
    assert sorted(started) == ["engine", "page"]

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await aggregator.client.aclose()

    assert sorted(cancelled) == ["engine", "page"]


# --- API engines ---


@pytest.mark.asyncio
async def test_google_custom_search_requires_credentials():
    async with httpx.AsyncClient() as client:
        with pytest.raises(RuntimeError, match="not configured"):
            await google_custom_search.search(client, "q", api_key="", cx="")


@pytest.mark.asyncio
async def test_google_custom_search_caps_num_and_surfaces_api_errors():
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        if request.url.params["q"] == "bad":
            return httpx.Response(403, json={"error": {"message": "Daily limit exceeded"}})
        return httpx.Response(200, json={"items": [{"title": "T", "snippet": "S", "link": "https://t.com"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await google_custom_search.search(client, "good", api_key="k", cx="c", max_results=50)
        assert seen["num"] == "10"
        assert results == [SearchResult(title="T", snippet="S", url="https://t.com")]

        with pytest.raises(RuntimeError, match="Daily limit exceeded"):
            await google_custom_search.search(client, "bad", api_key="k", cx="c")


@pytest.mark.asyncio
async def test_wikipedia_search_and_format():
    payload = [
        {
            "results": [
                {
                    "document_title": "Ada Lovelace",
                    "section_title": "Early life",
                    "content": "Born in London.",
                    "url": "https://en.wikipedia.org/wiki/Ada_Lovelace",
                    "language": "en",
                    "block_type": "text",
                    "probability_score": 0.91234,
                    "last_edit_date": "2025-01-02T10:00:00Z",
                }
            ]
        }
    ]

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=payload))) as client:
        blocks = await wikipedia_search.search(client, "Ada")

    text = wikipedia_search.format_blocks("Ada", blocks)
    assert text.startswith('Wikipedia search results for "Ada":')
    assert "[Wiki Result 1: Ada Lovelace - Early life]" in text
    assert "Content: Born in London." in text
    assert "Language: en, Type: text, Score: 0.912" in text
    assert "Last Edited: 2025-01-02" in text


def test_wikipedia_format_summary_and_empty():
    block = WikiBlock(document_title="T", section_title="", content="", url="", summary=("one", "two"))
    text = wikipedia_search.format_blocks("q", [block])
    assert "Summary:\n  - one\n  - two" in text
    assert "URL: N/A" in text
    assert wikipedia_search.format_blocks("q", []) == 'No Wikipedia results found for "q".'
