from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class SearchEngine(StrEnum):
    DUCKDUCKGO = "DuckDuckGo"
    GOOGLE = "Google"
    BRAVE = "Brave"
    GOOGLE_CUSTOM_SEARCH = "GoogleCustomSearch"
    WIKIPEDIA = "Wikipedia"

    @classmethod
    def parse(cls, value: str | None) -> "SearchEngine | None":
        """Case-insensitive lookup; unknown or empty names return None."""
        if not value:
            return None
        lowered = value.strip().lower()
        for engine in cls:
            if engine.value.lower() == lowered:
                return engine
        return None


SERP_ENGINES = frozenset({SearchEngine.GOOGLE, SearchEngine.DUCKDUCKGO, SearchEngine.BRAVE})
FALLBACK_CHAIN = (SearchEngine.GOOGLE, SearchEngine.DUCKDUCKGO, SearchEngine.BRAVE)


class PageStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass(slots=True)
class SearchQuery:
    query: str
    engine: SearchEngine | None = None


@dataclass(slots=True)
class SearchResult:
    title: str
    snippet: str
    url: str
    scraped_content: str | None = None
    status: PageStatus | None = None


@dataclass(slots=True)
class WikiBlock:
    document_title: str
    section_title: str
    content: str
    url: str
    language: str = ""
    block_type: str = ""
    probability_score: float | None = None
    summary: tuple[str, ...] = ()
    last_edit_date: str | None = None
