from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

PRUNE_SELECTORS = (
    "script, style, nav, footer, header, svg, img, noscript, iframe, form, aside, "
    ".sidebar, .ad, .advertisement, .banner, .popup, .modal, .cookie-banner, "
    'link[rel="stylesheet"], button, input, select, textarea, '
    '[role="navigation"], [role="banner"], [role="contentinfo"], [aria-hidden="true"]'
)

MAIN_SELECTORS = (
    "main",
    "article",
    ".content",
    "#content",
    ".main-content",
    "#main-content",
    ".post-content",
)


@dataclass
class ExtractedContent:
    url: str
    title: str
    text: str
    method: str
    raw_length: int
    extracted_length: int


def _normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _truncate(text: str, max_chars: int | None) -> str:
    if max_chars is None or max_chars <= 0:
        return text
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def extract_main_content(
    url: str,
    raw_html: str,
    *,
    max_chars: int | None = None,
) -> ExtractedContent:
    """Extract readable page text from raw HTML.

    Boilerplate elements are removed first, then the first matching main
    content container is used, falling back to the whole body.
    """
    soup = BeautifulSoup(raw_html, "html.parser")
    title = _normalize_text(soup.title.string) if soup.title and soup.title.string else ""

    for element in soup.select(PRUNE_SELECTORS):
        element.decompose()

    method = "body"
    container = None
    for selector in MAIN_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            method = selector
            break
    if container is None:
        container = soup.body or soup

    text = _truncate(_normalize_text(container.get_text("\n")), max_chars)
    return ExtractedContent(
        url=url,
        title=title,
        text=text,
        method=method,
        raw_length=len(raw_html),
        extracted_length=len(text),
    )
