from __future__ import annotations

import re
from urllib.parse import parse_qs, urljoin, urlparse

_URL_RE = re.compile(r"https?://[^\s<>\"'`]+")
_TRAILING_PUNCT = ".,;:!?)]}"


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def extract_urls(text: str) -> list[str]:
    """Unique http(s) URLs in `text`, in order of appearance."""
    urls: list[str] = []
    for match in _URL_RE.findall(text or ""):
        url = match.rstrip(_TRAILING_PUNCT)
        if is_valid_url(url) and url not in urls:
            urls.append(url)
    return urls


def unwrap_redirect(href: str, base: str = "https://duckduckgo.com", param: str = "uddg") -> str:
    """Return the target of a redirect link such as DuckDuckGo's `/l/?uddg=...`."""
    try:
        absolute = urljoin(base, href)
        target = parse_qs(urlparse(absolute).query).get(param)
    except ValueError:
        return href
    return target[0] if target else href
