from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import httpx

from cognito.config import settings
from cognito.models.search import WikiBlock

CONTENT_PREVIEW_CHARS = 700


def _to_block(item: dict[str, Any]) -> WikiBlock:
    return WikiBlock(
        document_title=item.get("document_title", ""),
        section_title=item.get("section_title", ""),
        content=item.get("content", "") or "",
        url=item.get("url") or "",
        language=item.get("language", ""),
        block_type=item.get("block_type", ""),
        probability_score=item.get("probability_score"),
        summary=tuple(item.get("summary") or ()),
        last_edit_date=item.get("last_edit_date"),
    )


async def search(
    client: httpx.AsyncClient,
    query: str,
    *,
    num_blocks: int = 3,
    rerank: bool = False,
    num_blocks_to_rerank: int | None = None,
) -> list[WikiBlock]:
    body: dict[str, Any] = {"query": [query], "num_blocks": num_blocks}
    if rerank:
        body["rerank"] = True
        body["num_blocks_to_rerank"] = num_blocks_to_rerank or max(num_blocks, 10)

    try:
        async with asyncio.timeout(settings.search_timeout_s):
            response = await client.post(settings.wikipedia_api_url, json=body)
    except TimeoutError as e:
        raise TimeoutError(f"Wikipedia search timed out after {settings.search_timeout_s:g}s") from e
    if response.status_code >= 400:
        raise RuntimeError(f"Wikipedia API request failed with status {response.status_code}: {response.text[:300]}")

    payload = response.json()
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
        raise RuntimeError("Unexpected Wikipedia API response")
    return [_to_block(item) for item in payload[0].get("results") or []]


def format_blocks(query: str, blocks: list[WikiBlock]) -> str:
    if not blocks:
        return f'No Wikipedia results found for "{query}".'

    lines = [f'Wikipedia search results for "{query}":', ""]
    for index, block in enumerate(blocks, start=1):
        heading = block.document_title
        if block.section_title:
            heading += f" - {block.section_title}"
        lines.append(f"[Wiki Result {index}: {heading}]")
        if block.summary:
            lines.append("Summary:")
            lines.extend(f"  - {item}" for item in block.summary)
        else:
            preview = block.content[:CONTENT_PREVIEW_CHARS]
            suffix = "..." if len(block.content) > CONTENT_PREVIEW_CHARS else ""
            lines.append(f"Content: {preview}{suffix}")
        lines.append(f"URL: {block.url or 'N/A'}")
        score = f"{block.probability_score:.3f}" if block.probability_score is not None else "N/A"
        lines.append(f"Language: {block.language}, Type: {block.block_type}, Score: {score}")
        if block.last_edit_date:
            try:
                edited = datetime.fromisoformat(block.last_edit_date.replace("Z", "+00:00"))
                lines.append(f"Last Edited: {edited.date().isoformat()}")
            except ValueError:
                pass
        lines.append("")
    return "\n".join(lines).strip()
