"""Tolerant JSON extraction for model output.

Models wrap JSON in prose, markdown fences or use JavaScript-style object
literals. `extract_json` tries a fixed sequence of strategies and returns the
first successful parse.
"""
from __future__ import annotations

import json
import re
import uuid
from typing import Any, Callable

from cognito.models.chat import ToolCall

_JSON_FENCE_RE = re.compile(r"```json\s*\n?([\s\S]*?)\n?\s*```", re.IGNORECASE)
_GENERIC_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*\s*\n?([\s\S]*?)\n?\s*```")
_TOOL_CALL_TAG_RE = re.compile(r"<tool_call>([\s\S]*?)</tool_call>")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w.$-]*)\s*:")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

_MISSING = object()


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return _MISSING


def _direct(text: str) -> Any:
    return _loads(text.strip())


def _json_fence(text: str) -> Any:
    match = _JSON_FENCE_RE.search(text)
    return _loads(match.group(1).strip()) if match else _MISSING


def _generic_fence(text: str) -> Any:
    for match in _GENERIC_FENCE_RE.finditer(text):
        parsed = _loads(match.group(1).strip())
        if parsed is not _MISSING:
            return parsed
    return _MISSING


def _tool_call_tag(text: str) -> Any:
    match = _TOOL_CALL_TAG_RE.search(text)
    return _loads(match.group(1).strip()) if match else _MISSING


def _repair_object_literal(candidate: str) -> str:
    repaired = candidate.replace("'", '"')
    repaired = _BARE_KEY_RE.sub(r'\1"\2":', repaired)
    return _TRAILING_COMMA_RE.sub(r"\1", repaired)


def _brace_substring(text: str) -> Any:
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return _MISSING
    candidate = text[start : end + 1]
    parsed = _loads(candidate)
    if parsed is not _MISSING:
        return parsed
    return _loads(_repair_object_literal(candidate))


STRATEGIES: tuple[Callable[[str], Any], ...] = (
    _direct,
    _json_fence,
    _generic_fence,
    _tool_call_tag,
    _brace_substring,
)


def extract_json(text: str | None) -> Any | None:
    """Return the first value any strategy can parse, or None."""
    if not text or not text.strip():
        return None
    for strategy in STRATEGIES:
        parsed = strategy(text)
        if parsed is not _MISSING:
            return parsed
    return None


def parse_tool_arguments(raw_arguments: str | dict[str, Any] | None) -> Any:
    """Parse raw tool-argument text, unwrapping a full tool-call envelope.

    Raises ValueError when no strategy yields JSON.
    """
    if isinstance(raw_arguments, dict):
        parsed: Any = raw_arguments
    else:
        parsed = extract_json(raw_arguments or "")
    if parsed is None:
        raise ValueError("Failed to parse arguments string as JSON after multiple attempts.")
    if isinstance(parsed, dict):
        if "tool_arguments" in parsed:
            return parsed["tool_arguments"]
        if "arguments" in parsed and "name" in parsed:
            return parsed["arguments"]
    return parsed


def detect_tool_call(text: str | None) -> ToolCall | None:
    """Interpret completed model text as a tool call, if it is one.

    Accepts `{"tool_name", "tool_arguments"}` or `{"name", "arguments"}` where
    the arguments are a JSON object. Anything else is a normal answer.
    """
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        return None

    for name_key, args_key in (("tool_name", "tool_arguments"), ("name", "arguments")):
        name = parsed.get(name_key)
        arguments = parsed.get(args_key)
        if isinstance(name, str) and name.strip() and isinstance(arguments, dict):
            return ToolCall(
                id=f"call_{uuid.uuid4().hex[:12]}",
                name=name.strip(),
                arguments=json.dumps(arguments),
            )
    return None
