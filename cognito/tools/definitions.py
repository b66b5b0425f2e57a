from __future__ import annotations

from enum import StrEnum
from typing import Any


class ToolName(StrEnum):
    NOTE_SAVE = "note.save"
    MEMORY_UPDATE = "memory.update"
    FETCHER = "fetcher"
    WEB_SEARCH = "web_search"
    WIKIPEDIA_SEARCH = "wikipedia_search"
    RETRIEVER = "retriever"
    PROMPT_OPTIMIZER = "prompt_optimizer"
    PLANNER = "planner"
    EXECUTOR = "executor"
    SMART_DISPATCHER = "smart_dispatcher"


TOOL_ALIASES = {
    "save_note": ToolName.NOTE_SAVE,
    "update_memory": ToolName.MEMORY_UPDATE,
}

ORCHESTRATION_TOOLS = frozenset({ToolName.PLANNER, ToolName.EXECUTOR, ToolName.SMART_DISPATCHER})

# Tools a generated plan may reference; orchestration tools are excluded so
# plans never recurse into planning.
PLANNABLE_TOOLS: tuple[ToolName, ...] = tuple(t for t in ToolName if t not in ORCHESTRATION_TOOLS)


def resolve_tool_name(name: str | None) -> ToolName | None:
    """Canonical tool for a name or legacy alias; None when unknown."""
    if not name:
        return None
    name = name.strip()
    if name in TOOL_ALIASES:
        return TOOL_ALIASES[name]
    try:
        return ToolName(name)
    except ValueError:
        return None


def is_plannable(name: str | None) -> bool:
    return resolve_tool_name(name) in PLANNABLE_TOOLS


def _function(name: ToolName, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name.value,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


_ENGINE_ENUM = ["Google", "DuckDuckGo", "Brave", "GoogleCustomSearch"]

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function(
        ToolName.NOTE_SAVE,
        "Saves a new note to the user's persistent note system. Use this when the user wants to record "
        "information, decisions, or create a new structured note.",
        {
            "content": {"type": "string", "description": "The main content of the note. This is mandatory."},
            "title": {
                "type": "string",
                "description": "An optional title for the note. If not provided, a default title will be generated.",
            },
            "tags": {
                "type": "array",
                "description": "An optional list of tags (strings) to categorize the note.",
                "items": {"type": "string"},
            },
        },
        ["content"],
    ),
    _function(
        ToolName.MEMORY_UPDATE,
        "Appends a short summary or key piece of information to the user's memory note. Use this to remember "
        "user preferences, facts about the user, or important context from the conversation.",
        {"summary": {"type": "string", "description": "The concise summary to add to the memory."}},
        ["summary"],
    ),
    _function(
        ToolName.FETCHER,
        "Fetches the main textual content of a given URL. Use this to get the content of a webpage.",
        {"url": {"type": "string", "description": "The URL of the webpage to fetch and extract content from."}},
        ["url"],
    ),
    _function(
        ToolName.WEB_SEARCH,
        "Performs one or more web searches to find up-to-date information, news, or specific documents.",
        {
            "queries": {
                "type": "array",
                "description": "The searches to run concurrently.",
                "items": {
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "A concise, targeted search query."},
                        "engine": {
                            "type": "string",
                            "description": "Optional engine; other engines are tried if it fails.",
                            "enum": _ENGINE_ENUM,
                        },
                    },
                    "required": ["query"],
                },
            },
        },
        ["queries"],
    ),
    _function(
        ToolName.WIKIPEDIA_SEARCH,
        "Searches Wikipedia for factual lookups.",
        {"query": {"type": "string", "description": "The Wikipedia search query."}},
        ["query"],
    ),
    _function(
        ToolName.RETRIEVER,
        "Searches the user's saved notes and chat history for relevant passages.",
        {"query": {"type": "string", "description": "What to look for in the user's own documents."}},
        ["query"],
    ),
    _function(
        ToolName.PROMPT_OPTIMIZER,
        "Optimizes a user's prompt to be clearer and more effective for the LLM.",
        {"prompt": {"type": "string", "description": "The user prompt to be optimized."}},
        ["prompt"],
    ),
    _function(
        ToolName.PLANNER,
        "Creates a step-by-step JSON plan of tool calls that accomplishes the task.",
        {
            "task": {"type": "string", "description": "The user's task to be planned."},
            "feedback": {"type": "string", "description": "Optional feedback about a previous invalid plan."},
        },
        ["task"],
    ),
    _function(
        ToolName.EXECUTOR,
        "Executes a plan produced by the planner, step by step.",
        {
            "plan": {
                "type": "object",
                "description": 'The plan to execute: {"steps": [{"tool_name": ..., "tool_arguments": {...}}]}.',
            },
        },
        ["plan"],
    ),
    _function(
        ToolName.SMART_DISPATCHER,
        "Plans and then executes a multi-step task with the other tools, returning the final result.",
        {"task": {"type": "string", "description": "The multi-step task to accomplish."}},
        ["task"],
    ),
]
