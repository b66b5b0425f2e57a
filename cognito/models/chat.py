from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TurnStatus(StrEnum):
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"
    AWAITING_TOOL_RESULTS = "awaiting_tool_results"

    @property
    def is_final(self) -> bool:
        return self in (TurnStatus.COMPLETE, TurnStatus.ERROR, TurnStatus.CANCELLED)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class Conversation:
    id: str
    title: str = ""
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)


@dataclass(slots=True)
class ToolCall:
    """A tool invocation requested by the model; `arguments` is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(slots=True)
class ToolResult:
    tool_call_id: str
    name: str
    result: str


@dataclass(slots=True)
class GenerationInfo:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    tokens_per_second: float = 0.0


@dataclass(slots=True)
class MessageTurn:
    id: str
    conversation_id: str
    role: Role
    status: TurnStatus = TurnStatus.COMPLETE
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    generation: GenerationInfo | None = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        data["status"] = self.status.value
        return data

    def to_api_message(self) -> dict[str, Any]:
        """Map a stored turn onto a chat-completions message."""
        content = self.content or ""
        if self.role == Role.USER:
            return {"role": "user", "content": content}
        if self.role == Role.ASSISTANT:
            if self.tool_calls:
                return {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [tc.to_api() for tc in self.tool_calls],
                }
            return {"role": "assistant", "content": content}
        if not self.tool_call_id:
            return {
                "role": "tool",
                "tool_call_id": f"error_missing_id_for_{self.name or 'unknown_tool'}",
                "content": f"Error: Tool call ID missing. Original content: {content}",
            }
        return {"role": "tool", "tool_call_id": self.tool_call_id, "content": content}
