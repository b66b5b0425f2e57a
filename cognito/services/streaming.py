from __future__ import annotations

from typing import Any

from cognito.models.chat import MessageTurn, ToolCall, ToolResult
from cognito.models.events import EventType, SSEEvent


def turn_started(turn: MessageTurn) -> SSEEvent:
    return SSEEvent(event=EventType.TURN_STARTED, data=turn.to_dict())


def turn_updated(turn: MessageTurn) -> SSEEvent:
    return SSEEvent(
        event=EventType.TURN_UPDATED,
        data={"id": turn.id, "content": turn.content, "status": turn.status.value},
    )


def tool_call(turn: MessageTurn, call: ToolCall) -> SSEEvent:
    return SSEEvent(
        event=EventType.TOOL_CALL,
        data={"turn_id": turn.id, "tool_call": call.to_api()},
    )


def tool_result(result: ToolResult) -> SSEEvent:
    return SSEEvent(
        event=EventType.TOOL_RESULT,
        data={
            "tool_call_id": result.tool_call_id,
            "name": result.name,
            "result": result.result,
        },
    )


def turn_finalized(turn: MessageTurn) -> SSEEvent:
    return SSEEvent(event=EventType.TURN_FINALIZED, data=turn.to_dict())


def error(message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message, **kwargs})
