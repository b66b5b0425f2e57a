from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    TURN_STARTED = "turn_started"
    TURN_UPDATED = "turn_updated"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TURN_FINALIZED = "turn_finalized"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"
