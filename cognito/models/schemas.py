from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from cognito.config import settings

UNLIMITED_CHAR_LIMIT = 128


# --- Per-conversation configuration ---


class ChatConfig(BaseModel):
    """User-facing chat preferences, consumed as an opaque settings object."""

    selected_model: str = Field(default_factory=lambda: settings.default_model)
    host: str = Field(default_factory=lambda: settings.default_host)
    chat_mode: Literal["chat", "web", "page"] = "chat"
    web_mode: str | None = None  # engine name; None lets the aggregator resolve it
    serp_max_links_to_visit: int = Field(default_factory=lambda: settings.serp_max_links_to_visit)
    web_limit: int = 16  # thousands of chars, 128 means unlimited
    context_limit: int = 16
    temperature: float = 0.7
    max_tokens: int = 32048
    top_p: float = 1.0
    presence_penalty: float = 0.0
    personas: dict[str, str] = Field(default_factory=dict)
    persona: str = ""
    use_note: bool = False
    note_content: str = ""
    user_name: str = ""
    user_profile: str = ""
    reader_lens: str = ""
    google_api_key: str = ""
    google_cx: str = ""
    wiki_num_blocks: int = 3
    wiki_rerank: bool = False
    wiki_num_blocks_to_rerank: int | None = None

    @property
    def model_id(self) -> str:
        """Model id as the provider expects it, without the `<host>_` prefix."""
        prefix = f"{self.host}_"
        if self.host and self.selected_model.startswith(prefix):
            return self.selected_model[len(prefix):]
        return self.selected_model

    @property
    def google_credentials(self) -> tuple[str, str]:
        return (
            self.google_api_key or settings.google_api_key,
            self.google_cx or settings.google_cx,
        )

    @property
    def web_char_limit(self) -> int | None:
        return None if self.web_limit == UNLIMITED_CHAR_LIMIT else self.web_limit * 1000

    @property
    def page_char_limit(self) -> int | None:
        return None if self.context_limit == UNLIMITED_CHAR_LIMIT else self.context_limit * 1000


# --- Requests ---


class ChatRequest(BaseModel):
    message: str
    config: ChatConfig | None = None
    retrieved_context: str = ""
    session_context: str = ""


class ToolInvokeRequest(BaseModel):
    arguments: str = "{}"
    tool_call_id: str | None = None
    config: ChatConfig | None = None


# --- Responses ---


class ToolResultResponse(BaseModel):
    tool_call_id: str
    name: str
    result: str


class TurnsResponse(BaseModel):
    conversation_id: str
    turns: list[dict[str, Any]]


class StopResponse(BaseModel):
    conversation_id: str
    stopped: bool
