"""Request/response boundary to storage, retrieval and the host page.

Every request returns a dict with a boolean `success` key. Callers turn a
failed response into a result string; nothing here raises for a failed
request.
"""
from __future__ import annotations

import uuid
from dataclasses import replace
from enum import StrEnum
from typing import Any, Awaitable, Callable, Protocol

from cognito.models.chat import Conversation, MessageTurn, now_ms
from cognito.services.logger import logger


class MessageType(StrEnum):
    SAVE_CHAT_REQUEST = "SAVE_CHAT_REQUEST"
    DELETE_CHAT_MESSAGE_REQUEST = "DELETE_CHAT_MESSAGE_REQUEST"
    SAVE_NOTE_REQUEST = "SAVE_NOTE_REQUEST"
    GET_HYBRID_SEARCH_RESULTS = "GET_HYBRID_SEARCH_RESULTS"
    GET_PAGE_CONTENT = "GET_PAGE_CONTENT"


class Collaborator(Protocol):
    async def request(self, message_type: MessageType, payload: dict[str, Any]) -> dict[str, Any]:
        ...


Retriever = Callable[[str, int], Awaitable[list[dict[str, Any]]]]


class InMemoryCollaborator:
    """Process-local collaborator used by the CLI, the HTTP app and tests."""

    def __init__(
        self,
        retriever: Retriever | None = None,
        page_content: str = "",
    ):
        self.conversations: dict[str, Conversation] = {}
        self.turns: dict[str, list[MessageTurn]] = {}
        self.notes: dict[str, dict[str, Any]] = {}
        self.retriever = retriever
        self.page_content = page_content
        self.requests: list[tuple[MessageType, dict[str, Any]]] = []

    async def request(self, message_type: MessageType, payload: dict[str, Any]) -> dict[str, Any]:
        self.requests.append((message_type, payload))
        handler = {
            MessageType.SAVE_CHAT_REQUEST: self._save_chat,
            MessageType.DELETE_CHAT_MESSAGE_REQUEST: self._delete_message,
            MessageType.SAVE_NOTE_REQUEST: self._save_note,
            MessageType.GET_HYBRID_SEARCH_RESULTS: self._hybrid_search,
            MessageType.GET_PAGE_CONTENT: self._page_content,
        }.get(message_type)
        if handler is None:
            return {"success": False, "error": f"Unsupported message type: {message_type}"}
        try:
            return await handler(payload)
        except Exception as e:
            logger.warning(f"Collaborator request {message_type} failed: {e}")
            return {"success": False, "error": str(e)}

    def get_turns(self, conversation_id: str) -> list[MessageTurn]:
        return list(self.turns.get(conversation_id, []))

    async def _save_chat(self, payload: dict[str, Any]) -> dict[str, Any]:
        conversation_id = payload.get("conversation_id") or f"chat_{uuid.uuid4().hex[:12]}"
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(id=conversation_id, title=payload.get("title", ""))
            self.conversations[conversation_id] = conversation
        conversation.updated_at = now_ms()

        stored = self.turns.setdefault(conversation_id, [])
        saved_ids: list[str] = []
        for turn in payload.get("turns", []):
            if not turn.id:
                turn = replace(turn, id=f"msg_{uuid.uuid4().hex[:12]}")
            turn = replace(turn, conversation_id=conversation_id)
            for index, existing in enumerate(stored):
                if existing.id == turn.id:
                    stored[index] = turn
                    break
            else:
                stored.append(turn)
            saved_ids.append(turn.id)
        return {"success": True, "conversation_id": conversation_id, "turn_ids": saved_ids}

    async def _delete_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        stored = self.turns.get(payload.get("conversation_id", ""), [])
        message_id = payload.get("message_id")
        remaining = [turn for turn in stored if turn.id != message_id]
        if len(remaining) == len(stored):
            return {"success": False, "error": f"Message not found: {message_id}"}
        self.turns[payload["conversation_id"]] = remaining
        return {"success": True}

    async def _save_note(self, payload: dict[str, Any]) -> dict[str, Any]:
        note_id = f"note_{uuid.uuid4().hex[:12]}"
        self.notes[note_id] = {**payload, "id": note_id, "created_at": now_ms()}
        return {"success": True, "note_id": note_id}

    async def _hybrid_search(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.retriever is None:
            return {"success": False, "error": "No retriever configured"}
        results = await self.retriever(payload.get("query", ""), int(payload.get("top_k", 10)))
        return {"success": True, "results": results}

    async def _page_content(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {"success": True, "content": self.page_content}
