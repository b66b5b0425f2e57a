"""Owns the life cycle of every send in one conversation.

One send is in flight at a time. Starting a new send cancels the previous
task and bumps the call id; streaming updates carrying a stale call id are
dropped, so a cancelled send can never touch the turns of its successor.
"""
from __future__ import annotations

import asyncio
import contextvars
import time
import uuid
from typing import Any, Awaitable, Callable

from cognito.agents.context import (
    build_system_prompt,
    gather_page_context,
    gather_web_context,
    scrape_message_urls,
)
from cognito.config import settings
from cognito.models.chat import GenerationInfo, MessageTurn, Role, ToolCall, ToolResult, TurnStatus
from cognito.models.events import SSEEvent
from cognito.models.schemas import ChatConfig
from cognito.services import streaming
from cognito.services.collaborator import Collaborator, MessageType
from cognito.services.json_extract import detect_tool_call
from cognito.services.logger import log_event, logger
from cognito.services.prompt_store import render_prompt
from cognito.tools.definitions import PLANNABLE_TOOLS, TOOL_DEFINITIONS, ToolName
from cognito.tools.dispatcher import ToolDispatcher
from cognito.tools.search_provider import SearchAggregator

CANCELLED_MARKER = "[Operation cancelled by user]"

# Hosts that get the tool protocol in the system prompt instead of native `tools`.
TEXT_TOOL_PROTOCOL_HOSTS = frozenset({"openrouter"})

Listener = Callable[[SSEEvent], Awaitable[None]]

# Set inside each send task, so a cancelled send keeps reporting to its own caller.
_send_listener: contextvars.ContextVar[Listener | None] = contextvars.ContextVar("send_listener", default=None)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def empty_result_placeholder(name: str) -> str:
    return f"[Tool '{name}' executed but returned no content.]"


class TurnController:
    def __init__(
        self,
        conversation_id: str,
        collaborator: Collaborator,
        llm: Any,
        search: SearchAggregator | None = None,
        config: ChatConfig | None = None,
        listener: Listener | None = None,
        max_tool_rounds: int | None = None,
    ):
        self.conversation_id = conversation_id
        self.collaborator = collaborator
        self.llm = llm
        self.search = search or SearchAggregator()
        self.config = config or ChatConfig()
        self.listener = listener
        self.max_tool_rounds = max_tool_rounds if max_tool_rounds is not None else settings.max_tool_rounds
        self.turns: list[MessageTurn] = []

        self._call_id = 0
        self._current_call = 0
        self._task: asyncio.Task | None = None
        self._active_turn: MessageTurn | None = None

    # --- public API ---

    def start(
        self,
        message: str,
        config: ChatConfig | None = None,
        *,
        retrieved_context: str = "",
        session_context: str = "",
        listener: Listener | None = None,
    ) -> asyncio.Task:
        """Begin a send in the background, cancelling any send in flight.

        Events of this send go to `listener`, or to the controller-wide
        listener when none is given, for the whole life of the send.
        """
        previous = self._task
        self._call_id += 1
        call_id = self._call_id
        self._current_call = call_id
        if previous is not None and not previous.done():
            previous.cancel()
        self._task = asyncio.create_task(
            self._run(
                call_id,
                previous,
                message,
                config or self.config,
                retrieved_context,
                session_context,
                listener or self.listener,
            )
        )
        return self._task

    async def send(
        self,
        message: str,
        config: ChatConfig | None = None,
        *,
        retrieved_context: str = "",
        session_context: str = "",
        listener: Listener | None = None,
    ) -> MessageTurn:
        """Run a send to completion and return the final assistant turn."""
        return await self.start(
            message,
            config,
            retrieved_context=retrieved_context,
            session_context=session_context,
            listener=listener,
        )

    async def stop(self) -> bool:
        """Cancel the active send. Returns False when nothing was running."""
        task = self._task
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.wait({task})
        return True

    async def delete_turn(self, turn_id: str) -> bool:
        """Remove a finished turn from memory and storage.

        Returns False for an unknown id. Raises ValueError for a turn that
        is still being produced.
        """
        turn = next((t for t in self.turns if t.id == turn_id), None)
        if turn is None:
            return False
        if not turn.status.is_final:
            raise ValueError(f"Turn {turn_id} is still in progress")
        self.turns.remove(turn)
        response = await self.collaborator.request(
            MessageType.DELETE_CHAT_MESSAGE_REQUEST,
            {"conversation_id": self.conversation_id, "message_id": turn_id},
        )
        if not response.get("success"):
            logger.warning(f"Failed to delete turn {turn_id} for {self.conversation_id}: {response.get('error')}")
        return True

    # --- turn state ---

    async def _emit(self, event: SSEEvent) -> None:
        listener = _send_listener.get()
        if listener is None:
            return
        try:
            await listener(event)
        except Exception as e:
            logger.warning(f"Turn listener failed on {event.event.value}: {e}")

    def _is_current(self, call_id: int) -> bool:
        return call_id == self._current_call

    async def _append(self, turn: MessageTurn) -> MessageTurn:
        self.turns.append(turn)
        await self._emit(streaming.turn_started(turn))
        return turn

    async def _update_content(self, call_id: int, turn: MessageTurn, content: str) -> None:
        if not self._is_current(call_id) or turn.status != TurnStatus.STREAMING:
            return
        turn.content = content
        await self._emit(streaming.turn_updated(turn))

    async def _finalize(
        self,
        turn: MessageTurn,
        status: TurnStatus,
        content: str | None = None,
        generation: GenerationInfo | None = None,
    ) -> MessageTurn:
        """Finalize a turn exactly once and persist it."""
        if turn.status.is_final:
            return turn
        if content is not None:
            turn.content = content
        if generation is not None:
            turn.generation = generation
        turn.status = status
        await self._emit(streaming.turn_finalized(turn))
        await self._persist(turn)
        return turn

    async def _persist(self, *turns: MessageTurn) -> None:
        title = next((t.content[:50] for t in self.turns if t.role == Role.USER), "")
        response = await self.collaborator.request(
            MessageType.SAVE_CHAT_REQUEST,
            {"conversation_id": self.conversation_id, "title": title, "turns": list(turns)},
        )
        if not response.get("success"):
            logger.warning(f"Failed to persist turns for {self.conversation_id}: {response.get('error')}")

    def _history_messages(self) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        for turn in self.turns:
            if turn.role == Role.ASSISTANT and turn.status != TurnStatus.COMPLETE:
                continue
            messages.append(turn.to_api_message())
        return messages

    # --- the send ---

    async def _run(
        self,
        call_id: int,
        previous: asyncio.Task | None,
        message: str,
        config: ChatConfig,
        retrieved_context: str,
        session_context: str,
        listener: Listener | None,
    ) -> MessageTurn:
        _send_listener.set(listener)
        if previous is not None:
            # Let the cancelled send finalize its own turn first.
            await asyncio.wait({previous})

        history = [t for t in self.turns if t.status.is_final]
        user_turn = MessageTurn(
            id=_new_id("msg"),
            conversation_id=self.conversation_id,
            role=Role.USER,
            content=message,
        )
        assistant = self._placeholder()

        try:
            await self._append(user_turn)
            await self._append(assistant)
            await self._persist(user_turn)
            log_event("send_started", "Send started", conversation_id=self.conversation_id, call_id=call_id)
            system_prompt, tools = await self._prepare(config, message, history, retrieved_context, session_context)
            api_messages = [{"role": "system", "content": system_prompt}, *self._history_messages()]
            return await self._tool_loop(call_id, config, api_messages, tools)
        except asyncio.CancelledError:
            turn = self._active_turn or assistant
            partial = turn.content.rstrip()
            content = f"{partial} {CANCELLED_MARKER}" if partial else CANCELLED_MARKER
            log_event("send_cancelled", "Send cancelled", conversation_id=self.conversation_id, call_id=call_id)
            return await self._finalize(turn, TurnStatus.CANCELLED, content)
        except Exception as e:
            logger.error(f"Send failed for {self.conversation_id}: {e}")
            return await self._finalize(self._active_turn or assistant, TurnStatus.ERROR, f"Error: {e}")

    def _placeholder(self) -> MessageTurn:
        turn = MessageTurn(
            id=_new_id("msg"),
            conversation_id=self.conversation_id,
            role=Role.ASSISTANT,
            status=TurnStatus.STREAMING,
        )
        self._active_turn = turn
        return turn

    async def _prepare(
        self,
        config: ChatConfig,
        message: str,
        history: list[MessageTurn],
        retrieved_context: str,
        session_context: str,
    ) -> tuple[str, list[dict[str, Any]] | None]:
        scraped = await scrape_message_urls(self.search.client, message)
        page_content = ""
        web_content = ""
        if config.chat_mode == "page":
            page_content = await gather_page_context(self.collaborator, config)
        elif config.chat_mode == "web":
            web_content = await gather_web_context(self.llm, self.search, config, message, history)

        native_tools = config.host not in TEXT_TOOL_PROTOCOL_HOSTS
        tool_instructions = (
            ""
            if native_tools
            else render_prompt(
                "chat.tool_protocol",
                tools=", ".join(t.value for t in (*PLANNABLE_TOOLS, ToolName.SMART_DISPATCHER)),
            )
        )
        system_prompt = build_system_prompt(
            config,
            page_content=page_content,
            web_content=web_content,
            scraped_content=scraped,
            retrieved_context=retrieved_context,
            session_context=session_context,
            tool_instructions=tool_instructions,
        )
        return system_prompt, (TOOL_DEFINITIONS if native_tools else None)

    async def _stream(
        self,
        call_id: int,
        turn: MessageTurn,
        config: ChatConfig,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ):
        started = time.perf_counter()
        content = ""
        async with self.llm.stream_chat(config, messages, tools=tools) as stream:
            async for text in stream.text_stream:
                content += text
                await self._update_content(call_id, turn, content)
            final = await stream.get_final_message()
        elapsed = max(time.perf_counter() - started, 1e-6)
        generation = GenerationInfo(
            prompt_tokens=final.usage.input_tokens,
            completion_tokens=final.usage.output_tokens,
            tokens_per_second=round(final.usage.output_tokens / elapsed, 2),
        )
        return final, generation

    async def _tool_loop(
        self,
        call_id: int,
        config: ChatConfig,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> MessageTurn:
        dispatcher = ToolDispatcher(config, self.collaborator, self.llm, self.search)
        rounds = 0
        while True:
            turn = self._active_turn
            final, generation = await self._stream(call_id, turn, config, messages, tools)
            call = final.tool_calls[0] if final.tool_calls else detect_tool_call(final.content)
            if call is None:
                return await self._finalize(turn, TurnStatus.COMPLETE, final.content, generation)

            if rounds >= self.max_tool_rounds:
                return await self._finalize(
                    turn,
                    TurnStatus.ERROR,
                    f"Error: Tool-call limit of {self.max_tool_rounds} rounds reached",
                    generation,
                )
            rounds += 1

            result = await self._run_tool(turn, call, final.content, generation, dispatcher)
            messages.append(turn.to_api_message())
            messages.append(
                {"role": "tool", "tool_call_id": result.tool_call_id, "content": result.result}
            )
            await self._append(self._placeholder())

    async def _run_tool(
        self,
        turn: MessageTurn,
        call: ToolCall,
        raw_content: str,
        generation: GenerationInfo,
        dispatcher: ToolDispatcher,
    ) -> ToolResult:
        turn.content = raw_content
        turn.tool_calls = [call]
        turn.generation = generation
        turn.status = TurnStatus.AWAITING_TOOL_RESULTS
        await self._emit(streaming.tool_call(turn, call))
        await self._persist(turn)

        result = await dispatcher.dispatch(call.name, call.arguments, call.id)
        if not result.result.strip():
            result = ToolResult(result.tool_call_id, result.name, empty_result_placeholder(call.name))
        await self._emit(streaming.tool_result(result))

        turn.status = TurnStatus.COMPLETE
        await self._emit(streaming.turn_finalized(turn))
        tool_turn = MessageTurn(
            id=_new_id("msg"),
            conversation_id=self.conversation_id,
            role=Role.TOOL,
            content=result.result,
            tool_call_id=result.tool_call_id,
            name=result.name,
        )
        self.turns.append(tool_turn)
        await self._emit(streaming.turn_finalized(tool_turn))
        await self._persist(turn, tool_turn)
        return result
