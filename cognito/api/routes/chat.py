from __future__ import annotations

import asyncio
import json as _json

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from cognito.api.deps import ChatRegistry, get_registry
from cognito.models.events import SSEEvent
from cognito.models.schemas import ChatRequest, StopResponse, TurnsResponse
from cognito.services import logger as log_service
from cognito.services import streaming

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _to_sse(event: SSEEvent) -> dict[str, str]:
    return {"event": event.event.value, "data": _json.dumps(event.data)}


@router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    request: ChatRequest,
    registry: ChatRegistry = Depends(get_registry),
):
    """Start a send and stream its turn events. A new send cancels any send in flight."""
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    controller = registry.controller(conversation_id)

    async def event_generator():
        queue: asyncio.Queue[SSEEvent] = asyncio.Queue()
        log_service.log_event(
            event_type="chat_send",
            message="Send requested",
            conversation_id=conversation_id,
            message_preview=request.message[:100],
        )
        task = controller.start(
            request.message,
            request.config,
            retrieved_context=request.retrieved_context,
            session_context=request.session_context,
            listener=queue.put,
        )

        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield _to_sse(getter.result())
                    continue
                getter.cancel()
                while not queue.empty():
                    yield _to_sse(queue.get_nowait())
                break
            task.result()
        except Exception as e:
            log_service.logger.error(f"Chat stream failed for {conversation_id}: {e}")
            yield _to_sse(streaming.error(str(e), conversation_id=conversation_id))

    return EventSourceResponse(event_generator())


@router.post("/{conversation_id}/stop", response_model=StopResponse)
async def stop(conversation_id: str, registry: ChatRegistry = Depends(get_registry)):
    controller = registry.get(conversation_id)
    stopped = await controller.stop() if controller is not None else False
    return StopResponse(conversation_id=conversation_id, stopped=stopped)


@router.get("/{conversation_id}/turns", response_model=TurnsResponse)
async def list_turns(conversation_id: str, registry: ChatRegistry = Depends(get_registry)):
    controller = registry.get(conversation_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return TurnsResponse(
        conversation_id=conversation_id,
        turns=[turn.to_dict() for turn in controller.turns],
    )


@router.delete("/{conversation_id}/turns/{turn_id}")
async def delete_turn(conversation_id: str, turn_id: str, registry: ChatRegistry = Depends(get_registry)):
    """Delete one finished turn from the conversation."""
    controller = registry.get(conversation_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    try:
        deleted = await controller.delete_turn(turn_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Turn not found")
    return {"status": "deleted"}
