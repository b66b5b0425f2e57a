from __future__ import annotations

from fastapi import APIRouter, Depends

from cognito.api.deps import ChatRegistry, get_registry
from cognito.models.schemas import ChatConfig, ToolInvokeRequest, ToolResultResponse
from cognito.tools.definitions import TOOL_DEFINITIONS
from cognito.tools.dispatcher import ToolDispatcher

router = APIRouter(prefix="/api/tools", tags=["tools"])


@router.get("")
async def list_tools():
    return {"tools": TOOL_DEFINITIONS}


@router.post("/{tool_name}", response_model=ToolResultResponse)
async def invoke_tool(
    tool_name: str,
    request: ToolInvokeRequest,
    registry: ChatRegistry = Depends(get_registry),
):
    """Run one tool directly. Failures come back in `result`, never as HTTP errors."""
    dispatcher = ToolDispatcher(
        request.config or ChatConfig(),
        registry.collaborator,
        registry.llm,
        registry.search,
    )
    result = await dispatcher.dispatch(tool_name, request.arguments, request.tool_call_id)
    return ToolResultResponse(tool_call_id=result.tool_call_id, name=result.name, result=result.result)
