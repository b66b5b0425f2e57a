"""Routes tool calls to handlers and folds every outcome into a string."""
from __future__ import annotations

import json
import time
import uuid
from typing import Any

from cognito.agents.executor import Executor
from cognito.agents.planner import Planner, parse_plan
from cognito.agents.smart_dispatcher import SmartDispatcher
from cognito.models.chat import ToolResult
from cognito.models.schemas import ChatConfig
from cognito.services.collaborator import Collaborator
from cognito.services.json_extract import parse_tool_arguments
from cognito.services.logger import log_tool_call, logger
from cognito.tools import handlers
from cognito.tools.definitions import ToolName, resolve_tool_name
from cognito.tools.handlers import Handler, ToolContext
from cognito.tools.search_provider import SearchAggregator

LEAF_HANDLERS: dict[ToolName, Handler] = {
    ToolName.NOTE_SAVE: handlers.save_note,
    ToolName.MEMORY_UPDATE: handlers.update_memory,
    ToolName.FETCHER: handlers.fetcher,
    ToolName.WEB_SEARCH: handlers.web_search,
    ToolName.WIKIPEDIA_SEARCH: handlers.wikipedia_search,
    ToolName.RETRIEVER: handlers.retriever,
    ToolName.PROMPT_OPTIMIZER: handlers.prompt_optimizer,
}


class ToolDispatcher:
    """Single entry point for tool execution. `dispatch` never raises.

    Cancellation is the one exception that passes through, so a stopped
    send unwinds immediately.
    """

    def __init__(
        self,
        config: ChatConfig,
        collaborator: Collaborator,
        llm: Any,
        search: SearchAggregator,
    ):
        self.context = ToolContext(config=config, collaborator=collaborator, llm=llm, search=search)

    def planner(self) -> Planner:
        return Planner(self.context.llm, self.context.config)

    def executor(self) -> Executor:
        return Executor(self.dispatch)

    async def _run_planner(self, args: Any) -> str:
        args = handlers.require_object(args)
        task = handlers.require_text(args, "task", "Task cannot be empty for planner.")
        feedback = args.get("feedback") or ""
        try:
            return await self.planner().draft(task, str(feedback))
        except Exception as e:
            logger.warning(f"planner failed: {e}")
            return f"Error creating plan: {e}"

    async def _run_executor(self, args: Any) -> str:
        args = handlers.require_object(args)
        raw_plan = args.get("plan")
        if isinstance(raw_plan, list):
            raw_plan = {"steps": raw_plan}
        if not raw_plan:
            raise ValueError("Plan cannot be empty for executor.")
        try:
            plan = parse_plan(raw_plan)
        except ValueError as e:
            return f"Error: Invalid plan format. {e}"
        return await self.executor().execute(plan)

    async def _run_smart_dispatcher(self, args: Any) -> str:
        args = handlers.require_object(args)
        task = handlers.require_text(args, "task", "Task cannot be empty for smart_dispatcher.")
        return await SmartDispatcher(self.planner(), self.executor()).run(task)

    def _handler_for(self, tool: ToolName):
        if tool in LEAF_HANDLERS:
            handler = LEAF_HANDLERS[tool]
            return lambda args: handler(args, self.context)
        return {
            ToolName.PLANNER: self._run_planner,
            ToolName.EXECUTOR: self._run_executor,
            ToolName.SMART_DISPATCHER: self._run_smart_dispatcher,
        }[tool]

    async def dispatch(
        self,
        name: str,
        raw_arguments: str | dict[str, Any] | None,
        tool_call_id: str | None = None,
    ) -> ToolResult:
        tool_call_id = tool_call_id or f"call_{uuid.uuid4().hex[:12]}"
        started = time.perf_counter()

        def finish(result: str, status: str, error: str | None = None) -> ToolResult:
            log_tool_call(
                tool_name=name,
                tool_call_id=tool_call_id,
                status=status,
                duration_ms=int((time.perf_counter() - started) * 1000),
                error=error,
            )
            return ToolResult(tool_call_id=tool_call_id, name=name, result=result)

        tool = resolve_tool_name(name)
        if tool is None:
            return finish(f"Error: Unknown tool '{name}'", "unknown_tool")

        try:
            args = parse_tool_arguments(raw_arguments)
        except ValueError as e:
            raw_preview = raw_arguments if isinstance(raw_arguments, str) else json.dumps(raw_arguments)
            return finish(
                f"Error: Could not parse arguments for tool {name}. {e} Raw arguments: {str(raw_preview)[:500]}",
                "parse_error",
                str(e),
            )

        try:
            result = await self._handler_for(tool)(args)
        except Exception as e:
            logger.error(f"Error executing tool {name}: {e}")
            return finish(f"Error executing tool {name}: {e}", "error", str(e))

        if not isinstance(result, str):
            result = json.dumps(result)
        return finish(result, "success")
