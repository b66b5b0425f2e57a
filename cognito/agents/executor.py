"""Runs validated plans step by step, threading results between steps."""
from __future__ import annotations

import json
import re
from typing import Any, Awaitable, Callable

from cognito.models.chat import ToolResult
from cognito.models.plan import ExecutionContext, Plan
from cognito.services.logger import log_event, logger
from cognito.tools.definitions import ORCHESTRATION_TOOLS, resolve_tool_name

PLACEHOLDER_RE = re.compile(r"\$context\.(step_\d+_result)")

NO_RESULT_MESSAGE = "Plan executed but produced no final result."

DispatchFn = Callable[[str, str], Awaitable[ToolResult]]


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def substitute_placeholders(value: Any, context: ExecutionContext) -> Any:
    """Replace `$context.step_N_result` references with recorded results.

    A string that is exactly one placeholder takes the stored value as is.
    Embedded placeholders are replaced textually. Placeholders for steps
    without a recorded result stay untouched.
    """
    if isinstance(value, str):
        whole = PLACEHOLDER_RE.fullmatch(value)
        if whole:
            key = whole.group(1)
            return context.get(key) if context.has(key) else value
        return PLACEHOLDER_RE.sub(
            lambda m: _as_text(context.get(m.group(1))) if context.has(m.group(1)) else m.group(0),
            value,
        )
    if isinstance(value, list):
        return [substitute_placeholders(item, context) for item in value]
    if isinstance(value, dict):
        return {key: substitute_placeholders(item, context) for key, item in value.items()}
    return value


class Executor:
    """Executes plan steps sequentially through the tool dispatcher."""

    def __init__(self, dispatch: DispatchFn):
        self._dispatch = dispatch

    async def execute(self, plan: Plan) -> str:
        context = ExecutionContext()
        notes: list[str] = []
        final_result: str | None = None

        for index, step in enumerate(plan.steps):
            step_number = index + 1
            if not step.tool_name or step.tool_arguments is None:
                notes.append(f"Skipping invalid step {step_number}: {step.model_dump_json()}")
                continue
            if resolve_tool_name(step.tool_name) in ORCHESTRATION_TOOLS:
                notes.append(f"Skipping step {step_number}: '{step.tool_name}' cannot run inside a plan")
                continue

            arguments = substitute_placeholders(step.tool_arguments, context)
            result = await self._dispatch(step.tool_name, json.dumps(arguments))
            context.record(step_number, result.result)
            final_result = result.result
            log_event(
                "plan_step",
                f"Executed step {step_number}",
                tool_name=step.tool_name,
                result_chars=len(result.result),
            )

        for note in notes:
            logger.warning(note)
        if final_result is None:
            return "\n".join([NO_RESULT_MESSAGE, *notes])
        return final_result
