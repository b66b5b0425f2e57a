"""Drafts tool plans with the LLM and validates them against the allow-list."""
from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from cognito.models.plan import Plan, PlanValidation
from cognito.models.schemas import ChatConfig
from cognito.services.json_extract import extract_json
from cognito.services.logger import logger
from cognito.services.prompt_store import render_prompt
from cognito.tools.definitions import PLANNABLE_TOOLS, is_plannable


def allowed_tools_text() -> str:
    return json.dumps([tool.value for tool in PLANNABLE_TOOLS])


def build_planner_prompt(task: str, feedback: str = "") -> str:
    feedback_instruction = (
        render_prompt("planner.feedback_instruction", feedback=feedback) if feedback else ""
    )
    return render_prompt(
        "planner.system_prompt",
        tools=allowed_tools_text(),
        feedback_instruction=feedback_instruction,
        task=task,
    )


class Planner:
    """Asks the LLM for a JSON plan. Returns the model's raw text."""

    def __init__(self, llm: Any, config: ChatConfig | None = None):
        self.llm = llm
        self.config = config

    async def draft(self, task: str, feedback: str = "") -> str:
        prompt = build_planner_prompt(task, feedback)
        raw = await self.llm.complete(prompt, self.config, caller="planner")
        logger.debug(f"Planner draft ({len(raw)} chars) for task '{task[:80]}'")
        return raw


def parse_plan(raw: str | dict[str, Any] | None) -> Plan:
    """Parse raw planner output into a Plan.

    Raises ValueError when the text holds no JSON object with a `steps` list.
    """
    data = raw if isinstance(raw, dict) else extract_json(raw or "")
    if isinstance(data, list):
        data = {"steps": data}
    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise ValueError('The plan must be a JSON object with a "steps" array')
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Plan steps are malformed: {e.errors()[0].get('msg', e)}") from e


def validate_plan(raw: str | dict[str, Any] | None) -> PlanValidation:
    """Check a drafted plan; invalid plans carry feedback for the next draft."""
    try:
        plan = parse_plan(raw)
    except ValueError as e:
        return PlanValidation(feedback=render_prompt("planner.invalid_json_feedback", error=str(e)))

    invalid = [str(step.tool_name) for step in plan.steps if not is_plannable(step.tool_name)]
    if invalid:
        return PlanValidation(
            feedback=render_prompt(
                "planner.invalid_tools_feedback",
                invalid_tools=", ".join(invalid),
                tools=allowed_tools_text(),
            ),
            invalid_tools=invalid,
        )
    return PlanValidation(plan=plan)
