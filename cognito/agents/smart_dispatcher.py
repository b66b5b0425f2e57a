from __future__ import annotations

from cognito.agents.executor import Executor
from cognito.agents.planner import Planner, validate_plan
from cognito.config import settings
from cognito.models.plan import PlanState, PlanValidation
from cognito.services.logger import log_event, logger


class SmartDispatcher:
    """Plan, validate with feedback repair, then execute.

    Always returns a string; planning failures come back as an error message.
    """

    def __init__(self, planner: Planner, executor: Executor, max_attempts: int | None = None):
        self.planner = planner
        self.executor = executor
        self.max_attempts = max(max_attempts or settings.plan_max_attempts, 1)
        self.state = PlanState.PLANNING

    def _transition(self, state: PlanState, **details) -> None:
        self.state = state
        log_event("plan_state", state.value, **details)

    async def run(self, task: str) -> str:
        feedback = ""
        validation = PlanValidation()

        for attempt in range(1, self.max_attempts + 1):
            self._transition(PlanState.PLANNING, attempt=attempt)
            try:
                raw_plan = await self.planner.draft(task, feedback)
            except Exception as e:
                logger.error(f"Planner call failed: {e}")
                self._transition(PlanState.FAILED, error=str(e))
                return f"Error during planning phase: {e}"

            self._transition(PlanState.VALIDATING, attempt=attempt)
            validation = validate_plan(raw_plan)
            if validation.is_valid:
                break
            feedback = validation.feedback
            logger.warning(f"Plan attempt {attempt} rejected: {feedback}")

        if validation.plan is None:
            self._transition(PlanState.FAILED, error=feedback)
            return f"Error: Failed to create a valid plan. Last known error: {feedback}"

        self._transition(PlanState.EXECUTING, steps=len(validation.plan.steps))
        result = await self.executor.execute(validation.plan)
        self._transition(PlanState.DONE)
        return result
