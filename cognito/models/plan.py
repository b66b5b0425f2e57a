from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class PlanState(str, Enum):
    PLANNING = "planning"
    VALIDATING = "validating"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


class PlanStep(BaseModel):
    """A single tool invocation in a plan."""
    tool_name: Optional[str] = None
    tool_arguments: Optional[dict[str, Any]] = None


class Plan(BaseModel):
    """An ordered list of tool invocations."""
    steps: list[PlanStep] = Field(default_factory=list)


class PlanValidation(BaseModel):
    plan: Optional[Plan] = None
    feedback: str = ""
    invalid_tools: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.plan is not None


class ExecutionContext(BaseModel):
    """Results of already-executed steps, keyed `step_<n>_result`."""
    results: dict[str, Any] = Field(default_factory=dict)

    @staticmethod
    def key_for(step_number: int) -> str:
        return f"step_{step_number}_result"

    def record(self, step_number: int, result: Any) -> None:
        self.results[self.key_for(step_number)] = result

    def has(self, key: str) -> bool:
        return key in self.results

    def get(self, key: str) -> Any:
        return self.results[key]
