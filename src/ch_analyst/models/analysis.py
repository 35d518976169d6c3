"""Models for the outcome of an analysis turn."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class OrchestrationState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_FUNCTION = "executing_function"
    DONE = "done"
    FAILED = "failed"


class AnalysisResult(BaseModel):
    answer: str | None = None
    state: OrchestrationState
    iterations: int = 0
    function_calls: list[str] = Field(default_factory=list)
    error: str | None = None  # set only when state is FAILED

    @property
    def ok(self) -> bool:
        return self.state is OrchestrationState.DONE
