from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from src.domain.entities.workflow_plan import WorkflowPlan


class JudgeVerdict(BaseModel, frozen=True):
    passed: bool
    rationale: str
    score: float | None = None


class ValidationJudgePort(ABC):
    """Port for external judgement of whether a plan met its criteria."""

    @abstractmethod
    async def judge(self, criteria: str, plan: "WorkflowPlan") -> JudgeVerdict:
        """Judge the plan's execution history against the criteria."""
