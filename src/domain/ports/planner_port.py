from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.domain.entities.step import Step
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.workflow_enums import ReplanTrigger

if TYPE_CHECKING:
    from src.domain.entities.workflow_plan import WorkflowPlan
    from src.domain.value_objects.execution_config import ExecutionConfig


class PlannerError(Exception):
    """Raised when the planner cannot produce steps or returns a malformed
    revision.

    Fatal to the operation that asked for the plan, not to the process.
    """


class FailureContext(BaseModel):
    """What went wrong, handed to the planner when asking for remediation."""

    trigger: ReplanTrigger
    iteration: int
    failed_steps: list[StepOutcome] = Field(default_factory=list)
    verification: VerificationResult | None = None
    message: str = ""


class PlanDelta(BaseModel):
    """Planner answer to a revision request."""

    new_steps: list[Step] = Field(default_factory=list)
    remove_step_ids: list[str] = Field(default_factory=list)
    rationale: str = ""


class PlannerPort(ABC):
    """Port for goal decomposition and remediation planning."""

    @abstractmethod
    async def generate(self, goal: str, config: "ExecutionConfig") -> list[Step]:
        """Produce the initial ordered step list for a goal."""

    @abstractmethod
    async def revise(self, plan: "WorkflowPlan", failure_context: FailureContext) -> PlanDelta:
        """Propose remediation steps for a failed plan.

        Args:
            plan: Read-only snapshot of the plan.
            failure_context: The failure that triggered re-planning.
        """
