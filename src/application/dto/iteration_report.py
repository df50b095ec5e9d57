from uuid import UUID

from pydantic import BaseModel, Field

from src.domain.entities.plan_change import PlanChange
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.workflow_enums import PlanStatus


class IterationReport(BaseModel):
    """What one ``continue`` call did, plus the plan snapshot afterwards."""

    plan_id: UUID
    iteration: int
    plan_status: PlanStatus
    executed: bool = True
    steps_run: list[StepOutcome] = Field(default_factory=list)
    verification: VerificationResult | None = None
    plan_change: PlanChange | None = None
    message: str = ""
    snapshot: WorkflowPlan

    @classmethod
    def noop(cls, plan: WorkflowPlan, message: str) -> "IterationReport":
        return cls(
            plan_id=plan.id,
            iteration=plan.current_iteration,
            plan_status=plan.status,
            executed=False,
            message=message,
            snapshot=plan.snapshot(),
        )
