from datetime import UTC, datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from src.domain.entities.plan_change import PlanChange
from src.domain.entities.step import Step
from src.domain.errors import InvalidTransitionError
from src.domain.value_objects.execution_config import ExecutionConfig
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.verification_strategy import VerificationStrategy
from src.domain.value_objects.workflow_enums import FailureReason, PlanStatus, StepStatus

_ALLOWED_TRANSITIONS: dict[PlanStatus, set[PlanStatus]] = {
    PlanStatus.ACTIVE: {
        PlanStatus.PAUSED,
        PlanStatus.COMPLETED,
        PlanStatus.FAILED,
        PlanStatus.STOPPED,
    },
    PlanStatus.PAUSED: {PlanStatus.ACTIVE, PlanStatus.STOPPED},
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


class WorkflowPlan(BaseModel):
    """A goal's decomposition into steps plus its execution state.

    Steps form an append-only arena: re-planning adds entries and flags
    superseded ones, it never deletes or reorders existing steps.
    """

    id: UUID = Field(default_factory=uuid4)
    goal: str
    config: ExecutionConfig
    status: PlanStatus = PlanStatus.ACTIVE
    steps: list[Step] = Field(default_factory=list)
    current_iteration: int = 0
    plan_changes: list[PlanChange] = Field(default_factory=list)
    failure_reason: FailureReason | None = None
    status_reason: str | None = None
    last_verification: VerificationResult | None = None
    parent_plan_id: UUID | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def check_iteration_bound(self) -> "WorkflowPlan":
        if self.current_iteration > self.config.max_iterations:
            raise ValueError(
                f"current_iteration {self.current_iteration} exceeds "
                f"max_iterations {self.config.max_iterations}"
            )
        return self

    @property
    def max_iterations(self) -> int:
        return self.config.max_iterations

    @property
    def verification_strategy(self) -> VerificationStrategy:
        return self.config.verification_strategy

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def touch(self) -> None:
        self.updated_at = _utc_now()

    def get_step(self, step_id: str) -> Step | None:
        return next((s for s in self.steps if s.id == step_id), None)

    def transition_to(self, status: PlanStatus, reason: str | None = None) -> None:
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError("plan", self.status.value, status.value)
        self.status = status
        if reason is not None:
            self.status_reason = reason
        self.touch()

    def fail(self, failure_reason: FailureReason, message: str) -> None:
        self.transition_to(PlanStatus.FAILED, message)
        self.failure_reason = failure_reason

    def next_ordinal(self) -> int:
        return max((s.ordinal for s in self.steps), default=-1) + 1

    def add_steps(self, steps: list[Step]) -> None:
        """Append steps to the arena, numbering them after existing ones."""
        ordinal = self.next_ordinal()
        for step in steps:
            step.ordinal = ordinal
            ordinal += 1
            self.steps.append(step)
        self.touch()

    def steps_with_status(self, *statuses: StepStatus) -> list[Step]:
        return [s for s in self.steps if s.status in statuses]

    def has_pending_steps(self) -> bool:
        return bool(self.steps_with_status(StepStatus.WAITING, StepStatus.RUNNING))

    def unhandled_failures(self) -> list[Step]:
        """Failed steps no plan change has dealt with yet."""
        return [s for s in self.steps if s.status == StepStatus.FAILED and not s.superseded]

    def record_change(self, change: PlanChange) -> None:
        self.plan_changes.append(change)
        self.touch()

    def progress(self) -> tuple[int, int]:
        """Return (done, total) over steps that are still part of the plan."""
        live = [s for s in self.steps if not s.superseded]
        return sum(1 for s in live if s.status == StepStatus.DONE), len(live)

    def snapshot(self) -> "WorkflowPlan":
        return self.model_copy(deep=True)
