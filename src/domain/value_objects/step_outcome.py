from pydantic import BaseModel

from src.domain.value_objects.workflow_enums import StepErrorKind, StepStatus


class StepOutcome(BaseModel, frozen=True):
    """Terminal result of running one step (all attempts included)."""

    step_id: str
    status: StepStatus
    result: str | None = None
    error: str | None = None
    error_kind: StepErrorKind | None = None
    attempts: int = 0
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.DONE
