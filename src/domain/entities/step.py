from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.domain.errors import InvalidTransitionError
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.workflow_enums import StepErrorKind, StepStatus


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_step_id() -> str:
    return uuid4().hex[:8]


class Step(BaseModel):
    id: str = Field(default_factory=new_step_id)
    ordinal: int = 0  # scheduling tie-break only
    description: str
    action: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    timeout_s: float | None = Field(default=None, gt=0)

    status: StepStatus = StepStatus.WAITING
    attempt_count: int = 0
    result: str | None = None
    error: str | None = None
    error_kind: StepErrorKind | None = None
    superseded: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def _require(self, *allowed: StepStatus, target: StepStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(f"step {self.id}", self.status.value, target.value)

    def mark_running(self) -> None:
        self._require(StepStatus.WAITING, target=StepStatus.RUNNING)
        self.status = StepStatus.RUNNING
        self.started_at = _utc_now()

    def apply_outcome(self, outcome: StepOutcome) -> None:
        """Record the terminal outcome of a running step."""
        if outcome.status not in (StepStatus.DONE, StepStatus.FAILED):
            raise ValueError(f"Outcome status must be terminal, got {outcome.status.value}")
        self._require(StepStatus.RUNNING, target=outcome.status)
        self.status = outcome.status
        self.attempt_count += outcome.attempts
        self.result = outcome.result
        self.error = outcome.error
        self.error_kind = outcome.error_kind
        self.finished_at = _utc_now()

    def mark_skipped(self) -> None:
        self._require(StepStatus.WAITING, target=StepStatus.SKIPPED)
        self.status = StepStatus.SKIPPED
        self.finished_at = _utc_now()
