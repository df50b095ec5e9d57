from datetime import UTC, datetime

from pydantic import BaseModel, Field

from src.domain.value_objects.workflow_enums import ReplanTrigger


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PlanChange(BaseModel, frozen=True):
    """One re-planning event. Entries are appended, never edited."""

    iteration: int
    trigger: ReplanTrigger
    reason: str
    added_step_ids: list[str] = Field(default_factory=list)
    removed_step_ids: list[str] = Field(default_factory=list)
    superseded_step_ids: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utc_now)
