from abc import ABC, abstractmethod
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from src.domain.entities.workflow_plan import WorkflowPlan


class StoreError(Exception):
    """Raised when the persistence backend fails to read or write."""


class PlanStorePort(ABC):
    """Port for durable plan snapshots."""

    @abstractmethod
    async def save(self, plan: "WorkflowPlan") -> None:
        """Save plan snapshot (last writer wins by updated_at)."""

    @abstractmethod
    async def load(self, plan_id: UUID) -> "WorkflowPlan | None":
        """Load plan by ID."""

    @abstractmethod
    async def list_plans(self) -> list[UUID]:
        """List all plan IDs."""
