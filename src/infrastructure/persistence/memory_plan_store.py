from uuid import UUID

from loguru import logger

from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.plan_store_port import PlanStorePort


class InMemoryPlanStore(PlanStorePort):
    """Process-local PlanStorePort; keeps deep copies, last writer wins."""

    def __init__(self) -> None:
        self._plans: dict[UUID, WorkflowPlan] = {}

    async def save(self, plan: WorkflowPlan) -> None:
        stored = self._plans.get(plan.id)
        if stored is not None and stored.updated_at > plan.updated_at:
            logger.warning("Ignoring stale snapshot of plan {}", plan.id)
            return
        self._plans[plan.id] = plan.snapshot()

    async def load(self, plan_id: UUID) -> WorkflowPlan | None:
        plan = self._plans.get(plan_id)
        return plan.snapshot() if plan is not None else None

    async def list_plans(self) -> list[UUID]:
        return list(self._plans)
