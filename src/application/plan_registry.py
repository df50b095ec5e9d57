import asyncio
from uuid import UUID

from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.value_objects.cancellation import CancellationToken


class PlanRegistry:
    """Live plans owned by one orchestrator, with their per-plan locks and
    cancellation tokens.

    Passed to the orchestrator at construction; nothing here is process
    global.
    """

    def __init__(self) -> None:
        self._plans: dict[UUID, WorkflowPlan] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._tokens: dict[UUID, CancellationToken] = {}

    def get(self, plan_id: UUID) -> WorkflowPlan | None:
        return self._plans.get(plan_id)

    def put(self, plan: WorkflowPlan) -> None:
        self._plans[plan.id] = plan

    def lock(self, plan_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(plan_id, asyncio.Lock())

    def token(self, plan_id: UUID) -> CancellationToken:
        return self._tokens.setdefault(plan_id, CancellationToken())

    def plan_ids(self) -> list[UUID]:
        return list(self._plans)
