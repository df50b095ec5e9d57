from src.domain.entities.plan_change import PlanChange
from src.domain.entities.step import Step, new_step_id
from src.domain.entities.workflow_plan import WorkflowPlan

__all__ = [
    "PlanChange",
    "Step",
    "WorkflowPlan",
    "new_step_id",
]
