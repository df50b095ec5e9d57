from pathlib import Path
from uuid import UUID


class PlanPathBuilder:
    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir

    @property
    def plans_dir(self) -> Path:
        return self.state_dir / "plans"

    def plan_dir(self, plan_id: UUID) -> Path:
        return self.plans_dir / plan_id.hex

    def plan_path(self, plan_id: UUID) -> Path:
        return self.plan_dir(plan_id) / "plan.json"

    def lock_path(self, plan_id: UUID) -> Path:
        return self.plan_dir(plan_id) / ".lock"
