import json
from pathlib import Path
from typing import Any

from loguru import logger

from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerError, PlannerPort
from src.domain.value_objects.execution_config import ExecutionConfig
from src.infrastructure.planning.step_parser import parse_numbered_list, parse_steps_payload


class StaticPlanner(PlannerPort):
    """Deterministic planner fed from a steps file or inline step lines.

    Steps file format::

        {
          "steps": [{"id": "build", "description": "...", "command": "make"}, ...],
          "remediation": [[...first revision...], [...second revision...]]
        }

    Revision N of a plan uses remediation batch N, so a reloaded plan picks
    up where it left off. Once the batches run out the planner has no
    remedy and the plan fails.
    """

    def __init__(
        self,
        steps: list[Any],
        remediation: list[list[Any]] | None = None,
    ) -> None:
        self._steps = steps
        self._remediation = remediation or []

    @classmethod
    def from_file(cls, path: Path) -> "StaticPlanner":
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PlannerError(f"Cannot read steps file {path}: {e}") from e

        if isinstance(data, list):
            return cls(steps=data)
        if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
            raise PlannerError(f"Steps file {path} must contain a 'steps' list")
        remediation = data.get("remediation", [])
        if not isinstance(remediation, list) or not all(isinstance(b, list) for b in remediation):
            raise PlannerError(f"Steps file {path}: 'remediation' must be a list of lists")
        return cls(steps=data["steps"], remediation=remediation)

    @classmethod
    def from_lines(cls, lines: list[str]) -> "StaticPlanner":
        """Sequential plan from plain lines (``!cmd`` runs a shell command)."""
        numbered = "\n".join(f"{i}. {line}" for i, line in enumerate(lines, start=1))
        return cls(steps=[s.model_dump(mode="json") for s in parse_numbered_list(numbered)])

    async def generate(self, goal: str, config: ExecutionConfig) -> list[Step]:
        steps = parse_steps_payload(self._steps)
        logger.debug("Static planner produced {} steps", len(steps))
        return steps

    async def revise(self, plan: WorkflowPlan, failure_context: FailureContext) -> PlanDelta:
        used = sum(1 for change in plan.plan_changes if change.added_step_ids)
        if used >= len(self._remediation):
            return PlanDelta(rationale="No remediation steps left")
        batch = self._remediation[used]
        return PlanDelta(
            new_steps=parse_steps_payload(batch),
            rationale=f"Static remediation for {failure_context.trigger.value}",
        )
