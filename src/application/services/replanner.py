from loguru import logger

from src.domain.entities.plan_change import PlanChange
from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.errors import UnknownDependencyError
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerError, PlannerPort
from src.domain.services.dependency_graph import validate_dependencies
from src.domain.services.scheduler import Scheduler
from src.domain.value_objects.workflow_enums import FailureReason, PlanStatus, StepStatus


class RePlanner:
    """Asks the planner for remediation and splices it into a plan.

    The splice is rehearsed on a snapshot first, so a malformed or cyclic
    revision leaves the live plan untouched.
    """

    def __init__(self, planner: PlannerPort, scheduler: Scheduler | None = None) -> None:
        self.planner = planner
        self.scheduler = scheduler or Scheduler()

    async def replan(self, plan: WorkflowPlan, context: FailureContext) -> PlanChange | None:
        """Revise ``plan`` in place and return the recorded change.

        Returns None when the planner offers no remediation but the plan was
        paused while it answered: the plan cannot fail from paused, so the
        failure stays unhandled and is re-planned after resume.

        Raises:
            PlannerError: If the planner fails or returns a malformed delta.
            DependencyCycleError: If the revision would create a cycle.
        """
        logger.info(
            "Re-planning plan {} at iteration {} ({})",
            plan.id,
            plan.current_iteration,
            context.trigger.value,
        )
        delta = await self.planner.revise(plan.snapshot(), context)

        if not delta.new_steps:
            if plan.status != PlanStatus.ACTIVE:
                logger.info(
                    "Plan {} is {}; no remediation offered, deferring until resumed",
                    plan.id,
                    plan.status.value,
                )
                return None
            change = PlanChange(
                iteration=plan.current_iteration,
                trigger=context.trigger,
                reason=delta.rationale or context.message or "Planner proposed no remediation",
            )
            plan.fail(FailureReason.NO_REMEDIATION, "Planner returned no remediation steps")
            plan.record_change(change)
            logger.error("Plan {} failed: no remediation available", plan.id)
            return change

        self._check_delta(plan, delta)

        rehearsal = plan.snapshot()
        self._splice(rehearsal, delta)
        try:
            validate_dependencies(rehearsal.steps)
        except UnknownDependencyError as e:
            raise PlannerError(f"Malformed revision: {e}") from e

        superseded, dead = self._splice(plan, delta)
        change = PlanChange(
            iteration=plan.current_iteration,
            trigger=context.trigger,
            reason=delta.rationale or context.message,
            added_step_ids=[s.id for s in delta.new_steps],
            removed_step_ids=list(delta.remove_step_ids),
            superseded_step_ids=superseded,
        )
        plan.record_change(change)
        logger.info(
            "Plan {} revised: +{} steps, -{} steps, {} superseded, {} rewired dependencies",
            plan.id,
            len(change.added_step_ids),
            len(change.removed_step_ids),
            len(superseded),
            len(dead),
        )
        return change

    def _check_delta(self, plan: WorkflowPlan, delta: PlanDelta) -> None:
        existing = {s.id for s in plan.steps}
        new_ids = [s.id for s in delta.new_steps]

        if len(set(new_ids)) != len(new_ids):
            raise PlannerError("Malformed revision: duplicate step ids in new steps")
        reused = existing.intersection(new_ids)
        if reused:
            raise PlannerError(f"Malformed revision: step ids already used: {sorted(reused)}")

        for step in delta.new_steps:
            if step.status != StepStatus.WAITING:
                raise PlannerError(f"Malformed revision: new step {step.id} is not waiting")

        for step_id in delta.remove_step_ids:
            step = plan.get_step(step_id)
            if step is None or step.status != StepStatus.WAITING:
                raise PlannerError(
                    f"Malformed revision: can only remove waiting steps, got '{step_id}'"
                )

        unusable = {
            s.id for s in plan.steps if s.status in (StepStatus.FAILED, StepStatus.SKIPPED)
        } | set(delta.remove_step_ids)
        for step in delta.new_steps:
            bad = unusable.intersection(step.depends_on)
            if bad:
                raise PlannerError(
                    f"Malformed revision: step {step.id} depends on dead steps {sorted(bad)}"
                )

    def _splice(self, plan: WorkflowPlan, delta: PlanDelta) -> tuple[list[str], set[str]]:
        """Apply ``delta`` to ``plan``; return (superseded ids, rewired ids)."""
        removed = set(delta.remove_step_ids)
        for step_id in delta.remove_step_ids:
            step = plan.get_step(step_id)
            if step is not None:
                step.mark_skipped()
                step.superseded = True

        superseded: list[str] = []
        for step in plan.unhandled_failures():
            step.superseded = True
            superseded.append(step.id)

        dead = set(superseded) | removed
        by_id = {s.id: s for s in plan.steps}
        for blocked in self.scheduler.blocked(plan.steps):
            for dep in blocked.depends_on:
                dep_step = by_id.get(dep)
                if dep_step is None or dep_step.status in (StepStatus.FAILED, StepStatus.SKIPPED):
                    dead.add(dep)

        new_steps = [s.model_copy(deep=True) for s in delta.new_steps]
        new_ids = [s.id for s in new_steps]
        for step in plan.steps:
            if step.status != StepStatus.WAITING or not dead.intersection(step.depends_on):
                continue
            kept = [d for d in step.depends_on if d not in dead]
            step.depends_on = kept + [n for n in new_ids if n not in kept]

        plan.add_steps(new_steps)
        return superseded, dead
