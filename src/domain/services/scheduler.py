from src.domain.entities.step import Step
from src.domain.value_objects.workflow_enums import StepStatus

_DEAD_DEPENDENCY_STATUSES = (StepStatus.FAILED, StepStatus.SKIPPED)


class Scheduler:
    """Selects runnable steps. Pure: never mutates the steps it is given."""

    def ready(self, steps: list[Step]) -> list[Step]:
        """Waiting steps whose dependencies are all done, by ordinal."""
        by_id = {s.id: s for s in steps}
        ready = [
            step
            for step in steps
            if step.status == StepStatus.WAITING
            and all(
                dep in by_id and by_id[dep].status == StepStatus.DONE for dep in step.depends_on
            )
        ]
        return sorted(ready, key=lambda s: (s.ordinal, s.id))

    def blocked(self, steps: list[Step]) -> list[Step]:
        """Waiting steps that can never run because a dependency failed, was
        skipped, or does not exist."""
        by_id = {s.id: s for s in steps}
        blocked: list[Step] = []
        for step in steps:
            if step.status != StepStatus.WAITING:
                continue
            for dep in step.depends_on:
                dep_step = by_id.get(dep)
                if dep_step is None or dep_step.status in _DEAD_DEPENDENCY_STATUSES:
                    blocked.append(step)
                    break
        return sorted(blocked, key=lambda s: (s.ordinal, s.id))
