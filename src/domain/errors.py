"""Domain-level errors shared by entities and services."""


class InvalidTransitionError(Exception):
    """Raised when a lifecycle command is not allowed from the current
    status.

    Caller error: the entity is left unchanged.
    """

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class DependencyError(Exception):
    """Base class for invalid step dependency graphs."""


class DependencyCycleError(DependencyError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class UnknownDependencyError(DependencyError):
    def __init__(self, step_id: str, missing: list[str]) -> None:
        self.step_id = step_id
        self.missing = missing
        super().__init__(f"Step '{step_id}' depends on unknown steps: {', '.join(missing)}")


class StateCorruptionError(Exception):
    """Raised when persisted or in-memory plan state violates an invariant.

    Requires operator intervention; never raised for ordinary domain
    failures.
    """
