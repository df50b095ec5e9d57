from src.domain.entities.step import Step
from src.domain.errors import DependencyCycleError, UnknownDependencyError


def validate_dependencies(steps: list[Step]) -> None:
    """Check that every dependency exists and the graph is acyclic.

    Raises:
        UnknownDependencyError: If a step depends on an id not in ``steps``.
        DependencyCycleError: If the dependencies form a cycle (self
            dependencies included).
    """
    step_deps = {step.id: list(step.depends_on) for step in steps}

    for step in steps:
        missing = [dep for dep in step.depends_on if dep not in step_deps]
        if missing:
            raise UnknownDependencyError(step.id, missing)

    cycle = find_cycle(step_deps)
    if cycle:
        raise DependencyCycleError(cycle)


def find_cycle(step_deps: dict[str, list[str]]) -> list[str] | None:
    """Return one dependency cycle as a closed path, or None if acyclic."""
    # 0 = unvisited, 1 = on the current path, 2 = finished
    state: dict[str, int] = dict.fromkeys(step_deps, 0)
    path: list[str] = []

    def visit(node: str) -> list[str] | None:
        state[node] = 1
        path.append(node)
        for dep in step_deps.get(node, []):
            if state.get(dep, 2) == 1:
                return path[path.index(dep) :] + [dep]
            if state.get(dep) == 0:
                found = visit(dep)
                if found:
                    return found
        path.pop()
        state[node] = 2
        return None

    for node in step_deps:
        if state[node] == 0:
            found = visit(node)
            if found:
                return found
    return None
