"""Wiring of adapters into an orchestrator for one CLI invocation."""

from pathlib import Path
from uuid import UUID

import typer
from rich.console import Console

from src.application.workflow_orchestrator import PlanNotFoundError, WorkflowOrchestrator
from src.cli.theme import theme
from src.infrastructure.persistence.json_plan_store import JsonPlanStore
from src.infrastructure.planning.planner_factory import create_backend
from src.infrastructure.shell.shell_command_runner import ShellCommandRunner
from src.infrastructure.tools.local_tool_invoker import LocalToolInvoker

STATE_DIR_NAME = ".workloop"
MIN_PREFIX_LENGTH = 4

console = Console()


def default_state_dir(cwd: Path | None = None) -> Path:
    """Return <cwd>/.workloop as default state directory."""
    return (cwd or Path.cwd()) / STATE_DIR_NAME


def build_orchestrator(
    store: JsonPlanStore,
    working_dir: Path,
    steps_file: Path | None = None,
    step_lines: list[str] | None = None,
    require_planner: bool = True,
) -> WorkflowOrchestrator:
    """Assemble the orchestrator for plans running in ``working_dir``.

    Raises:
        ProviderNotConfiguredError: If ``require_planner`` and no planner is available.
    """
    backend = create_backend(
        steps_file=steps_file, step_lines=step_lines, require_planner=require_planner
    )
    command_runner = ShellCommandRunner()
    return WorkflowOrchestrator(
        planner=backend.planner,
        invoker=LocalToolInvoker(command_runner, working_dir),
        store=store,
        command_runner=command_runner,
        judge=backend.judge,
    )


async def resolve_plan_id(plan_id_str: str, store: JsonPlanStore) -> UUID | None:
    """Resolve a plan ID string to a full UUID.

    Supports both full UUIDs and short prefixes (minimum 4 characters).
    Returns None if not found or ambiguous.
    """
    try:
        return UUID(plan_id_str)
    except ValueError:
        pass

    prefix = plan_id_str.lower().replace("-", "")
    if len(prefix) < MIN_PREFIX_LENGTH:
        console.print(
            f"[{theme.ERROR}]Plan ID prefix must be at least {MIN_PREFIX_LENGTH} characters[/]"
        )
        return None

    plan_ids = await store.list_plans()
    matches = [pid for pid in plan_ids if pid.hex.startswith(prefix)]

    if not matches:
        console.print(f"[{theme.ERROR}]No plan found with prefix: {prefix}[/]")
        return None
    if len(matches) > 1:
        console.print(
            f"[{theme.ERROR}]Ambiguous prefix '{prefix}' matches {len(matches)} plans:[/]"
        )
        for m in matches[:5]:
            console.print(f"  [{theme.DIM}]{m}[/]")
        if len(matches) > 5:
            console.print(f"  [{theme.DIM}]...and {len(matches) - 5} more[/]")
        return None

    return matches[0]


async def open_plan(
    plan_id_str: str,
    state_dir: Path | None,
    steps_file: Path | None = None,
    step_lines: list[str] | None = None,
) -> tuple[WorkflowOrchestrator, UUID]:
    """Resolve a stored plan and build an orchestrator for its working dir.

    The planner is rebuilt from the steps file or inline steps the plan was
    started with, unless new ones are given.

    Raises:
        typer.Exit: If the plan ID cannot be resolved.
        PlanNotFoundError: If the plan file vanished after resolution.
    """
    store = JsonPlanStore(state_dir or default_state_dir())
    plan_id = await resolve_plan_id(plan_id_str, store)
    if plan_id is None:
        raise typer.Exit(1)

    plan = await store.load(plan_id)
    if plan is None:
        raise PlanNotFoundError(plan_id)

    orchestrator = build_orchestrator(
        store,
        plan.config.working_dir,
        steps_file=steps_file or plan.config.steps_file,
        step_lines=step_lines or plan.config.step_lines,
        require_planner=False,
    )
    return orchestrator, plan_id
