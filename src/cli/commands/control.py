from collections.abc import Awaitable, Callable
from pathlib import Path
from uuid import UUID

import typer
from rich.console import Console

from src.application.workflow_orchestrator import WorkflowOrchestrator
from src.cli.context import open_plan
from src.cli.theme import theme
from src.cli.utils import run_command
from src.domain.entities.workflow_plan import WorkflowPlan

console = Console()

StateDirOption = typer.Option(None, "--state-dir", help="State directory")
PlanIdArgument = typer.Argument(..., help="Plan ID (full or short prefix)")


async def _control(
    plan_id_str: str,
    state_dir: Path | None,
    action: Callable[[WorkflowOrchestrator], Callable[[UUID], Awaitable[WorkflowPlan]]],
    verb: str,
) -> None:
    orchestrator, plan_id = await open_plan(plan_id_str, state_dir)
    plan = await action(orchestrator)(plan_id)
    console.print(
        f"[{theme.PLAN_STATUS[plan.status]}]Plan {plan_id.hex[:8]} {verb}[/]"
        + (f" [{theme.DIM}]({plan.status_reason})[/]" if plan.status_reason else "")
    )


def pause_plan(plan_id: str = PlanIdArgument, state_dir: Path | None = StateDirOption) -> None:
    """Pause a workflow; running steps finish, no new steps start."""
    run_command(_control(plan_id, state_dir, lambda o: o.pause, "paused"))


def resume_plan(plan_id: str = PlanIdArgument, state_dir: Path | None = StateDirOption) -> None:
    """Resume a paused workflow."""
    run_command(_control(plan_id, state_dir, lambda o: o.resume, "resumed"))


def stop_plan(plan_id: str = PlanIdArgument, state_dir: Path | None = StateDirOption) -> None:
    """Stop a workflow for good; waiting steps are skipped."""
    run_command(_control(plan_id, state_dir, lambda o: o.stop, "stopped"))
