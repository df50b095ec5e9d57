from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.cli.context import default_state_dir, resolve_plan_id
from src.cli.formatters.plan_formatter import format_plan_summary, format_steps
from src.cli.theme import theme
from src.cli.utils import run_command
from src.infrastructure.persistence.json_plan_store import JsonPlanStore

console = Console()


def plan_status(
    plan_id: str = typer.Argument(..., help="Plan ID (full or short prefix)"),
    history: bool = typer.Option(False, "--history", help="Show superseded steps and changes"),
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """Show plan status."""
    run_command(_show_status(plan_id, history, state_dir))


async def _show_status(plan_id_str: str, history: bool, state_dir: Path | None) -> None:
    store = JsonPlanStore(state_dir or default_state_dir())

    plan_id = await resolve_plan_id(plan_id_str, store)
    if plan_id is None:
        raise typer.Exit(1)

    plan = await store.load(plan_id)
    if not plan:
        console.print(f"[{theme.ERROR_BOLD}]Plan not found:[/] {plan_id}")
        raise typer.Exit(1)

    format_plan_summary(console, plan)
    format_steps(console, plan, show_superseded=history)

    if history and plan.plan_changes:
        table = Table(title="Plan changes")
        table.add_column("Iter", justify="right")
        table.add_column("Trigger", style=theme.INFO)
        table.add_column("Added")
        table.add_column("Superseded", style=theme.DIM)
        table.add_column("Reason", overflow="fold")
        for change in plan.plan_changes:
            table.add_row(
                str(change.iteration),
                change.trigger.value,
                ", ".join(change.added_step_ids) or "-",
                ", ".join(change.superseded_step_ids + change.removed_step_ids) or "-",
                escape(change.reason[:120]),
            )
        console.print(table)
