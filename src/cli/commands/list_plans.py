from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.cli.context import default_state_dir
from src.cli.theme import theme
from src.cli.utils import run_command
from src.infrastructure.persistence.json_plan_store import JsonPlanStore

console = Console()


def list_all_plans(
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """List all plans."""
    run_command(_list_plans(state_dir))


async def _list_plans(state_dir: Path | None) -> None:
    store = JsonPlanStore(state_dir or default_state_dir())
    plan_ids = await store.list_plans()

    if not plan_ids:
        console.print(f"[{theme.DIM}]No plans found[/]")
        return

    table = Table(title="Plans")
    table.add_column("ID", style=theme.INFO)
    table.add_column("Goal")
    table.add_column("Iteration", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Status")

    for pid in plan_ids:
        plan = await store.load(pid)
        if plan:
            done, total = plan.progress()
            table.add_row(
                pid.hex[:8],
                escape(plan.goal[:50]),
                f"{plan.current_iteration}/{plan.max_iterations}",
                f"{done}/{total}",
                f"[{theme.PLAN_STATUS[plan.status]}]{plan.status.value}[/]",
            )

    console.print(table)
