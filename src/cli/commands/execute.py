from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from src.cli.context import open_plan
from src.cli.formatters.plan_formatter import (
    format_final,
    format_iteration_report,
    format_outcome,
    format_steps,
    format_verification,
)
from src.cli.theme import theme
from src.cli.utils import run_command

console = Console()

STEPS_FILE_HELP = "JSON steps file whose remediation batches drive re-planning"


def continue_plan(
    plan_id: str = typer.Argument(..., help="Plan ID (full or short prefix)"),
    steps_file: Path | None = typer.Option(None, "--steps-file", help=STEPS_FILE_HELP),
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """Run one iteration of a workflow."""
    run_command(_continue(plan_id, steps_file, state_dir))


async def _continue(plan_id_str: str, steps_file: Path | None, state_dir: Path | None) -> None:
    orchestrator, plan_id = await open_plan(plan_id_str, state_dir, steps_file=steps_file)
    report = await orchestrator.continue_execution(plan_id)
    format_iteration_report(console, report)
    format_final(console, report.snapshot)


def run_plan(
    plan_id: str = typer.Argument(..., help="Plan ID (full or short prefix)"),
    steps_file: Path | None = typer.Option(None, "--steps-file", help=STEPS_FILE_HELP),
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """Iterate a workflow until it completes, fails, or is paused or stopped."""
    run_command(_run(plan_id, steps_file, state_dir))


async def _run(plan_id_str: str, steps_file: Path | None, state_dir: Path | None) -> None:
    orchestrator, plan_id = await open_plan(plan_id_str, state_dir, steps_file=steps_file)
    plan = await orchestrator.run(
        plan_id, on_iteration=lambda report: format_iteration_report(console, report)
    )
    format_steps(console, plan)
    format_final(console, plan)


def execute_step(
    plan_id: str = typer.Argument(..., help="Plan ID (full or short prefix)"),
    step_id: str = typer.Argument(..., help="Step ID"),
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """Run a single waiting step by hand."""
    run_command(_execute_step(plan_id, step_id, state_dir))


async def _execute_step(plan_id_str: str, step_id: str, state_dir: Path | None) -> None:
    orchestrator, plan_id = await open_plan(plan_id_str, state_dir)
    outcome = await orchestrator.execute_step(plan_id, step_id)
    format_outcome(console, outcome)
    if outcome.result:
        console.print(f"[{theme.DIM}]{escape(outcome.result.strip()[:2000])}[/]")
    if not outcome.succeeded:
        raise typer.Exit(1)


def verify_plan(
    plan_id: str = typer.Argument(..., help="Plan ID (full or short prefix)"),
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """Check the plan's verification strategy without changing the plan."""
    run_command(_verify(plan_id, state_dir))


async def _verify(plan_id_str: str, state_dir: Path | None) -> None:
    orchestrator, plan_id = await open_plan(plan_id_str, state_dir)
    result = await orchestrator.verify(plan_id)
    format_verification(console, result)
    for detail in result.details:
        console.print(f"    [{theme.DIM}]- {detail.outcome.value}: {escape(detail.reason)}[/]")
    if not result.succeeded:
        raise typer.Exit(1)
