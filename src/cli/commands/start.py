from pathlib import Path

import typer
from rich.console import Console

from src.cli.context import build_orchestrator, default_state_dir
from src.cli.formatters.plan_formatter import (
    format_final,
    format_iteration_report,
    format_plan_summary,
    format_steps,
)
from src.cli.theme import theme
from src.cli.utils import run_command, sanitize_terminal_input
from src.domain.value_objects.execution_config import ExecutionConfig
from src.domain.value_objects.verification_strategy import build_strategy
from src.infrastructure.persistence.json_plan_store import JsonPlanStore

console = Console()


def start_plan(
    goal: str = typer.Argument(..., help="Goal to plan and execute"),
    strategy: str | None = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Verification: file_exists, command_success, llm_validation, combined, "
        "or a regex matched against step output (default: inferred from --path/--check/--criteria)",
    ),
    path_pattern: list[str] = typer.Option(
        [], "--path", "-p", help="Glob that must match (file_exists / combined)"
    ),
    check_command: str | None = typer.Option(
        None, "--check", "-c", help="Command that must succeed (command_success / combined)"
    ),
    criteria: str | None = typer.Option(
        None, "--criteria", help="Success criteria for the LLM judge (llm_validation / combined)"
    ),
    max_iterations: int = typer.Option(10, "--max-iterations", "-n", help="Iteration cap (1-50)"),
    step_timeout: float = typer.Option(300.0, "--step-timeout", help="Per-step timeout (s)"),
    retry_limit: int = typer.Option(3, "--retries", help="Attempts per step"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Max parallel steps"),
    working_dir: Path | None = typer.Option(
        None, "--working-dir", "-d", help="Directory steps run in (default: cwd)"
    ),
    steps_file: Path | None = typer.Option(
        None, "--steps-file", help="JSON steps file (static planner)", exists=True
    ),
    step: list[str] = typer.Option(
        [], "--step", help="Inline sequential step; prefix with ! to run a shell command"
    ),
    run_loop: bool = typer.Option(False, "--run", "-r", help="Keep iterating until done"),
    state_dir: Path | None = typer.Option(None, "--state-dir", help="State directory"),
) -> None:
    """Plan a goal and start a workflow."""
    run_command(
        _start(
            goal=sanitize_terminal_input(goal),
            strategy=strategy,
            path_patterns=path_pattern,
            check_command=check_command,
            criteria=criteria,
            max_iterations=max_iterations,
            step_timeout=step_timeout,
            retry_limit=retry_limit,
            workers=workers,
            working_dir=working_dir,
            steps_file=steps_file,
            step_lines=step,
            run_loop=run_loop,
            state_dir=state_dir,
        )
    )


async def _start(
    goal: str,
    strategy: str | None,
    path_patterns: list[str],
    check_command: str | None,
    criteria: str | None,
    max_iterations: int,
    step_timeout: float,
    retry_limit: int,
    workers: int | None,
    working_dir: Path | None,
    steps_file: Path | None,
    step_lines: list[str],
    run_loop: bool,
    state_dir: Path | None,
) -> None:
    strategy = strategy or _infer_strategy(path_patterns, check_command, criteria)
    try:
        verification = build_strategy(
            strategy, path_patterns=path_patterns, command=check_command, criteria=criteria
        )
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--strategy") from None

    config = ExecutionConfig(
        verification_strategy=verification,
        max_iterations=max_iterations,
        per_step_timeout_s=step_timeout,
        per_step_retry_limit=retry_limit,
        worker_pool_size=workers,
        working_dir=(working_dir or Path.cwd()).resolve(),
        steps_file=steps_file.resolve() if steps_file else None,
        step_lines=step_lines,
    )

    store = JsonPlanStore(state_dir or default_state_dir())
    orchestrator = build_orchestrator(
        store, config.working_dir, steps_file=steps_file, step_lines=step_lines
    )

    with console.status(f"[{theme.INFO}]Planning...[/]"):
        plan_id = await orchestrator.start(goal, config)

    plan = await orchestrator.status(plan_id)
    console.print(f"[{theme.SUCCESS_BOLD}]Plan created:[/] {plan_id}")
    format_plan_summary(console, plan)
    format_steps(console, plan)

    if run_loop:
        plan = await orchestrator.run(
            plan_id, on_iteration=lambda report: format_iteration_report(console, report)
        )
        format_final(console, plan)
    else:
        console.print(
            f"\n[{theme.DIM}]Execute with: [{theme.INFO}]workloop run {plan_id.hex[:8]}[/][/]"
        )


def _infer_strategy(
    path_patterns: list[str], check_command: str | None, criteria: str | None
) -> str:
    given = [
        name
        for name, value in (
            ("file_exists", path_patterns),
            ("command_success", check_command),
            ("llm_validation", criteria),
        )
        if value
    ]
    if not given:
        raise typer.BadParameter(
            "Give --check, --path or --criteria (or a --strategy regex) to verify the goal",
            param_hint="--strategy",
        )
    return given[0] if len(given) == 1 else "combined"
