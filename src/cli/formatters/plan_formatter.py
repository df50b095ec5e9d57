from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from src.application.dto.iteration_report import IterationReport
from src.cli.theme import theme
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.verification_strategy import describe_strategy
from src.domain.value_objects.workflow_enums import PlanStatus, VerificationOutcome
from src.infrastructure.utils.formatting import format_duration_ms


def _status(plan_status: PlanStatus) -> str:
    return f"[{theme.PLAN_STATUS[plan_status]}]{plan_status.value}[/]"


def _first_line(text: str | None, limit: int = 80) -> str:
    lines = (text or "").strip().splitlines()
    return escape(lines[0][:limit]) if lines else ""


def format_plan_summary(console: Console, plan: WorkflowPlan) -> None:
    done, total = plan.progress()
    table = Table(title=f"Plan {plan.id.hex[:8]}", show_header=False)
    table.add_column("Property", style=theme.INFO)
    table.add_column("Value")

    table.add_row("Goal", escape(plan.goal))
    table.add_row("Status", _status(plan.status))
    if plan.status_reason:
        table.add_row("Reason", escape(plan.status_reason))
    table.add_row("Iteration", f"{plan.current_iteration}/{plan.max_iterations}")
    table.add_row("Progress", f"{done}/{total} steps done")
    table.add_row("Verification", escape(describe_strategy(plan.verification_strategy)))
    if plan.last_verification:
        table.add_row("Last check", escape(plan.last_verification.reason))
    table.add_row("Working dir", escape(str(plan.config.working_dir)))
    table.add_row("Updated", plan.updated_at.strftime("%Y-%m-%d %H:%M:%S UTC"))
    console.print(table)


def format_steps(console: Console, plan: WorkflowPlan, show_superseded: bool = False) -> None:
    table = Table(title="Steps")
    table.add_column("", width=2)
    table.add_column("ID", style=theme.TABLE_ID)
    table.add_column("Description")
    table.add_column("After", style=theme.DIM)
    table.add_column("Tries", justify="right")
    table.add_column("Result", style=theme.DIM, overflow="fold")

    for step in plan.steps:
        if step.superseded and not show_superseded:
            continue
        style = theme.STEP_STATUS[step.status]
        detail = step.error if step.error else step.result
        table.add_row(
            f"[{style}]{theme.STEP_ICON[step.status]}[/]",
            escape(step.id),
            f"[{style}]{escape(step.description)}[/]",
            escape(", ".join(step.depends_on)) or "-",
            str(step.attempt_count),
            _first_line(detail),
        )
    console.print(table)


def format_outcome(console: Console, outcome: StepOutcome) -> None:
    duration = format_duration_ms(outcome.duration_ms)
    if outcome.succeeded:
        console.print(
            f"  [{theme.SUCCESS}]✓[/] {escape(outcome.step_id)} [{theme.DIM}]({duration})[/]"
        )
        return
    kind = outcome.error_kind.value if outcome.error_kind else "error"
    console.print(
        f"  [{theme.ERROR}]✗[/] {escape(outcome.step_id)} [{theme.DIM}]{kind}, "
        f"{outcome.attempts} attempt(s), {duration}[/]"
    )
    if outcome.error:
        console.print(f"    [{theme.ERROR}]{escape(outcome.error.strip()[:300])}[/]")


def format_verification(console: Console, result: VerificationResult) -> None:
    match result.outcome:
        case VerificationOutcome.SUCCESS:
            label = f"[{theme.SUCCESS_BOLD}]PASS[/]"
        case VerificationOutcome.FAILURE:
            label = f"[{theme.ERROR_BOLD}]FAIL[/]"
        case _:
            label = f"[{theme.WARNING_BOLD}]INCONCLUSIVE[/]"
    console.print(f"  Verification {label} [{theme.DIM}](score {result.score:.2f})[/]")
    console.print(f"    {escape(result.reason)}")


def format_iteration_report(console: Console, report: IterationReport) -> None:
    if not report.executed:
        console.print(f"[{theme.DIM}]{escape(report.message)}[/]")
        return

    console.print(
        f"\n[{theme.HEADER}]Iteration {report.iteration}/{report.snapshot.max_iterations}[/] "
        f"{_status(report.plan_status)}"
    )
    for outcome in report.steps_run:
        format_outcome(console, outcome)
    if report.verification:
        format_verification(console, report.verification)
    if report.plan_change:
        change = report.plan_change
        console.print(
            f"  [{theme.WARNING}]Re-planned[/] ({change.trigger.value}): "
            f"+{len(change.added_step_ids)} step(s), -{len(change.removed_step_ids)} removed"
        )
        if change.reason:
            console.print(f"    [{theme.DIM_ITALIC}]{escape(change.reason)}[/]")


def format_final(console: Console, plan: WorkflowPlan) -> None:
    plan_short = plan.id.hex[:8]
    match plan.status:
        case PlanStatus.COMPLETED:
            console.print(
                f"\n[{theme.SUCCESS_BOLD}]✅ Goal achieved[/] "
                f"in {plan.current_iteration} iteration(s)"
            )
        case PlanStatus.FAILED:
            console.print(
                Panel(
                    f"[bold]Plan failed.[/]\n\nReason: {escape(plan.status_reason or 'Unknown')}",
                    border_style=theme.ERROR,
                )
            )
        case PlanStatus.STOPPED:
            console.print(f"\n[{theme.WARNING_BOLD}]⏹  Plan stopped[/]")
        case PlanStatus.PAUSED:
            console.print(
                f"\n[{theme.WARNING_BOLD}]⏸  Plan paused.[/] "
                f"Resume with: [{theme.INFO}]workloop resume {plan_short}[/]"
            )
        case PlanStatus.ACTIVE:
            console.print(
                f"\n[{theme.DIM}]Plan still active. Continue with: "
                f"[{theme.INFO}]workloop continue {plan_short}[/][/]"
            )
