import sys
from pathlib import Path

import typer
from loguru import logger

from src.cli.commands import control, execute, list_plans, start, status

LOG_FILE = Path("workloop.log")


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure loguru logging."""
    logger.remove()

    file_path = log_file or LOG_FILE
    logger.add(
        file_path,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
        ),
        level="DEBUG",
        rotation="10 MB",
        encoding="utf-8",
    )

    if verbose:
        logger.add(
            sys.stderr,
            format="{time:HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
        )


app = typer.Typer(
    name="workloop",
    help="Workloop - plan, execute and verify goals in iterations",
    no_args_is_help=True,
)

# Lifecycle
app.command(name="start")(start.start_plan)
app.command(name="continue")(execute.continue_plan)
app.command(name="run")(execute.run_plan)
app.command(name="pause")(control.pause_plan)
app.command(name="resume")(control.resume_plan)
app.command(name="stop")(control.stop_plan)

# Inspection and manual control
app.command(name="status")(status.plan_status)
app.command(name="list")(list_plans.list_all_plans)
app.command(name="execute-step")(execute.execute_step)
app.command(name="verify")(execute.verify_plan)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output", is_eager=True),
    log_file: Path | None = typer.Option(None, "--log-file", help="Log file path"),
) -> None:
    """Workloop - plan, execute and verify goals in iterations."""
    setup_logging(verbose=verbose, log_file=log_file)


if __name__ == "__main__":
    app()
