"""CLI utility functions."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from src.application.workflow_orchestrator import (
    MaxIterationsExceededError,
    PlanNotFoundError,
    StepNotFoundError,
    StepNotReadyError,
)
from src.cli.theme import theme
from src.domain.errors import DependencyError, InvalidTransitionError, StateCorruptionError
from src.domain.ports.planner_port import PlannerError
from src.domain.ports.plan_store_port import StoreError
from src.infrastructure.planning.planner_factory import ProviderNotConfiguredError

T = TypeVar("T")

# Domain failures reported as a message and exit code 1, never a traceback
DOMAIN_ERRORS: tuple[type[Exception], ...] = (
    PlanNotFoundError,
    StepNotFoundError,
    StepNotReadyError,
    MaxIterationsExceededError,
    InvalidTransitionError,
    DependencyError,
    PlannerError,
    StoreError,
    StateCorruptionError,
)

err_console = Console(stderr=True)


def sanitize_terminal_input(text: str) -> str:
    """Remove surrogate characters that can't be encoded as UTF-8.

    Terminal input can sometimes contain surrogate characters (U+D800 to U+DFFF)
    due to encoding issues. These would break JSON persistence of the goal.
    """
    return text.encode("utf-8", "ignore").decode("utf-8")


def print_validation_error(e: ValidationError) -> None:
    for error in e.errors():
        loc = error.get("loc", ())
        field = str(loc[0]) if loc else ""
        msg = error.get("msg", str(error))
        # Clean up Pydantic message format
        if msg.startswith("Value error, "):
            msg = msg[13:]
        if field:
            typer.echo(f"Error: --{field.replace('_', '-')}: {msg}", err=True)
        else:
            typer.echo(f"Error: {msg}", err=True)


def run_command(coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine, mapping domain errors to exit code 1."""
    try:
        return asyncio.run(coro)
    except ProviderNotConfiguredError as e:
        err_console.print(f"\n[{theme.ERROR_BOLD}]Error:[/] {e.provider} is not configured.\n")
        err_console.print(f"[{theme.DIM}]{e.setup_instructions}[/]\n")
        raise typer.Exit(1) from None
    except ValidationError as e:
        print_validation_error(e)
        raise typer.Exit(1) from None
    except DOMAIN_ERRORS as e:
        err_console.print(f"[{theme.ERROR_BOLD}]Error:[/] {escape(str(e))}")
        raise typer.Exit(1) from None
