from src.cli.formatters.plan_formatter import (
    format_final,
    format_iteration_report,
    format_outcome,
    format_plan_summary,
    format_steps,
    format_verification,
)

__all__ = [
    "format_final",
    "format_iteration_report",
    "format_outcome",
    "format_plan_summary",
    "format_steps",
    "format_verification",
]
