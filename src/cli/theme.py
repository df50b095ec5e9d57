"""CLI theme configuration - all colors in one place.

Colors use Rich markup syntax (e.g., "green", "bold red", "dim italic").
"""

from src.domain.value_objects.workflow_enums import PlanStatus, StepStatus


class Theme:
    """Terminal color theme for the workloop CLI."""

    # -------------------------------------------------------------------------
    # Status colors (for success/error/warning indicators)
    # -------------------------------------------------------------------------
    SUCCESS = "green"
    SUCCESS_BOLD = "bold green"
    ERROR = "red"
    ERROR_BOLD = "bold red"
    WARNING = "yellow"
    WARNING_BOLD = "bold yellow"
    INFO = "cyan"

    # -------------------------------------------------------------------------
    # Text styles
    # -------------------------------------------------------------------------
    HEADER = "bold"
    DIM = "grey62"
    DIM_ITALIC = "grey62 italic"

    # -------------------------------------------------------------------------
    # Table columns
    # -------------------------------------------------------------------------
    TABLE_ID = "cyan"

    # -------------------------------------------------------------------------
    # Plan status
    # -------------------------------------------------------------------------
    PLAN_STATUS = {
        PlanStatus.ACTIVE: "bold cyan",
        PlanStatus.PAUSED: "bold yellow",
        PlanStatus.COMPLETED: "bold green",
        PlanStatus.FAILED: "bold red",
        PlanStatus.STOPPED: "bold yellow",
    }

    # -------------------------------------------------------------------------
    # Step status
    # -------------------------------------------------------------------------
    STEP_STATUS = {
        StepStatus.WAITING: "grey62",
        StepStatus.RUNNING: "yellow",
        StepStatus.DONE: "green",
        StepStatus.FAILED: "red",
        StepStatus.SKIPPED: "grey62 italic",
    }
    STEP_ICON = {
        StepStatus.WAITING: "○",
        StepStatus.RUNNING: "⏳",
        StepStatus.DONE: "✓",
        StepStatus.FAILED: "✗",
        StepStatus.SKIPPED: "-",
    }


# Default theme instance - import this in other modules
theme = Theme()
