from src.application.plan_registry import PlanRegistry
from src.application.workflow_orchestrator import (
    MaxIterationsExceededError,
    PlanNotFoundError,
    StepNotFoundError,
    StepNotReadyError,
    WorkflowOrchestrator,
)

__all__ = [
    "MaxIterationsExceededError",
    "PlanNotFoundError",
    "PlanRegistry",
    "StepNotFoundError",
    "StepNotReadyError",
    "WorkflowOrchestrator",
]
