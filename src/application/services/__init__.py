from src.application.services.replanner import RePlanner
from src.application.services.step_executor import (
    StepCancelledError,
    StepExecutor,
    StepTimeoutError,
)
from src.application.services.verifier import VerificationContext, Verifier

__all__ = [
    "RePlanner",
    "StepCancelledError",
    "StepExecutor",
    "StepTimeoutError",
    "VerificationContext",
    "Verifier",
]
