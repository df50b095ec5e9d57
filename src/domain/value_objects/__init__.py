from src.domain.value_objects.cancellation import CancellationToken
from src.domain.value_objects.execution_config import MAX_ITERATIONS_BOUND, ExecutionConfig
from src.domain.value_objects.step_outcome import StepOutcome
from src.domain.value_objects.verification_result import VerificationResult
from src.domain.value_objects.verification_strategy import (
    Combined,
    CommandSuccess,
    ExternalValidation,
    FileExists,
    OutputPattern,
    VerificationStrategy,
    build_strategy,
    describe_strategy,
)
from src.domain.value_objects.workflow_enums import (
    FailureReason,
    PlanStatus,
    ReplanTrigger,
    StepErrorKind,
    StepStatus,
    VerificationOutcome,
)

__all__ = [
    "CancellationToken",
    "Combined",
    "CommandSuccess",
    "ExecutionConfig",
    "ExternalValidation",
    "FailureReason",
    "FileExists",
    "MAX_ITERATIONS_BOUND",
    "OutputPattern",
    "PlanStatus",
    "ReplanTrigger",
    "StepErrorKind",
    "StepOutcome",
    "StepStatus",
    "VerificationOutcome",
    "VerificationResult",
    "VerificationStrategy",
    "build_strategy",
    "describe_strategy",
]
