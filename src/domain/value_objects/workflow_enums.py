from enum import Enum


class PlanStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.STOPPED)


class StepStatus(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.DONE, StepStatus.FAILED, StepStatus.SKIPPED)


class StepErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class FailureReason(str, Enum):
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    NO_REMEDIATION = "no_remediation"


class VerificationOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    INCONCLUSIVE = "inconclusive"


class ReplanTrigger(str, Enum):
    STEP_FAILURE = "step_failure"
    VERIFICATION_FAILURE = "verification_failure"
    VERIFICATION_INCONCLUSIVE = "verification_inconclusive"
    BLOCKED_STEPS = "blocked_steps"
