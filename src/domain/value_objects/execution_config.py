from pathlib import Path

from pydantic import BaseModel, Field

from src.domain.value_objects.verification_strategy import VerificationStrategy

MAX_ITERATIONS_BOUND = 50


class ExecutionConfig(BaseModel, frozen=True):
    """Execution parameters fixed when a plan starts."""

    verification_strategy: VerificationStrategy
    max_iterations: int = Field(default=10, ge=1, le=MAX_ITERATIONS_BOUND)
    per_step_timeout_s: float = Field(default=300.0, gt=0)
    per_step_retry_limit: int = Field(default=3, ge=1)
    worker_pool_size: int | None = Field(
        default=None, ge=1, description="Concurrent steps per cycle (None = unbounded)"
    )
    retry_backoff_s: float = Field(default=1.0, ge=0)
    retry_backoff_max_s: float = Field(default=30.0, ge=0)
    working_dir: Path = Field(default_factory=Path.cwd)
    # Static planner source, rebuilt when a stored plan is reopened
    steps_file: Path | None = None
    step_lines: list[str] = Field(default_factory=list)
