import asyncio
from pathlib import Path
from typing import Any

import pytest

from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.command_runner_port import CommandResult, CommandRunnerPort
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerPort
from src.domain.ports.tool_invoker_port import (
    PermanentInvokerError,
    ToolInvokerPort,
    TransientInvokerError,
)
from src.domain.value_objects.cancellation import CancellationToken
from src.domain.value_objects.execution_config import ExecutionConfig
from src.domain.value_objects.verification_strategy import OutputPattern, VerificationStrategy


def make_step(step_id: str, *depends_on: str, **action: Any) -> Step:
    """Step whose action drives FakeInvoker (``result``, ``fail``, ``fail_times``, ``sleep``)."""
    return Step(
        id=step_id,
        description=f"step {step_id}",
        action={"name": step_id, **action},
        depends_on=list(depends_on),
    )


def make_config(
    strategy: VerificationStrategy | None = None,
    working_dir: Path | None = None,
    **overrides: Any,
) -> ExecutionConfig:
    values: dict[str, Any] = {
        "verification_strategy": strategy or OutputPattern(regex="ok"),
        "retry_backoff_s": 0.0,
        "retry_backoff_max_s": 0.0,
        "per_step_timeout_s": 5.0,
    }
    if working_dir is not None:
        values["working_dir"] = working_dir
    values.update(overrides)
    return ExecutionConfig(**values)


class FakeInvoker(ToolInvokerPort):
    """Scripted tool invoker keyed by the ``name`` in each action.

    ``fail_times`` failures of kind ``fail`` (transient/permanent) precede
    success; ``sleep`` delays every attempt; ``touch`` creates a file on
    success.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.attempts: dict[str, int] = {}
        self.running = 0
        self.max_running = 0

    async def invoke(
        self,
        action: dict[str, Any],
        timeout_s: float,
        token: CancellationToken | None = None,
    ) -> str:
        name = action.get("name", "")
        self.calls.append(action)
        attempt = self.attempts[name] = self.attempts.get(name, 0) + 1

        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if action.get("sleep"):
                await asyncio.sleep(action["sleep"])
            if attempt <= action.get("fail_times", 0):
                if action.get("fail", "transient") == "permanent":
                    raise PermanentInvokerError(f"{name} broke")
                raise TransientInvokerError(f"{name} flaked")
            if action.get("touch"):
                Path(action["touch"]).write_text(name)
            return str(action.get("result", f"{name} ok"))
        finally:
            self.running -= 1


class FakePlanner(PlannerPort):
    """Returns fixed initial steps and queued revisions (exceptions are raised)."""

    def __init__(
        self,
        steps: list[Step] | None = None,
        revisions: list[PlanDelta | Exception] | None = None,
    ) -> None:
        self.steps = steps or []
        self.revisions = list(revisions or [])
        self.contexts: list[FailureContext] = []

    async def generate(self, goal: str, config: ExecutionConfig) -> list[Step]:
        return [s.model_copy(deep=True) for s in self.steps]

    async def revise(self, plan: WorkflowPlan, failure_context: FailureContext) -> PlanDelta:
        self.contexts.append(failure_context)
        if not self.revisions:
            return PlanDelta(rationale="nothing left to try")
        revision = self.revisions.pop(0)
        if isinstance(revision, Exception):
            raise revision
        return revision


class FakeCommandRunner(CommandRunnerPort):
    def __init__(self, exit_codes: dict[str, int] | None = None) -> None:
        self.exit_codes = exit_codes or {}
        self.commands: list[str] = []

    async def run(self, command: str, cwd: Path, timeout_s: float) -> CommandResult:
        self.commands.append(command)
        return CommandResult(
            command=command,
            exit_code=self.exit_codes.get(command, 0),
            stdout="",
            stderr="",
            duration_ms=1,
        )


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    state_dir = tmp_path / ".workloop"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def command_runner() -> FakeCommandRunner:
    return FakeCommandRunner()
