from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.judge_port import ValidationJudgePort
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerError, PlannerPort
from src.domain.value_objects.execution_config import ExecutionConfig
from src.infrastructure.planning.openrouter_client import API_KEY_ENV, OpenRouterClient


class ProviderNotConfiguredError(Exception):
    """Raised when no planner can be built from the given options."""

    def __init__(self, provider: str, setup_instructions: str) -> None:
        self.provider = provider
        self.setup_instructions = setup_instructions
        super().__init__(f"{provider} is not configured. {setup_instructions}")


class UnconfiguredPlanner(PlannerPort):
    """Planner for a reopened plan when no model or steps source is available.

    Already planned steps still run. Planning raises instead of returning an
    empty revision, so a failure stays unhandled until a planner is given.
    """

    def __init__(self, instructions: str) -> None:
        self.instructions = instructions

    async def generate(self, goal: str, config: ExecutionConfig) -> list[Step]:
        raise PlannerError(f"No planner configured. {self.instructions}")

    async def revise(self, plan: WorkflowPlan, failure_context: FailureContext) -> PlanDelta:
        raise PlannerError(f"Cannot re-plan without a planner. {self.instructions}")


@dataclass
class PlanningBackend:
    planner: PlannerPort
    judge: ValidationJudgePort | None


def create_backend(
    steps_file: Path | None = None,
    step_lines: list[str] | None = None,
    require_planner: bool = True,
) -> PlanningBackend:
    """Pick the planner and judge for a CLI invocation.

    A steps file or inline steps select the static planner; otherwise the
    OpenRouter-backed planner is used. The LLM judge is attached whenever an
    API key is available.

    Raises:
        ProviderNotConfiguredError: If a planner is needed and none can be built.
    """
    from src.infrastructure.planning.llm_judge import LLMJudge
    from src.infrastructure.planning.llm_planner import LLMPlanner
    from src.infrastructure.planning.static_planner import StaticPlanner

    client = OpenRouterClient.from_env()
    judge = LLMJudge(client) if client else None

    if steps_file is not None:
        return PlanningBackend(StaticPlanner.from_file(steps_file), judge)
    if step_lines:
        return PlanningBackend(StaticPlanner.from_lines(step_lines), judge)
    if client is not None:
        return PlanningBackend(LLMPlanner(client), judge)
    instructions = f"Set {API_KEY_ENV}, or pass --steps-file / --step to plan without a model."
    if not require_planner:
        logger.warning("No planner configured; re-planning will fail until one is")
        return PlanningBackend(UnconfiguredPlanner(instructions), judge)

    raise ProviderNotConfiguredError("LLM planner", instructions)
