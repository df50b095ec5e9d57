import json

import httpx
from loguru import logger
from pydantic import ValidationError

from src.domain.entities.step import Step
from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerError, PlannerPort
from src.domain.value_objects.execution_config import ExecutionConfig
from src.infrastructure.planning.openrouter_client import LLMClientError, OpenRouterClient
from src.infrastructure.planning.prompts import PLANNER_SYSTEM, planning_prompt, revision_prompt
from src.infrastructure.planning.step_parser import parse_steps_payload, parse_steps_response
from src.infrastructure.utils.json_extractor import extract_json


class LLMPlanner(PlannerPort):
    """PlannerPort backed by a chat-completions model."""

    def __init__(self, client: OpenRouterClient) -> None:
        self.client = client

    async def _ask(self, prompt: str) -> str:
        try:
            return await self.client.complete(prompt, system=PLANNER_SYSTEM)
        except (LLMClientError, httpx.HTTPError) as e:
            raise PlannerError(f"LLM planning failed: {e}") from e

    async def generate(self, goal: str, config: ExecutionConfig) -> list[Step]:
        response = await self._ask(planning_prompt(goal))
        steps = parse_steps_response(response)
        logger.info("LLM planner produced {} steps for goal", len(steps))
        return steps

    async def revise(self, plan: WorkflowPlan, failure_context: FailureContext) -> PlanDelta:
        response = await self._ask(revision_prompt(plan, failure_context))

        try:
            data = extract_json(response)
        except (json.JSONDecodeError, ValueError):
            # Plain numbered list: treat every line as a new step
            return PlanDelta(new_steps=parse_steps_response(response), rationale="")

        if isinstance(data, list):
            return PlanDelta(new_steps=parse_steps_payload(data))
        if not isinstance(data, dict):
            raise PlannerError("Revision reply is not a JSON object")

        remove_ids = data.get("remove_step_ids") or []
        if not isinstance(remove_ids, list):
            raise PlannerError("Malformed revision: remove_step_ids must be a list")
        try:
            return PlanDelta(
                new_steps=parse_steps_payload(data.get("new_steps") or []),
                remove_step_ids=[str(i) for i in remove_ids],
                rationale=str(data.get("rationale") or ""),
            )
        except (ValidationError, TypeError) as e:
            raise PlannerError(f"Malformed revision: {e}") from e
