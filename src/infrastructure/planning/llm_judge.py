import re

from loguru import logger

from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.judge_port import JudgeVerdict, ValidationJudgePort
from src.infrastructure.planning.openrouter_client import OpenRouterClient
from src.infrastructure.planning.prompts import judge_prompt

PASS_THRESHOLD = 0.7
DEFAULT_SCORE = 0.5

_SCORE_LINE = re.compile(r"^\s*SCORE:\s*(?P<score>\d+(?:\.\d+)?)\s*(?:/\s*10)?", re.IGNORECASE)
_REASON_LINE = re.compile(r"^\s*REASON:\s*(?P<reason>.*)$", re.IGNORECASE)


def parse_judgement(response: str) -> tuple[float, str]:
    """Extract (score in 0..1, reason) from a ``SCORE: X/10`` reply."""
    score = DEFAULT_SCORE
    reason = "LLM verification completed"
    for line in response.splitlines():
        if match := _SCORE_LINE.match(line):
            score = min(float(match.group("score")), 10.0) / 10.0
        elif match := _REASON_LINE.match(line):
            reason = match.group("reason").strip() or reason
    return score, reason


class LLMJudge(ValidationJudgePort):
    """Asks a model to score the plan's history against the criteria.

    Client errors propagate; the verifier reports them as inconclusive.
    """

    def __init__(self, client: OpenRouterClient, threshold: float = PASS_THRESHOLD) -> None:
        self.client = client
        self.threshold = threshold

    async def judge(self, criteria: str, plan: WorkflowPlan) -> JudgeVerdict:
        response = await self.client.complete(judge_prompt(criteria, plan))
        score, reason = parse_judgement(response)
        logger.info("LLM judge scored plan {} at {:.1f}/10", plan.id, score * 10)
        return JudgeVerdict(passed=score >= self.threshold, rationale=reason, score=score)
