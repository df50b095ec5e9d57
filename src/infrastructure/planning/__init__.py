from src.infrastructure.planning.llm_judge import LLMJudge
from src.infrastructure.planning.llm_planner import LLMPlanner
from src.infrastructure.planning.openrouter_client import LLMClientError, OpenRouterClient
from src.infrastructure.planning.planner_factory import (
    PlanningBackend,
    ProviderNotConfiguredError,
    UnconfiguredPlanner,
    create_backend,
)
from src.infrastructure.planning.static_planner import StaticPlanner

__all__ = [
    "LLMClientError",
    "LLMJudge",
    "LLMPlanner",
    "OpenRouterClient",
    "PlanningBackend",
    "ProviderNotConfiguredError",
    "StaticPlanner",
    "UnconfiguredPlanner",
    "create_backend",
]
