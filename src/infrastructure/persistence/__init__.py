from src.infrastructure.persistence.json_plan_store import JsonPlanStore
from src.infrastructure.persistence.memory_plan_store import InMemoryPlanStore

__all__ = ["InMemoryPlanStore", "JsonPlanStore"]
