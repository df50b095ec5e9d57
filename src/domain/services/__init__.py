"""Domain services."""

from src.domain.services.dependency_graph import find_cycle, validate_dependencies
from src.domain.services.scheduler import Scheduler

__all__ = [
    "Scheduler",
    "find_cycle",
    "validate_dependencies",
]
