from src.application.dto.iteration_report import IterationReport

__all__ = [
    "IterationReport",
]
