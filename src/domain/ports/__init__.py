from src.domain.ports.command_runner_port import CommandResult, CommandRunnerPort
from src.domain.ports.judge_port import JudgeVerdict, ValidationJudgePort
from src.domain.ports.plan_store_port import PlanStorePort, StoreError
from src.domain.ports.planner_port import FailureContext, PlanDelta, PlannerError, PlannerPort
from src.domain.ports.tool_invoker_port import (
    InvokerError,
    PermanentInvokerError,
    ToolInvokerPort,
    TransientInvokerError,
)

__all__ = [
    # Command runner port
    "CommandResult",
    "CommandRunnerPort",
    # Judge port
    "JudgeVerdict",
    "ValidationJudgePort",
    # Plan store port
    "PlanStorePort",
    "StoreError",
    # Planner port
    "FailureContext",
    "PlanDelta",
    "PlannerError",
    "PlannerPort",
    # Tool invoker port
    "InvokerError",
    "PermanentInvokerError",
    "ToolInvokerPort",
    "TransientInvokerError",
]
