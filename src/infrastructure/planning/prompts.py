"""Prompt templates for the LLM-backed planner and judge."""

from src.domain.entities.workflow_plan import WorkflowPlan
from src.domain.ports.planner_port import FailureContext
from src.domain.value_objects.workflow_enums import StepStatus

PLANNER_SYSTEM = (
    "You are a planning assistant for an automation engine. "
    "You break goals into small, concrete steps that can be executed with "
    "shell commands and file operations."
)

_ACTIONS_HELP = """Each step is an object with:
- "id": short unique identifier (letters, digits, dashes)
- "description": what the step does
- "action": one of
    {"tool": "shell", "command": "<shell command>"}
    {"tool": "read_file", "path": "<relative path>"}
    {"tool": "write_file", "path": "<relative path>", "content": "<text>"}
    {"tool": "list_files", "pattern": "<glob>"}
    {"tool": "note", "text": "<progress note>"}
- "depends_on": ids of steps that must finish first (may be empty)
"""

_STATUS_MARKS = {
    StepStatus.DONE: "done",
    StepStatus.FAILED: "FAILED",
    StepStatus.RUNNING: "running",
    StepStatus.WAITING: "waiting",
    StepStatus.SKIPPED: "skipped",
}


def planning_prompt(goal: str) -> str:
    return f"""Break down this goal into concrete, executable steps: {goal}

{_ACTIONS_HELP}
Steps without dependencies may run in parallel.
Respond with JSON only: {{"steps": [ ... ]}}
If you cannot produce JSON, respond with a numbered list of steps instead.
"""


def format_history(plan: WorkflowPlan, max_output_chars: int = 400) -> str:
    """One line per step, with truncated output or error."""
    lines: list[str] = []
    for step in plan.steps:
        if step.superseded:
            continue
        detail = step.error if step.status == StepStatus.FAILED else step.result
        detail = (detail or "").strip().replace("\n", " ")[:max_output_chars]
        deps = f" (after {', '.join(step.depends_on)})" if step.depends_on else ""
        lines.append(f"- [{_STATUS_MARKS[step.status]}] {step.id}: {step.description}{deps}")
        if detail:
            lines.append(f"    {detail}")
    return "\n".join(lines) or "(no steps)"


def revision_prompt(plan: WorkflowPlan, context: FailureContext) -> str:
    failed = "\n".join(
        f"- {o.step_id} ({o.error_kind.value if o.error_kind else 'error'}): "
        f"{(o.error or '')[:400]}"
        for o in context.failed_steps
    )
    verification = context.verification.reason if context.verification else "not run"
    waiting = [s.id for s in plan.steps_with_status(StepStatus.WAITING)]
    used_ids = ", ".join(s.id for s in plan.steps)

    return f"""The workflow for this goal needs remediation: {plan.goal}

Iteration {context.iteration} of {plan.max_iterations}. Trigger: {context.trigger.value}.
{context.message}

Failed steps:
{failed or "(none)"}

Verification: {verification}

Current plan:
{format_history(plan)}

Propose NEW steps that fix the problem and reach the goal.
{_ACTIONS_HELP}
New step ids must not reuse any of: {used_ids}
New steps may depend on done steps or on each other.
You may remove waiting steps that are no longer useful: {", ".join(waiting) or "(none)"}
Respond with JSON only:
{{"new_steps": [ ... ], "remove_step_ids": [ ... ], "rationale": "<why>"}}
Return an empty "new_steps" list if the goal cannot be reached.
"""


def judge_prompt(criteria: str, plan: WorkflowPlan) -> str:
    return f"""Verify if this workflow has successfully achieved its goal: {plan.goal}

Success criteria: {criteria}

Steps executed:
{format_history(plan)}

Rate the success on a scale of 0-10 and explain why.
Format:
SCORE: X/10
REASON: explanation
"""
