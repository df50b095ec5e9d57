"""Turn planner output (JSON or a numbered list) into Step entities."""

import json
import re
from typing import Any

from loguru import logger
from pydantic import ValidationError

from src.domain.entities.step import Step, new_step_id
from src.domain.ports.planner_port import PlannerError
from src.infrastructure.tools.local_tool_invoker import ToolName
from src.infrastructure.utils.json_extractor import extract_json

# "1. Do x", "2) Do y", "Step 3: Do z"
_NUMBERED_LINE = re.compile(r"^\s*(?:step\s+)?\d+\s*[.):]\s*(?P<text>.+)$", re.IGNORECASE)

# "@bash-cmd(ls -la)", "@read-file(README.md)", "@list-files(*.py)"
_COMMAND_CALL = re.compile(r"@(?P<name>[a-z-]+)\((?P<arg>.*)\)")

_COMMAND_TOOLS = {
    "bash-cmd": (ToolName.SHELL, "command"),
    "read-file": (ToolName.READ_FILE, "path"),
    "list-files": (ToolName.LIST_FILES, "pattern"),
}


def action_from_text(text: str) -> dict[str, Any]:
    """Infer a tool action from a step description.

    Recognises ``@bash-cmd(...)``, ``@read-file(...)``, ``@list-files(...)``
    and a leading ``!`` for raw shell commands; anything else is a note.
    """
    stripped = text.strip().strip("`")
    if stripped.startswith("!"):
        return {"tool": ToolName.SHELL.value, "command": stripped[1:].strip()}

    match = _COMMAND_CALL.search(text)
    if match and match.group("name") in _COMMAND_TOOLS:
        tool, key = _COMMAND_TOOLS[match.group("name")]
        return {"tool": tool.value, key: match.group("arg").strip()}

    return {"tool": ToolName.NOTE.value, "text": f"Step completed: {text.strip()}"}


def parse_numbered_list(text: str) -> list[Step]:
    """Parse a numbered list; each step depends on the one before it."""
    steps: list[Step] = []
    for line in text.splitlines():
        match = _NUMBERED_LINE.match(line)
        if not match:
            continue
        description = match.group("text").strip()
        if not description:
            continue
        depends_on = [steps[-1].id] if steps else []
        steps.append(
            Step(
                description=description,
                action=action_from_text(description),
                depends_on=depends_on,
            )
        )
    return steps


def _step_from_dict(
    raw: dict[str, Any],
    position: int,
    ids_by_position: dict[int, str],
) -> Step:
    description = raw.get("description") or raw.get("step") or raw.get("title")
    if not isinstance(description, str) or not description.strip():
        raise PlannerError(f"Step {position} has no description")

    action = raw.get("action")
    if action is None:
        command = raw.get("command")
        action = (
            {"tool": ToolName.SHELL.value, "command": command}
            if isinstance(command, str) and command.strip()
            else action_from_text(description)
        )
    if not isinstance(action, dict):
        raise PlannerError(f"Step {position} action must be an object")

    depends_on: list[str] = []
    for dep in raw.get("depends_on", raw.get("dependsOn", [])) or []:
        # Integers refer to 1-based positions in the same list
        if isinstance(dep, int):
            if dep not in ids_by_position:
                raise PlannerError(f"Step {position} depends on unknown position {dep}")
            depends_on.append(ids_by_position[dep])
        else:
            depends_on.append(str(dep))

    try:
        return Step(
            id=ids_by_position[position],
            description=description.strip(),
            action=action,
            depends_on=depends_on,
            timeout_s=raw.get("timeout_s"),
        )
    except ValidationError as e:
        raise PlannerError(f"Step {position} is invalid: {e}") from e


def parse_steps_payload(data: Any) -> list[Step]:
    """Build steps from decoded JSON: a list of steps or ``{"steps": [...]}``."""
    if isinstance(data, dict):
        data = data.get("steps", data.get("new_steps"))
    if not isinstance(data, list):
        raise PlannerError("Expected a list of steps")

    ids_by_position: dict[int, str] = {}
    for position, raw in enumerate(data, start=1):
        if isinstance(raw, dict) and raw.get("id"):
            ids_by_position[position] = str(raw["id"])
        else:
            ids_by_position[position] = new_step_id()

    steps: list[Step] = []
    for position, raw in enumerate(data, start=1):
        if isinstance(raw, str):
            steps.append(
                Step(
                    id=ids_by_position[position],
                    description=raw,
                    action=action_from_text(raw),
                )
            )
        elif isinstance(raw, dict):
            steps.append(_step_from_dict(raw, position, ids_by_position))
        else:
            raise PlannerError(f"Step {position} must be an object or a string")
    return steps


def parse_steps_response(response: str) -> list[Step]:
    """Parse an LLM reply: JSON first, numbered list as fallback.

    Raises:
        PlannerError: If neither format yields any step.
    """
    try:
        data = extract_json(response)
    except (json.JSONDecodeError, ValueError):
        data = None

    if data is not None:
        try:
            steps = parse_steps_payload(data)
        except PlannerError as e:
            logger.debug("JSON planner reply rejected, trying numbered list: {}", e)
        else:
            if steps:
                return steps

    steps = parse_numbered_list(response)
    if not steps:
        raise PlannerError("No valid steps found in planning response")
    return steps
