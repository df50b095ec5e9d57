import asyncio
import glob
from enum import Enum
from pathlib import Path
from typing import Any

import aiofiles
from loguru import logger

from src.domain.ports.command_runner_port import CommandRunnerPort
from src.domain.ports.tool_invoker_port import (
    PermanentInvokerError,
    ToolInvokerPort,
    TransientInvokerError,
)
from src.domain.value_objects.cancellation import CancellationToken
from src.infrastructure.persistence.atomic_io import atomic_write

# sysexits.h: temporary failure, caller is invited to retry
EX_TEMPFAIL = 75

MAX_LISTED_FILES = 500


class ToolName(str, Enum):
    SHELL = "shell"
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    LIST_FILES = "list_files"
    NOTE = "note"


def _is_retryable_output(text: str) -> bool:
    """Check if command output describes a transient failure."""
    msg = text.lower()
    retryable_patterns = (
        "rate limit",
        "429",
        "timeout",
        "timed out",
        "connection",
        "503",
        "temporarily",
        "try again",
        "resource busy",
    )
    return any(pattern in msg for pattern in retryable_patterns)


class LocalToolInvoker(ToolInvokerPort):
    """Executes step actions against the local machine.

    Actions are dicts keyed by ``tool``:
        {"tool": "shell", "command": "pytest -q"}
        {"tool": "read_file", "path": "README.md"}
        {"tool": "write_file", "path": "out.txt", "content": "..."}
        {"tool": "list_files", "pattern": "src/**/*.py"}
        {"tool": "note", "text": "..."}  # records progress, no side effects

    Relative paths resolve against the working directory and may not
    escape it.
    """

    def __init__(self, command_runner: CommandRunnerPort, working_dir: Path) -> None:
        self.command_runner = command_runner
        self.working_dir = working_dir.resolve()

    async def invoke(
        self,
        action: dict[str, Any],
        timeout_s: float,
        token: CancellationToken | None = None,
    ) -> str:
        raw_tool = action.get("tool")
        try:
            tool = ToolName(raw_tool)
        except ValueError as e:
            raise PermanentInvokerError(f"Unknown tool: {raw_tool!r}") from e
        if token is not None and token.is_cancelled:
            raise PermanentInvokerError(f"Cancelled before start: {token.reason}")

        logger.debug("Invoking {} with {}", tool.value, action)
        match tool:
            case ToolName.SHELL:
                return await self._shell(self._require(action, "command"), timeout_s)
            case ToolName.READ_FILE:
                return await self._read_file(self._require(action, "path"))
            case ToolName.WRITE_FILE:
                return await self._write_file(
                    self._require(action, "path"), str(action.get("content", ""))
                )
            case ToolName.LIST_FILES:
                return await self._list_files(str(action.get("pattern", "*")))
            case ToolName.NOTE:
                return str(action.get("text", "Step completed"))

    @staticmethod
    def _require(action: dict[str, Any], key: str) -> str:
        value = action.get(key)
        if not isinstance(value, str) or not value.strip():
            raise PermanentInvokerError(f"Action '{action.get('tool')}' requires '{key}'")
        return value

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        resolved = (
            candidate if candidate.is_absolute() else self.working_dir / candidate
        ).resolve()
        if not resolved.is_relative_to(self.working_dir):
            raise PermanentInvokerError(f"Path escapes working directory: {path}")
        return resolved

    async def _shell(self, command: str, timeout_s: float) -> str:
        try:
            result = await self.command_runner.run(command, self.working_dir, timeout_s)
        except OSError as e:
            raise PermanentInvokerError(f"Command could not start: {e}") from e

        if result.blocked:
            raise PermanentInvokerError(result.stderr)
        if result.timed_out:
            raise TransientInvokerError(f"Command timed out after {timeout_s}s: {command}")
        if result.exit_code == 0:
            return result.stdout

        detail = (result.stderr or result.stdout).strip()[-1000:]
        message = f"Command exited {result.exit_code}: {command}\n{detail}"
        if result.exit_code == EX_TEMPFAIL or _is_retryable_output(detail):
            raise TransientInvokerError(message)
        raise PermanentInvokerError(message)

    async def _read_file(self, path: str) -> str:
        target = self._resolve(path)
        try:
            async with aiofiles.open(target, encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise PermanentInvokerError(f"File not found: {path}") from e
        except OSError as e:
            raise TransientInvokerError(f"Failed to read {path}: {e}") from e

    async def _write_file(self, path: str, content: str) -> str:
        target = self._resolve(path)
        try:
            await atomic_write(target, content)
        except PermissionError as e:
            raise PermanentInvokerError(f"Permission denied writing {path}") from e
        except OSError as e:
            raise TransientInvokerError(f"Failed to write {path}: {e}") from e
        return f"Wrote {len(content)} chars to {path}"

    async def _list_files(self, pattern: str) -> str:
        if Path(pattern).is_absolute():
            raise PermanentInvokerError(f"Pattern must be relative: {pattern}")
        matches = await asyncio.to_thread(
            glob.glob, pattern, root_dir=str(self.working_dir), recursive=True
        )
        matches.sort()
        if len(matches) > MAX_LISTED_FILES:
            extra = len(matches) - MAX_LISTED_FILES
            return "\n".join(matches[:MAX_LISTED_FILES]) + f"\n... and {extra} more"
        return "\n".join(matches)
