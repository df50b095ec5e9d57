from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel


class CommandResult(BaseModel):
    """Result of running a shell command."""

    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    blocked: bool = False


class CommandRunnerPort(ABC):
    """Port for running shell commands."""

    @abstractmethod
    async def run(self, command: str, cwd: Path, timeout_s: float) -> CommandResult:
        """Run a command and return its result.

        Never raises for non-zero exit codes; timeouts are reported through
        ``timed_out``.
        """
