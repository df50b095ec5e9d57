from src.infrastructure.shell.command_guard import (
    DANGEROUS_COMMAND_PATTERNS,
    find_dangerous_pattern,
)
from src.infrastructure.shell.shell_command_runner import ShellCommandRunner

__all__ = ["DANGEROUS_COMMAND_PATTERNS", "ShellCommandRunner", "find_dangerous_pattern"]
