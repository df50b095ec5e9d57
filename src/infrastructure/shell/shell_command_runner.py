import asyncio
import os
import signal
import time
from pathlib import Path

from loguru import logger

from src.domain.ports.command_runner_port import CommandResult, CommandRunnerPort
from src.infrastructure.shell.command_guard import find_dangerous_pattern

MAX_OUTPUT_CHARS = 64_000


def _truncate(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + f"\n... [truncated {len(text) - MAX_OUTPUT_CHARS} chars]"


async def _kill_process_group(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
    except (ProcessLookupError, OSError):
        # Already gone, or not a group leader
        proc.kill()
    await proc.wait()


class ShellCommandRunner(CommandRunnerPort):
    """Runs commands through the system shell in their own process group.

    Timeouts and cancellation kill the whole group so children spawned by
    the command do not outlive it.
    """

    def __init__(self, env: dict[str, str] | None = None) -> None:
        self.env = env or {}

    async def run(self, command: str, cwd: Path, timeout_s: float) -> CommandResult:
        start = time.monotonic()

        dangerous_pattern = find_dangerous_pattern(command)
        if dangerous_pattern:
            logger.error(
                "Command blocked: '{}' matches dangerous pattern '{}'", command, dangerous_pattern
            )
            return CommandResult(
                command=command,
                exit_code=-1,
                stdout="",
                stderr=f"Command blocked: matches dangerous pattern '{dangerous_pattern}'",
                duration_ms=0,
                blocked=True,
            )

        env = dict(os.environ)
        env.update(self.env)

        logger.debug("Running command in {}: {}", cwd, command)
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
        except TimeoutError:
            await _kill_process_group(proc)
            logger.warning("Command timed out after {}s: {}", timeout_s, command)
            return CommandResult(
                command=command,
                exit_code=-1,
                stdout="",
                stderr=f"Timeout after {timeout_s}s",
                duration_ms=int((time.monotonic() - start) * 1000),
                timed_out=True,
            )
        except asyncio.CancelledError:
            await _kill_process_group(proc)
            raise

        return CommandResult(
            command=command,
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=_truncate(stdout.decode(errors="replace")),
            stderr=_truncate(stderr.decode(errors="replace")),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
