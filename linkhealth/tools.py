"""Helpers for invoking external command-line tools from the event loop."""

import asyncio
import logging
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ToolTimeoutError(Exception):
    """Raised when an external tool does not finish within its timeout."""

    pass


@dataclass(frozen=True)
class ToolResult:
    """Exit status and decoded output of a finished tool invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return self.stdout + self.stderr


def find_tool(name: str) -> str | None:
    """Return the absolute path of an executable on PATH, or None."""
    return shutil.which(name)


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill a child process and reap it."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def run_tool(
    args: Sequence[str],
    timeout: float,
    env: Mapping[str, str] | None = None,
) -> ToolResult:
    """Run a command without a shell and collect its output.

    Args:
        args: Program and arguments.
        timeout: Seconds to wait before killing the process.
        env: Full environment for the child, or None to inherit ours.

    Returns:
        ToolResult with the exit code and decoded output.

    Raises:
        ToolTimeoutError: If the process exceeds the timeout (it is killed).
        OSError: If the process cannot be spawned.
    """
    logger.debug("Running %s", args[0])
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=dict(env) if env is not None else None,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(process)
        raise ToolTimeoutError(f"{args[0]} timed out after {timeout:g}s")
    except BaseException:
        # Cancellation included: the child must not outlive its caller.
        await _kill(process)
        raise

    return ToolResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
