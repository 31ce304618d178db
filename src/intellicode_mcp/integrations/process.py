"""Subprocess helper shared by the ESLint and TypeScript adapters."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from ..errors import ExternalToolError
from ..mcp_logger import log_debug


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


CommandRunner = Callable[[Sequence[str], str], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str], tool: str, cwd: Optional[str] = None) -> CommandResult:
    """Run argv to completion. A missing executable is an ExternalToolError."""
    log_debug(f"Running {tool}: {' '.join(argv)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ExternalToolError(f"{tool} could not be started: {e}", tool=tool) from e

    stdout, stderr = await proc.communicate()
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
