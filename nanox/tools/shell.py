"""
Shell tool — run a command in the system shell and report what it printed.

stdout and stderr are merged into one stream, decoded leniently, and followed
by the exit code. A wall-clock timeout kills the process and comes back as an
error string. ``smart_edit`` is a native tool; commands that try to reach it
through the shell are refused before anything is spawned.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any

import structlog

from nanox.tools.base import Tool, ToolFamily
from nanox.tools.schema import ToolParam

logger = structlog.get_logger(__name__)

_SMART_EDIT_RE = re.compile(r"(^|[\s;&|(`$])smart_edit\b")

SMART_EDIT_REFUSAL = (
    "Error: Do not call smart_edit via shell. It is a native tool; "
    "invoke smart_edit directly with path, findText and replaceText."
)


@dataclass
class ShellResult:
    output: str
    exit_code: int | None
    timed_out: bool = False

    def render(self) -> str:
        if self.timed_out:
            return self.output
        body = self.output.rstrip("\n")
        if body:
            return f"{body}\nExit code: {self.exit_code}"
        return f"Exit code: {self.exit_code}"


def invokes_smart_edit(command: str) -> bool:
    return bool(_SMART_EDIT_RE.search(command))


async def execute_command(command: str, timeout: float = 120.0) -> ShellResult:
    """Run ``command`` through the shell with a wall-clock ``timeout``."""
    if invokes_smart_edit(command):
        logger.warning("shell.smart_edit_refused", command=command)
        return ShellResult(output=SMART_EDIT_REFUSAL, exit_code=1)

    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("shell.timeout", command=command, timeout=timeout)
        return ShellResult(
            output=f"Error: Command timed out after {timeout:g}s",
            exit_code=proc.returncode,
            timed_out=True,
        )

    return ShellResult(
        output=stdout.decode("utf-8", errors="replace"),
        exit_code=proc.returncode,
    )


class ShellTool(Tool):
    name = "shell_execute_command"
    description = (
        "Execute a shell command (git, package managers, builds, tests). "
        "Output combines stdout and stderr and ends with the exit code."
    )
    family = ToolFamily.SHELL
    parameters = (ToolParam("command", "string", "The command to execute"),)

    def __init__(self, timeout: float = 120.0):
        self._timeout = timeout

    async def execute(self, args: dict[str, Any]) -> str:
        command = args["command"]
        if not command.strip():
            return "Error: Command is empty"
        result = await execute_command(command, timeout=self._timeout)
        logger.info("shell.executed", exit_code=result.exit_code, timed_out=result.timed_out)
        return result.render()
