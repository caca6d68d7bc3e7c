"""
Sub-agent spawning — delegate a self-contained task to an isolated child.

The child is a separate ``nano-x`` process started in sub-agent mode with the
instruction as its only input. It shares the filesystem and nothing else: no
message history, no registry, no in-memory state crosses the process boundary.

The parent streams the child's stdout and stderr line by line to an optional
observer while the child runs, and resolves only when the process exits. The
outcome is a ``SubagentResult`` whose status separates a clean run from a
non-zero exit, a process that never started, and one that ran out of time.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import sys
import time
from typing import Any, Callable, Literal, Optional, Sequence

import structlog
from pydantic import BaseModel

from nanox.tools.base import Tool, ToolFamily
from nanox.tools.schema import ToolParam

logger = structlog.get_logger(__name__)

SUBAGENT_ENV_FLAG = "NANOX_SUBAGENT_MODE"
_READ_CHUNK = 64 * 1024
_MAX_LINE_CHARS = 2000

LineCallback = Callable[[str], Any]
CommandFactory = Callable[[str], Sequence[str]]


class SubagentResult(BaseModel):
    """Outcome of one child run."""

    status: Literal["completed", "failed", "spawn_failed", "timeout"] = "completed"
    exit_code: Optional[int] = None
    output_tail: str = ""
    error_log: str = ""
    elapsed_seconds: float = 0.0

    def render(self) -> str:
        if self.status == "completed":
            return f"Sub-Agent Execution Completed.\n\nOutput Summary:\n{self.output_tail}"
        if self.status == "spawn_failed":
            return f"Failed to spawn sub-agent: {self.error_log}"
        if self.status == "timeout":
            return (
                f"Sub-Agent Timed Out after {self.elapsed_seconds:g}s.\n\n"
                f"Output Summary:\n{self.output_tail}"
            )
        return f"Sub-Agent Failed (Exit Code: {self.exit_code}).\n\nError Log:\n{self.error_log}"


def default_command(instruction: str) -> list[str]:
    return [sys.executable, "-m", "nanox.main", "--subagent", instruction]


class SubagentRunner:
    """Runs one child process and collects its streamed output."""

    def __init__(
        self,
        timeout: float = 600.0,
        tail_chars: int = 2000,
        command_factory: CommandFactory = default_command,
        on_line: Optional[LineCallback] = None,
    ):
        self._timeout = timeout
        self._tail_chars = tail_chars
        self._command_factory = command_factory
        self._on_line = on_line

    async def run(self, instruction: str) -> SubagentResult:
        start = time.monotonic()
        command = list(self._command_factory(instruction))
        env = {**os.environ, SUBAGENT_ENV_FLAG: "true"}

        logger.info("subagent.spawn", instruction=instruction)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=os.getcwd(),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("subagent.spawn_failed", error=str(e))
            return SubagentResult(
                status="spawn_failed",
                error_log=str(e),
                elapsed_seconds=round(time.monotonic() - start, 2),
            )

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        timed_out = False
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._pump(proc.stdout, stdout_parts, "[Sub]"),
                    self._pump(proc.stderr, stderr_parts, "[Sub:Err]"),
                    proc.wait(),
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            timed_out = True
        finally:
            # Never leave the child running, whatever ended the wait.
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        elapsed = round(time.monotonic() - start, 2)
        if timed_out:
            logger.warning("subagent.timeout", timeout=self._timeout)
            status = "timeout"
        else:
            logger.info("subagent.exited", exit_code=proc.returncode, elapsed_seconds=elapsed)
            status = "completed" if proc.returncode == 0 else "failed"
        return SubagentResult(
            status=status,
            exit_code=proc.returncode,
            output_tail=self._tail("".join(stdout_parts)),
            error_log="".join(stderr_parts),
            elapsed_seconds=elapsed,
        )

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        sink: list[str],
        prefix: str,
    ) -> None:
        """Drain ``stream`` in fixed-size chunks, reporting complete lines as they form."""
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await stream.read(_READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                sink.append(text)
                pending += text
                *lines, pending = pending.split("\n")
                for line in lines:
                    self._emit(prefix, line)
            if not chunk:
                break
        self._emit(prefix, pending)

    def _emit(self, prefix: str, line: str) -> None:
        line = line.rstrip("\r")
        if not line or self._on_line is None:
            return
        if len(line) > _MAX_LINE_CHARS:
            line = line[:_MAX_LINE_CHARS] + "..."
        try:
            self._on_line(f"{prefix} {line}")
        except Exception as e:
            logger.warning("subagent.line_callback_failed", error=str(e))

    def _tail(self, text: str) -> str:
        return text[-self._tail_chars:] if len(text) > self._tail_chars else text


class SpawnSubAgentTool(Tool):
    name = "spawn_sub_agent"
    description = (
        "Spawn a sub-agent to handle a complex task independently. Use this for code "
        "analysis, refactoring, or multi-step operations that can be isolated."
    )
    family = ToolFamily.SUBAGENT
    parameters = (ToolParam("instruction", "string", "The detailed instruction for the sub-agent."),)

    def __init__(self, runner: Optional[SubagentRunner] = None):
        self._runner = runner or SubagentRunner()

    async def execute(self, args: dict[str, Any]) -> str:
        instruction = args["instruction"].strip()
        if not instruction:
            return "Error: Instruction cannot be empty."
        result = await self._runner.run(instruction)
        return result.render()
