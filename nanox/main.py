"""
Main — the nano-x command line.

    nano-x                         interactive REPL
    nano-x "fix the failing test"  one prompt, then exit
    nano-x --subagent "..."        isolated child run (used by spawn_sub_agent)

Configuration comes from the environment (see ``nanox.config``). A missing or
invalid configuration is reported and the process exits non-zero. In
sub-agent mode the final assistant text is the only thing written to stdout,
so the parent can use it as the child's summary; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape as markup_escape

from nanox import __version__
from nanox.api.engine import EngineInitError
from nanox.config import NanoXConfig
from nanox.harness.loop import LoopResult
from nanox.session import Session, build_session
from nanox.types import ToolCall

_EXIT_WORDS = {"exit", "quit"}


def _shorten_long_fields(logger, method_name, event_dict):
    """
    Structlog processor that shortens free-text fields before rendering.

    User input, memory content and sub-agent instructions can be arbitrarily
    long; the console log only needs enough to recognise them.
    """
    long_keys = {"content", "instruction", "user_input", "command", "query"}
    max_display_len = 80

    for key in long_keys:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > max_display_len:
            event_dict[key] = val[:max_display_len] + "... [truncated]"

    return event_dict


_logging_configured = False


def configure_logging(level: int = logging.WARNING) -> None:
    """Configure structlog over stdlib logging. Subsequent calls are no-ops."""
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=level, stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            _shorten_long_fields,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger(__name__)
console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Presentation hooks
# ---------------------------------------------------------------------------


def _print_assistant(content: str) -> None:
    console.print(Markdown(content))


def _print_tool_result(call: ToolCall, text: str) -> None:
    first_line = text.splitlines()[0] if text else ""
    style = "red" if text.startswith("Error") else "dim"
    console.print(
        f"[{style}]  ↳ {markup_escape(call.name)}: {markup_escape(first_line[:120])}[/{style}]"
    )


def _print_subagent_line(line: str) -> None:
    console.print(f"[magenta]{markup_escape(line)}[/magenta]")


def _report_outcome(result: LoopResult) -> None:
    if result.status == "max_iterations":
        console.print(f"[yellow]Stopped: {markup_escape(result.error or '')}[/yellow]")
    elif result.status == "backend_error":
        console.print(f"[red]Backend error: {markup_escape(result.error or '')}[/red]")


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _print_banner(session_model: str) -> None:
    console.print(f"[bold cyan]nano-x[/bold cyan] [dim]v{__version__}[/dim]")
    console.print(f"[dim]Model: {markup_escape(session_model)}[/dim]")
    console.print('[yellow]Type "exit" or "quit" to leave.[/yellow]\n')


async def run_repl(session: Session) -> int:
    while True:
        try:
            line = await asyncio.to_thread(console.input, "[green]nano-x > [/green]")
        except (EOFError, KeyboardInterrupt):
            console.print()
            return 0

        user_input = line.strip()
        if user_input.lower() in _EXIT_WORDS:
            console.print("[cyan]Bye![/cyan]")
            return 0
        if not user_input:
            continue

        result = await session.send(
            user_input,
            on_assistant=_print_assistant,
            on_tool_result=_print_tool_result,
        )
        _report_outcome(result)
        console.print()


async def run_once(session: Session, prompt: str) -> int:
    result = await session.send(
        prompt,
        on_assistant=_print_assistant,
        on_tool_result=_print_tool_result,
    )
    _report_outcome(result)
    return 1 if result.status == "backend_error" else 0


async def run_subagent(session: Session, instruction: str) -> int:
    result = await session.send(instruction)
    print(result.final_text, flush=True)
    if result.status == "backend_error":
        print(result.error or "backend error", file=sys.stderr, flush=True)
        return 1
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("prompt", required=False)
@click.option(
    "--subagent",
    "subagent_instruction",
    metavar="INSTRUCTION",
    default=None,
    help="Run one instruction in an isolated sub-agent session and print the result.",
)
@click.version_option(__version__, prog_name="nano-x")
def cli(prompt: Optional[str], subagent_instruction: Optional[str]) -> None:
    """nano-x - a lightweight autonomous coding agent."""
    try:
        config = NanoXConfig()
        session = build_session(
            config,
            on_subagent_line=None if subagent_instruction else _print_subagent_line,
        )
    except ValidationError as e:
        err_console.print(f"[red]Configuration error:[/red]\n{markup_escape(str(e))}")
        sys.exit(2)
    except EngineInitError as e:
        err_console.print(f"[red]{markup_escape(str(e))}[/red]")
        sys.exit(1)

    if subagent_instruction is not None:
        logger.info("main.subagent_mode", instruction=subagent_instruction)
        sys.exit(asyncio.run(run_subagent(session, subagent_instruction)))

    if prompt:
        sys.exit(asyncio.run(run_once(session, prompt)))

    _print_banner(config.engine.model)
    sys.exit(asyncio.run(run_repl(session)))


if __name__ == "__main__":
    cli()
