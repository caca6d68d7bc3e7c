"""
Built-in tools — the closed capability set a session starts with.

Registration order is fixed and is the order the model sees the tools in:
filesystem, shell, memory, web search, web fetch, sub-agent.
"""

from __future__ import annotations

from typing import Optional

from nanox.config import ToolsConfig
from nanox.memory import MemoryStore
from nanox.tools.filesystem import (
    FileMetadataTool,
    ListDirectoryTool,
    ReadFileTool,
    SmartEditTool,
    WriteFileTool,
)
from nanox.tools.memory import RememberTool
from nanox.tools.registry import ToolRegistry
from nanox.tools.shell import ShellTool
from nanox.tools.subagent import LineCallback, SpawnSubAgentTool, SubagentRunner
from nanox.tools.web import WebFetchTool, WebSearchTool


def build_default_registry(
    config: ToolsConfig,
    memory: MemoryStore,
    on_subagent_line: Optional[LineCallback] = None,
) -> ToolRegistry:
    """Construct the registry holding every built-in capability."""
    return ToolRegistry([
        ListDirectoryTool(max_entries=config.ls_max_entries),
        ReadFileTool(max_lines=config.read_max_lines),
        WriteFileTool(),
        SmartEditTool(),
        FileMetadataTool(),
        ShellTool(timeout=config.shell_timeout_seconds),
        RememberTool(memory),
        WebSearchTool(max_results=config.search_max_results),
        WebFetchTool(timeout=config.fetch_timeout_seconds, max_chars=config.fetch_max_chars),
        SpawnSubAgentTool(SubagentRunner(
            timeout=config.subagent_timeout_seconds,
            tail_chars=config.subagent_tail_chars,
            on_line=on_subagent_line,
        )),
    ])
