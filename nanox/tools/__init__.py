"""Tool system — the agent's hands in the workspace, the shell and the web."""
from nanox.tools.base import Tool, ToolFamily
from nanox.tools.registry import ToolRegistry
from nanox.tools.schema import ToolDescriptor, ToolParam

__all__ = ["Tool", "ToolFamily", "ToolRegistry", "ToolDescriptor", "ToolParam"]
