"""
Filesystem tools — listing, reading, writing, editing and inspecting files.

Paths are resolved against the process working directory. Every operation
reports problems as ``Error: ...`` text rather than raising, and large reads
are paginated so a single call cannot flood the context window.

``smart_edit`` is the preferred way to change existing files. It replaces
exactly one occurrence of a find block, comparing with line endings
normalised, and refuses to guess when the block is missing or ambiguous.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import structlog

from nanox.tools.base import Tool, ToolFamily
from nanox.tools.schema import ToolParam

logger = structlog.get_logger(__name__)

IGNORED_NAMES = frozenset({
    "node_modules", ".git", ".env", "dist", ".DS_Store", "__pycache__", ".venv",
})


def _resolve(path: str) -> Path:
    return Path(os.getcwd(), path or ".").resolve()


# ---------------------------------------------------------------------------
# Smart edit
# ---------------------------------------------------------------------------


@dataclass
class EditOutcome:
    status: Literal["ok", "not_found", "ambiguous"]
    content: str | None = None
    occurrences: int = 0


def uses_crlf(text: str) -> bool:
    """True when CRLF line endings outnumber bare LF ones."""
    crlf = text.count("\r\n")
    bare_lf = text.count("\n") - crlf
    return crlf > bare_lf


def apply_smart_edit(content: str, find: str, replace: str) -> EditOutcome:
    """
    Replace the single occurrence of ``find`` in ``content``.

    Comparison happens on LF-normalised text. On success the result is
    re-expanded to CRLF when the original predominantly used CRLF.
    """
    crlf = uses_crlf(content)
    norm_content = content.replace("\r\n", "\n")
    norm_find = find.replace("\r\n", "\n")
    norm_replace = replace.replace("\r\n", "\n")

    if not norm_find:
        return EditOutcome(status="not_found")

    occurrences = len(norm_content.split(norm_find)) - 1
    if occurrences == 0:
        return EditOutcome(status="not_found")
    if occurrences > 1:
        return EditOutcome(status="ambiguous", occurrences=occurrences)

    before, after = norm_content.split(norm_find, 1)
    updated = before + norm_replace + after
    if crlf:
        updated = updated.replace("\n", "\r\n")
    return EditOutcome(status="ok", content=updated, occurrences=1)


class SmartEditTool(Tool):
    name = "smart_edit"
    description = (
        "Edit a file by replacing one unique block of text. findText must match "
        "exactly once (line endings are normalised); include surrounding lines "
        "to make it unique. Preferred over rewriting whole files."
    )
    family = ToolFamily.FILESYSTEM
    parameters = (
        ToolParam("path", "string", "The file path to edit"),
        ToolParam("findText", "string", "The exact block of text to find (must be unique)"),
        ToolParam("replaceText", "string", "The text to replace it with"),
    )

    async def execute(self, args: dict[str, Any]) -> str:
        target = _resolve(args["path"])
        try:
            raw = target.read_bytes()
        except OSError as e:
            return f"Error reading file: {e}"
        content = raw.decode("utf-8")

        outcome = apply_smart_edit(content, args["findText"], args["replaceText"])
        if outcome.status == "not_found":
            return (
                "Error: findText not found in file. Ensure an exact match "
                "(whitespace and indentation included)."
            )
        if outcome.status == "ambiguous":
            return (
                f"Error: findText matches {outcome.occurrences} occurrences. "
                "Include more surrounding context so it matches exactly once."
            )

        target.write_bytes(outcome.content.encode("utf-8"))
        logger.info("smart_edit.applied", path=str(target))
        return f"Successfully edited {args['path']}"


# ---------------------------------------------------------------------------
# Listing / reading / writing / metadata
# ---------------------------------------------------------------------------


def _walk(directory: Path, recursive: bool, max_depth: int, depth: int = 1) -> list[str]:
    if depth > max_depth:
        return []
    try:
        items = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError:
        return []

    entries: list[str] = []
    cwd = Path(os.getcwd())
    for item in items:
        if item.name in IGNORED_NAMES:
            continue
        try:
            shown = os.path.relpath(item, cwd)
        except ValueError:
            shown = str(item)
        is_dir = item.is_dir()
        entries.append(f"{shown}/" if is_dir else shown)
        if recursive and is_dir:
            entries.extend(_walk(item, recursive, max_depth, depth + 1))
    return entries


class ListDirectoryTool(Tool):
    name = "fs_ls"
    description = "List files in a directory. Ignores node_modules, .git, virtualenvs and caches."
    family = ToolFamily.FILESYSTEM
    parameters = (
        ToolParam("path", "string", "Directory path"),
        ToolParam("recursive", "boolean", "List recursively?", required=False),
        ToolParam("depth", "number", "Recursion depth (default 2)", required=False),
    )

    def __init__(self, max_entries: int = 100):
        self._max_entries = max_entries

    async def execute(self, args: dict[str, Any]) -> str:
        target = _resolve(args["path"])
        if not target.exists():
            return f"Error listing directory: {args['path']} does not exist"
        if not target.is_dir():
            return f"Error: {args['path']} is not a directory"

        entries = _walk(target, bool(args.get("recursive", False)), int(args.get("depth", 2)))
        if len(entries) > self._max_entries:
            extra = len(entries) - self._max_entries
            return (
                "\n".join(entries[: self._max_entries])
                + f"\n\n... and {extra} more files (Too many files)"
            )
        return "\n".join(entries) if entries else "(empty directory)"


class ReadFileTool(Tool):
    name = "fs_read_file"
    description = (
        "Read file content. Files over 500 lines must be read with startLine/endLine."
    )
    family = ToolFamily.FILESYSTEM
    parameters = (
        ToolParam("path", "string", "File path"),
        ToolParam("startLine", "number", "Start line (1-based)", required=False),
        ToolParam("endLine", "number", "End line (1-based, inclusive)", required=False),
    )

    def __init__(self, max_lines: int = 500):
        self._max_lines = max_lines

    async def execute(self, args: dict[str, Any]) -> str:
        target = _resolve(args["path"])
        try:
            content = target.read_text(encoding="utf-8")
        except OSError as e:
            return f"Error reading file: {e}"

        lines = content.split("\n")
        total = len(lines)
        if total > self._max_lines and "startLine" not in args:
            return (
                f"Error: File is too large ({total} lines). "
                "Please specify a line range (startLine, endLine) to read."
            )

        start = max(int(args.get("startLine", 1)) - 1, 0)
        end = min(int(args.get("endLine", total)), total)
        if start >= end:
            return f"Error: Invalid line range {start + 1}-{end}"

        body = "\n".join(lines[start:end])
        return f"{body}\n\nTotal lines: {total}, Showing lines {start + 1}-{end}"


class WriteFileTool(Tool):
    name = "fs_write_file"
    description = "Write content to a file (overwrites). Creates parent directories automatically."
    family = ToolFamily.FILESYSTEM
    parameters = (
        ToolParam("path", "string", "File path"),
        ToolParam("content", "string", "Full content"),
    )

    async def execute(self, args: dict[str, Any]) -> str:
        target = _resolve(args["path"])
        data = args["content"].encode("utf-8")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            return f"Error writing file: {e}"
        return f"File saved successfully ({len(data)} bytes)"


class FileMetadataTool(Tool):
    name = "get_file_metadata"
    description = "Get file metadata (size, isDirectory, lastModified). Use this instead of guessing."
    family = ToolFamily.FILESYSTEM
    parameters = (ToolParam("path", "string", "File or directory path"),)

    async def execute(self, args: dict[str, Any]) -> str:
        target = _resolve(args["path"])
        try:
            stats = target.stat()
        except OSError as e:
            return f"Error getting metadata: {e}"
        return json.dumps(
            {
                "size": stats.st_size,
                "isDirectory": target.is_dir(),
                "lastModified": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
            },
            indent=2,
        )
