"""
Workspace Storage — the agent's on-disk cognitive sandbox.

Bootstrap documents, memory and skills all live under one configured root
(``<project>/workspace`` by default). Everything above this module reads and
writes through a ``WorkspaceStorage`` instance with explicit read / scan /
append operations, so no component assumes a fixed filesystem location.

Paths passed to the storage are relative to the workspace root; attempts to
escape the root are rejected.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

MEMORY_DIR = "memory"
SKILLS_DIR = "skills"


class WorkspaceStorage:
    """Read / scan / append access to a workspace directory tree."""

    def __init__(self, root: Path):
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def path(self, *parts: str) -> Path:
        """Resolve a workspace-relative path, refusing anything outside the root."""
        candidate = self._root.joinpath(*parts).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise ValueError(f"Path escapes workspace: {'/'.join(parts)}")
        return candidate

    def ensure(self) -> None:
        """Create the workspace root and its memory/skills subdirectories."""
        for directory in (self._root, self.path(MEMORY_DIR), self.path(SKILLS_DIR)):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info("workspace.directory_created", path=str(directory))

    def exists(self, *parts: str) -> bool:
        return self.path(*parts).exists()

    def read_text(self, *parts: str) -> Optional[str]:
        """Return the file's text, or None when it does not exist."""
        target = self.path(*parts)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write_text(self, content: str, *parts: str) -> Path:
        target = self.path(*parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target

    def append_text(self, content: str, *parts: str) -> Path:
        target = self.path(*parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as fh:
            fh.write(content)
        return target

    def write_default(self, content: str, *parts: str) -> bool:
        """Materialise ``content`` only if the file is missing. Returns True if written."""
        if self.exists(*parts):
            return False
        self.write_text(content, *parts)
        logger.info("workspace.default_created", file="/".join(parts))
        return True
