"""
Context Assembly — builds the system prompt from live workspace state.

The system prompt is rebuilt (never patched) from six ordered sections:

    1. Identity        persona + live environment facts + workspace root
    2. Memory          long-term + today's notes, head+tail budgeted
    3. Skills Summary  one line per loaded skill, always present
    4. Active Skill    full documents of skills whose keywords match the input
    5. Bootstrap Docs  fixed-name persona/policy documents from the workspace
    6. Permissions     storage scoping + the record and skill instincts

Sections are joined with a visible separator. Each is computed independently
at call time; a workspace I/O fault inside one section is logged and that
section omitted, so prompt construction itself never fails on disk trouble.
"""

from __future__ import annotations

import os
import platform
import sys
from datetime import datetime
from typing import Callable, Optional

import structlog

from nanox.harness.truncation import guard
from nanox.memory import MemoryStore
from nanox.skills import SkillLibrary
from nanox.workspace import WorkspaceStorage

logger = structlog.get_logger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"

BOOTSTRAP_FILES: tuple[str, ...] = ("AGENTS.md", "SOUL.md", "USER.md", "TOOLS.md", "IDENTITY.md")

DEFAULT_BOOTSTRAP: dict[str, str] = {
    "SOUL.md": """# Core Philosophy
You are a minimalist, high-efficiency AI agent.
- **Precision**: Do not waste tokens on pleasantries. Go straight to the solution.
- **Impact**: Focus on high-leverage changes.
- **Adaptability**: You are running in a dynamic environment; verify assumptions before acting.
- **Verification**: Never assume code works. Verify it.

# Tone
- Direct, professional, slightly dry.
- No emojis unless requested.
""",
    "USER.md": """# User Context
- **Role**: Developer / Architect
- **Goal**: Build a robust, self-improving AI agent runtime (nano-x).
- **Preferences**:
    - Small, readable modules.
    - Verified changes over speculative ones.
""",
    "AGENTS.md": """# Tool Usage Guidelines

## Editing Code
- **MUST use `smart_edit`** when modifying existing files.
    - `smart_edit` is a native tool, NOT a shell command. Never run it through `shell_execute_command`.
    - Provide a `findText` block with enough surrounding lines to be unique.
    - NEVER use `fs_write_file` to rewrite a whole file just to change a few lines.

## File Operations
- **Listing**: `fs_ls` (skips .git, node_modules, virtualenvs by default).
- **Reading**: `fs_read_file`. For files over 500 lines you MUST pass `startLine` and `endLine`.
- **Writing**: `fs_write_file` only for new files or very small ones.
- **Metadata**: `get_file_metadata` for size and timestamps. Do not guess.

## Shell Execution
- `shell_execute_command` for git, package managers, builds, tests, or when no specific tool exists.

## Sub-Agents
- `spawn_sub_agent` runs a fully isolated agent with its own context on the same filesystem.
- Use it for independent, self-contained tasks: analysis, audits, large refactors.
- Give it a clear, complete instruction; it returns a summary of what it did.

## Web
- `web_search(query)` returns the top results from DuckDuckGo. No API key needed.
- `web_fetch(url)` reads a page. Search first, then fetch when the snippet is insufficient.

## Output Handling
- Tool output over 5000 characters is truncated in the middle. Read large files in chunks.
""",
    "IDENTITY.md": """# Identity
You are nano-x, an autonomous coding agent.
""",
}

PERMISSION_CONSTRAINT = """Your cognition and memory are stored in ./workspace/. Unless the user explicitly says otherwise, do your self-updates and record keeping inside workspace/.

## Record Instinct
Your context window is expensive and temporary; your written storage is cheap and permanent.
Whenever you learn a new user preference, solve a hard bug, or settle an architectural decision, you MUST call the `remember` tool to persist it.

## Skill Usage (Progressive Loading)
You have a large skill library, but only the skill fragments most relevant to the current task are loaded.
If the loaded fragments are not enough, consult the `## Available Skills` list and either ask the user for more specific keywords or read the full document under `workspace/skills/` with `fs_read_file`."""


class ContextBuilder:
    """Assembles the system prompt from workspace storage on every call."""

    def __init__(
        self,
        storage: WorkspaceStorage,
        memory: MemoryStore,
        skills: SkillLibrary,
        memory_budget: int = 3000,
        skill_summary_keywords: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._memory = memory
        self._skills = skills
        self._memory_budget = memory_budget
        self._skill_summary_keywords = skill_summary_keywords
        self._clock = clock or datetime.now

    def prepare(self) -> None:
        """
        First-run setup: create the workspace tree, seed memory, materialise
        default bootstrap documents and scan skills.
        """
        try:
            self._storage.ensure()
            self._memory.ensure_structure()
            self.ensure_bootstrap_files()
        except OSError as e:
            logger.error("context_builder.workspace_setup_failed", error=str(e))
        try:
            self._skills.scan()
        except OSError as e:
            logger.error("context_builder.skill_scan_failed", error=str(e))

    def ensure_bootstrap_files(self) -> list[str]:
        created: list[str] = []
        for filename, content in DEFAULT_BOOTSTRAP.items():
            try:
                if self._storage.write_default(content, filename):
                    created.append(filename)
            except OSError as e:
                logger.error("context_builder.bootstrap_create_failed", file=filename, error=str(e))
        return created

    def build(self, user_input: Optional[str] = None) -> str:
        """Compose the full system prompt. ``user_input`` drives skill activation."""
        parts: list[str] = []

        for label, section in (
            ("identity", self.identity_section),
            ("memory", self.memory_section),
            ("skills_summary", self.skills_summary_section),
            ("active_skill", lambda: self.active_skill_section(user_input)),
            ("bootstrap", self.bootstrap_section),
            ("permission", self.permission_section),
        ):
            try:
                text = section()
            except (OSError, ValueError) as e:
                logger.error("context_builder.section_failed", section=label, error=str(e))
                continue
            if text:
                parts.append(text)

        return SECTION_SEPARATOR.join(parts)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def identity_section(self) -> str:
        now = self._clock().strftime("%A, %Y-%m-%d %H:%M")
        return (
            "# nano-x\n\n"
            "You are nano-x, a lightweight AI agent framework designed for efficiency and precision.\n\n"
            f"## Current Time\n{now}\n\n"
            "## Runtime\n"
            f"OS: {sys.platform} ({platform.platform(terse=True)})\n"
            f"Python: {platform.python_version()}\n"
            f"CWD: {os.getcwd()}\n\n"
            "## Workspace Status\n"
            f"Your home base is: {self._storage.root}\n"
            "Your cognitive sandbox (memory/config) is strictly confined to this directory.\n"
        )

    def memory_section(self) -> str:
        raw = self._memory.get_memory_context()
        if not raw.strip():
            return ""
        return f"## Memory (Second Brain)\n\n{guard(raw, self._memory_budget)}"

    def skills_summary_section(self) -> str:
        return f"## Available Skills\n{self._skills.summary(self._skill_summary_keywords)}"

    def active_skill_section(self, user_input: Optional[str]) -> str:
        if not user_input:
            return ""
        matched = self._skills.match(user_input)
        if not matched:
            return ""
        logger.info("context_builder.skills_activated", skills=[s.name for s in matched])
        body = SECTION_SEPARATOR.join(skill.render() for skill in matched)
        return f"# Active Skill Context\n\n{body}"

    def bootstrap_section(self) -> str:
        parts: list[str] = []
        loaded: list[str] = []
        for filename in BOOTSTRAP_FILES:
            try:
                content = self._storage.read_text(filename)
            except OSError as e:
                logger.error("context_builder.bootstrap_read_failed", file=filename, error=str(e))
                continue
            if content is None:
                continue
            parts.append(f"## {filename}\n\n{content}")
            loaded.append(filename)

        if loaded:
            logger.debug("context_builder.bootstrap_loaded", files=loaded)
        return "\n\n".join(parts)

    def permission_section(self) -> str:
        return PERMISSION_CONSTRAINT
