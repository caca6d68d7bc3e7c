"""
Skills System — on-demand, keyword-activated document bundles.

A skill is a directory under ``<workspace>/skills`` holding a ``SKILL.md``
document whose front-matter names it, describes it and lists its keywords:

    ---
    Name: Code Reviewer
    Description: Expert code analysis for security and maintainability.
    Keywords: [review, audit, security]
    ---

    Full instructions...

Skill lifecycle
---------------
1. SCAN     — every skill directory is loaded once at startup; a directory
              without valid front-matter is skipped
2. SUMMARY  — one line per skill is always present in the system prompt
3. ACTIVATE — when a user turn mentions any keyword (case-insensitive
              substring), that skill's full document joins the prompt for
              that turn only
4. RESCAN   — only an explicit ``scan()`` refreshes the library; the core
              never deletes skills
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from nanox.workspace import SKILLS_DIR, WorkspaceStorage

logger = structlog.get_logger(__name__)

SKILL_FILE = "SKILL.md"


@dataclass
class Skill:
    """A parsed skill ready to be summarised or injected."""

    name: str
    description: str
    keywords: list[str] = field(default_factory=list)  # lowercased
    body: str = ""                                     # full document text
    path: Path | None = None                           # the SKILL.md it came from

    def matches(self, user_input: str) -> bool:
        text = user_input.lower()
        return any(keyword and keyword in text for keyword in self.keywords)

    def summary_line(self, max_keywords: int = 3) -> str:
        shown = ", ".join(self.keywords[:max_keywords])
        return f"- **{self.name}**: {self.description} (Keywords: {shown}...)"

    def render(self) -> str:
        return f"## Skill: {self.name}\n{self.body}"


class SkillLibrary:
    """
    The set of skills loaded from a workspace, in load order.

    Load order is the sorted order of skill directory names, which also fixes
    the order in which activated skills appear in the prompt.
    """

    def __init__(self, storage: WorkspaceStorage):
        self._storage = storage
        self._skills: dict[str, Skill] = {}

    def scan(self) -> int:
        """(Re)load every skill directory. Returns the number of skills loaded."""
        from nanox.skills.loader import discover_skills, ensure_default_skill

        directory = self._storage.path(SKILLS_DIR)
        ensure_default_skill(directory)

        self._skills.clear()
        for dir_name, skill in discover_skills(directory):
            self._skills[dir_name] = skill
        logger.info("skill_library.scanned", count=len(self._skills))
        return len(self._skills)

    def summary(self, max_keywords: int = 3) -> str:
        if not self._skills:
            return "No skills available."
        return "\n".join(s.summary_line(max_keywords) for s in self._skills.values())

    def match(self, user_input: str) -> list[Skill]:
        """Every skill with at least one keyword found in ``user_input``."""
        if not user_input:
            return []
        return [s for s in self._skills.values() if s.matches(user_input)]

    @property
    def count(self) -> int:
        return len(self._skills)
