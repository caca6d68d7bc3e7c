"""
Skill Loader — discovers and parses skill directories.

Each skill lives in its own subdirectory as ``SKILL.md`` with a simple
front-matter block:

    ---
    Name: <display name>
    Description: <one line>
    Keywords: [kw1, kw2, ...]
    ---

All three fields are required. Directories without a ``SKILL.md``, or whose
front-matter is missing a field, are skipped without raising.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from nanox.skills import SKILL_FILE, Skill

logger = structlog.get_logger(__name__)

_FRONTMATTER_RE = re.compile(r"^---\r?\n(.*?)\r?\n---", re.DOTALL)
_NAME_RE = re.compile(r"Name:\s*(.+)")
_DESCRIPTION_RE = re.compile(r"Description:\s*(.+)")
_KEYWORDS_RE = re.compile(r"Keywords:\s*\[(.*?)\]")

DEFAULT_SKILL_DIR = "code_reviewer"

DEFAULT_SKILL_CONTENT = """---
Name: Code Reviewer
Description: Expert code analysis for security, performance, and maintainability.
Keywords: [review, audit, security, refactor, code quality]
---

# Code Review Standard

## 1. Security
- **Injection**: Check for SQL injection, XSS, command injection.
- **Secrets**: Ensure no hardcoded secrets or API keys.
- **Input Validation**: Validate all external inputs.

## 2. Performance
- **Loops**: Avoid O(n^2) or worse inside critical paths.
- **IO**: Use async I/O for file and network operations.
- **Resources**: Check for leaked file handles, sockets and subprocesses.

## 3. Maintainability
- **Naming**: Variables should be descriptive (`user_age`, not `x`).
- **Functions**: Single responsibility. Under 50 lines preferred.
- **Types**: Annotate public interfaces.

## 4. Workflow
1. Read the code file(s).
2. Identify issues based on the checklist above.
3. Summarise Critical, High, and Medium issues.
4. Suggest specific fixes in `diff` format.
"""


def parse_skill_text(text: str, path: Path | None = None) -> Skill | None:
    """Parse a SKILL.md document. Returns None when the front-matter is incomplete."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None

    block = match.group(1)
    name = _NAME_RE.search(block)
    description = _DESCRIPTION_RE.search(block)
    keywords = _KEYWORDS_RE.search(block)
    if not (name and description and keywords):
        return None

    return Skill(
        name=name.group(1).strip(),
        description=description.group(1).strip(),
        keywords=[k.strip().lower() for k in keywords.group(1).split(",") if k.strip()],
        body=text,
        path=path,
    )


def parse_skill_file(path: Path) -> Skill | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("skill_loader.read_error", path=str(path), error=str(e))
        return None

    skill = parse_skill_text(raw, path)
    if skill is None:
        logger.debug("skill_loader.no_frontmatter", path=str(path))
    return skill


def discover_skills(directory: Path) -> list[tuple[str, Skill]]:
    """
    Parse every ``<directory>/<name>/SKILL.md``.

    Returns ``(directory name, skill)`` pairs sorted by directory name.
    """
    if not directory.is_dir():
        return []

    found: list[tuple[str, Skill]] = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        skill_file = entry / SKILL_FILE
        if not skill_file.is_file():
            continue
        skill = parse_skill_file(skill_file)
        if skill:
            found.append((entry.name, skill))
            logger.info("skill_loader.loaded", name=skill.name, dir=entry.name)
        else:
            logger.info("skill_loader.skipped", dir=entry.name)
    return found


def ensure_default_skill(directory: Path) -> bool:
    """
    Seed the default code-review skill when the skills directory is missing
    or empty. Returns True if the default was written.
    """
    if directory.is_dir() and any(directory.iterdir()):
        return False
    try:
        target = directory / DEFAULT_SKILL_DIR
        target.mkdir(parents=True, exist_ok=True)
        (target / SKILL_FILE).write_text(DEFAULT_SKILL_CONTENT, encoding="utf-8")
    except OSError as e:
        logger.error("skill_loader.default_skill_failed", path=str(directory), error=str(e))
        return False
    logger.info("skill_loader.default_skill_created", name=DEFAULT_SKILL_DIR)
    return True
