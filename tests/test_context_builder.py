"""
Tests for nanox.context.ContextBuilder — the system prompt pipeline.

Checks section order, first-run materialisation of bootstrap documents,
keyword-gated skill activation, the memory budget, and that a workspace fault
in one section only removes that section.
"""

from __future__ import annotations

import pytest

from nanox.context import (
    BOOTSTRAP_FILES,
    DEFAULT_BOOTSTRAP,
    PERMISSION_CONSTRAINT,
    SECTION_SEPARATOR,
    ContextBuilder,
)
from nanox.harness.truncation import TRUNCATION_MARKER
from nanox.memory import MEMORY_FILE
from nanox.skills import SKILL_FILE
from nanox.workspace import MEMORY_DIR, SKILLS_DIR

DEPLOY_SKILL = """---
Name: Deployer
Description: Ships builds.
Keywords: [deploy, rollout]
---
DEPLOY-SKILL-BODY
"""


@pytest.fixture()
def builder(storage, memory, skills, fixed_clock) -> ContextBuilder:
    b = ContextBuilder(storage, memory, skills, clock=fixed_clock)
    b.prepare()
    return b


def _sections(prompt: str) -> list[str]:
    return prompt.split(SECTION_SEPARATOR)


class TestPrepare:
    def test_materialises_default_bootstrap(self, builder, storage):
        for filename in DEFAULT_BOOTSTRAP:
            assert storage.exists(filename)
        assert not storage.exists("TOOLS.md")

    def test_does_not_overwrite_existing(self, storage, memory, skills, fixed_clock):
        storage.write_text("custom soul", "SOUL.md")
        ContextBuilder(storage, memory, skills, clock=fixed_clock).prepare()
        assert storage.read_text("SOUL.md") == "custom soul"

    def test_undecodable_skill_does_not_abort_setup(self, storage, memory, skills, fixed_clock):
        storage.write_text(DEPLOY_SKILL, SKILLS_DIR, "deploy", SKILL_FILE)
        garbled = storage.path(SKILLS_DIR, "garbled")
        garbled.mkdir(parents=True)
        (garbled / SKILL_FILE).write_bytes(b"\xff\xfe\x00 not utf-8")

        builder = ContextBuilder(storage, memory, skills, clock=fixed_clock)
        builder.prepare()

        prompt = builder.build("deploy now")
        assert "**Deployer**" in prompt
        assert "DEPLOY-SKILL-BODY" in prompt


class TestBuild:
    def test_section_order(self, builder):
        prompt = builder.build()
        headings = [s.splitlines()[0] for s in _sections(prompt)]
        assert headings[0] == "# nano-x"
        assert headings[1] == "## Memory (Second Brain)"
        assert headings[2] == "## Available Skills"
        assert headings[3].startswith("## AGENTS.md")
        assert prompt.endswith(PERMISSION_CONSTRAINT)

    def test_identity_has_time_and_root(self, builder, storage):
        identity = builder.identity_section()
        assert "Saturday, 2026-03-14 09:26" in identity
        assert f"Your home base is: {storage.root}" in identity

    def test_bootstrap_order_and_format(self, builder, storage):
        storage.write_text("tool notes", "TOOLS.md")
        section = builder.bootstrap_section()
        positions = [section.index(f"## {name}") for name in BOOTSTRAP_FILES]
        assert positions == sorted(positions)
        assert "## TOOLS.md\n\ntool notes" in section

    def test_skill_activated_only_on_keyword(self, builder, storage, skills):
        storage.write_text(DEPLOY_SKILL, SKILLS_DIR, "deploy", SKILL_FILE)
        skills.scan()

        assert "DEPLOY-SKILL-BODY" not in builder.build("write some tests")
        assert "# Active Skill Context" not in builder.build("write some tests")

        prompt = builder.build("please Deploy to staging")
        assert "# Active Skill Context\n\n## Skill: Deployer\n" + DEPLOY_SKILL in prompt

        # Activation is per call.
        assert "DEPLOY-SKILL-BODY" not in builder.build()

    def test_summary_lists_all_skills(self, builder):
        assert "- **Code Reviewer**:" in builder.skills_summary_section()

    def test_memory_section_omitted_when_blank(self, storage, memory, skills, fixed_clock):
        storage.path(MEMORY_DIR, MEMORY_FILE).unlink()
        b = ContextBuilder(storage, memory, skills, clock=fixed_clock)
        assert b.memory_section() == ""
        assert "## Memory (Second Brain)" not in b.build()

    def test_large_memory_is_budgeted(self, builder, memory):
        memory.save("M" * 5000, "long")
        prompt = builder.build()
        sections = _sections(prompt)

        memory_section = next(s for s in sections if s.startswith("## Memory (Second Brain)"))
        assert TRUNCATION_MARKER in memory_section
        assert len(memory_section) < 3000 + 300

        assert sections[0] == builder.identity_section()
        assert builder.skills_summary_section() in sections

    def test_section_fault_is_isolated(self, builder, monkeypatch):
        def broken() -> str:
            raise OSError("disk on fire")

        monkeypatch.setattr(builder, "memory_section", broken)
        prompt = builder.build()
        assert "## Memory (Second Brain)" not in prompt
        assert prompt.startswith("# nano-x")
        assert "## Available Skills" in prompt
