"""Tests for nanox.config — env loading, auth requirement, and normalisation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from nanox.config import (
    DEFAULT_OVERFLOW_MARKERS,
    EngineConfig,
    LoopConfig,
    NanoXConfig,
    ToolsConfig,
    WorkspaceConfig,
)


@pytest.fixture()
def clean_env(monkeypatch):
    for name in ("ANTHROPIC_API_KEY", "ANTHROPIC_AUTH_TOKEN", "ANTHROPIC_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestEngineConfig:
    def test_requires_auth(self, clean_env):
        with pytest.raises(ValidationError, match="No authentication configured"):
            EngineConfig(_env_file=None)

    def test_api_key_from_env(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-test")
        cfg = EngineConfig(_env_file=None)
        assert cfg.api_key == "sk-test"
        assert cfg.max_tokens == 4096
        assert cfg.overflow_status_codes == [413]
        assert cfg.overflow_markers == DEFAULT_OVERFLOW_MARKERS

    def test_auth_token_alone_is_enough(self, clean_env):
        clean_env.setenv("ANTHROPIC_AUTH_TOKEN", "oauth-token")
        assert EngineConfig(_env_file=None).auth_token == "oauth-token"

    def test_overflow_settings_from_env(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-test")
        clean_env.setenv("NANOX_OVERFLOW_STATUS_CODES", "400, 413")
        clean_env.setenv("NANOX_OVERFLOW_MARKERS", "Prompt Is Too Long, Context Window")
        cfg = EngineConfig(_env_file=None)
        assert cfg.overflow_status_codes == [400, 413]
        assert cfg.overflow_markers == ["prompt is too long", "context window"]


class TestLimits:
    def test_loop_defaults(self, clean_env):
        cfg = LoopConfig(_env_file=None)
        assert cfg.max_iterations == 10
        assert cfg.tool_result_budget == 5000
        assert cfg.interaction_log_dir == Path("agent_interaction")

    def test_loop_clamps(self, clean_env):
        clean_env.setenv("NANOX_MAX_ITERATIONS", "0")
        assert LoopConfig(_env_file=None).max_iterations == 1

    def test_workspace_root(self, clean_env, tmp_path):
        clean_env.setenv("NANOX_PROJECT_ROOT", str(tmp_path))
        cfg = WorkspaceConfig(_env_file=None)
        assert cfg.workspace_root == tmp_path / "workspace"
        assert cfg.memory_budget == 3000

    def test_tools_defaults(self, clean_env):
        cfg = ToolsConfig(_env_file=None)
        assert cfg.fetch_timeout_seconds == 15.0
        assert cfg.read_max_lines == 500
        assert cfg.subagent_tail_chars == 2000


class TestNanoXConfig:
    def test_aggregates_groups(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-test")
        cfg = NanoXConfig()
        assert cfg.engine.api_key == "sk-test"
        assert cfg.loop.max_iterations >= 1
        assert "NanoXConfig(model=" in repr(cfg)
