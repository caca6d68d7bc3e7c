# nanox/config.py
"""
Configuration for the nano-x agent runtime.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. Budgets, ceilings and the
backend's context-overflow classification are configuration, never hard-coded at
the call sites that use them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import structlog
from pydantic import AliasChoices, BeforeValidator, Field, model_validator
from pydantic_settings import BaseSettings, NoDecode

logger = structlog.get_logger(__name__)

# Resolve .env relative to the project root (one level above nanox/ package),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


def _coerce_str_list(value: object) -> list[str]:
    """Coerce env-var values into a list of stripped, non-empty strings.

    Accepts:
      - A single str         → ["value"]
      - Comma-separated str  → ["a", "b"]
      - JSON array str       → ["a", "b"]
      - An existing list     → passthrough with str coercion
    """
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return _coerce_str_list(decoded)
        if "," in stripped:
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return [stripped]
    return []


def _coerce_int_list(value: object) -> list[int]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [int(value)]
    items = _coerce_str_list(value) if not isinstance(value, list) else value
    result: list[int] = []
    for item in items:
        try:
            result.append(int(str(item).strip()))
        except ValueError:
            logger.warning("config.invalid_status_code", value=item)
    return result


# NoDecode: the validators own env parsing, so comma-separated values work.
StrList = Annotated[list[str], NoDecode, BeforeValidator(_coerce_str_list)]
IntList = Annotated[list[int], NoDecode, BeforeValidator(_coerce_int_list)]

DEFAULT_OVERFLOW_MARKERS = [
    "prompt is too long",
    "context_length_exceeded",
    "maximum context length",
    "context window",
    "too many tokens",
]


class EngineConfig(BaseSettings):
    """Connection settings for the model backend."""

    api_key: Optional[str] = Field(None, alias="ANTHROPIC_API_KEY")
    auth_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("ANTHROPIC_AUTH_TOKEN", "auth_token"),
    )
    base_url: Optional[str] = Field(None, alias="ANTHROPIC_BASE_URL")
    model: str = Field("claude-sonnet-4-5-20250929", alias="NANOX_MODEL")
    max_tokens: int = Field(4096, alias="NANOX_MAX_TOKENS")
    request_timeout_seconds: float = Field(120.0, alias="NANOX_REQUEST_TIMEOUT_SECONDS")

    # Which backend rejections count as "the context is too large". A status
    # listed here always qualifies; otherwise a 400/413 qualifies only when its
    # message carries one of the markers.
    overflow_status_codes: IntList = Field(
        default_factory=lambda: [413], alias="NANOX_OVERFLOW_STATUS_CODES"
    )
    overflow_markers: StrList = Field(
        default_factory=lambda: list(DEFAULT_OVERFLOW_MARKERS),
        alias="NANOX_OVERFLOW_MARKERS",
    )

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def require_auth(self) -> "EngineConfig":
        if self.api_key or self.auth_token:
            return self
        raise ValueError(
            "No authentication configured. Set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN."
        )

    @model_validator(mode="after")
    def normalize_limits(self) -> "EngineConfig":
        self.max_tokens = max(1, int(self.max_tokens))
        self.request_timeout_seconds = max(1.0, float(self.request_timeout_seconds))
        self.overflow_markers = [m.lower() for m in self.overflow_markers]
        return self


class LoopConfig(BaseSettings):
    """Bounds for the conversation loop."""

    max_iterations: int = Field(10, alias="NANOX_MAX_ITERATIONS")
    tool_result_budget: int = Field(5000, alias="NANOX_TOOL_RESULT_BUDGET")
    interaction_log_dir: Path = Field(Path("agent_interaction"), alias="NANOX_INTERACTION_LOG_DIR")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "LoopConfig":
        self.max_iterations = max(1, int(self.max_iterations))
        self.tool_result_budget = max(100, int(self.tool_result_budget))
        return self


class WorkspaceConfig(BaseSettings):
    """Where the agent keeps its bootstrap documents, memory and skills."""

    project_root: Path = Field(default_factory=Path.cwd, alias="NANOX_PROJECT_ROOT")
    workspace_dir: str = Field("workspace", alias="NANOX_WORKSPACE_DIR")
    memory_budget: int = Field(3000, alias="NANOX_MEMORY_BUDGET")
    skill_summary_keywords: int = Field(3, alias="NANOX_SKILL_SUMMARY_KEYWORDS")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @property
    def workspace_root(self) -> Path:
        return Path(self.project_root) / self.workspace_dir

    @model_validator(mode="after")
    def normalize_limits(self) -> "WorkspaceConfig":
        self.memory_budget = max(100, int(self.memory_budget))
        self.skill_summary_keywords = max(0, int(self.skill_summary_keywords))
        return self


class ToolsConfig(BaseSettings):
    """Per-capability limits. Timeouts surface as tool errors, never loop faults."""

    shell_timeout_seconds: float = Field(120.0, alias="NANOX_SHELL_TIMEOUT_SECONDS")
    fetch_timeout_seconds: float = Field(15.0, alias="NANOX_FETCH_TIMEOUT_SECONDS")
    fetch_max_chars: int = Field(5000, alias="NANOX_FETCH_MAX_CHARS")
    search_max_results: int = Field(5, alias="NANOX_SEARCH_MAX_RESULTS")
    read_max_lines: int = Field(500, alias="NANOX_READ_MAX_LINES")
    ls_max_entries: int = Field(100, alias="NANOX_LS_MAX_ENTRIES")
    subagent_timeout_seconds: float = Field(600.0, alias="NANOX_SUBAGENT_TIMEOUT_SECONDS")
    subagent_tail_chars: int = Field(2000, alias="NANOX_SUBAGENT_TAIL_CHARS")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "ToolsConfig":
        self.shell_timeout_seconds = max(1.0, float(self.shell_timeout_seconds))
        self.fetch_timeout_seconds = max(1.0, float(self.fetch_timeout_seconds))
        self.subagent_timeout_seconds = max(1.0, float(self.subagent_timeout_seconds))
        self.fetch_max_chars = max(100, int(self.fetch_max_chars))
        self.search_max_results = max(1, int(self.search_max_results))
        self.read_max_lines = max(1, int(self.read_max_lines))
        self.ls_max_entries = max(1, int(self.ls_max_entries))
        self.subagent_tail_chars = max(100, int(self.subagent_tail_chars))
        return self


class NanoXConfig:
    """
    Master configuration that composes all subsystem configs.

    Every component receives its config from here. Constructing it without
    backend credentials raises a pydantic ValidationError.
    """

    def __init__(self):
        self.engine = EngineConfig()
        self.loop = LoopConfig()
        self.workspace = WorkspaceConfig()
        self.tools = ToolsConfig()

    def __repr__(self) -> str:
        return (
            f"NanoXConfig(model={self.engine.model}, "
            f"max_iterations={self.loop.max_iterations}, "
            f"workspace={self.workspace.workspace_root})"
        )
