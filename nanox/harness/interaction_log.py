"""
Interaction Log — append-only record of every loop transition.

One file per day (``session_<YYYY-MM-DD>.log``) under the configured
directory. Each record is self-contained — timestamp, step label, serialized
payload — so concurrent tool results can be written in any order. This is an
observability side channel: a failed write is logged and ignored, never
allowed to influence the conversation.
"""

from __future__ import annotations

import json
from dataclasses import is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from nanox.harness.truncation import guard

logger = structlog.get_logger(__name__)


class InteractionLog:
    """Writes request/response/tool-result/self-heal records to disk."""

    def __init__(
        self,
        directory: Path,
        max_field_chars: int = 5000,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._directory = Path(directory)
        self._max_field_chars = max_field_chars
        self._clock = clock or datetime.now

    @property
    def directory(self) -> Path:
        return self._directory

    def current_file(self) -> Path:
        return self._directory / f"session_{self._clock().date().isoformat()}.log"

    def record(self, step: str, payload: Any) -> None:
        timestamp = self._clock().isoformat()
        try:
            body = json.dumps(self._prepare(payload), indent=2, ensure_ascii=False, default=str)
            self._directory.mkdir(parents=True, exist_ok=True)
            with self.current_file().open("a", encoding="utf-8") as fh:
                fh.write(f"\n[{timestamp}] === {step} ===\n{body}\n")
        except (OSError, TypeError, ValueError) as e:
            logger.warning("interaction_log.write_failed", step=step, error=str(e))

    def _prepare(self, value: Any) -> Any:
        """Convert messages to plain data and budget long strings."""
        if hasattr(value, "to_dict") and is_dataclass(value):
            value = value.to_dict()
        if isinstance(value, str):
            return guard(value, self._max_field_chars)
        if isinstance(value, dict):
            return {k: self._prepare(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._prepare(v) for v in value]
        return value
