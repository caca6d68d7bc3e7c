"""
Memory Store — the agent's second brain.

Two append-only partitions under ``<workspace>/memory``:

- **long-term** (``MEMORY.md``): durable facts and preferences, deduplicated
  by exact substring match against what is already stored.
- **daily** (``daily/<YYYY-MM-DD>.md``): timestamped progress notes, one file
  per calendar date.

Entries are created only by the ``remember`` tool and never edited or removed
here. ``get_memory_context`` reads both back in full on every context refresh;
budgeting the excerpt is the context builder's job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Literal, Optional

import structlog

from nanox.workspace import MEMORY_DIR, WorkspaceStorage

logger = structlog.get_logger(__name__)

MEMORY_FILE = "MEMORY.md"
DAILY_DIR = "daily"

_INITIAL_LONG_TERM = """# Long-term Memory
- User: Developer
- Project: nano-x (self-evolving agent runtime)
- Philosophy: minimalism; persist what was learned, load only what is needed.
"""

MemoryKind = Literal["long", "daily"]


class MemoryStore:
    """Long-term and daily memory backed by workspace storage."""

    def __init__(
        self,
        storage: WorkspaceStorage,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._clock = clock or datetime.now

    def ensure_structure(self) -> None:
        self._storage.path(MEMORY_DIR, DAILY_DIR).mkdir(parents=True, exist_ok=True)
        if self._storage.write_default(_INITIAL_LONG_TERM, MEMORY_DIR, MEMORY_FILE):
            logger.info("memory_store.initialized", file=MEMORY_FILE)

    def today(self) -> str:
        return self._clock().date().isoformat()

    def save(self, content: str, kind: MemoryKind) -> str:
        """Append an entry and return a status line for the model."""
        text = content.strip()
        if not text:
            return "Error: Nothing to remember (content is empty)."
        try:
            if kind == "long":
                return self._save_long_term(text)
            return self._save_daily(text)
        except OSError as e:
            logger.error("memory_store.save_failed", kind=kind, error=str(e))
            return f"Error saving memory: {e}"

    def _save_long_term(self, text: str) -> str:
        self.ensure_structure()
        existing = self._storage.read_text(MEMORY_DIR, MEMORY_FILE) or ""
        if text in existing:
            logger.debug("memory_store.duplicate_skipped")
            return "Memory already exists (skipped duplicate)."
        self._storage.append_text(f"\n- {text}", MEMORY_DIR, MEMORY_FILE)
        logger.info("memory_store.long_term_saved", length=len(text))
        return "Long-term memory saved."

    def _save_daily(self, text: str) -> str:
        now = self._clock()
        filename = f"{now.date().isoformat()}.md"
        stamp = now.strftime("%H:%M:%S")
        self._storage.append_text(f"\n- [{stamp}] {text}", MEMORY_DIR, DAILY_DIR, filename)
        logger.info("memory_store.daily_saved", file=filename, length=len(text))
        return f"Daily memory saved to {filename}"

    def get_memory_context(self) -> str:
        """Long-term memory followed by today's daily notes, if any."""
        parts: list[str] = []

        long_term = self._storage.read_text(MEMORY_DIR, MEMORY_FILE)
        if long_term is not None:
            parts.append(f"### Long-term Memory\n{long_term}")

        today = self.today()
        daily = self._storage.read_text(MEMORY_DIR, DAILY_DIR, f"{today}.md")
        if daily is not None:
            parts.append(f"### Daily Memory ({today})\n{daily}")

        return "\n\n".join(parts)
