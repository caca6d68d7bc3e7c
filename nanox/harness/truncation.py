"""
Truncation Guard — head+tail content budgeting.

Every piece of externally sourced text (tool output, the memory excerpt folded
into the system prompt, interaction-log payloads) passes through ``guard``
before it re-enters the prompt. The start of long output usually states intent
and the end usually states the outcome or the error, so both are kept and the
middle is dropped.
"""

from __future__ import annotations

TRUNCATION_MARKER = "... [Output truncated] ..."


def truncation_notice(removed: int) -> str:
    """The text inserted between head and tail when ``removed`` chars are dropped."""
    return (
        f"\n\n{TRUNCATION_MARKER}\n"
        f"[Warning: {removed} characters removed from middle. "
        "Use specialized tools to read specific parts.]\n\n"
    )


def guard(text: str, max_len: int = 5000) -> str:
    """Cap ``text`` to roughly ``max_len`` characters, keeping head and tail.

    Identity when the text already fits. Otherwise the first and last
    ``max_len // 2`` characters are kept around a notice stating how many
    characters were removed.
    """
    if max_len < 0:
        raise ValueError("max_len must be non-negative")
    if len(text) <= max_len:
        return text

    half = max_len // 2
    head = text[:half]
    tail = text[len(text) - half:] if half else ""
    removed = len(text) - 2 * half
    return head + truncation_notice(removed) + tail
