"""Tests for nanox.harness.truncation — the head+tail Truncation Guard."""

from __future__ import annotations

import pytest

from nanox.harness.truncation import TRUNCATION_MARKER, guard, truncation_notice


class TestGuard:
    def test_identity_when_under_budget(self):
        assert guard("short text", 100) == "short text"

    def test_identity_at_exact_budget(self):
        text = "x" * 50
        assert guard(text, 50) is text

    def test_empty_text(self):
        assert guard("", 10) == ""

    def test_keeps_head_and_tail(self):
        text = "".join(chr(ord("a") + i % 26) for i in range(1000))
        result = guard(text, 100)
        assert result.startswith(text[:50])
        assert result.endswith(text[-50:])
        assert TRUNCATION_MARKER in result

    def test_length_bounded_by_budget_plus_notice(self):
        text = "y" * 12_345
        budget = 5000
        result = guard(text, budget)
        removed = len(text) - 2 * (budget // 2)
        assert len(result) <= budget + len(truncation_notice(removed))

    def test_notice_states_removed_count(self):
        result = guard("z" * 1000, 100)
        assert "900 characters removed" in result

    def test_odd_budget_uses_floor_half(self):
        text = "0123456789" * 2
        result = guard(text, 5)
        assert result.startswith("01")
        assert result.endswith("89")
        assert "16 characters removed" in result

    def test_zero_budget_keeps_only_notice(self):
        result = guard("abcdef", 0)
        assert result == truncation_notice(6)

    def test_negative_budget_rejected(self):
        with pytest.raises(ValueError):
            guard("abc", -1)

    def test_default_budget_is_5000(self):
        assert guard("q" * 5000) == "q" * 5000
        assert TRUNCATION_MARKER in guard("q" * 5001)
