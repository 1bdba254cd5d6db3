"""Tests for lorekeeper.tokens."""

import math

from lorekeeper.tokens import ELISION_MARKER, clip, estimate_tokens, truncate_to_budget


def test_estimate_is_ceiling():
    assert estimate_tokens("") == 0
    assert estimate_tokens("a") == 2  # ceil(1.2)


def test_estimate_custom_ratio():
    assert estimate_tokens("abcd", ratio=0.25) == 1
    assert estimate_tokens("abcde", ratio=0.25) == 2
    assert estimate_tokens("abcde", ratio=0.5) == 3


def test_estimate_monotonic():
    text = "Lâm Phong rút kiếm. " * 20
    counts = [estimate_tokens(text[:i]) for i in range(len(text) + 1)]
    assert counts == sorted(counts)


def test_clip():
    assert clip("short", 10) == "short"
    assert clip("abcdefghij", 4) == "abcd..."


class TestTruncateToBudget:
    def test_fits_unchanged(self) -> None:
        assert truncate_to_budget("hello", 100) == "hello"

    def test_keeps_head_and_tail(self) -> None:
        text = "A" * 500 + "B" * 500
        out = truncate_to_budget(text, 120)
        char_limit = math.floor(120 / 1.2 * 0.9)
        assert ELISION_MARKER in out
        assert out.startswith("A" * math.floor(char_limit * 0.6))
        assert out.endswith("B" * math.floor(char_limit * 0.3))
        assert len(out) < len(text)

    def test_zero_budget(self) -> None:
        out = truncate_to_budget("some text here", 0)
        assert out == ELISION_MARKER
