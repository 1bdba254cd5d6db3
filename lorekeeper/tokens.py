"""Token estimation and budget-aware truncation."""

from __future__ import annotations

import math

CHARS_PER_TOKEN = 1.2
ELISION_MARKER = "\n...[nội dung đã được rút gọn]...\n"


def estimate_tokens(text: str, ratio: float = CHARS_PER_TOKEN) -> int:
    """Approximate token count: ceil(len(text) * ratio)."""
    return math.ceil(len(text) * ratio)


def clip(text: str, limit: int) -> str:
    """Cut `text` to `limit` characters, appending "..." when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def truncate_to_budget(text: str, max_tokens: int, ratio: float = CHARS_PER_TOKEN) -> str:
    """Shrink `text` to fit `max_tokens`, keeping its head and tail.

    The budget is converted to a character limit with a 10% margin; the
    first 60% and last 30% of that limit survive around an elision marker.
    """
    if estimate_tokens(text, ratio) <= max_tokens:
        return text

    char_limit = max(0, math.floor(max_tokens / ratio * 0.9))
    if len(text) <= char_limit:
        return text

    keep_start = math.floor(char_limit * 0.6)
    keep_end = math.floor(char_limit * 0.3)
    tail = text[len(text) - keep_end:] if keep_end else ""
    return text[:keep_start] + ELISION_MARKER + tail
