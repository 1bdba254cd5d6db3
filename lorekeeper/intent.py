"""Player action intent classification.

Patterns are Vietnamese keyword sets. Matching uses word boundaries so that
"cho" does not fire inside "chó". Flags are independent; `type` is the
first category that matches in PRIORITY order, else "general".
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field

IntentType = Literal["skill_use", "item_use", "social", "combat", "movement", "general"]


def _words(*alternatives: str) -> re.Pattern:
    return re.compile(r"(?<!\w)(?:" + "|".join(alternatives) + r")(?!\w)")


PATTERNS: dict[str, re.Pattern] = {
    "movement": _words("đi", "chạy", "leo", "nhảy", "bay", "di chuyển", "tới", "đến", "rời", "về"),
    "combat": _words("tấn công", "đánh", "chém", "đâm", "bắn", "ném", "chiến đấu", "giết"),
    "social": _words("nói", "hỏi", "trả lời", "thuyết phục", "dọa", "giao dịch", "mua", "bán"),
    "item_use": _words("sử dụng", "dùng", "uống", "ăn", "trang bị", "tháo", "cho", "lấy"),
    "skill_use": _words(r"thi triển", r"sử dụng.*pháp", r"công pháp", r"kỹ năng"),
}

PRIORITY: tuple[str, ...] = ("skill_use", "item_use", "social", "combat", "movement")

STOP_WORDS = frozenset({"và", "của", "là", "trong", "với", "để", "đến", "từ"})

_QUOTED_RE = re.compile(r'"([^"]+)"')


class ActionIntent(BaseModel):
    type: IntentType = "general"
    targets: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    is_movement: bool = False
    is_combat: bool = False
    is_social: bool = False
    is_item_use: bool = False
    is_skill_use: bool = False


def classify_action(action: str) -> ActionIntent:
    lower = action.lower()
    matched = {name for name, pattern in PATTERNS.items() if pattern.search(lower)}
    kind = next((name for name in PRIORITY if name in matched), "general")
    return ActionIntent(
        type=kind,
        targets=extract_targets(action),
        keywords=extract_keywords(action),
        is_movement="movement" in matched,
        is_combat="combat" in matched,
        is_social="social" in matched,
        is_item_use="item_use" in matched,
        is_skill_use="skill_use" in matched,
    )


def extract_targets(action: str) -> list[str]:
    """Quoted substrings and runs of capitalised words, de-duplicated."""
    targets = [m.strip() for m in _QUOTED_RE.findall(action) if m.strip()]

    run: list[str] = []
    for word in action.split() + [""]:
        bare = word.strip('".,!?;:()')
        if bare and bare[0].isupper():
            run.append(bare)
            continue
        if run:
            name = " ".join(run)
            if len(run) > 1 or len(name) > 2:
                targets.append(name)
            run = []

    return list(dict.fromkeys(targets))


def extract_keywords(action: str) -> list[str]:
    words = [w for w in action.lower().split() if len(w) > 2 and w not in STOP_WORDS]
    return list(dict.fromkeys(words))
