"""Per-turn token budget across the four context tiers."""

from __future__ import annotations

import logging
import math

from pydantic import BaseModel

from lorekeeper.config import TokenConfig
from lorekeeper.models import GameState
from lorekeeper.scoring import EntityRelevance

logger = logging.getLogger(__name__)

CRITICAL_SCORE = 70
MANY_CRITICAL = 5
MANY_CRITICAL_SHIFT = 0.10
NO_QUEST_SHIFT = 0.05
DEEP_HISTORY = 20


class TokenBudget(BaseModel):
    critical: int
    important: int
    contextual: int
    supplemental: int
    deep_history: bool = False  # signal only

    @property
    def total(self) -> int:
        return self.critical + self.important + self.contextual + self.supplemental


def allocate_budget(
    relevance: list[EntityRelevance],
    state: GameState,
    config: TokenConfig,
    supplementary_tokens: int = 0,
) -> TokenBudget:
    """Split the base limit (minus supplementary retrieval) into tier budgets.

    More than five entities above 70 moves 0.10 of weight from important to
    critical; no active quest moves another 0.05. Weights never go negative.
    """
    base = max(0, config.base_limit - max(0, supplementary_tokens))
    weights = config.allocation
    critical, important = weights.critical, weights.important

    def shift(amount: float) -> None:
        nonlocal critical, important
        moved = min(amount, max(0.0, important))
        important -= moved
        critical += moved

    if sum(1 for r in relevance if r.score > CRITICAL_SCORE) > MANY_CRITICAL:
        shift(MANY_CRITICAL_SHIFT)
    if not state.active_quests:
        shift(NO_QUEST_SHIFT)

    budget = TokenBudget(
        critical=math.floor(base * max(0.0, critical)),
        important=math.floor(base * max(0.0, important)),
        contextual=math.floor(base * max(0.0, weights.contextual)),
        supplemental=math.floor(base * max(0.0, weights.supplemental)),
        deep_history=len(state.game_history) > DEEP_HISTORY,
    )
    logger.debug(
        "Budget: critical=%d important=%d contextual=%d supplemental=%d (base %d)",
        budget.critical, budget.important, budget.contextual, budget.supplemental, base,
    )
    return budget
