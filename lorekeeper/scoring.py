"""Entity relevance scoring.

Every contribution is additive and recorded as a human-readable reason.
Party members are pinned at PARTY_SCORE. The graph bonus is computed in a
second pass against first-pass scores, so iteration order never matters.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from lorekeeper.graph import EntityGraph, neighbors
from lorekeeper.intent import ActionIntent
from lorekeeper.models import EntityBase, GameState, HistoryEntry

PARTY_SCORE = 100
MIN_SCORE = 10
MENTION_BONUS = 50
RECENT_MENTION_BONUS = 10
RECENT_MENTION_CAP = 30
RECENT_TURNS = 3
SAME_LOCATION_BONUS = 20
GRAPH_BONUS = 15
GRAPH_THRESHOLD = 50
STATUS_BONUS = 10

TYPE_RELEVANCE: dict[str, dict[str, int]] = {
    "combat": {"npc": 20, "item": 15, "skill": 25, "companion": 35},
    "social": {"npc": 30, "companion": 40, "faction": 20},
    "item_use": {"item": 30, "skill": 10, "companion": 15},
    "movement": {"location": 30, "npc": 10, "companion": 25},
    "skill_use": {"skill": 40, "item": 10, "companion": 30},
    "general": {"npc": 10, "item": 10, "location": 10, "companion": 20},
}

COMBAT_SKILLS = ("chiến đấu", "tấn công", "phòng thủ", "kiếm thuật", "võ thuật", "magic", "pháp thuật")
SOCIAL_SKILLS = ("thuyết phục", "giao tiếp", "đàm phán", "lãnh đạo", "charm")
EXPLORATION_SKILLS = ("do thám", "stealth", "survival", "navigation", "tracking")


class EntityRelevance(BaseModel):
    entity: EntityBase
    score: int
    reasons: list[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.entity.name


def type_relevance(entity_type: str, intent: ActionIntent) -> int:
    return TYPE_RELEVANCE.get(intent.type, {}).get(entity_type, 0)


def count_recent_mentions(name: str, history: list[HistoryEntry], turns: int = RECENT_TURNS) -> int:
    """Whole-word, case-insensitive mentions in the last `turns` user+model pairs."""
    if not name:
        return 0
    pattern = re.compile(r"(?<!\w)" + re.escape(name.lower()) + r"(?!\w)")
    return sum(len(pattern.findall(entry.text.lower())) for entry in history[-turns * 2:])


def companion_skill_relevance(skills: list[str], action: str, intent: ActionIntent) -> int:
    lowered = [s.lower() for s in skills]

    def any_match(keywords: tuple[str, ...]) -> bool:
        return any(k in s for s in lowered for k in keywords)

    score = 0
    if intent.is_combat and any_match(COMBAT_SKILLS):
        score += 25
    if intent.is_social and any_match(SOCIAL_SKILLS):
        score += 20
    action_lower = action.lower()
    if any(s and s in action_lower for s in lowered):
        score += 30
    if intent.is_movement and any_match(EXPLORATION_SKILLS):
        score += 15
    return score


def score_entities(
    action: str,
    intent: ActionIntent,
    state: GameState,
    graph: EntityGraph,
) -> list[EntityRelevance]:
    """Rank known entities and party members for this action."""
    party = [
        EntityRelevance(entity=member, score=PARTY_SCORE, reasons=["Party member"])
        for member in state.party
    ]
    party_names = state.party_names
    player = state.player
    action_lower = action.lower()
    status_owners = {s.owner for s in state.statuses}

    first_pass: list[EntityRelevance] = []
    for name, entity in state.known_entities.items():
        if name in party_names:
            continue
        score = 0
        reasons: list[str] = []

        if name.lower() in action_lower:
            score += MENTION_BONUS
            reasons.append("Directly mentioned")

        mentions = count_recent_mentions(name, state.game_history)
        if mentions:
            score += min(RECENT_MENTION_CAP, mentions * RECENT_MENTION_BONUS)
            reasons.append(f"Recent mentions: {mentions}")

        if player is not None and player.location and entity.location == player.location:
            score += SAME_LOCATION_BONUS
            reasons.append("Same location as PC")

        score += type_relevance(entity.type, intent)

        if entity.type == "companion" and entity.skills:
            bonus = companion_skill_relevance(entity.skills, action, intent)
            if bonus:
                score += bonus
                reasons.append(f"Relevant skills: {', '.join(entity.skills[:2])}")

        if name in status_owners:
            score += STATUS_BONUS
            reasons.append("Has active status")

        first_pass.append(EntityRelevance(entity=entity, score=score, reasons=reasons))

    hot = {m.name for m in party}
    hot.update(r.name for r in first_pass if r.score > GRAPH_THRESHOLD)
    for r in first_pass:
        if neighbors(graph, r.name) & (hot - {r.name}):
            r.score += GRAPH_BONUS
            r.reasons.append("Connected to relevant entity")

    ranked = party + [r for r in first_pass if r.score > 0 and r.score >= MIN_SCORE]
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked


def score_map(relevance: list[EntityRelevance]) -> dict[str, int]:
    return {r.name: r.score for r in relevance}
