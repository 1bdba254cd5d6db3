"""Choice-generation guidance appended after the player action."""

from __future__ import annotations

from lorekeeper.models import EntityBase, GameState
from lorekeeper.prompts import CHOICE_GUIDANCE_TEMPLATE, render_prompt

RECENT_TURNS = 3
RECENT_LIMIT = 10


def skills_with_mastery(player: EntityBase, state: GameState) -> list[str]:
    """Learned skill names, annotated with mastery from known skill entities."""
    mastery = {
        e.name: e.mastery
        for e in state.known_entities.values()
        if e.type == "skill" and e.mastery
    }
    return [
        f"{name} ({mastery[name]})" if name in mastery else name
        for name in getattr(player, "learned_skills", None) or []
    ]


def recent_choices(state: GameState) -> list[str]:
    recent = [
        choice
        for record in state.choice_history
        if state.turn_count - record.turn <= RECENT_TURNS
        for choice in record.choices
    ]
    return recent[-RECENT_LIMIT:]


def situational_suggestions(state: GameState) -> list[str]:
    player = state.player
    if player is None:
        return []
    suggestions: list[str] = []
    if player.location and player.location in state.known_entities:
        suggestions.append(f'Khai thác đặc điểm của địa điểm "{player.location}"')
    quests = state.active_quests
    if quests:
        suggestions.append(f'Tạo lựa chọn tiến triển nhiệm vụ: "{quests[0].title}"')
    skills = skills_with_mastery(player, state)
    if skills:
        suggestions.append(f"Cho phép sử dụng kỹ năng: {', '.join(skills[:2])}")
    nearby = [
        e.name for e in state.known_entities.values()
        if e.type == "npc" and player.location and e.location == player.location
    ][:2]
    if nearby:
        suggestions.append(f"Tương tác với: {', '.join(nearby)}")
    return suggestions


def party_suggestions(state: GameState) -> list[str]:
    suggestions: list[str] = []
    for companion in state.party:
        if companion.type != "companion":
            continue
        if companion.skills:
            suggestions.append(f"Nhờ {companion.name} sử dụng chuyên môn: {companion.skills[0]}")
        if companion.relationship:
            suggestions.append(
                f"Trao đổi với {companion.name} dựa trên mối quan hệ: {companion.relationship}"
            )
    return suggestions


def build_choice_guidance(state: GameState) -> str:
    player = state.player
    return render_prompt(CHOICE_GUIDANCE_TEMPLATE, {
        "recent": recent_choices(state),
        "situational": situational_suggestions(state),
        "party": party_suggestions(state),
        "motivation": getattr(player, "motivation", None) or "",
    })
