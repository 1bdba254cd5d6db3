"""Tiered context assembly.

Each tier is built on its own against its budget, tracking a running token
estimate and skipping items that would overflow:

  critical      time header, party block, entities scoring >= 70 in detail
  important     active quests, recent-events summary, entities scoring 30-69
  contextual    world reference, chronicle excerpt, one pinned memory
  supplemental  relevant custom rules, existing-entity guard block

Assembly only reads the GameState.
"""

from __future__ import annotations

import logging
import math

from pydantic import BaseModel

from lorekeeper.budget import TokenBudget
from lorekeeper.choices import skills_with_mastery
from lorekeeper.history import build_history_context
from lorekeeper.models import Chronicle, EntityBase, GameState, GameTime, Quest
from lorekeeper.prompts import EXISTING_ENTITIES_TEMPLATE, render_prompt
from lorekeeper.scoring import EntityRelevance
from lorekeeper.tokens import CHARS_PER_TOKEN, clip, estimate_tokens, truncate_to_budget

logger = logging.getLogger(__name__)

CRITICAL_MARKER = "=== TRI THỨC QUAN TRỌNG ==="
IMPORTANT_MARKER = "\n=== THÔNG TIN LIÊN QUAN ===\n"
CONTEXTUAL_MARKER = "\n=== BỐI CẢNH THẾ GIỚI ===\n"
RULES_MARKER = "\n=== LUẬT LỆ TÙY CHỈNH LIÊN QUAN ===\n"
PARTY_HEADER = "**TỔ ĐỘI PHIỀU LƯU:**\n"
PARTY_NOTE = (
    "\n*Lưu ý: Hãy chú trọng đến sự tương tác và phối hợp giữa các thành viên "
    "trong tổ đội. Mỗi đồng hành có cá tính và kỹ năng riêng, hãy thể hiện điều "
    "này trong câu chuyện.*\n"
)

CRITICAL_SCORE = 70
IMPORTANT_SCORE = 30
PARTY_SHARE = 0.4
QUEST_SHARE = 0.3
HISTORY_SHARE = 0.4
CHRONICLE_SHARE = 0.4
MEMORY_MIN_TOKENS = 100
WORLD_DETAIL_CAP = 200
PERSONALITY_CAP = 50

RULE_KEYWORDS = ("tất cả", "mọi", "luôn", "không được", "phải")

GUARD_GROUPS = (
    ("npc", "🧑", "NPCs hiện có"),
    ("companion", "👥", "Đồng hành hiện có"),
    ("location", "🏛️", "Địa điểm hiện có"),
    ("skill", "⚔️", "Kỹ năng hiện có"),
)
GUARD_NAMES_SHOWN = 3


class ContextSections(BaseModel):
    critical: str = ""
    important: str = ""
    contextual: str = ""
    supplemental: str = ""


def format_game_time(time: GameTime, turn: int) -> str:
    return (
        f"Thời gian: Năm {time.year} Tháng {time.month} Ngày {time.day}, "
        f"{time.hour} giờ (Lượt {turn})"
    )


class ContextAssembler:
    """Builds the four context tiers for one GameState snapshot."""

    def __init__(self, state: GameState, chars_per_token: float = CHARS_PER_TOKEN):
        self.state = state
        self.ratio = chars_per_token

    def tokens(self, text: str) -> int:
        return estimate_tokens(text, self.ratio)

    def truncate(self, text: str, max_tokens: int) -> str:
        return truncate_to_budget(text, max_tokens, self.ratio)

    def status_names(self, owner: str, *, with_type: bool = False) -> list[str]:
        return [
            f"{s.name} ({s.type})" if with_type else s.name
            for s in self.state.statuses
            if s.owner == owner
        ]

    # ── critical ────────────────────────────────────────────

    def critical(self, entities: list[EntityRelevance], budget: int) -> str:
        context = CRITICAL_MARKER + "\n"
        used = self.tokens(context)

        time_info = format_game_time(self.state.game_time, self.state.turn_count)
        context += time_info + "\n\n"
        used += self.tokens(time_info)

        party_block = self.party_block(math.floor(budget * PARTY_SHARE))
        if party_block:
            context += party_block + "\n"
            used += self.tokens(party_block)

        party_names = self.state.party_names
        others = [r for r in entities if r.name not in party_names]
        per_entity = (budget - used) // max(1, len(others))
        for r in others:
            text = self.entity_detail(r.entity, per_entity)
            cost = self.tokens(text)
            if used + cost <= budget:
                context += text + "\n"
                used += cost
        return context

    def party_block(self, max_tokens: int) -> str:
        party = self.state.party
        if not party:
            return ""
        context = PARTY_HEADER
        used = self.tokens(context)

        def add(line: str) -> bool:
            nonlocal context, used
            cost = self.tokens(line)
            if used + cost > max_tokens:
                return False
            context += line
            used += cost
            return True

        player = self.state.player
        if player is not None:
            details: list[str] = []
            if player.motivation:
                details.append(f"**MỤC TIÊU**: {player.motivation}")
            if player.location:
                details.append(f"Vị trí: {player.location}")
            if player.realm:
                details.append(f"Thực lực: {player.realm}")
            skills = skills_with_mastery(player, self.state)
            if skills:
                details.append(f"Kỹ năng: {', '.join(skills)}")
            statuses = [s.name for s in self.state.statuses if s.owner in ("pc", player.name)]
            if statuses:
                details.append(f"Trạng thái: {', '.join(statuses)}")
            line = f"[Nhân vật chính] {player.name}"
            if details:
                line += f" - {', '.join(details)}"
            add(line + "\n")

        companions = [m for m in party if m.type == "companion"]
        for companion in companions:
            details = []
            if companion.relationship:
                details.append(f"Quan hệ: {companion.relationship}")
            if companion.realm:
                details.append(f"Cảnh giới: {companion.realm}")
            if companion.skills:
                details.append(f"Chuyên môn: {', '.join(companion.skills[:2])}")
            statuses = self.status_names(companion.name)
            if statuses:
                details.append(f"Trạng thái: {', '.join(statuses)}")
            if companion.personality:
                details.append(f"Tính cách: {clip(companion.personality, PERSONALITY_CAP)}")
            line = f"[Đồng hành] {companion.name}"
            if details:
                line += f" - {', '.join(details)}"
            add(line + "\n")

        if companions:
            add(PARTY_NOTE)
        return context

    def entity_detail(self, entity: EntityBase, max_tokens: int) -> str:
        text = f"• {entity.name} ({entity.type})"
        details: list[str] = []

        if entity.type == "companion":
            text += " [ĐỒNG HÀNH]"
            if entity.personality:
                details.append(f"Tính cách: {entity.personality}")
            if entity.personality_mbti:
                details.append(f"MBTI: {entity.personality_mbti}")
            if entity.motivation:
                details.append(f"Động cơ: {entity.motivation}")
            if entity.relationship:
                details.append(f"Quan hệ với PC: {entity.relationship}")
            if entity.skills:
                details.append(f"Kỹ năng: {', '.join(entity.skills[:4])}")
            if entity.realm:
                details.append(f"Cảnh giới: {entity.realm}")
        elif entity.type == "pc":
            text += " [NHÂN VẬT CHÍNH]"
            if entity.motivation:
                details.append(f"**MỤC TIÊU QUAN TRỌNG**: {entity.motivation}")
            skills = skills_with_mastery(entity, self.state)
            if skills:
                details.append(f"Kỹ năng: {', '.join(skills)}")
            if entity.personality:
                details.append(f"Tính cách: {entity.personality}")
            if entity.personality_mbti:
                details.append(f"MBTI: {entity.personality_mbti}")
        elif entity.type == "npc":
            if entity.personality:
                details.append(f"Tính cách: {entity.personality}")
            if entity.personality_mbti:
                details.append(f"MBTI: {entity.personality_mbti}")
            if entity.motivation:
                details.append(f"Động cơ: {entity.motivation}")
            if entity.skills:
                details.append(f"Kỹ năng: {', '.join(entity.skills[:3])}")

        if entity.location:
            details.append(f"Vị trí: {entity.location}")
        realm = getattr(entity, "realm", None)
        if realm and entity.type != "companion":
            details.append(f"Cảnh giới: {realm}")

        if entity.type == "companion":
            statuses = self.status_names(entity.name, with_type=True)[:3]
        else:
            statuses = self.status_names(entity.name)[:2]
        if statuses:
            details.append(f"Trạng thái: {', '.join(statuses)}")

        if entity.description:
            remaining = max(0, max_tokens - self.tokens(text + "; ".join(details)))
            threshold = 50 if entity.type == "companion" else 30
            if remaining > threshold:
                details.append(f"Mô tả: {self.truncate(entity.description, remaining)}")

        return text + "\n  " + "\n  ".join(details)

    # ── important ───────────────────────────────────────────

    def important(self, entities: list[EntityRelevance], budget: int) -> str:
        context = IMPORTANT_MARKER
        used = self.tokens(context)

        quests = self.quest_block(self.state.active_quests, math.floor(budget * QUEST_SHARE))
        context += quests
        used += self.tokens(quests)

        history = build_history_context(self.state.game_history, math.floor(budget * HISTORY_SHARE))
        context += history
        used += self.tokens(history)

        per_entity = (budget - used) // max(1, len(entities))
        for r in entities:
            text = self.entity_brief(r, per_entity)
            cost = self.tokens(text)
            if used + cost <= budget:
                context += text + "\n"
                used += cost
        return context

    def quest_block(self, quests: list[Quest], max_tokens: int) -> str:
        if not quests:
            return ""
        context = "**Nhiệm vụ đang hoạt động:**\n"
        used = self.tokens(context)
        for quest in quests:
            open_objectives = [o.description for o in quest.objectives if not o.completed]
            line = f"- {quest.title}: {', '.join(open_objectives)}\n"
            cost = self.tokens(line)
            if used + cost <= max_tokens:
                context += line
                used += cost
        return context + "\n"

    def entity_brief(self, relevance: EntityRelevance, max_tokens: int) -> str:
        entity = relevance.entity
        text = f"• {entity.name} ({entity.type})"
        if relevance.reasons:
            text += f" [{relevance.reasons[0]}]"
        if entity.description:
            text += f" - {entity.description}"
        return self.truncate(text, max_tokens)

    # ── contextual ──────────────────────────────────────────

    def contextual(self, budget: int) -> str:
        context = CONTEXTUAL_MARKER
        used = self.tokens(context)

        world = self.state.world_data
        if world.world_name:
            block = f"Thế giới: {world.world_name}\n"
            if world.world_detail:
                block += clip(world.world_detail, WORLD_DETAIL_CAP) + "\n"
            block += "\n"
            context += block
            used += self.tokens(block)

        chronicle = self.chronicle_block(
            self.state.chronicle, math.floor((budget - used) * CHRONICLE_SHARE),
        )
        context += chronicle
        used += self.tokens(chronicle)

        remaining = budget - used
        pinned = [m for m in self.state.memories if m.pinned]
        if pinned and remaining > MEMORY_MIN_TOKENS:
            header = "**Ký ức quan trọng:**\n"
            line = f"- {pinned[0].text}\n"
            cost = self.tokens(header) + self.tokens(line)
            if cost <= remaining:
                context += header + line
                used += cost
        logger.debug("Contextual tier: %d/%d tokens", used, budget)
        return context

    def chronicle_block(self, chronicle: Chronicle, max_tokens: int) -> str:
        entries = [f"[Hồi ký] {m}\n" for m in chronicle.memoir[-2:]]
        entries += [f"[Chương] {c}\n" for c in chronicle.chapter[-1:]]
        if not entries:
            return ""
        context = "**Biên niên sử:**\n"
        used = self.tokens(context)
        for entry in entries:
            cost = self.tokens(entry)
            if used + cost <= max_tokens:
                context += entry
                used += cost
        return context + "\n"

    # ── supplemental ────────────────────────────────────────

    def supplemental(self, relevance: list[EntityRelevance], budget: int) -> str:
        context = ""
        used = 0

        rules = relevant_rules(self.state, relevance)
        if rules:
            context += RULES_MARKER
            used += self.tokens(context)
            for content in rules:
                line = f"- {content}\n"
                cost = self.tokens(line)
                if used + cost <= budget:
                    context += line
                    used += cost

        guard = existing_entities_block(self.state)
        if guard:
            cost = self.tokens(guard)
            if used + cost <= budget:
                context += guard
                used += cost
        return context


def relevant_rules(state: GameState, relevance: list[EntityRelevance]) -> list[str]:
    """Active rules naming a relevant entity or phrased for everyone."""
    names = {r.name.lower() for r in relevance if r.name}
    kept = []
    for rule in state.custom_rules:
        if not rule.is_active or not rule.content.strip():
            continue
        lowered = rule.content.lower()
        if any(n in lowered for n in names) or any(k in lowered for k in RULE_KEYWORDS):
            kept.append(rule.content)
    return kept


def existing_entities_block(state: GameState) -> str:
    """Warn the model against re-creating entities that already exist."""
    groups = []
    for kind, icon, label in GUARD_GROUPS:
        names = [
            name for name, e in state.known_entities.items()
            if e.type == kind and not e.archived
        ]
        if names:
            groups.append({
                "icon": icon,
                "label": label,
                "names": ", ".join(names[:GUARD_NAMES_SHOWN]),
                "more": max(0, len(names) - GUARD_NAMES_SHOWN),
            })
    if not groups:
        return ""
    return render_prompt(EXISTING_ENTITIES_TEMPLATE, {"groups": groups})


def build_sections(
    relevance: list[EntityRelevance],
    state: GameState,
    budget: TokenBudget,
    chars_per_token: float = CHARS_PER_TOKEN,
) -> ContextSections:
    assembler = ContextAssembler(state, chars_per_token)
    sections = ContextSections(
        critical=assembler.critical(
            [r for r in relevance if r.score >= CRITICAL_SCORE], budget.critical,
        ),
        important=assembler.important(
            [r for r in relevance if IMPORTANT_SCORE <= r.score < CRITICAL_SCORE],
            budget.important,
        ),
        contextual=assembler.contextual(budget.contextual),
        supplemental=assembler.supplemental(relevance, budget.supplemental),
    )
    logger.debug(
        "Sections: critical=%d important=%d contextual=%d supplemental=%d tokens",
        assembler.tokens(sections.critical), assembler.tokens(sections.important),
        assembler.tokens(sections.contextual), assembler.tokens(sections.supplemental),
    )
    return sections
