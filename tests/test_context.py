"""Tests for lorekeeper.context: the four context tiers."""

import pytest

from lorekeeper.budget import TokenBudget, allocate_budget
from lorekeeper.config import TokenConfig
from lorekeeper.context import (
    CONTEXTUAL_MARKER,
    CRITICAL_MARKER,
    IMPORTANT_MARKER,
    PARTY_HEADER,
    RULES_MARKER,
    ContextAssembler,
    build_sections,
    existing_entities_block,
    format_game_time,
    relevant_rules,
)
from lorekeeper.graph import build_graph
from lorekeeper.intent import classify_action
from lorekeeper.models import GameState
from lorekeeper.scoring import score_entities


@pytest.fixture
def relevance(state):
    action = "Tấn công Rồng Lửa"
    return score_entities(action, classify_action(action), state, build_graph(state.known_entities, "Lâm Phong"))


@pytest.fixture
def sections(state, relevance):
    budget = allocate_budget(relevance, state, TokenConfig())
    return build_sections(relevance, state, budget)


def test_format_game_time(state):
    assert format_game_time(state.game_time, 12) == "Thời gian: Năm 1024 Tháng 3 Ngày 7, 9 giờ (Lượt 12)"


# ── critical ────────────────────────────────────────────────


class TestCritical:
    def test_header_and_time(self, sections) -> None:
        assert sections.critical.startswith(CRITICAL_MARKER)
        assert "Năm 1024 Tháng 3 Ngày 7" in sections.critical

    def test_party_block(self, sections) -> None:
        text = sections.critical
        assert PARTY_HEADER in text
        assert "[Nhân vật chính] Lâm Phong - **MỤC TIÊU**: Tìm lại sư phụ" in text
        assert "Kỹ năng: Kiếm Pháp Cơ Bản (Sơ Cấp)" in text
        assert "[Đồng hành] Tiểu Vy - Quan hệ: bạn đồng hành" in text
        assert "Trạng thái: Trúng độc" in text
        assert "Tính cách: Hoạt bát" in text

    def test_party_not_repeated_in_detail(self, sections) -> None:
        assert "• Lâm Phong" not in sections.critical
        assert "• Tiểu Vy" not in sections.critical

    def test_entity_detail(self, sections) -> None:
        assert "• Rồng Lửa (npc)" in sections.critical
        assert "Vị trí: Hỏa Diệm Sơn" in sections.critical
        assert "Mô tả: Một con rồng khổng lồ phun lửa." in sections.critical

    def test_budget_respected(self, state, relevance) -> None:
        assembler = ContextAssembler(state)
        critical = [r for r in relevance if r.score >= 70]
        text = assembler.critical(critical, 60)
        assert text.startswith(CRITICAL_MARKER)
        assert "• Rồng Lửa" not in text

    def test_description_dropped_when_tight(self, state, relevance) -> None:
        assembler = ContextAssembler(state)
        dragon = next(r for r in relevance if r.name == "Rồng Lửa")
        assert "Mô tả" not in assembler.entity_detail(dragon.entity, 20)
        assert "Mô tả" in assembler.entity_detail(dragon.entity, 500)


# ── important ───────────────────────────────────────────────


class TestImportant:
    def test_quests(self, sections) -> None:
        assert sections.important.startswith(IMPORTANT_MARKER)
        assert "- Tìm sư phụ: Đến Hỏa Diệm Sơn" in sections.important
        assert "Hỏi thăm Lão Trương" not in sections.important

    def test_history(self, sections) -> None:
        assert "**Diễn biến gần đây:**" in sections.important
        assert "> Hỏi Lão Trương về sư phụ" in sections.important

    def test_entity_briefs(self, sections) -> None:
        assert "• Lão Trương (npc) [Recent mentions: 2] - Chủ quán trọ." in sections.important
        assert "• Bình Máu (item)" in sections.important
        assert "• Rồng Lửa" not in sections.important
        assert "• Thanh Vân Trấn" not in sections.important

    def test_no_active_quests(self) -> None:
        assembler = ContextAssembler(GameState())
        assert assembler.quest_block([], 1000) == ""


# ── contextual ──────────────────────────────────────────────


class TestContextual:
    def test_world(self, sections) -> None:
        assert sections.contextual.startswith(CONTEXTUAL_MARKER)
        assert "Thế giới: Thiên Huyền Giới" in sections.contextual
        assert "Một thế giới tu tiên rộng lớn." in sections.contextual

    def test_chronicle_excerpt(self, sections) -> None:
        text = sections.contextual
        assert "[Hồi ký] Lâm Phong rời núi" in text
        assert "[Hồi ký] Sư phụ mất tích" in text
        assert "[Chương] Đến Thanh Vân Trấn" in text
        assert "Gặp Tiểu Vy" not in text
        assert "Ăn cơm" not in text

    def test_pinned_memory(self, sections) -> None:
        assert "- Sư phụ để lại thanh kiếm gãy" in sections.contextual

    def test_memory_needs_room(self, state) -> None:
        text = ContextAssembler(state).contextual(50)
        assert "Ký ức quan trọng" not in text

    def test_empty_chronicle(self) -> None:
        assembler = ContextAssembler(GameState())
        assert "Biên niên sử" not in assembler.contextual(1000)


# ── supplemental ────────────────────────────────────────────


def test_relevant_rules(state, relevance):
    assert relevant_rules(state, relevance) == ["Tất cả NPC phải nói tiếng Việt"]


def test_rule_naming_relevant_entity(snapshot, relevance):
    snapshot["customRules"].append({"id": "r3", "content": "Rồng Lửa không bao giờ bỏ chạy"})
    snapshot["customRules"].append({"id": "r4", "content": "Luôn luôn trời mưa", "isActive": False})
    state = GameState.from_snapshot(snapshot)
    rules = relevant_rules(state, relevance)
    assert "Rồng Lửa không bao giờ bỏ chạy" in rules
    assert "Luôn luôn trời mưa" not in rules


def test_supplemental_section(sections):
    text = sections.supplemental
    assert RULES_MARKER in text
    assert "- Tất cả NPC phải nói tiếng Việt" in text
    assert "Không có phép dịch chuyển" not in text
    assert "KHÔNG TẠO LẠI" in text


class TestExistingEntities:
    def test_groups(self, state) -> None:
        text = existing_entities_block(state)
        assert "🧑 **NPCs hiện có**: Rồng Lửa, Lão Trương" in text
        assert "👥 **Đồng hành hiện có**: Tiểu Vy" in text
        assert "🏛️ **Địa điểm hiện có**: Thanh Vân Trấn" in text
        assert "⚔️ **Kỹ năng hiện có**: Kiếm Pháp Cơ Bản" in text

    def test_overflow_count_and_archived(self) -> None:
        state = GameState.from_snapshot({"knownEntities": {
            "A": {"type": "npc"}, "B": {"type": "npc"}, "C": {"type": "npc"},
            "D": {"type": "npc"}, "E": {"type": "npc", "archived": True},
        }})
        text = existing_entities_block(state)
        assert "A, B, C và 1 khác" in text

    def test_empty(self) -> None:
        assert existing_entities_block(GameState()) == ""


def test_sections_fit_budget(state, relevance):
    budget = TokenBudget(critical=300, important=200, contextual=150, supplemental=100)
    sections = build_sections(relevance, state, budget)
    assembler = ContextAssembler(state)
    assert assembler.tokens(sections.important) <= 200 + assembler.tokens(IMPORTANT_MARKER)
    assert assembler.tokens(sections.supplemental) <= 100
