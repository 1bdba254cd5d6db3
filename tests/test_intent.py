"""Tests for lorekeeper.intent."""

from lorekeeper.intent import classify_action, extract_keywords, extract_targets


class TestClassify:
    def test_combat(self) -> None:
        intent = classify_action("Tấn công Rồng Lửa")
        assert intent.type == "combat"
        assert intent.is_combat
        assert "Rồng Lửa" in intent.targets

    def test_movement(self) -> None:
        intent = classify_action("đi đến Hỏa Diệm Sơn")
        assert intent.type == "movement"
        assert intent.is_movement
        assert intent.targets == ["Hỏa Diệm Sơn"]

    def test_social(self) -> None:
        intent = classify_action("hỏi Lão Trương về sư phụ")
        assert intent.type == "social"
        assert intent.is_social
        # "về" is a movement word too; flags are independent
        assert intent.is_movement

    def test_item_beats_combat(self) -> None:
        intent = classify_action("dùng Bình Máu rồi chém")
        assert intent.type == "item_use"
        assert intent.is_item_use and intent.is_combat

    def test_skill_has_top_priority(self) -> None:
        intent = classify_action("thi triển Kiếm Pháp Cơ Bản để tấn công")
        assert intent.type == "skill_use"
        assert intent.is_skill_use

    def test_general(self) -> None:
        intent = classify_action("ngồi thiền")
        assert intent.type == "general"
        assert not any([
            intent.is_movement, intent.is_combat, intent.is_social,
            intent.is_item_use, intent.is_skill_use,
        ])

    def test_word_boundary(self) -> None:
        # "cho" must not match inside "chó"
        assert not classify_action("con chó sủa").is_item_use
        assert classify_action("cho nó ít tiền").is_item_use


def test_targets_quoted_and_capitalised():
    targets = extract_targets('Nói với "ông lão" rồi gặp Tiểu Vy.')
    assert targets[0] == "ông lão"
    assert "Tiểu Vy" in targets


def test_targets_drop_short_single_words():
    assert extract_targets("Ta đi") == []


def test_keywords():
    kws = extract_keywords("Tấn công và giết con rồng của hắn")
    assert "và" not in kws
    assert "của" not in kws
    assert "giết" in kws
    assert "rồng" in kws
