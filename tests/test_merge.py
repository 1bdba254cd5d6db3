"""Tests for lorekeeper.merge."""

from lorekeeper.config import MergeConfig, get_config
from lorekeeper.merge import clean_proposed, create_entity, merge_entity, merge_fields
from lorekeeper.models import Concept, NonPlayerCharacter, parse_entity


def _entities(**raw):
    return {name: parse_entity(data, name=name) for name, data in raw.items()}


# ── existing entities ───────────────────────────────────────


class TestMergeExisting:
    def test_identity_preserved(self) -> None:
        store = _entities(**{"Rồng Lửa": {
            "type": "npc", "referenceId": "REF_NP_CHA_1234abcd", "description": "Một con rồng khổng lồ phun lửa.",
        }})
        result = merge_entity("Rồng Lửa", {
            "name": "Hỏa Long", "type": "companion", "referenceId": "REF_OTHER", "description": "Rồng.",
        }, store)

        assert result.outcome == "merged"
        assert isinstance(result.entity, NonPlayerCharacter)
        assert result.entity.name == "Rồng Lửa"
        assert result.entity.reference_id == "REF_NP_CHA_1234abcd"
        assert result.entity.description == "Một con rồng khổng lồ phun lửa."
        assert "type change" in result.conflict_reason

    def test_skills_union(self, store) -> None:
        result = merge_entity("Tiểu Vy", {"type": "companion", "skills": "thuyết phục, y thuật"}, store)
        assert result.entity.skills == ["kiếm thuật", "thuyết phục", "y thuật"]

    def test_longer_description_wins(self, store) -> None:
        longer = "Chủ quán trọ già, biết nhiều chuyện giang hồ."
        result = merge_entity("Lão Trương", {"description": longer}, store)
        assert result.entity.description == longer
        shorter = merge_entity("Lão Trương", {"description": "Ông già."}, store)
        assert shorter.entity.description == "Chủ quán trọ."

    def test_current_state_fields_overwrite(self, store) -> None:
        result = merge_entity("Tiểu Vy", {
            "relationship": "người yêu", "location": "Hỏa Diệm Sơn",
        }, store)
        assert result.entity.relationship == "người yêu"
        assert result.entity.location == "Hỏa Diệm Sơn"

    def test_other_fields_fill_only_empty(self, store) -> None:
        result = merge_entity("Tiểu Vy", {
            "personality": "Lạnh lùng", "gender": "Nữ", "rarity": "hiếm",
        }, store)
        assert result.entity.personality == "Hoạt bát"
        assert result.entity.gender == "Nữ"
        assert result.entity.model_extra["rarity"] == "hiếm"

    def test_store_not_written(self, store) -> None:
        merge_entity("Lão Trương", {"description": "x" * 100}, store)
        assert store.get("Lão Trương").description == "Chủ quán trọ."

    def test_merges_disabled(self, store) -> None:
        existing = store.get("Tiểu Vy")
        for config in (MergeConfig(enabled=False), get_config({"merge": {"auto_merge_on_import": False}})):
            result = merge_entity("Tiểu Vy", {"realm": "Trúc Cơ"}, store, config)
            assert result.outcome == "skipped"
            assert result.entity is existing
            assert "auto-merge is disabled" in result.conflict_reason

    def test_invalid_merge_skipped(self, store) -> None:
        result = merge_entity("Bình Máu", {"quantities": None, "equipped": "maybe"}, store)
        assert result.outcome == "skipped"
        assert result.entity is store.get("Bình Máu")
        assert result.conflict_reason.startswith("Merged data failed validation")


# ── new entities ────────────────────────────────────────────


class TestCreate:
    def test_created(self) -> None:
        result = merge_entity("Hồ Ly", {"type": "companion", "skills": "mị thuật"}, {})
        assert result.outcome == "created"
        assert result.entity.name == "Hồ Ly"
        assert result.entity.skills == ["mị thuật"]
        assert result.conflict_reason is None

    def test_unknown_type_becomes_concept(self) -> None:
        result = create_entity("Thiên Đạo", {"type": "cosmic_law"})
        assert isinstance(result.entity, Concept)
        assert create_entity("Vô Danh", {}).entity.type == "concept"

    def test_transient_fields_stripped(self) -> None:
        result = create_entity("Hồ Ly", {
            "type": "npc",
            "referenceId": "REF_NP_CHA_deadbeef",
            "exportedAt": 1700000000000,
            "exportTurn": 7,
            "hanVietName": "Nhân Vật Hồ Ly",
            "originalName": "Hồ Ly",
            "lastUpdated": 3,
        })
        assert result.outcome == "created"
        assert result.entity.reference_id is None
        assert result.entity.model_extra == {}

    def test_invalid_data_skipped(self) -> None:
        result = create_entity("Bình", {"type": "item", "quantities": "nhiều"})
        assert result.outcome == "skipped"
        assert result.entity is None
        assert result.conflict_reason.startswith("Invalid entity data")


def test_clean_proposed_accepts_models():
    entity = parse_entity({"name": "A", "type": "npc", "referenceId": "R"})
    cleaned = clean_proposed(entity)
    assert "reference_id" not in cleaned
    assert cleaned["name"] == "A"


def test_merge_fields_protected():
    merged = merge_fields({"name": "A", "type": "npc"}, {"name": "B", "type": "item", "tags": ["x"]})
    assert merged == {"name": "A", "type": "npc", "tags": ["x"]}
