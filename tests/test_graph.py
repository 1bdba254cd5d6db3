"""Tests for lorekeeper.graph."""

from lorekeeper.graph import build_graph, neighbors
from lorekeeper.models import parse_entity


def test_fixture_edges(state):
    graph = build_graph(state.known_entities, "Lâm Phong")
    # owner "pc" resolves to the player character
    assert "Lâm Phong" in neighbors(graph, "Bình Máu")
    assert "Bình Máu" in neighbors(graph, "Lâm Phong")
    # location edges, endpoints need not be known entities
    assert neighbors(graph, "Rồng Lửa") == {"Hỏa Diệm Sơn"}
    assert "Rồng Lửa" in neighbors(graph, "Hỏa Diệm Sơn")
    assert {"Lâm Phong", "Lão Trương"} <= neighbors(graph, "Thanh Vân Trấn")
    # skills
    assert "kiếm thuật" in neighbors(graph, "Tiểu Vy")


def test_description_mentions():
    entities = {
        "Hắc Long": parse_entity({"name": "Hắc Long", "type": "npc", "description": "Kẻ thù của Bạch Hổ."}),
        "Bạch Hổ": parse_entity({"name": "Bạch Hổ", "type": "npc"}),
    }
    graph = build_graph(entities)
    assert neighbors(graph, "Bạch Hổ") == {"Hắc Long"}


def test_pc_owner_without_player_is_literal():
    entities = {"Túi": parse_entity({"name": "Túi", "type": "item", "owner": "pc"})}
    assert neighbors(build_graph(entities), "Túi") == {"pc"}


def test_unknown_name():
    assert neighbors({}, "Ai") == set()


def test_skills_string_on_non_character():
    entities = {"Bí Kíp": parse_entity({"name": "Bí Kíp", "type": "concept", "skills": "Hỏa Cầu, Băng Tiễn"})}
    assert neighbors(build_graph(entities), "Bí Kíp") == {"Hỏa Cầu", "Băng Tiễn"}
