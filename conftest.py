import copy
import os

import pytest

from lorekeeper.models import GameState
from lorekeeper.store import EntityStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop LOREKEEPER_* overrides so every test sees the default config."""
    for key in list(os.environ):
        if key.startswith("LOREKEEPER_"):
            monkeypatch.delenv(key)


SNAPSHOT = {
    "worldData": {
        "worldName": "Thiên Huyền Giới",
        "worldDetail": "Một thế giới tu tiên rộng lớn.",
        "characterName": "Lâm Phong",
        "allowNsfw": False,
    },
    "knownEntities": {
        "Lâm Phong": {
            "name": "Lâm Phong", "type": "pc", "location": "Thanh Vân Trấn",
            "motivation": "Tìm lại sư phụ", "learnedSkills": ["Kiếm Pháp Cơ Bản"],
        },
        "Tiểu Vy": {
            "name": "Tiểu Vy", "type": "companion", "relationship": "bạn đồng hành",
            "realm": "Luyện Khí", "skills": "kiếm thuật, thuyết phục",
            "personality": "Hoạt bát",
        },
        "Rồng Lửa": {
            "name": "Rồng Lửa", "type": "npc", "location": "Hỏa Diệm Sơn",
            "description": "Một con rồng khổng lồ phun lửa.",
        },
        "Lão Trương": {
            "name": "Lão Trương", "type": "npc", "location": "Thanh Vân Trấn",
            "description": "Chủ quán trọ.",
        },
        "Thanh Vân Trấn": {"name": "Thanh Vân Trấn", "type": "location", "description": "Thị trấn nhỏ."},
        "Kiếm Pháp Cơ Bản": {"name": "Kiếm Pháp Cơ Bản", "type": "skill", "mastery": "Sơ Cấp"},
        "Bình Máu": {"name": "Bình Máu", "type": "item", "owner": "pc", "quantities": 2},
    },
    "party": [
        {
            "name": "Lâm Phong", "type": "pc", "location": "Thanh Vân Trấn",
            "motivation": "Tìm lại sư phụ", "learnedSkills": ["Kiếm Pháp Cơ Bản"],
        },
        {
            "name": "Tiểu Vy", "type": "companion", "relationship": "bạn đồng hành",
            "realm": "Luyện Khí", "skills": ["kiếm thuật", "thuyết phục"],
            "personality": "Hoạt bát",
        },
    ],
    "statuses": [
        {"name": "Trúng độc", "type": "debuff", "owner": "Tiểu Vy"},
    ],
    "quests": [
        {
            "title": "Tìm sư phụ",
            "status": "active",
            "objectives": [
                {"description": "Hỏi thăm Lão Trương", "completed": True},
                {"description": "Đến Hỏa Diệm Sơn", "completed": False},
            ],
        },
    ],
    "gameHistory": [
        {"role": "user", "parts": [{"text": '--- HÀNH ĐỘNG CỦA NGƯỜI CHƠI ---\n"Hỏi Lão Trương về sư phụ"'}]},
        {"role": "model", "parts": [{"text": '{"story": "Lão Trương kể rằng sư phụ đã gặp Rồng Lửa ở phía bắc. Trời bắt đầu tối dần."}'}]},
    ],
    "memories": [{"text": "Sư phụ để lại thanh kiếm gãy", "pinned": True}],
    "customRules": [
        {"id": "r1", "content": "Tất cả NPC phải nói tiếng Việt", "isActive": True},
        {"id": "r2", "content": "Không có phép dịch chuyển", "isActive": True},
    ],
    "turnCount": 12,
    "gameTime": {"year": 1024, "month": 3, "day": 7, "hour": 9},
    "chronicle": {
        "memoir": ["Lâm Phong rời núi", "Sư phụ mất tích"],
        "chapter": ["Gặp Tiểu Vy", "Đến Thanh Vân Trấn"],
        "turn": ["Ăn cơm"],
    },
    "choiceHistory": [
        {"turn": 11, "choices": ["Nghỉ ngơi tại quán trọ", "Luyện kiếm"]},
        {"turn": 2, "choices": ["Lựa chọn rất cũ"]},
    ],
}


@pytest.fixture
def snapshot():
    return copy.deepcopy(SNAPSHOT)


@pytest.fixture
def state(snapshot):
    return GameState.from_snapshot(snapshot)


@pytest.fixture
def store(state):
    return EntityStore.from_state(state)
