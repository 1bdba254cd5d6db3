"""Core domain models.

The context engine reads a GameState snapshot; only the merge engine writes
entities back into its store. Pydantic is used for validation and
serialisation at every data boundary. JSON keys are camelCase
(referenceId, learnedSkills, ...) but snake_case is accepted on input.

Entity is a discriminated union on `type`:

  pc / npc / companion   character fields (personality, realm, skills, ...)
  item                   quantity and equipment flags
  skill                  mastery
  location / faction / status_effect / concept   base fields only

Unknown keys are kept as extra fields so nothing the model proposes is lost.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

EntityType = Literal[
    "pc",
    "npc",
    "companion",
    "location",
    "faction",
    "item",
    "skill",
    "status_effect",
    "concept",
]

ENTITY_TYPES: tuple[str, ...] = (
    "pc", "npc", "companion", "location", "faction",
    "item", "skill", "status_effect", "concept",
)


def split_skills(value: Any) -> list[str]:
    """Normalise a skills value to a list ("A, B" -> ["A", "B"])."""
    if value is None:
        return []
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(s).strip() for s in value if str(s).strip()]
    return []


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Entities ────────────────────────────────────────────────


class EntityBase(_Model):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow",
    )

    name: str
    description: str = ""
    reference_id: str | None = None
    owner: str | None = None  # "pc" or an entity name
    location: str | None = None  # location entity name
    state: str | None = None  # dead | broken | destroyed
    archived: bool = False
    archived_at: int | None = None
    last_mentioned: int | None = None
    tags: list[str] = Field(default_factory=list)

    @property
    def is_character(self) -> bool:
        return self.type in ("pc", "npc", "companion")  # type: ignore[attr-defined]


class CharacterBase(EntityBase):
    gender: str | None = None
    age: str | None = None
    appearance: str | None = None
    fame: str | None = None
    personality: str | None = None
    personality_mbti: str | None = None
    motivation: str | None = None
    relationship: str | None = None
    realm: str | None = None
    skills: list[str] = Field(default_factory=list)
    learned_skills: list[str] = Field(default_factory=list)
    current_exp: int | None = None

    @field_validator("skills", "learned_skills", mode="before")
    @classmethod
    def _split(cls, value: Any) -> list[str]:
        return split_skills(value)


class PlayerCharacter(CharacterBase):
    type: Literal["pc"] = "pc"


class NonPlayerCharacter(CharacterBase):
    type: Literal["npc"] = "npc"


class Companion(CharacterBase):
    type: Literal["companion"] = "companion"


class Location(EntityBase):
    type: Literal["location"] = "location"


class Faction(EntityBase):
    type: Literal["faction"] = "faction"


class Item(EntityBase):
    type: Literal["item"] = "item"
    uses: int | None = None  # legacy consumable counter
    quantities: int | None = None
    durability: float | None = None
    usable: bool | None = None
    equippable: bool | None = None
    equipped: bool | None = None
    consumable: bool | None = None
    learnable: bool | None = None


class Skill(EntityBase):
    type: Literal["skill"] = "skill"
    mastery: str | None = None


class StatusEffect(EntityBase):
    type: Literal["status_effect"] = "status_effect"


class Concept(EntityBase):
    type: Literal["concept"] = "concept"


Entity = Annotated[
    Union[
        PlayerCharacter,
        NonPlayerCharacter,
        Companion,
        Location,
        Faction,
        Item,
        Skill,
        StatusEffect,
        Concept,
    ],
    Field(discriminator="type"),
]

ENTITY_CLASSES: dict[str, type[EntityBase]] = {
    "pc": PlayerCharacter,
    "npc": NonPlayerCharacter,
    "companion": Companion,
    "location": Location,
    "faction": Faction,
    "item": Item,
    "skill": Skill,
    "status_effect": StatusEffect,
    "concept": Concept,
}

_entity_adapter: TypeAdapter = TypeAdapter(Entity)


def _field_names() -> dict[str, str]:
    """Map every known alias (camelCase) to its python field name."""
    names: dict[str, str] = {}
    for cls in ENTITY_CLASSES.values():
        for field_name, info in cls.model_fields.items():
            names[info.alias or field_name] = field_name
            names[field_name] = field_name
    return names


FIELD_NAMES = _field_names()


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Rename known camelCase keys to python field names; leave extras alone."""
    return {FIELD_NAMES.get(key, key): value for key, value in data.items()}


def parse_entity(data: dict[str, Any], name: str | None = None) -> EntityBase:
    """Validate a raw entity dict into its typed class.

    `name` fills in a missing name (entities are keyed by name in the store).
    Raises pydantic.ValidationError on bad data.
    """
    payload = normalize_keys(dict(data))
    if name is not None and not payload.get("name"):
        payload["name"] = name
    return _entity_adapter.validate_python(payload)


def entity_fields(entity: EntityBase) -> dict[str, Any]:
    """Python-named field dict of an entity, extras included."""
    return entity.model_dump()


# ── Game state parts ────────────────────────────────────────


class Status(_Model):
    name: str
    description: str = ""
    type: str = "neutral"  # buff | debuff | neutral | injury
    source: str = ""
    duration: str | None = None
    effects: str | None = None
    cure_conditions: str | None = None
    owner: str = "pc"  # "pc" or an NPC name


class QuestObjective(_Model):
    description: str
    completed: bool = False


class Quest(_Model):
    title: str
    description: str = ""
    objectives: list[QuestObjective] = Field(default_factory=list)
    giver: str | None = None
    reward: str | None = None
    is_main_quest: bool = False
    status: Literal["active", "completed", "failed"] = "active"


class HistoryPart(_Model):
    text: str = ""


class HistoryEntry(_Model):
    """One turn of conversation with the model.

    Full shape: {"role": "user"|"model", "parts": [{"text": ...}]}.
    Compacted shapes {"role": "user", "action": ...} and
    {"role": "model", "storyContinuity": ...} are accepted too.
    """

    role: Literal["user", "model"]
    parts: list[HistoryPart] = Field(default_factory=list)
    state_changes: str = ""

    @model_validator(mode="before")
    @classmethod
    def _accept_compact(cls, data: Any) -> Any:
        if isinstance(data, dict) and "parts" not in data:
            for key in ("text", "action", "storyContinuity", "story_continuity"):
                if isinstance(data.get(key), str):
                    return {**data, "parts": [{"text": data[key]}]}
        return data

    @property
    def text(self) -> str:
        return self.parts[0].text if self.parts else ""


class Memory(_Model):
    text: str
    pinned: bool = False
    created_at: int | None = None
    last_accessed: int | None = None
    source: str | None = None
    category: str | None = None
    importance: float | None = None
    related_entities: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    emotional_weight: float | None = None


class CustomRule(_Model):
    id: str = ""
    content: str = ""
    is_active: bool = True


class Chronicle(_Model):
    """Long-term memory: memoir > chapter > turn (decreasing significance)."""

    memoir: list[str] = Field(default_factory=list)
    chapter: list[str] = Field(default_factory=list)
    turn: list[str] = Field(default_factory=list)


class GameTime(_Model):
    year: int = 1
    month: int = 1
    day: int = 1
    hour: int = 0


class WorldData(_Model):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow",
    )

    world_name: str = ""
    story_name: str = ""
    character_name: str = ""
    genre: str = ""
    world_detail: str = ""
    allow_nsfw: bool = False


class ChoiceRecord(_Model):
    turn: int
    choices: list[str] = Field(default_factory=list)
    selected_choice: str | None = None
    context: str | None = None


class HistoryStats(_Model):
    total_entries_processed: int = 0
    total_tokens_saved: int = 0
    compression_count: int = 0  # how many compactions ran
    last_compression_turn: int | None = None  # turn number of the latest one


class GameState(_Model):
    """Aggregate root owned by the application session."""

    world_data: WorldData = Field(default_factory=WorldData)
    known_entities: dict[str, Entity] = Field(default_factory=dict)
    statuses: list[Status] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    game_history: list[HistoryEntry] = Field(default_factory=list)
    memories: list[Memory] = Field(default_factory=list)
    party: list[Entity] = Field(default_factory=list)
    custom_rules: list[CustomRule] = Field(default_factory=list)
    turn_count: int = 0
    game_time: GameTime = Field(default_factory=GameTime)
    chronicle: Chronicle = Field(default_factory=Chronicle)
    choice_history: list[ChoiceRecord] = Field(default_factory=list)
    history_stats: HistoryStats = Field(default_factory=HistoryStats)

    @property
    def player(self) -> EntityBase | None:
        """The player character from the party, if any."""
        for member in self.party:
            if member.type == "pc":
                return member
        return None

    @property
    def active_quests(self) -> list[Quest]:
        return [q for q in self.quests if q.status == "active"]

    @property
    def party_names(self) -> set[str]:
        return {m.name for m in self.party}

    @classmethod
    def from_snapshot(cls, data: Any) -> GameState:
        """Build a GameState, skipping individual entries that fail validation.

        Raises TypeError if `data` is not a mapping at all.
        """
        if isinstance(data, GameState):
            return data
        if not isinstance(data, dict):
            raise TypeError(f"game state must be a mapping, got {type(data).__name__}")

        def pick(key: str) -> Any:
            if key in data:
                return data[key]
            return data.get(to_camel(key))

        entities: dict[str, EntityBase] = {}
        raw_entities = pick("known_entities")
        if isinstance(raw_entities, dict):
            for key, value in raw_entities.items():
                if not isinstance(value, dict):
                    logger.warning("Skipping entity %r: not an object", key)
                    continue
                try:
                    entities[key] = parse_entity(value, name=key)
                except ValidationError as e:
                    logger.warning("Skipping entity %r: %s", key, e.errors()[0]["msg"])

        party: list[EntityBase] = []
        for value in _as_list(pick("party")):
            if not isinstance(value, dict):
                logger.warning("Skipping party member %r: not an object", value)
                continue
            try:
                party.append(parse_entity(value))
            except (ValidationError, TypeError) as e:
                logger.warning("Skipping party member: %s", e)

        fields: dict[str, Any] = {
            "known_entities": entities,
            "party": party,
            "statuses": _validate_each(Status, pick("statuses"), "status"),
            "quests": _validate_each(Quest, pick("quests"), "quest"),
            "game_history": _validate_each(HistoryEntry, pick("game_history"), "history entry"),
            "memories": _validate_each(Memory, pick("memories"), "memory"),
            "custom_rules": _validate_each(CustomRule, pick("custom_rules"), "custom rule"),
            "choice_history": _validate_each(ChoiceRecord, pick("choice_history"), "choice record"),
        }

        raw_chronicle = pick("chronicle")
        if isinstance(raw_chronicle, dict):
            fields["chronicle"] = Chronicle(**{
                tier: [m for m in _as_list(raw_chronicle.get(tier)) if isinstance(m, str)]
                for tier in ("memoir", "chapter", "turn")
            })

        for key, model in (
            ("world_data", WorldData),
            ("game_time", GameTime),
            ("history_stats", HistoryStats),
        ):
            value = pick(key)
            if value is None:
                continue
            try:
                fields[key] = model.model_validate(value)
            except ValidationError:
                logger.warning("Invalid %s in snapshot; using defaults", key)

        turn_count = pick("turn_count")
        if isinstance(turn_count, int):
            fields["turn_count"] = turn_count

        return cls(**fields)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _validate_each(model: type[BaseModel], items: Any, label: str) -> list:
    result = []
    for item in _as_list(items):
        try:
            result.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed %s: %s", label, e.errors()[0]["msg"])
    return result
