"""Name-keyed entity store.

The store is the only place entities are written. Each upsert validates the
complete merged entity first and then replaces the stored object with a
single assignment, so readers see either the old or the new entity.
Callers serialise turns; the store takes no locks of its own.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from lorekeeper.config import EngineConfig, MergeConfig
from lorekeeper.merge import MergeResult, merge_entity
from lorekeeper.models import ENTITY_CLASSES, ENTITY_TYPES, EntityBase, GameState, parse_entity

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self, entities: Mapping[str, EntityBase] | None = None):
        self._entities: dict[str, EntityBase] = dict(entities or {})
        self._state: GameState | None = None

    @classmethod
    def from_state(cls, state: GameState) -> EntityStore:
        """A store sharing the state's entity dict, so upserts are visible to the next turn."""
        store = cls()
        store._entities = state.known_entities
        store._state = state
        return store

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> EntityStore:
        return cls({name: parse_entity(data, name=name) for name, data in raw.items()})

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)

    def get(self, name: str) -> EntityBase | None:
        return self._entities.get(name)

    def resolve(self, name: str | None) -> EntityBase | None:
        """Follow a soft reference (owner/location); dangling names give None."""
        if not name:
            return None
        return self._entities.get(name)

    def items(self):
        return self._entities.items()

    def snapshot(self) -> dict[str, EntityBase]:
        return dict(self._entities)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            name: e.model_dump(by_alias=True, exclude_none=True)
            for name, e in self._entities.items()
        }

    # ── writes ──────────────────────────────────────────────

    def upsert(
        self,
        name: str,
        proposed: Mapping[str, Any] | EntityBase,
        config: EngineConfig | MergeConfig | None = None,
    ) -> MergeResult:
        result = merge_entity(name, proposed, self, config)
        if result.outcome != "skipped" and result.entity is not None:
            self._entities[name] = result.entity
        logger.debug("Upsert %r: %s", name, result.outcome)
        return result

    def apply_upserts(
        self,
        requests: Iterable[tuple[str, Mapping[str, Any] | EntityBase]],
        config: EngineConfig | MergeConfig | None = None,
    ) -> list[MergeResult]:
        """Apply upserts one at a time, in the order they were proposed."""
        return [self.upsert(name, proposed, config) for name, proposed in requests]

    def rename(self, old: str, new: str, new_type: str | None = None) -> EntityBase:
        """Move an entity to a new name (and optionally a new type).

        The reference id is kept. owner/location references to the old name
        are rewritten, in the party too when the store wraps a GameState.
        Raises KeyError for an unknown name and ValueError when `new` is
        taken or `new_type` is not a known type.
        """
        entity = self._entities.get(old)
        if entity is None:
            raise KeyError(old)
        if new != old and new in self._entities:
            raise ValueError(f"Entity {new!r} already exists")
        if new_type is not None and new_type not in ENTITY_TYPES:
            raise ValueError(f"Unknown entity type {new_type!r}")

        data = entity.model_dump()
        data["name"] = new
        target_type = new_type or entity.type
        data["type"] = target_type
        renamed = ENTITY_CLASSES[target_type].model_validate(data)

        updated: dict[str, EntityBase] = {}
        for name, other in self._entities.items():
            updated[new if name == old else name] = (
                renamed if name == old else _repoint(other, old, new)
            )
        self._entities.clear()
        self._entities.update(updated)

        if self._state is not None:
            self._state.party = [
                renamed if member.name == old else _repoint(member, old, new)
                for member in self._state.party
            ]
        logger.info("Renamed entity %r -> %r (%s)", old, new, target_type)
        return renamed


def _repoint(entity: EntityBase, old: str, new: str) -> EntityBase:
    changes = {f: new for f in ("owner", "location") if getattr(entity, f) == old}
    return entity.model_copy(update=changes) if changes else entity
