"""Entity merge / dedup.

merge_entity() decides what an upsert should write; EntityStore.upsert()
performs the write. Field policy when an entity already exists:

  name, type, reference_id   never overwritten
  skills                     ordered union, no duplicates
  description                the strictly longer text wins
  relationship, location     incoming value wins when given
  everything else            filled from incoming only when empty

Export bookkeeping (exportedAt, exportTurn, hanVietName, originalName,
lastUpdated) and any incoming referenceId are dropped before anything is
written. Conflicts are reported through the outcome, never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_snake

from lorekeeper.config import EngineConfig, MergeConfig
from lorekeeper.models import (
    ENTITY_CLASSES,
    ENTITY_TYPES,
    EntityBase,
    is_empty,
    normalize_keys,
    parse_entity,
    split_skills,
)

logger = logging.getLogger(__name__)

MergeOutcome = Literal["created", "merged", "skipped"]

TRANSIENT_FIELDS = frozenset({
    "exported_at", "export_turn", "han_viet_name", "original_name", "last_updated",
    "reference_id",
})
PROTECTED_FIELDS = frozenset({"name", "type", "reference_id"})
CURRENT_STATE_FIELDS = frozenset({"relationship", "location"})
DEFAULT_TYPE = "concept"


class MergeResult(BaseModel):
    entity: EntityBase | None = None
    outcome: MergeOutcome
    conflict_reason: str | None = None


def clean_proposed(proposed: Mapping[str, Any] | EntityBase) -> dict[str, Any]:
    """Python-named field dict with export bookkeeping removed."""
    if isinstance(proposed, BaseModel):
        data = proposed.model_dump()
    else:
        data = normalize_keys(dict(proposed))
    return {k: v for k, v in data.items() if to_snake(k) not in TRANSIENT_FIELDS}


def _merge_config(config: EngineConfig | MergeConfig | None) -> MergeConfig:
    if config is None:
        return MergeConfig()
    if isinstance(config, EngineConfig):
        return config.merge
    return config


def merge_fields(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = dict(existing)
    for key, value in incoming.items():
        if key in PROTECTED_FIELDS:
            continue
        if key == "skills":
            merged[key] = list(dict.fromkeys(split_skills(merged.get(key)) + split_skills(value)))
        elif key == "description":
            if isinstance(value, str) and len(value) > len(merged.get("description") or ""):
                merged["description"] = value
        elif key in CURRENT_STATE_FIELDS:
            if value is not None:
                merged[key] = value
        elif is_empty(merged.get(key)) and not is_empty(value):
            merged[key] = value
    return merged


def create_entity(name: str, proposed: Mapping[str, Any] | EntityBase) -> MergeResult:
    data = clean_proposed(proposed)
    data["name"] = name
    if data.get("type") not in ENTITY_TYPES:
        if data.get("type") is not None:
            logger.warning("Unknown entity type %r for %r; storing as %s", data["type"], name, DEFAULT_TYPE)
        data["type"] = DEFAULT_TYPE
    try:
        entity = parse_entity(data)
    except ValidationError as e:
        reason = f"Invalid entity data: {e.errors()[0]['msg']}"
        logger.warning("Skipped new entity %r: %s", name, reason)
        return MergeResult(outcome="skipped", conflict_reason=reason)
    return MergeResult(entity=entity, outcome="created")


def merge_entity(
    name: str,
    proposed: Mapping[str, Any] | EntityBase,
    store: Mapping[str, EntityBase] | Any,
    config: EngineConfig | MergeConfig | None = None,
) -> MergeResult:
    """Resolve an upsert of `name` against the current store contents.

    `store` is anything with a `get(name)` lookup (EntityStore or a plain
    dict). Nothing is written here.
    """
    existing = store.get(name)
    if existing is None:
        return create_entity(name, proposed)

    if not _merge_config(config).merges_allowed:
        return MergeResult(
            entity=existing,
            outcome="skipped",
            conflict_reason="Entity already exists and auto-merge is disabled",
        )

    incoming = clean_proposed(proposed)
    reasons = ["Entity existed and was merged with proposed data"]
    proposed_type = incoming.get("type")
    if proposed_type is not None and proposed_type != existing.type:
        reasons.append(f"type change to {proposed_type!r} ignored; use rename")

    merged = merge_fields(existing.model_dump(), incoming)
    try:
        entity = ENTITY_CLASSES[existing.type].model_validate(merged)
    except ValidationError as e:
        reason = f"Merged data failed validation: {e.errors()[0]['msg']}"
        logger.warning("Skipped merge of %r: %s", name, reason)
        return MergeResult(entity=existing, outcome="skipped", conflict_reason=reason)

    return MergeResult(entity=entity, outcome="merged", conflict_reason="; ".join(reasons))
