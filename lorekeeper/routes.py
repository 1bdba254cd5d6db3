"""FastAPI endpoints under /api.

The service is stateless: every request carries the game state or the
entity map it works on, and write endpoints return the updated map.

  GET  /health
  POST /prompt            assemble the prompt for one action
  POST /entities/merge    upsert one entity
  POST /entities/import   import an export payload
  POST /entities/rename   rename / retype one entity
"""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from lorekeeper.config import get_config
from lorekeeper.engine import PromptEngine
from lorekeeper.export import EntityExportService
from lorekeeper.store import EntityStore

router = APIRouter()


class PromptBody(BaseModel):
    action: str
    state: dict[str, Any] | None = None
    rule_change_context: str = ""
    extra_instruction: str = ""
    supplementary_context: str = ""
    config: dict[str, Any] | None = None


class MergeBody(BaseModel):
    name: str
    proposed: dict[str, Any]
    entities: dict[str, dict[str, Any]] = {}
    config: dict[str, Any] | None = None


class ImportBody(BaseModel):
    payload: dict[str, Any]
    entities: dict[str, dict[str, Any]] = {}
    config: dict[str, Any] | None = None


class RenameBody(BaseModel):
    old: str
    new: str
    new_type: str | None = None
    entities: dict[str, dict[str, Any]] = {}


def _store(entities: dict[str, dict[str, Any]]) -> EntityStore:
    try:
        return EntityStore.from_dict(entities)
    except ValidationError as e:
        raise HTTPException(422, f"Invalid entities: {e.errors()[0]['msg']}")


def _config(overrides: dict[str, Any] | None):
    try:
        return get_config(overrides)
    except ValidationError as e:
        raise HTTPException(422, f"Invalid config: {e.errors()[0]['msg']}")
    except ValueError as e:
        raise HTTPException(422, f"Invalid config: {e}")


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post("/prompt")
async def build_prompt(body: PromptBody):
    """Assemble the prompt for one player action, with diagnostics."""
    engine = PromptEngine(_config(body.config))
    report = engine.assemble(
        body.action,
        body.state,
        rule_change_context=body.rule_change_context,
        extra_instruction=body.extra_instruction,
        supplementary_context=body.supplementary_context,
    )
    return report.model_dump()


@router.post("/entities/merge")
async def merge_entity(body: MergeBody):
    """Upsert one proposed entity into the supplied entity map."""
    store = _store(body.entities)
    result = store.upsert(body.name, body.proposed, _config(body.config))
    return {
        "outcome": result.outcome,
        "conflict_reason": result.conflict_reason,
        "entity": result.entity.model_dump(by_alias=True, exclude_none=True) if result.entity else None,
        "entities": store.to_dict(),
    }


@router.post("/entities/import")
async def import_entities(body: ImportBody):
    """Import an exported category file or lore pack."""
    store = _store(body.entities)
    service = EntityExportService(_config(body.config))
    report = service.import_payload(body.payload, store)
    if not report.success:
        raise HTTPException(400, report.error)
    return {**report.model_dump(exclude={"backup"}), "entities": store.to_dict()}


@router.post("/entities/rename")
async def rename_entity(body: RenameBody):
    """Rename or retype an entity, keeping its reference id."""
    store = _store(body.entities)
    try:
        entity = store.rename(body.old, body.new, body.new_type)
    except KeyError:
        raise HTTPException(404, "Entity not found")
    except ValueError as e:
        raise HTTPException(409, str(e))
    return {
        "entity": entity.model_dump(by_alias=True, exclude_none=True),
        "entities": store.to_dict(),
    }
