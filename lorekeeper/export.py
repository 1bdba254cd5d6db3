"""Entity export and import.

EntityExportService is built once by the application and passed to the
call sites that need it. Exports are plain dicts, one per non-empty
category:

  {
    "metadata": {"category", "turn", "entityCount", "characterName", ...},
    "referenceMapping": {name: referenceId},
    "entities": {name: {...entity, originalName, hanVietName, referenceId,
                        exportedAt, exportTurn}}
  }

Reference ids are derived from type, category and name, so exporting the
same entity twice yields the same id. An entity that already carries a
referenceId keeps it. Exports never write to the store.

Imports go through parse_import_payload() and then EntityStore.upsert()
entity by entity, in payload order.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from lorekeeper.config import EngineConfig, get_config
from lorekeeper.models import EntityBase
from lorekeeper.parsing import parse_import_payload
from lorekeeper.store import EntityStore

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = (
    "characters", "locations", "items", "factions", "concepts", "skills", "statusEffects",
)
_CATEGORY_BY_TYPE = {
    "pc": "characters",
    "npc": "characters",
    "companion": "characters",
    "location": "locations",
    "item": "items",
    "faction": "factions",
    "skill": "skills",
    "status_effect": "statusEffects",
}

HAN_VIET_NAMES = {
    "Naruto": "Minh Nhân",
    "Sasuke": "Tá Trợ",
    "Sakura": "Tiểu Anh",
    "Kakashi": "Kỳ Mộc",
    "Konoha": "Mộc Diệp",
    "Hidden Leaf Village": "Mộc Diệp Ẩn Thôn",
    "Academy": "Học Viện",
    "Forest": "Rừng",
    "Mountain": "Sơn",
    "Village": "Thôn",
    "City": "Thành",
    "Temple": "Tự",
    "Palace": "Cung",
}
HAN_VIET_PREFIXES = {
    "pc": "Chủ Nhân",
    "npc": "Nhân Vật",
    "companion": "Đồng Hành",
    "location": "Địa Điểm",
    "item": "Vật Phẩm",
    "skill": "Kỹ Năng",
    "faction": "Thế Lực",
}

DROPPED_ON_EXPORT = ("lastMentioned", "archivedAt")


def category_for(entity_type: str) -> str:
    return _CATEGORY_BY_TYPE.get(entity_type, "concepts")


def make_reference_id(name: str, entity_type: str, category: str) -> str:
    digest = hashlib.sha1(f"{entity_type}_{category}_{name}".encode()).hexdigest()[:8]
    return f"REF_{entity_type[:2].upper()}_{category[:3].upper()}_{digest}"


def han_viet_name(name: str, entity_type: str) -> str:
    if name in HAN_VIET_NAMES:
        return HAN_VIET_NAMES[name]
    return f"{HAN_VIET_PREFIXES.get(entity_type, 'Thực Thể')} {name}"


# ── Lock ────────────────────────────────────────────────────


class ExportLock:
    """Mutex-guarded export slot with an expiring token.

    A held slot blocks other exports. A forced export may take over a slot
    held longer than `timeout` seconds; the old token then stops working.
    """

    def __init__(self, timeout: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._mutex = threading.Lock()
        self._token: str | None = None
        self._acquired_at = 0.0
        self.turn: int | None = None

    @property
    def held(self) -> bool:
        return self._token is not None

    def is_stale(self) -> bool:
        return self.held and self._clock() - self._acquired_at > self.timeout

    def acquire(self, turn: int, force: bool = False) -> str | None:
        with self._mutex:
            if self._token is not None:
                if not (force and self.is_stale()):
                    logger.debug("Export for turn %d blocked: turn %s holds the lock", turn, self.turn)
                    return None
                logger.warning("Overriding stale export lock held for turn %s", self.turn)
            self._token = uuid.uuid4().hex
            self._acquired_at = self._clock()
            self.turn = turn
            return self._token

    def release(self, token: str) -> bool:
        with self._mutex:
            if token != self._token:
                return False
            self._token = None
            self.turn = None
            return True


# ── Reports ─────────────────────────────────────────────────


class ExportRecord(BaseModel):
    turn: int
    timestamp: str
    entities_exported: int
    categories: list[str] = Field(default_factory=list)


class ImportConflict(BaseModel):
    entity_name: str
    reason: str
    action: str


class ImportReport(BaseModel):
    success: bool
    category: str | None = None
    imported: int = 0
    skipped: int = 0
    conflicts: list[ImportConflict] = Field(default_factory=list)
    error: str | None = None
    backup: dict[str, Any] | None = None


class ExportMetadata(BaseModel):
    last_export_turn: int = 0
    total_exports: int = 0
    total_imports: int = 0
    export_history: list[ExportRecord] = Field(default_factory=list)


# ── Service ─────────────────────────────────────────────────


class EntityExportService:
    def __init__(
        self,
        config: EngineConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or get_config()
        self._clock = clock
        self.metadata = ExportMetadata()
        self.lock = ExportLock(self.config.export.lock_timeout_seconds)

    def categorize(self, store: EntityStore) -> dict[str, dict[str, EntityBase]]:
        categories: dict[str, dict[str, EntityBase]] = {c: {} for c in CATEGORIES}
        for name, entity in store.items():
            if entity.archived:
                continue
            categories[category_for(entity.type)][name] = entity
        return categories

    def should_export(self, turn: int) -> bool:
        cfg = self.config.export
        if not cfg.enabled or self.lock.held:
            return False
        return turn - self.metadata.last_export_turn >= cfg.export_interval

    def export_entity(self, name: str, entity: EntityBase, category: str, turn: int) -> dict[str, Any]:
        data = entity.model_dump(by_alias=True, exclude_none=True)
        for key in DROPPED_ON_EXPORT:
            data.pop(key, None)
        data.update({
            "originalName": entity.name,
            "hanVietName": han_viet_name(entity.name, entity.type),
            "referenceId": entity.reference_id or make_reference_id(entity.name, entity.type, category),
            "exportedAt": int(self._clock() * 1000),
            "exportTurn": turn,
        })
        return data

    def build_payloads(self, store: EntityStore, turn: int, character_name: str = "") -> dict[str, dict]:
        payloads: dict[str, dict] = {}
        timestamp = datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
        for category, entities in self.categorize(store).items():
            if not entities:
                continue
            exported = {
                name: self.export_entity(name, entity, category, turn)
                for name, entity in entities.items()
            }
            payloads[category] = {
                "metadata": {
                    "exportedAt": timestamp,
                    "turn": turn,
                    "category": category,
                    "entityCount": len(exported),
                    "characterName": character_name or "Unknown",
                    "hasReferenceIds": True,
                },
                "referenceMapping": {name: e["referenceId"] for name, e in exported.items()},
                "entities": exported,
            }
        return payloads

    def export_entities(
        self, store: EntityStore, turn: int, character_name: str = "", force: bool = False,
    ) -> dict[str, dict] | None:
        """Build export payloads, or None when the export slot is busy."""
        token = self.lock.acquire(turn, force=force)
        if token is None:
            return None
        try:
            payloads = self.build_payloads(store, turn, character_name)
            self._record_export(turn, payloads)
            logger.info("Exported %d categories at turn %d", len(payloads), turn)
            return payloads
        finally:
            self.lock.release(token)

    def force_export(self, store: EntityStore, turn: int, character_name: str = "") -> dict[str, dict] | None:
        return self.export_entities(store, turn, character_name, force=True)

    def _record_export(self, turn: int, payloads: dict[str, dict]) -> None:
        meta = self.metadata
        meta.last_export_turn = turn
        meta.total_exports += 1
        meta.export_history.append(ExportRecord(
            turn=turn,
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            entities_exported=sum(p["metadata"]["entityCount"] for p in payloads.values()),
            categories=list(payloads),
        ))
        meta.export_history = meta.export_history[-self.config.export.history_limit:]

    # ── import ──────────────────────────────────────────────

    def import_payload(self, raw: Any, store: EntityStore) -> ImportReport:
        if not self.config.export.import_enabled:
            return ImportReport(success=False, error="Import is disabled in configuration")

        parsed = parse_import_payload(raw)
        if not parsed.ok:
            logger.warning("Rejected import payload: %s", parsed.error.message)
            return ImportReport(
                success=False,
                error=f"Invalid file format - not a valid entity export file ({parsed.error.message})",
            )

        report = ImportReport(success=True, category=parsed.value["category"])
        if self.config.merge.backup_before_import:
            report.backup = {
                "metadata": {
                    "backupCreatedAt": datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
                    "totalEntities": len(store),
                    "reason": "Pre-import backup",
                },
                "entities": store.to_dict(),
            }

        for name, data in parsed.value["entities"].items():
            if not isinstance(data, dict):
                report.skipped += 1
                report.conflicts.append(ImportConflict(
                    entity_name=name, reason="Entity data is not an object", action="skipped",
                ))
                continue
            result = store.upsert(name, data, self.config)
            if result.outcome == "skipped":
                report.skipped += 1
            else:
                report.imported += 1
            if result.outcome == "merged" or result.conflict_reason:
                report.conflicts.append(ImportConflict(
                    entity_name=name,
                    reason=result.conflict_reason or "Entity existed and was merged",
                    action=result.outcome,
                ))

        self.metadata.total_imports += 1
        logger.info(
            "Imported %d entities (%d skipped, %d conflicts) from %s",
            report.imported, report.skipped, len(report.conflicts), report.category,
        )
        return report
