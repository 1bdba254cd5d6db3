"""Context assembly and entity consistency engine for an LLM storyteller."""

from lorekeeper.config import EngineConfig, get_config
from lorekeeper.engine import PromptEngine, PromptReport, build_prompt
from lorekeeper.export import EntityExportService
from lorekeeper.merge import MergeResult, merge_entity
from lorekeeper.models import GameState, parse_entity
from lorekeeper.store import EntityStore

__all__ = [
    "EngineConfig",
    "EntityExportService",
    "EntityStore",
    "GameState",
    "MergeResult",
    "PromptEngine",
    "PromptReport",
    "build_prompt",
    "get_config",
    "merge_entity",
    "parse_entity",
]
