"""Engine configuration (token limits, tier weights, merge and export switches).

get_config() returns defaults merged with stored overrides and LOREKEEPER_*
environment variables. Nested groups are merged key-by-key, scalars are
overwritten:

  LOREKEEPER_MAX_TOKENS        tokens.max_tokens_per_turn
  LOREKEEPER_TOKEN_BUFFER      tokens.token_buffer
  LOREKEEPER_HARD_LIMIT        tokens.hard_limit
  LOREKEEPER_AUTO_MERGE        merge.auto_merge_on_import ("0"/"false" disables)
  LOREKEEPER_EXPORT_INTERVAL   export.export_interval
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field


class TierAllocation(BaseModel):
    """Fraction of the base limit given to each context tier."""

    critical: float = 0.50
    important: float = 0.25
    contextual: float = 0.15
    supplemental: float = 0.10


class TokenConfig(BaseModel):
    max_tokens_per_turn: int = 90_000
    token_buffer: int = 10_000
    chars_per_token: float = 1.2
    hard_limit: int = 85_000
    allocation: TierAllocation = Field(default_factory=TierAllocation)

    @property
    def base_limit(self) -> int:
        """Soft ceiling: max tokens per turn minus the safety buffer."""
        return max(0, self.max_tokens_per_turn - self.token_buffer)


class MergeConfig(BaseModel):
    enabled: bool = True
    auto_merge_on_import: bool = True
    backup_before_import: bool = True

    @property
    def merges_allowed(self) -> bool:
        return self.enabled and self.auto_merge_on_import


class ExportConfig(BaseModel):
    enabled: bool = True
    export_interval: int = 7  # turns between automatic exports
    import_enabled: bool = True
    lock_timeout_seconds: float = 30.0
    history_limit: int = 10


class EngineConfig(BaseModel):
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)


_ENV_KEYS: dict[str, tuple[str, str, type]] = {
    "LOREKEEPER_MAX_TOKENS": ("tokens", "max_tokens_per_turn", int),
    "LOREKEEPER_TOKEN_BUFFER": ("tokens", "token_buffer", int),
    "LOREKEEPER_HARD_LIMIT": ("tokens", "hard_limit", int),
    "LOREKEEPER_AUTO_MERGE": ("merge", "auto_merge_on_import", bool),
    "LOREKEEPER_EXPORT_INTERVAL": ("export", "export_interval", int),
}


def _env_value(raw: str, kind: type) -> Any:
    if kind is bool:
        return raw.strip().lower() not in ("0", "false", "no", "off", "")
    return kind(raw)


def get_config(overrides: dict[str, Any] | None = None) -> EngineConfig:
    """Return defaults merged with environment variables, then overrides.

    Overrides use the nested shape of EngineConfig, e.g.
    {"tokens": {"hard_limit": 5000}, "merge": {"enabled": False}}.
    """
    data: dict[str, Any] = EngineConfig().model_dump()

    for env_key, (group, field, kind) in _ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw is not None:
            data[group][field] = _env_value(raw, kind)

    for group, vals in (overrides or {}).items():
        if group in data and isinstance(vals, dict):
            for key, value in vals.items():
                if key == "allocation" and isinstance(value, dict):
                    data[group]["allocation"].update(value)
                else:
                    data[group][key] = value

    return EngineConfig.model_validate(data)
