"""Per-turn prompt pipeline.

  action -> classify intent + build graph -> score entities -> allocate budget
         -> build tier sections -> assemble -> enforce limits -> prompt

PromptEngine.assemble() returns the prompt with diagnostics; build_prompt()
returns just the string. Neither raises: any failure in the pipeline
degrades to the fallback prompt.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel, Field

from lorekeeper.budget import TokenBudget, allocate_budget
from lorekeeper.choices import build_choice_guidance
from lorekeeper.config import EngineConfig, get_config
from lorekeeper.context import ContextSections, build_sections
from lorekeeper.finalizer import Enforcement, assemble_prompt, enforce_limit, fallback_prompt
from lorekeeper.graph import build_graph
from lorekeeper.intent import ActionIntent, classify_action
from lorekeeper.models import GameState
from lorekeeper.scoring import score_entities
from lorekeeper.tokens import estimate_tokens

logger = logging.getLogger(__name__)


class RelevanceEntry(BaseModel):
    name: str
    type: str
    score: int
    reasons: list[str] = Field(default_factory=list)


class PromptReport(BaseModel):
    prompt: str
    tokens: int
    enforcement: Enforcement = "ok"
    intent: ActionIntent | None = None
    budget: TokenBudget | None = None
    relevance: list[RelevanceEntry] = Field(default_factory=list)
    section_tokens: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


class PromptEngine:
    """Assembles the per-turn prompt from a read-only GameState."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or get_config()

    def assemble(
        self,
        action: str,
        state: GameState | dict[str, Any] | None,
        rule_change_context: str = "",
        extra_instruction: str = "",
        supplementary_context: str = "",
    ) -> PromptReport:
        started = time.perf_counter()
        tokens_cfg = self.config.tokens

        if state is None:
            logger.error("No game state supplied; using fallback prompt")
            return self._fallback(action, None, "missing game state")

        try:
            game = GameState.from_snapshot(state)
        except Exception as e:
            logger.error("Unusable game state (%s); using fallback prompt", e)
            return self._fallback(action, None, f"unusable game state: {e}")

        try:
            intent = classify_action(action)
            player = game.player
            graph = build_graph(game.known_entities, player.name if player else None)
            relevance = score_entities(action, intent, game, graph)
            supplementary_tokens = (
                estimate_tokens(supplementary_context, tokens_cfg.chars_per_token)
                if supplementary_context else 0
            )
            budget = allocate_budget(relevance, game, tokens_cfg, supplementary_tokens)
            sections = build_sections(relevance, game, budget, tokens_cfg.chars_per_token)
            prompt = assemble_prompt(
                action,
                sections,
                rule_change_context=rule_change_context,
                supplementary_context=supplementary_context,
                choice_guidance=build_choice_guidance(game),
                extra_instruction=extra_instruction,
                allow_nsfw=game.world_data.allow_nsfw,
            )
            enforced = enforce_limit(prompt, tokens_cfg)
        except Exception as e:
            logger.exception("Prompt assembly failed; using fallback prompt")
            return self._fallback(action, game, f"assembly failed: {e}")

        logger.debug(
            "Prompt assembled in %.2fms: %d tokens, %d relevant entities",
            (time.perf_counter() - started) * 1000, enforced.tokens, len(relevance),
        )
        return PromptReport(
            prompt=enforced.prompt,
            tokens=enforced.tokens,
            enforcement=enforced.enforcement,
            intent=intent,
            budget=budget,
            relevance=[
                RelevanceEntry(name=r.name, type=r.entity.type, score=r.score, reasons=r.reasons)
                for r in relevance
            ],
            section_tokens=self._section_tokens(sections),
            warnings=enforced.warnings,
        )

    def _section_tokens(self, sections: ContextSections) -> dict[str, int]:
        ratio = self.config.tokens.chars_per_token
        return {name: estimate_tokens(text, ratio) for name, text in sections.model_dump().items()}

    def _fallback(self, action: str, state: GameState | None, reason: str) -> PromptReport:
        prompt = fallback_prompt(action, state)
        return PromptReport(
            prompt=prompt,
            tokens=estimate_tokens(prompt, self.config.tokens.chars_per_token),
            enforcement="fallback",
            warnings=[reason],
        )


def build_prompt(
    action: str,
    state: GameState | dict[str, Any] | None,
    rule_change_context: str = "",
    extra_instruction: str = "",
    supplementary_context: str = "",
    config: EngineConfig | None = None,
) -> str:
    """Build the prompt for one player action. Never raises."""
    try:
        engine = PromptEngine(config)
    except Exception:
        logger.exception("Invalid engine configuration; using fallback prompt")
        return fallback_prompt(action)
    return engine.assemble(
        action,
        state,
        rule_change_context=rule_change_context,
        extra_instruction=extra_instruction,
        supplementary_context=supplementary_context,
    ).prompt
