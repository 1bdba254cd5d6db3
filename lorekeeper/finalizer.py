"""Final prompt assembly and token-limit enforcement.

Order of the assembled prompt:

  rule-change context
  critical tier
  supplementary retrieval block (caller supplied)
  important tier
  contextual tier
  supplemental tier
  player action block
  choice guidance
  closing instructions

Enforcement compares the estimate with the soft limit (base limit) and the
hard limit. Above the hard limit only the span from the critical marker up
to the action marker survives, followed by the action itself.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from lorekeeper.config import TokenConfig
from lorekeeper.context import CRITICAL_MARKER, ContextSections
from lorekeeper.models import GameState
from lorekeeper.parsing import ACTION_MARKER
from lorekeeper.prompts import FALLBACK_TEMPLATE, render_closing, render_prompt
from lorekeeper.tokens import estimate_tokens

logger = logging.getLogger(__name__)

Enforcement = Literal["ok", "soft_overflow", "emergency_truncated", "fallback"]


def action_block(action: str) -> str:
    return f'\n{ACTION_MARKER}\n"{action}"'


def assemble_prompt(
    action: str,
    sections: ContextSections,
    *,
    rule_change_context: str = "",
    supplementary_context: str = "",
    choice_guidance: str = "",
    extra_instruction: str = "",
    allow_nsfw: bool = False,
) -> str:
    prompt = ""
    if rule_change_context:
        prompt += rule_change_context + "\n"
    prompt += sections.critical + "\n"
    if supplementary_context:
        prompt += supplementary_context + "\n"
    prompt += sections.important + "\n"
    prompt += sections.contextual + "\n"
    if sections.supplemental:
        prompt += sections.supplemental + "\n"
    prompt += action_block(action)
    if choice_guidance:
        prompt += "\n" + choice_guidance
    prompt += render_closing(extra_instruction, allow_nsfw)
    return prompt


class EnforcedPrompt(BaseModel):
    prompt: str
    tokens: int
    enforcement: Enforcement = "ok"
    warnings: list[str] = Field(default_factory=list)


def emergency_truncate(prompt: str, config: TokenConfig) -> str:
    """Keep the critical span within the hard limit, then the action block."""
    ratio = config.chars_per_token
    lines = prompt.split("\n")

    kept = ""
    in_critical = False
    action_at = None
    for i, line in enumerate(lines):
        if ACTION_MARKER in line:
            action_at = i
            break
        if CRITICAL_MARKER in line:
            in_critical = True
        if in_critical:
            candidate = kept + line + "\n"
            if estimate_tokens(candidate, ratio) > config.hard_limit:
                in_critical = False
                continue
            kept = candidate

    if action_at is None:
        return kept

    tail = [lines[action_at]]
    for line in lines[action_at + 1:]:
        tail.append(line)
        if line.endswith('"'):
            break
    return kept + "\n".join(tail) + "\n"


def enforce_limit(prompt: str, config: TokenConfig) -> EnforcedPrompt:
    tokens = estimate_tokens(prompt, config.chars_per_token)
    soft, hard = config.base_limit, config.hard_limit

    if tokens <= soft:
        logger.debug("Prompt tokens: %d/%d", tokens, soft)
        return EnforcedPrompt(prompt=prompt, tokens=tokens)

    if tokens <= hard:
        message = f"Prompt near limit: {tokens}/{hard} tokens"
        logger.warning(message)
        return EnforcedPrompt(prompt=prompt, tokens=tokens, enforcement="soft_overflow", warnings=[message])

    logger.error("Prompt exceeds hard limit: %d/%d tokens, emergency truncation applied", tokens, hard)
    warnings = [f"Emergency truncation: {tokens}/{hard} tokens"]
    truncated = emergency_truncate(prompt, config)
    after = estimate_tokens(truncated, config.chars_per_token)
    if after > hard:
        message = f"Configuration error: prompt still {after}/{hard} tokens after truncation"
        logger.error(message)
        warnings.append(message)
    return EnforcedPrompt(prompt=truncated, tokens=after, enforcement="emergency_truncated", warnings=warnings)


def fallback_prompt(action: str, state: GameState | None = None) -> str:
    """Minimal prompt when the game state cannot be used."""
    player = state.player if state is not None else None
    context = {
        "pc_name": player.name if player is not None else "Nhân vật chính",
        "location": (player.location if player is not None else None) or "Không xác định",
        "turn": state.turn_count if state is not None else 0,
        "action": action,
    }
    try:
        return render_prompt(FALLBACK_TEMPLATE, context)
    except Exception:
        logger.exception("Fallback template failed; using plain action prompt")
        return f"Hành động: {action}\nTrạng thái: Lỗi hệ thống, không thể xử lý."
