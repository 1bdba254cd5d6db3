"""Turn history: recent-events summary for the prompt, and compaction.

Full history entries hold the whole prompt sent to the model (user) or its
raw JSON reply (model). Compaction rewrites them to the player action and a
one-sentence story continuity plus a short state-change string:

  +Skill:<new skill>;+Quest:<quest update>;+Location:<place>
"""

from __future__ import annotations

import logging
import re

from lorekeeper.models import HistoryEntry, HistoryPart, HistoryStats
from lorekeeper.parsing import extract_player_action, parse_model_output
from lorekeeper.tokens import clip, estimate_tokens

logger = logging.getLogger(__name__)

HISTORY_HEADER = "**Diễn biến gần đây:**\n"
ACTION_CAP = 100
SUMMARY_CAP = 150
CONTINUITY_CAP = 120
HISTORY_BUDGET_SHARE = 0.8

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_EVENT_WORDS = re.compile(
    r"chiến đấu|giết|chết|nhận được|mất|thành công|thất bại|phát hiện|gặp"
)
_LOCATION_RE = re.compile(r"(?:đến|tới|về|vào)\s+([^.,!?\s]{3,20})", re.IGNORECASE)


def summarize_story(story: str) -> str:
    """One sentence from a story, preferring significant events."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(story) if len(s.strip()) > 10]
    if not sentences:
        return ""
    for sentence in sentences:
        if _EVENT_WORDS.search(sentence.lower()):
            return sentence + "."
    return sentences[0] + "."


def _story_of(text: str) -> str:
    parsed = parse_model_output(text)
    if parsed.ok and isinstance(parsed.value.get("story"), str):
        return parsed.value["story"]
    return text


def recent_events(history: list[HistoryEntry]) -> list[str]:
    """Latest player action and latest model summary, oldest first."""
    events: list[str] = []
    for entry in history[-2:]:
        if entry.role == "user":
            action = extract_player_action(entry.text)
            if action.ok:
                events.append(f"> {clip(action.value, ACTION_CAP)}")
        else:
            summary = summarize_story(_story_of(entry.text))
            if summary:
                events.append(clip(summary, SUMMARY_CAP))
    return events


def build_history_context(history: list[HistoryEntry], max_tokens: int) -> str:
    context = HISTORY_HEADER
    used = estimate_tokens(context)
    limit = max_tokens * HISTORY_BUDGET_SHARE
    for event in recent_events(history):
        cost = estimate_tokens(event + "\n")
        if used + cost <= limit:
            context += event + "\n"
            used += cost
    return context + "\n"


# ── Compaction ──────────────────────────────────────────────


def story_continuity(text: str) -> str:
    parsed = parse_model_output(text)
    if parsed.ok and isinstance(parsed.value.get("story"), str):
        story = parsed.value["story"]
        if len(story) <= CONTINUITY_CAP:
            return story
        return clip(summarize_story(story) or story, CONTINUITY_CAP)
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > 10]
    return clip(sentences[0], CONTINUITY_CAP) if sentences else ""


def state_changes(text: str) -> str:
    parsed = parse_model_output(text)
    if not parsed.ok:
        return ""
    data = parsed.value
    changes: list[str] = []
    if isinstance(data.get("newSkill"), str):
        changes.append(f"+Skill:{data['newSkill'][:30]}")
    if isinstance(data.get("questUpdate"), str):
        changes.append(f"+Quest:{data['questUpdate'][:30]}")
    if isinstance(data.get("story"), str):
        m = _LOCATION_RE.search(data["story"])
        if m:
            changes.append(f"+Location:{m.group(1)}")
    return ";".join(changes)


def compact_entry(entry: HistoryEntry) -> HistoryEntry:
    if entry.role == "user":
        action = extract_player_action(entry.text)
        text = action.value if action.ok else ""
        return HistoryEntry(role="user", parts=[HistoryPart(text=text)])
    return HistoryEntry(
        role="model",
        parts=[HistoryPart(text=story_continuity(entry.text))],
        state_changes=entry.state_changes or state_changes(entry.text),
    )


def compact_history(
    entries: list[HistoryEntry], turn: int, stats: HistoryStats | None = None,
) -> tuple[list[HistoryEntry], HistoryStats]:
    """Return compacted entries and updated stats; inputs are not modified."""
    stats = stats or HistoryStats()
    compacted = [compact_entry(e) for e in entries]
    before = sum(estimate_tokens(e.text) for e in entries)
    after = sum(estimate_tokens(e.text) + estimate_tokens(e.state_changes) for e in compacted)
    saved = max(0, before - after)
    logger.debug("Compacted %d history entries at turn %d, saved ~%d tokens", len(entries), turn, saved)
    return compacted, stats.model_copy(update={
        "total_entries_processed": stats.total_entries_processed + len(entries),
        "total_tokens_saved": stats.total_tokens_saved + saved,
        "compression_count": stats.compression_count + 1,
        "last_compression_turn": turn,
    })
