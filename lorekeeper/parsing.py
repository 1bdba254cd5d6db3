"""Parser chains for model output, stored player prompts and import payloads.

Each parser is a pure function returning Ok(value) or Err(ParseError).
A chain tries its parsers in order and returns the first Ok; when all fail
it returns the last Err. Nothing here raises on bad input.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from typing import Any, Union

from pydantic import BaseModel

from lorekeeper.tokens import clip


class ParseError(BaseModel):
    parser: str
    message: str


class Ok(BaseModel):
    value: Any
    ok: bool = True


class Err(BaseModel):
    error: ParseError
    ok: bool = False


Result = Union[Ok, Err]
Parser = Callable[[Any], Result]


def _err(parser: str, message: str) -> Err:
    return Err(error=ParseError(parser=parser, message=message))


def run_chain(parsers: Sequence[Parser], raw: Any) -> Result:
    result: Result = _err("chain", "no parsers")
    for parser in parsers:
        result = parser(raw)
        if result.ok:
            return result
    return result


# ── Model JSON output ───────────────────────────────────────


def _json_object(text: str, parser: str) -> Result:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return _err(parser, f"invalid JSON: {e.msg}")
    if not isinstance(data, dict):
        return _err(parser, "JSON is not an object")
    return Ok(value=data)


def parse_plain_json(text: Any) -> Result:
    if not isinstance(text, str):
        return _err("plain_json", "not a string")
    return _json_object(text.strip(), "plain_json")


def parse_fenced_json(text: Any) -> Result:
    """JSON wrapped in a ```json ... ``` markdown fence."""
    if not isinstance(text, str) or not text.strip().startswith("```"):
        return _err("fenced_json", "no markdown fence")
    lines = text.strip().split("\n")
    body = [line for line in lines[1:] if not line.strip().startswith("```")]
    return _json_object("\n".join(body), "fenced_json")


def parse_embedded_json(text: Any) -> Result:
    """The outermost {...} span inside surrounding prose."""
    if not isinstance(text, str):
        return _err("embedded_json", "not a string")
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return _err("embedded_json", "no braces")
    return _json_object(text[start:end + 1], "embedded_json")


MODEL_OUTPUT_PARSERS: list[Parser] = [
    parse_plain_json,
    parse_fenced_json,
    parse_embedded_json,
]


def parse_model_output(text: str) -> Result:
    """Parse a model turn into a dict (expects at least a `story` key)."""
    return run_chain(MODEL_OUTPUT_PARSERS, text)


# ── Player action extraction ────────────────────────────────

ACTION_MARKER = "--- HÀNH ĐỘNG CỦA NGƯỜI CHƠI ---"
_MARKER_RE = re.compile(re.escape(ACTION_MARKER) + r'\s*\n"([^"]+)"')
_ACTION_LINE_RE = re.compile(r"^ACTION:\s*(.+)$", re.MULTILINE)


def parse_marked_action(text: Any) -> Result:
    if not isinstance(text, str):
        return _err("marked_action", "not a string")
    m = _MARKER_RE.search(text)
    if not m:
        return _err("marked_action", "no action marker")
    return Ok(value=m.group(1))


def parse_action_line(text: Any) -> Result:
    if not isinstance(text, str):
        return _err("action_line", "not a string")
    m = _ACTION_LINE_RE.search(text)
    if not m:
        return _err("action_line", "no ACTION: line")
    return Ok(value=m.group(1).strip())


def parse_raw_action(text: Any) -> Result:
    if not isinstance(text, str) or not text.strip():
        return _err("raw_action", "empty text")
    return Ok(value=clip(text.strip(), 100))


ACTION_PARSERS: list[Parser] = [
    parse_marked_action,
    parse_action_line,
    parse_raw_action,
]


def extract_player_action(text: str) -> Result:
    """Recover the player's action from a stored user prompt."""
    return run_chain(ACTION_PARSERS, text)


# ── Import payloads ─────────────────────────────────────────


def _payload_dict(raw: Any, parser: str) -> Result:
    if isinstance(raw, (str, bytes)):
        if isinstance(raw, bytes):
            try:
                raw = raw.decode()
            except UnicodeDecodeError:
                return _err(parser, "payload is not valid UTF-8")
        parsed = _json_object(raw, parser)
        if not parsed.ok:
            return parsed
        raw = parsed.value
    if not isinstance(raw, dict):
        return _err(parser, "payload is not an object")
    if not isinstance(raw.get("entities"), dict):
        return _err(parser, "payload has no entities map")
    return Ok(value=raw)


def parse_lore_pack(raw: Any) -> Result:
    result = _payload_dict(raw, "lore_pack")
    if not result.ok:
        return result
    if result.value.get("type") != "lore_pack":
        return _err("lore_pack", "not a lore_pack")
    return Ok(value={"category": "lore_pack", "entities": result.value["entities"]})


def parse_category_export(raw: Any) -> Result:
    result = _payload_dict(raw, "category_export")
    if not result.ok:
        return result
    meta = result.value.get("metadata")
    if not isinstance(meta, dict) or not isinstance(meta.get("category"), str):
        return _err("category_export", "metadata.category missing")
    if not isinstance(meta.get("entityCount"), int) or meta["entityCount"] <= 0:
        return _err("category_export", "metadata.entityCount missing")
    return Ok(value={"category": meta["category"], "entities": result.value["entities"]})


IMPORT_PARSERS: list[Parser] = [
    parse_lore_pack,
    parse_category_export,
]


def parse_import_payload(raw: Any) -> Result:
    """Validate an import payload; Ok value is {"category", "entities"}."""
    return run_chain(IMPORT_PARSERS, raw)
