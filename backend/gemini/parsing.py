"""Best-effort JSON recovery from model output."""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def parse_json_from_text(text: str, fallback: Any) -> Any:
    """
    Pull a JSON value out of free-form model text.

    Tries, in order: every fenced ``` block, the span from the first "{"
    to the last "}", then the whole text. Returns `fallback` if nothing
    parses. Never raises.
    """
    if not text:
        return fallback

    for match in _FENCED_BLOCK.finditer(text):
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            continue

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            pass

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Could not parse JSON from model response: %s", exc)
        return fallback


def strip_code_fences(text: str) -> str:
    """Return the first fenced block's body, or the text itself when unfenced."""
    match = re.search(r"```[\w+-]*\s*\n([\s\S]*?)```", text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()
