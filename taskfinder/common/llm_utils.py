"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, List

from .errors import MalformedResponseError


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fence lines (```json ... ```) around a reply."""
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines).strip()
    return text


def _load(raw: str, open_char: str, close_char: str) -> Any:
    """Parse JSON, falling back to the outermost open/close-delimited span."""
    text = strip_code_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start = text.find(open_char)
    end = text.rfind(close_char) + 1
    if start >= 0 and end > start:
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            pass

    raise MalformedResponseError("Reply is not valid JSON", raw=raw)


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM reply.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads

    Raises:
        MalformedResponseError: empty reply, invalid JSON, or not an object
    """
    if not raw or not raw.strip():
        raise MalformedResponseError("Empty reply", raw=raw)
    data = _load(raw, "{", "}")
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}", raw=raw
        )
    return data


def parse_llm_json_array(raw: str) -> list:
    """Parse a JSON array from an LLM reply (same fallbacks, with '[' / ']')."""
    if not raw or not raw.strip():
        raise MalformedResponseError("Empty reply", raw=raw)
    data = _load(raw, "[", "]")
    if not isinstance(data, list):
        raise MalformedResponseError(
            f"Expected a JSON array, got {type(data).__name__}", raw=raw
        )
    return data


def split_keywords(raw: str) -> List[str]:
    """Split a comma-separated keyword reply into trimmed, lowercase items."""
    if not raw:
        return []
    text = strip_code_fences(raw)
    # Tolerate "Keywords: a, b" preambles and newline-separated lists
    if ":" in text.split("\n", 1)[0]:
        text = text.split(":", 1)[1]
    parts = text.replace("\n", ",").split(",")
    return [p.strip().strip("\"'`.-* ").lower() for p in parts if p.strip()]
