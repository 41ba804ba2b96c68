"""Response parsing utilities for model output.

Shared by the scorer (JSON verdicts) and the reviser (plain-text
instructions). Pure string manipulation.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_BLOCK = re.compile(r"```[\w-]*[ \t]*\n(.*?)```", re.DOTALL)
_WRAPPING_FENCE = re.compile(r"```[\w-]*\s*\n(.*?)\n?```", re.DOTALL)

_decoder = json.JSONDecoder()


def _scan_for_json(text: str) -> Any:
    """Decode the first JSON object or array starting at any '{' or '['."""
    for match in re.finditer(r"[{\[]", text):
        try:
            value, _ = _decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        return value
    raise ValueError("No valid JSON found in LLM response")


def parse_json_from_response(raw_response: str) -> Any:
    """Extract and parse JSON from a model response.

    Order of attempts:
    1. Fenced blocks (```json or bare ```), first one that decodes
    2. The whole response
    3. The first decodable object/array embedded in prose

    Raises ValueError if no valid JSON is found.
    """
    for block in _FENCED_BLOCK.findall(raw_response):
        try:
            return json.loads(block.strip())
        except json.JSONDecodeError:
            continue

    stripped = raw_response.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return _scan_for_json(stripped)


def strip_code_fences(raw_response: str) -> str:
    """Return the response text without a wrapping markdown fence.

    Models asked for plain text sometimes wrap it anyway. Only a fence that
    encloses the whole response is removed; inner fences are content.
    """
    stripped = raw_response.strip()
    match = _WRAPPING_FENCE.fullmatch(stripped)
    if match:
        return match.group(1).strip()
    return stripped
