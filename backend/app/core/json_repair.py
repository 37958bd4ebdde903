"""JSON extraction for LLM responses that may be wrapped in markdown fences or carry trailing commas."""
from __future__ import annotations

import re


def _strip_fences(text: str) -> str:
    t = text.strip()
    if "```json" in t:
        return t.split("```json", 1)[1].split("```", 1)[0].strip()
    if "```" in t:
        return t.split("```", 1)[1].split("```", 1)[0].strip()
    return t


def extract_json_object(text: str) -> str | None:
    """Extract the first complete JSON object from text.

    Handles:
    - Markdown code fences (```json ... ``` or ``` ... ```)
    - Leading/trailing prose around the object
    - Braces inside string literals
    - Trailing commas before ] or }

    Returns the extracted JSON string, or None if no complete object is found.
    """
    if not text or not text.strip():
        return None
    t = _strip_fences(text)
    start = t.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(t)):
        c = t[i]
        if escape_next:
            escape_next = False
            continue
        if c == "\\":
            escape_next = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return re.sub(r",\s*([}\]])", r"\1", t[start : i + 1])
    return None
