"""Parse JSON function calls out of free-form model replies."""

import json
import re
from typing import Any

from numidium.session import FunctionCall

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


def extract_first_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in *text*.

    Scans for balanced braces, ignoring braces inside JSON strings, and tries
    each candidate in order. Objects that fail to parse are skipped.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start : index + 1]
                    try:
                        value = json.loads(candidate)
                    except json.JSONDecodeError:
                        break
                    if isinstance(value, dict):
                        return value
                    break
        start = text.find("{", start + 1)
    return None


def _coerce_arguments(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None
    return None


def extract_function_call(text: str) -> FunctionCall | None:
    """Find ``{"function_call": {"name": ..., "arguments": {...}}}`` in a reply.

    ``arguments`` may be an object or a JSON-encoded string. Returns None when
    no object of that shape is present.
    """
    payload = extract_first_json_object(text)
    if payload is None:
        for block in _FENCED_JSON.findall(text or ""):
            payload = extract_first_json_object(block)
            if payload is not None:
                break
    if payload is None:
        return None

    call = payload.get("function_call")
    if not isinstance(call, dict):
        return None
    name = call.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    arguments = _coerce_arguments(call.get("arguments", call.get("args")))
    if arguments is None:
        return None
    return FunctionCall(name=name.strip(), args=arguments)
