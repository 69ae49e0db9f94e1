"""Parsing for the lightweight classification model's answer.

The model is asked for three lines::

    TOOLS: write_file:0.9,read_file:0.4   (or NONE)
    PARAMS: file_path:./notes.md,content:hello
    REASON: user asked to save a note

Parsing is lenient: missing confidences default to 0.5, tools that are not
registered are dropped and params are coerced to each tool's schema.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from numidium.routing.decision import ToolCallCandidate

DEFAULT_CONFIDENCE = 0.5
MISSING_PARAMS_CONFIDENCE = 0.5

_LINE = r"^[\s*#>-]*{label}\s*:\s*(?P<value>.*)$"
_TOOLS_LINE = re.compile(_LINE.format(label="TOOLS"), re.IGNORECASE | re.MULTILINE)
_PARAMS_LINE = re.compile(_LINE.format(label="PARAMS"), re.IGNORECASE | re.MULTILINE)
_REASON_LINE = re.compile(_LINE.format(label="REASON"), re.IGNORECASE | re.MULTILINE)
_PARAM_SPLIT = re.compile(r",\s*(?=[A-Za-z_]\w*\s*[:=])")
_PARAM_PAIR = re.compile(r"\s*([A-Za-z_]\w*)\s*[:=]\s*(.*)", re.DOTALL)
_TRUE_WORDS = {"true", "yes", "1", "on"}
_FALSE_WORDS = {"false", "no", "0", "off"}


@dataclass
class ClassificationResult:
    """Parsed classifier answer. ``none`` marks an explicit NONE."""

    calls: list[ToolCallCandidate] = field(default_factory=list)
    reason: str = ""
    none: bool = False


def _line_value(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group("value").strip() if match else None


def _parse_confidence(raw: str) -> float:
    cleaned = raw.strip().rstrip("%")
    try:
        value = float(cleaned)
    except ValueError:
        return DEFAULT_CONFIDENCE
    if raw.strip().endswith("%") or value > 1.0:
        value = value / 100.0
    return min(1.0, max(0.0, value))


def parse_param_line(raw: str) -> dict[str, str]:
    """Split ``k:v,k2:v2`` into a dict. Values may contain commas."""
    params: dict[str, str] = {}
    if not raw or raw.strip().upper() in {"NONE", "N/A", "-"}:
        return params
    for chunk in _PARAM_SPLIT.split(raw.strip()):
        match = _PARAM_PAIR.match(chunk)
        if match is None:
            continue
        params[match.group(1)] = match.group(2).strip().strip("`'\"")
    return params


def coerce_params(params: Mapping[str, Any], schema: Mapping[str, Any]) -> dict[str, Any]:
    """Convert string values to the schema's types. Unknown keys and bad values are dropped."""
    properties = schema.get("properties", {}) or {}
    coerced: dict[str, Any] = {}
    for key, value in params.items():
        spec = properties.get(key)
        if spec is None:
            continue
        kind = spec.get("type")
        try:
            if kind == "integer":
                coerced[key] = value if isinstance(value, int) and not isinstance(value, bool) else int(str(value).strip())
            elif kind == "number":
                coerced[key] = value if isinstance(value, (int, float)) and not isinstance(value, bool) else float(str(value).strip())
            elif kind == "boolean":
                if isinstance(value, bool):
                    coerced[key] = value
                elif str(value).strip().lower() in _TRUE_WORDS:
                    coerced[key] = True
                elif str(value).strip().lower() in _FALSE_WORDS:
                    coerced[key] = False
            elif kind == "string":
                coerced[key] = str(value)
            else:
                coerced[key] = value
        except ValueError:
            continue
    return coerced


def parse_classification_response(
    text: str,
    tools: Mapping[str, Mapping[str, Any]],
) -> ClassificationResult | None:
    """Parse a classifier answer against the registered tool schemas.

    Returns None when the answer has no TOOLS line at all.
    """
    tools_value = _line_value(_TOOLS_LINE, text or "")
    if tools_value is None:
        return None

    reason = _line_value(_REASON_LINE, text) or ""
    cleaned_tools = tools_value.strip().strip("`'\"").rstrip(".")
    if not cleaned_tools or cleaned_tools.upper() == "NONE":
        return ClassificationResult(reason=reason, none=True)

    raw_params = parse_param_line(_line_value(_PARAMS_LINE, text) or "")
    calls: list[ToolCallCandidate] = []
    seen: set[str] = set()
    for entry in cleaned_tools.split(","):
        name, _, confidence = entry.strip().partition(":")
        name = name.strip().strip("`'\"").lower()
        if not name or name in seen or name not in tools:
            continue
        seen.add(name)
        schema = tools[name]
        params = coerce_params(raw_params, schema)
        score = _parse_confidence(confidence) if confidence.strip() else DEFAULT_CONFIDENCE
        if any(params.get(required) is None for required in schema.get("required", [])):
            score = min(score, MISSING_PARAMS_CONFIDENCE)
        calls.append(ToolCallCandidate(name, params, score))
    return ClassificationResult(calls=calls, reason=reason)
