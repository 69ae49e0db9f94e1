"""Strip model-internal reasoning from replies before they reach the user."""

import re

_HIDDEN_TAGS = ("think", "thinking", "reasoning", "planning", "internal", "analysis", "reflection")

_HIDDEN_BLOCK = re.compile(
    r"<(" + "|".join(_HIDDEN_TAGS) + r")\b[^>]*>.*?</\1\s*>",
    re.DOTALL | re.IGNORECASE,
)
# unterminated block, e.g. a reply cut off mid-thought
_HIDDEN_TAIL = re.compile(
    r"<(?:" + "|".join(_HIDDEN_TAGS) + r")\b[^>]*>(?:(?!</).)*\Z",
    re.DOTALL | re.IGNORECASE,
)
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")


def clean_response(text: str) -> str:
    """Remove hidden reasoning blocks and collapse runs of blank lines."""
    if not text:
        return ""
    cleaned = _HIDDEN_BLOCK.sub("", text)
    cleaned = _HIDDEN_TAIL.sub("", cleaned)
    cleaned = re.sub(r"[ \t]+\n", "\n", cleaned)
    cleaned = _EXCESS_BLANK_LINES.sub("\n\n", cleaned)
    return cleaned.strip()
