"""Deterministic risk classification for tool calls."""

import re
from pathlib import Path

from numidium.tools.registry import RiskLevel, split_shell_segments

RISK_ORDER: dict[str, int] = {"safe": 0, "moderate": 1, "dangerous": 2}

DANGEROUS_COMMAND_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\brm\s+(-[a-z]*r[a-z]*f|-[a-z]*f[a-z]*r|-r\s+-f|-f\s+-r|--recursive\s+--force|--force\s+--recursive)\b",
        r"(^|\s)sudo\b",
        r"(^|\s)su(\s|$)",
        r"\bchmod\s+(-R\s+)?0?777\b",
        r"(^|\s)dd\s+",
        r"\bmkfs(\.\w+)?\b",
        r"\bfdisk\b",
        r"\bformat\s+[a-z]:",
        r"\bdel\s+/s\b",
        r"\bshutdown\b",
        r"\breboot\b",
        r"(^|\s)halt\b",
        r":\(\)\s*\{",
        r"\b(curl|wget)\b[^|]*\|\s*(ba|z)?sh\b",
        r">\s*/dev/sd[a-z]",
    )
]

MODERATE_COMMAND_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bnpm\s+(install|i|uninstall|publish)\b",
        r"\byarn\s+(add|install|remove)\b",
        r"\bpip3?\s+(install|uninstall)\b",
        r"\bapt(-get)?\s+(install|remove|purge)\b",
        r"\byum\s+(install|remove)\b",
        r"\bbrew\s+(install|uninstall)\b",
        r"\bgit\s+(commit|push|pull|merge|rebase|reset|checkout|add|rm|clean|stash|tag)\b",
        r"(^|\s)chmod\b",
        r"(^|\s)chown\b",
        r"(^|\s)mkdir\b",
        r"(^|\s)cp\s",
        r"(^|\s)mv\s",
        r"(^|\s)rm\s",
        r"(^|[^>0-9&])>>?(?!&)\s*(?!/dev/null)[\w./~]",
    )
]

SYSTEM_DIRECTORIES = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/boot",
    "/sys",
    "/proc",
    "/dev",
    "/lib",
)
SENSITIVE_FILENAMES = (".bashrc", ".profile", ".zshrc", "passwd", "shadow", "sudoers")

LARGE_READ_BYTES = 1 * 1024 * 1024
HUGE_READ_BYTES = 10 * 1024 * 1024


def max_risk(*levels: RiskLevel) -> RiskLevel:
    """Highest of the given levels."""
    return max(levels, key=lambda level: RISK_ORDER[level], default="safe")


def classify_command_risk(command: str) -> RiskLevel:
    """Classify a shell command; for compound commands the highest level wins."""
    cleaned = str(command or "").strip()
    if not cleaned:
        return "safe"
    try:
        segments = [" ".join(tokens) for tokens in split_shell_segments(cleaned)]
    except ValueError:
        segments = []
    targets = [cleaned, *segments]

    level: RiskLevel = "safe"
    for target in targets:
        if any(pattern.search(target) for pattern in DANGEROUS_COMMAND_PATTERNS):
            return "dangerous"
        if any(pattern.search(target) for pattern in MODERATE_COMMAND_PATTERNS):
            level = "moderate"
    return level


def classify_write_risk(path: Path | str, exists: bool) -> RiskLevel:
    """System locations and shell/auth files are dangerous; overwrites are moderate."""
    resolved = Path(path)
    text = resolved.as_posix()
    for directory in SYSTEM_DIRECTORIES:
        if text == directory or text.startswith(f"{directory}/"):
            return "dangerous"
    if resolved.name in SENSITIVE_FILENAMES:
        return "dangerous"
    return "moderate" if exists else "safe"


def classify_read_risk(size_bytes: int) -> RiskLevel:
    if size_bytes > HUGE_READ_BYTES:
        return "dangerous"
    if size_bytes > LARGE_READ_BYTES:
        return "moderate"
    return "safe"


