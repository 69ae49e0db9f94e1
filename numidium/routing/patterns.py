"""Rule table for the pattern routing stage.

Each rule is a (regex, tool, confidence, extractor) entry. Rules are tried in
order; the first rule that matches a given tool wins and later rules for that
tool are skipped. No model is involved, so the result depends only on the text.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from numidium.routing.decision import ToolCallCandidate

Extractor = Callable[[re.Match[str], str], dict[str, Any] | None]

FILE_PATH = r"(?:~|\.{1,2})?/?(?:[\w.-]+/)*[\w-][\w.-]*\.[A-Za-z0-9]+"
_QUOTE = r"[`'\"]?"

_FENCED_BLOCK = re.compile(r"```[\w+#.-]*[ \t]*\r?\n(.*?)```", re.DOTALL)
_INLINE_CONTENT = re.compile(
    r"\b(?:with\s+(?:the\s+)?(?:content|text)|containing|that\s+says)\s*:?\s*([\"'])(.+?)\1",
    re.IGNORECASE | re.DOTALL,
)
_TRAILING_PUNCTUATION = ".,;:!?)'\"`"
_PATH_STOPWORDS = {"please", "now", "for", "and", "then", "so", "to", "with", "here", "recursively"}
_NOT_A_COMMAND_WORDS = {
    "is", "are", "was", "the", "a", "an", "and", "to", "for", "with", "in", "of",
    "does", "do", "can", "should", "please", "me", "my", "it",
}
_SUBCOMMANDS = {
    "git": {
        "status", "log", "diff", "add", "commit", "push", "pull", "fetch", "checkout", "switch",
        "branch", "merge", "rebase", "stash", "clone", "init", "show", "tag", "reset", "remote",
    },
    "npm": {
        "install", "i", "ci", "test", "run", "start", "build", "init", "update", "uninstall", "ls", "list", "audit",
    },
    "yarn": {"install", "add", "remove", "test", "run", "start", "build", "dev"},
    "pnpm": {"install", "add", "remove", "test", "run", "start", "build", "dev"},
    "docker": {"ps", "run", "build", "images", "pull", "push", "exec", "logs", "stop", "compose", "rm"},
    "kubectl": {"get", "apply", "describe", "logs", "delete", "exec", "rollout"},
    "cargo": {"build", "run", "test", "check", "new", "add", "fmt", "clippy"},
    "pip": {"install", "uninstall", "list", "freeze", "show"},
}
_COMMAND_ARGUMENT = re.compile(r"^(?:-{1,2}\w|[~./]|.*[/|&;<>$=*]|[\w-]+\.[A-Za-z0-9]+$)")


def extract_code_block(text: str) -> str | None:
    """Return the first fenced code block's body, stripped."""
    match = _FENCED_BLOCK.search(text or "")
    return match.group(1).strip() if match else None


def strip_code_blocks(text: str) -> str:
    return _FENCED_BLOCK.sub(" ", text or "")


def normalize_file_path(raw: str) -> str:
    """Trim punctuation and anchor bare relative names at ``./``."""
    path = raw.strip().rstrip(_TRAILING_PUNCTUATION).lstrip("`'\"")
    if path.startswith(("/", "./", "../", "~")):
        return path
    return f"./{path}"


@dataclass(frozen=True)
class PatternRule:
    """One row of the pattern table.

    When the extractor leaves any ``requires`` key empty, or ``confident``
    rejects the params, the detection is kept at ``fallback_confidence`` so
    later stages get a chance to decide.
    """

    name: str
    pattern: re.Pattern[str]
    tool: str
    confidence: float
    extract: Extractor
    requires: tuple[str, ...] = ()
    fallback_confidence: float = 0.5
    confident: Callable[[dict[str, Any]], bool] | None = None


def _rule(
    name: str,
    pattern: str,
    tool: str,
    confidence: float,
    extract: Extractor,
    requires: tuple[str, ...] = (),
    confident: Callable[[dict[str, Any]], bool] | None = None,
) -> PatternRule:
    return PatternRule(
        name, re.compile(pattern, re.IGNORECASE), tool, confidence, extract, requires, confident=confident
    )


def _write_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    content = extract_code_block(full_text)
    if content is None:
        inline = _INLINE_CONTENT.search(full_text)
        content = inline.group(2) if inline else ""
    return {"file_path": normalize_file_path(match.group("path")), "content": content}


def _read_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    return {"file_path": normalize_file_path(match.group("path"))}


def _quoted_command(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    command = match.group("command").strip()
    return {"command": command} if command else None


def _direct_command(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    command = match.group("command").strip()
    words = command.split()
    if command.endswith("?"):
        return None
    # "python is slow", "git does what?" read as prose, not commands
    start = 2 if words[0] == "sudo" else 1
    if len(words) > start and words[start].lower() in _NOT_A_COMMAND_WORDS:
        return None
    return {"command": command}


def _looks_like_command_line(params: dict[str, Any]) -> bool:
    """Whether a direct command reads like a command line rather than prose."""
    words = params["command"].split()
    if words and words[0] == "sudo":
        words = words[1:]
    if len(words) <= 1:
        return True
    base = words[0].lower().rstrip("3")
    if words[1].lower() in _SUBCOMMANDS.get(base, ()):
        return True
    return any(_COMMAND_ARGUMENT.match(word) for word in words[1:])


def _directory_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    path = (match.groupdict().get("path") or "").strip().rstrip(_TRAILING_PUNCTUATION)
    if not path or path.lower() in _PATH_STOPWORDS:
        path = "."
    return {"directory_path": path}


def _project_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    return {"project_path": "."}


_KIND_ALIASES = {
    "widget": "component", "api": "service", "endpoint": "service", "helper": "function", "feature": "module",
}
_NAME_STOPWORDS = {"a", "an", "the", "this", "that", "it", "me", "my", "our", "for", "with"}


def _generate_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    name = match.group("name")
    if name.lower() in _NAME_STOPWORDS:
        return None
    kind = (match.groupdict().get("kind") or "module").lower().rstrip("s")
    kind = _KIND_ALIASES.get(kind, kind)
    return {"kind": kind, "name": name}


def _test_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    params = _generate_params(match, full_text)
    return params and {**params, "kind": "test"}


def _service_params(match: re.Match[str], full_text: str) -> dict[str, Any] | None:
    params = _generate_params(match, full_text)
    return params and {**params, "kind": "service"}


DEFAULT_RULES: tuple[PatternRule, ...] = (
    # write_file
    _rule(
        "create-file-named",
        rf"\b(?:create|write|save|make|generate)\b.*?\b(?:file|script|module)\b.*?(?P<path>{FILE_PATH})",
        "write_file",
        0.9,
        _write_params,
        requires=("content",),
    ),
    _rule(
        "create-path",
        rf"\b(?:create|write|save|make)\s+(?:a\s+)?(?:new\s+)?{_QUOTE}(?P<path>{FILE_PATH})",
        "write_file",
        0.8,
        _write_params,
        requires=("content",),
    ),
    _rule(
        "model-announces-write",
        rf"\b(?:I'll|I\s+will|let\s+me)\s+(?:create|write|make)\b.*?(?P<path>{FILE_PATH})",
        "write_file",
        0.85,
        _write_params,
        requires=("content",),
    ),
    _rule(
        "save-to-path",
        rf"\b(?:save|write|put)\b.*?\b(?:to|into|as)\s+{_QUOTE}(?P<path>{FILE_PATH})",
        "write_file",
        0.85,
        _write_params,
        requires=("content",),
    ),
    # read_file
    _rule(
        "show-file",
        rf"\b(?:read|show|display|view|open|print)\s+(?:me\s+)?(?:the\s+)?(?:contents?\s+of\s+)?"
        rf"(?:the\s+)?(?:file\s+)?{_QUOTE}(?P<path>{FILE_PATH})",
        "read_file",
        0.85,
        _read_params,
    ),
    _rule(
        "whats-in-file",
        rf"\bwhat(?:'s|\s+is)\s+(?:in|inside)\s+(?:the\s+)?(?:file\s+)?{_QUOTE}(?P<path>{FILE_PATH})",
        "read_file",
        0.8,
        _read_params,
    ),
    _rule(
        "read-file-loose",
        rf"\b(?:read|show|check|open)\b.*?\b(?:file|contents?)\b.*?(?P<path>{FILE_PATH})",
        "read_file",
        0.8,
        _read_params,
    ),
    # run_shell_command
    _rule(
        "run-quoted-command",
        r"\b(?:run|execute|exec)\b.*?\b(?:command|cmd)\b[^`'\"\n]*[`'\"](?P<command>[^`'\"\n]+)[`'\"]",
        "run_shell_command",
        0.9,
        _quoted_command,
    ),
    _rule(
        "run-backticked",
        r"\b(?:run|execute|exec)\s+`(?P<command>[^`\n]+)`",
        "run_shell_command",
        0.85,
        _quoted_command,
    ),
    _rule(
        "direct-command",
        r"^\s*(?P<command>(?:sudo\s+)?(?:ls|pwd|git|npm|npx|yarn|pnpm|node|python3?|pip3?|pytest|docker|"
        r"kubectl|cargo|grep|curl|wget|rm|mkdir|cp|mv|cat|chmod|chown|which)\b[^\n`]*)$",
        "run_shell_command",
        0.8,
        _direct_command,
        confident=_looks_like_command_line,
    ),
    _rule(
        "run-bare",
        r"^\s*(?:please\s+)?(?:run|execute)\s+(?P<command>[a-z][\w./-]*(?:\s+[-\w./=:@]+)*)\s*$",
        "run_shell_command",
        0.6,
        _quoted_command,
    ),
    # list_directory
    _rule(
        "list-current-directory",
        r"\b(?:list|show|display)\s+(?:me\s+)?(?:all\s+)?(?:the\s+)?(?:files?|contents?|entries)\s+"
        r"(?:in|of|from|under|inside)\s+(?:the\s+)?(?:current\s+|this\s+)?(?:directory|folder|dir)\b"
        r"(?:\s+[`'\"]?(?P<path>[\w./~-]+))?",
        "list_directory",
        0.85,
        _directory_params,
    ),
    _rule(
        "list-named-directory",
        r"\b(?:list|show|display)\s+(?:me\s+)?(?:all\s+)?(?:the\s+)?(?:files?|contents?|entries)\s+"
        r"(?:in|of|from|under|inside)\s+[`'\"]?(?P<path>(?![\w./~-]*\.[A-Za-z0-9]+\b)[\w./~-]+)",
        "list_directory",
        0.8,
        _directory_params,
    ),
    _rule(
        "whats-in-directory",
        r"\bwhat(?:'s|\s+is)\s+(?:in|inside)\s+(?:the\s+)?(?:current\s+|this\s+)?(?:directory|folder|dir)\b"
        r"(?:\s+[`'\"]?(?P<path>[\w./~-]+))?",
        "list_directory",
        0.8,
        _directory_params,
    ),
    _rule(
        "list-files",
        r"^\s*list\s+(?:all\s+)?(?:the\s+)?files\s*[.!]?\s*$",
        "list_directory",
        0.85,
        _directory_params,
    ),
    # analyze_project
    _rule(
        "analyze-project",
        r"\b(?:analy[sz]e|understand|examine|review|inspect|explore)\b.*?"
        r"\b(?:project|codebase|code\s+base|repo(?:sitory)?|structure)\b",
        "analyze_project",
        0.9,
        _project_params,
    ),
    # generate_code
    _rule(
        "generate-named",
        r"\b(?:create|build|add|make|generate|scaffold|implement)\b.*?"
        r"\b(?P<kind>components?|widgets?|services?|api|endpoints?|functions?|helpers?|tests?|modules?|features?)\b"
        r".*?\b(?:called|named)\s+[`'\"]?(?P<name>[A-Za-z_][\w-]*)\b(?!\.\w)",
        "generate_code",
        0.85,
        _generate_params,
    ),
    _rule(
        "generate-tests-for",
        r"\b(?:generate|write|create|add|scaffold)\s+(?:a\s+|an\s+|some\s+)?(?:unit\s+)?tests?\s+"
        r"for\s+(?:the\s+)?[`'\"]?(?P<name>[A-Za-z_][\w-]*)\b(?!\.\w)",
        "generate_code",
        0.8,
        _test_params,
    ),
    _rule(
        "scaffold-api-for",
        r"\b(?:create|build|add|implement|scaffold)\b.*?\b(?:api|service|endpoints?)\s+(?:layer\s+)?"
        r"for\s+(?:the\s+)?[`'\"]?(?P<name>[A-Za-z_][\w-]*)\b(?!\.\w)",
        "generate_code",
        0.8,
        _service_params,
    ),
)


def match_patterns(
    text: str,
    rules: Iterable[PatternRule] = DEFAULT_RULES,
    available_tools: Iterable[str] | None = None,
) -> list[ToolCallCandidate]:
    """Apply the rule table to *text*. One candidate per tool, in rule order.

    Fenced code blocks are hidden from the rules so code is never mistaken for
    a request; write rules still read their content from them.
    """
    allowed = set(available_tools) if available_tools is not None else None
    searchable = strip_code_blocks(text)
    candidates: list[ToolCallCandidate] = []
    seen: set[str] = set()

    for rule in rules:
        if rule.tool in seen or (allowed is not None and rule.tool not in allowed):
            continue
        match = rule.pattern.search(searchable)
        if match is None:
            continue
        params = rule.extract(match, text)
        if params is None:
            continue
        confidence = rule.confidence
        if any(not params.get(key) for key in rule.requires) or (
            rule.confident is not None and not rule.confident(params)
        ):
            confidence = min(confidence, rule.fallback_confidence)
        candidates.append(ToolCallCandidate(rule.tool, params, confidence))
        seen.add(rule.tool)
    return candidates
