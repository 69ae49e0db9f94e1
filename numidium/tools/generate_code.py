"""Code generation tool: scaffolds that follow the project's language and layout.

The project is analyzed first (see ``analyze_project``) to pick the language,
file extension and directory; the scaffold is then rendered from a template
and written like ``write_file``, under the same write risk rules.
"""

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from numidium.logging import get_logger
from numidium.tools.analyze_project import ProjectReport, analyze
from numidium.tools.registry import RiskLevel, Tool, ToolResult
from numidium.tools.risk import classify_write_risk

log = get_logger(__name__)

KINDS = ("component", "function", "test", "service", "module")
SUPPORTED_LANGUAGES = ("python", "javascript", "typescript")
PREVIEW_CHARS = 600

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|[-_\s]+")

_PYTHON_TEMPLATES = {
    "function": '''\
def %(snake)s(*args, **kwargs):
    """%(description)s"""
    raise NotImplementedError("%(snake)s is not implemented yet")
''',
    "component": '''\
class %(pascal)s:
    """%(description)s"""

    def __init__(self, **options):
        self.options = options

    def render(self) -> str:
        return "%(pascal)s"
''',
    "service": '''\
"""%(description)s"""


class %(pascal)sService:
    def __init__(self, config: dict | None = None):
        self.config = config or {}

    def run(self, *args, **kwargs):
        raise NotImplementedError("%(pascal)sService.run is not implemented yet")
''',
    "module": '''\
"""%(description)s"""

__all__: list[str] = []
''',
    "test": '''\
"""Tests for %(name)s."""

import pytest


def test_%(snake)s():
    pytest.skip("add assertions for %(name)s")
''',
}

_SCRIPT_TEMPLATES = {
    "function": """\
/** %(description)s */
export function %(camel)s(...args%(args_type)s)%(return_type)s {
  throw new Error("%(camel)s is not implemented yet");
}
""",
    "component": """\
/** %(description)s */
export class %(pascal)s {
%(options_field)s  constructor(options%(options_type)s = {}) {
    this.options = options;
  }

  render()%(string_type)s {
    return "%(pascal)s";
  }
}
""",
    "react_component": """\
%(props_interface)s/** %(description)s */
export function %(pascal)s(props%(props_type)s) {
  return (
    <div className={props.className ?? "%(kebab)s"}>
      <h1>%(pascal)s</h1>
    </div>
  );
}

export default %(pascal)s;
""",
    "service": """\
/** %(description)s */
export class %(pascal)sService {
%(base_url_field)s  constructor(baseUrl%(string_type)s = "/api/%(kebab)s") {
    this.baseUrl = baseUrl;
  }

  async list()%(promise_type)s {
    const response = await fetch(this.baseUrl);
    if (!response.ok) {
      throw new Error(`%(pascal)sService request failed: ${response.status}`);
    }
    return response.json();
  }
}
""",
    "module": """\
// %(description)s
export {};
""",
    "test": """\
%(test_import)sdescribe("%(name)s", () => {
  it.todo("add assertions for %(name)s");
});
""",
}


@dataclass
class GeneratedCode:
    kind: str
    name: str
    language: str
    relative_path: str
    content: str


def split_words(name: str) -> list[str]:
    return [word.lower() for word in _WORD_BOUNDARY.split(name.strip()) if word]


def detect_language(report: ProjectReport) -> str | None:
    """Python, JavaScript or TypeScript, by file counts. None for other stacks."""
    counts = {
        "python": report.languages.get("Python", 0),
        "javascript": report.languages.get("JavaScript", 0),
        "typescript": report.languages.get("TypeScript", 0),
    }
    if (report.root / "tsconfig.json").is_file():
        counts["typescript"] += 1
    best = max(counts, key=lambda language: counts[language])
    if counts[best]:
        return best
    if "package.json" in report.manifests:
        return "javascript"
    if report.languages:
        return None
    return "python"


def _safe_description(text: str) -> str:
    cleaned = " ".join(text.split()).replace('"""', "'''").replace("*/", "* /")
    return cleaned.replace('"', "'")


def _target_path(kind: str, words: list[str], language: str, report: ProjectReport, react: bool) -> str:
    base = "src/" if "src" in report.top_level_dirs else ""
    snake = "_".join(words)
    camel = words[0] + "".join(word.capitalize() for word in words[1:])
    pascal = "".join(word.capitalize() for word in words)

    if language == "python":
        if kind == "test":
            for folder in ("tests/", "test/"):
                if folder in report.test_locations:
                    return f"{folder}test_{snake}.py"
            return f"test_{snake}.py"
        suffix = "_service" if kind == "service" else ""
        return f"{base}{snake}{suffix}.py"

    ext = "ts" if language == "typescript" else "js"
    if kind == "component":
        if react:
            ext += "x"
        return f"{base}components/{pascal}.{ext}"
    if kind == "service":
        return f"{base}services/{camel}Service.{ext}"
    if kind == "function":
        return f"{base}utils/{camel}.{ext}"
    if kind == "test":
        for folder in ("__tests__/", "tests/", "test/"):
            if folder in report.test_locations:
                return f"{folder}{camel}.test.{ext}"
        return f"{base}{camel}.test.{ext}"
    return f"{base}{camel}.{ext}"


def render_code(
    kind: str,
    name: str,
    report: ProjectReport,
    description: str = "",
    language: str | None = None,
    file_path: str | None = None,
) -> GeneratedCode:
    """Render a scaffold for *kind* named *name* in the style of *report*'s project."""
    language = language or detect_language(report)
    if language is None:
        raise ValueError("Code generation supports Python, JavaScript and TypeScript projects")
    words = split_words(name)
    react = report.stack.get("framework") in ("React", "Next.js")
    typed = language == "typescript"
    pascal = "".join(word.capitalize() for word in words)
    values = {
        "name": name,
        "snake": "_".join(words),
        "camel": words[0] + "".join(word.capitalize() for word in words[1:]),
        "pascal": pascal,
        "kebab": "-".join(words),
        "description": _safe_description(description) or f"{kind.capitalize()} {name}.",
        "args_type": ": unknown[]" if typed else "",
        "return_type": ": unknown" if typed else "",
        "options_type": ": Record<string, unknown>" if typed else "",
        "string_type": ": string" if typed else "",
        "promise_type": ": Promise<unknown>" if typed else "",
        "props_type": f": {pascal}Props" if typed else "",
        "options_field": "  private options: Record<string, unknown>;\n\n" if typed else "",
        "base_url_field": "  private baseUrl: string;\n\n" if typed else "",
        "props_interface": "",
        "test_import": "",
    }
    if typed:
        values["props_interface"] = f"export interface {pascal}Props {{\n  className?: string;\n}}\n\n"
    if report.stack.get("test_framework") == "Vitest":
        values["test_import"] = 'import { describe, it } from "vitest";\n\n'

    if language == "python":
        template = _PYTHON_TEMPLATES[kind]
    elif kind == "component" and react:
        template = _SCRIPT_TEMPLATES["react_component"]
    else:
        template = _SCRIPT_TEMPLATES[kind]

    relative = file_path or _target_path(kind, words, language, report, react)
    return GeneratedCode(kind, name, language, relative, template % values)


class GenerateCodeTool(Tool):
    """Generate a component, function, test, service or module scaffold."""

    name = "generate_code"
    display_name = "Generate Code"
    description = (
        "Generate a code scaffold (component, function, test, service or module) that matches "
        "the project's language and layout, and write it to a file."
    )
    parameters = {
        "type": "object",
        "properties": {
            "kind": {
                "type": "string",
                "description": "What to generate: component, function, test, service or module",
            },
            "name": {
                "type": "string",
                "description": "Name of the generated element, e.g. UserProfile or parse_config",
            },
            "description": {
                "type": "string",
                "description": "Short purpose, used in the docstring or comment",
            },
            "file_path": {
                "type": "string",
                "description": "Target file (default: inferred from the project layout)",
            },
            "language": {
                "type": "string",
                "description": "python, javascript or typescript (default: detected)",
            },
        },
        "required": ["kind", "name"],
    }

    def __init__(self, base_path: Path | str | None = None):
        super().__init__(base_path)
        self._plans: dict[tuple[Any, ...], GeneratedCode] = {}

    def validate_params(self, params: dict[str, Any]) -> str | None:
        error = super().validate_params(params)
        if error:
            return error
        if params["kind"] not in KINDS:
            return f"kind must be one of: {', '.join(KINDS)}"
        if not _NAME.match(params["name"]) or not split_words(params["name"]):
            return f"Invalid name: {params['name']!r}"
        language = params.get("language")
        if language and language not in SUPPORTED_LANGUAGES:
            return f"language must be one of: {', '.join(SUPPORTED_LANGUAGES)}"
        if params.get("file_path") is not None and not str(params["file_path"]).strip():
            return "file_path must not be empty"
        return None

    def plan(self, params: dict[str, Any]) -> GeneratedCode:
        """Render (once per distinct params) what execute will write."""
        key = tuple(params.get(field) for field in ("kind", "name", "description", "file_path", "language"))
        if key not in self._plans:
            report = analyze(self.base_path)
            self._plans[key] = render_code(
                params["kind"],
                params["name"],
                report,
                description=params.get("description") or "",
                language=params.get("language") or None,
                file_path=params.get("file_path") or None,
            )
        return self._plans[key]

    def assess_risk(self, params: dict[str, Any]) -> RiskLevel:
        try:
            path = self.resolve_path(self.plan(params).relative_path)
        except ValueError:
            return "safe"
        return classify_write_risk(path, path.exists())

    def describe(self, params: dict[str, Any]) -> str:
        try:
            generated = self.plan(params)
        except ValueError as e:
            return str(e)
        path = self.resolve_path(generated.relative_path)
        verb = "Overwrite" if path.exists() else "Create"
        return f"{verb} {generated.language} {generated.kind} {generated.name} at {path}"

    def preview(self, params: dict[str, Any]) -> str:
        try:
            content = self.plan(params).content
        except ValueError as e:
            return str(e)
        if len(content) > PREVIEW_CHARS:
            return content[:PREVIEW_CHARS] + f"\n... ({len(content)} chars total)"
        return content

    async def execute(
        self,
        kind: str,
        name: str,
        description: str = "",
        file_path: str | None = None,
        language: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        params = {
            "kind": kind,
            "name": name,
            "description": description,
            "file_path": file_path,
            "language": language,
        }
        try:
            generated = await asyncio.to_thread(self.plan, params)
        except ValueError as e:
            return ToolResult.failure(str(e))
        except OSError as e:
            log.error("Project analysis failed", error=str(e))
            return ToolResult.failure(f"Failed to analyze project: {e}")
        finally:
            self._plans.clear()

        path = self.resolve_path(generated.relative_path)
        if path.is_dir():
            return ToolResult.failure(f"Path is a directory: {generated.relative_path}")

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(generated.content, encoding="utf-8")

        existed = path.exists()
        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            log.error("Generated file write failed", file_path=str(path), error=str(e))
            return ToolResult.failure(f"Failed to write {generated.relative_path}: {e}")

        log.info("Code generated", kind=kind, name=name, language=generated.language, file_path=str(path))
        action = "Updated" if existed else "Created"
        return ToolResult(
            success=True,
            content=f"Generated {generated.language} {kind} {name} in {path}:\n\n{generated.content}",
            display_result=f"{action} {kind} {name}: {generated.relative_path} ({generated.language})",
        )
