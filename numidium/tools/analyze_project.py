"""Project analysis tool: tech stack, layout, tests and entry points."""

import asyncio
import json
import os
import tomllib
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from numidium.logging import get_logger
from numidium.tools.registry import Tool, ToolResult

log = get_logger(__name__)

IGNORED_DIRS = {
    ".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv", "env",
    "dist", "build", ".next", "target", ".mypy_cache", ".pytest_cache", ".tox",
}
MAX_FILES = 5000

LANGUAGES = {
    ".py": "Python",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".vue": "Vue",
    ".go": "Go",
    ".rs": "Rust",
    ".java": "Java",
    ".kt": "Kotlin",
    ".rb": "Ruby",
    ".php": "PHP",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".cs": "C#",
    ".swift": "Swift",
    ".sh": "Shell",
}

MANIFESTS = {
    "pyproject.toml": "Python project (pyproject)",
    "setup.py": "Python package (setup.py)",
    "requirements.txt": "Python requirements",
    "package.json": "Node.js package",
    "Cargo.toml": "Rust crate",
    "go.mod": "Go module",
    "pom.xml": "Maven project",
    "build.gradle": "Gradle project",
    "Gemfile": "Ruby bundle",
    "composer.json": "PHP composer project",
    "Dockerfile": "Docker image",
    "Makefile": "Make build",
}

# dependency name -> label, checked in order
_JS_FRAMEWORKS = [("next", "Next.js"), ("react", "React"), ("vue", "Vue"), ("@nestjs/core", "NestJS"), ("express", "Express")]
_JS_TEST = [("vitest", "Vitest"), ("jest", "Jest"), ("mocha", "Mocha")]
_JS_BUILD = [("vite", "Vite"), ("webpack", "Webpack"), ("parcel", "Parcel")]
_PY_FRAMEWORKS = [("django", "Django"), ("fastapi", "FastAPI"), ("flask", "Flask"), ("typer", "Typer"), ("click", "Click")]
_PY_TEST = [("pytest", "pytest"), ("nose2", "nose2")]

ENTRY_POINT_NAMES = (
    "main.py", "__main__.py", "app.py", "manage.py", "cli.py",
    "index.js", "index.ts", "main.js", "main.ts", "app.js", "app.ts",
    "main.go", "main.rs",
)


@dataclass
class ProjectReport:
    root: Path
    manifests: list[str] = field(default_factory=list)
    languages: Counter = field(default_factory=Counter)
    stack: dict[str, str] = field(default_factory=dict)
    top_level_dirs: list[str] = field(default_factory=list)
    test_locations: list[str] = field(default_factory=list)
    entry_points: list[str] = field(default_factory=list)
    file_count: int = 0
    truncated: bool = False

    def render(self) -> str:
        lines = [f"Project: {self.root}"]
        lines.append(f"Files scanned: {self.file_count}{' (truncated)' if self.truncated else ''}")
        if self.languages:
            langs = ", ".join(f"{name} ({count})" for name, count in self.languages.most_common(6))
            lines.append(f"Languages: {langs}")
        if self.manifests:
            lines.append("Manifests: " + ", ".join(f"{name} [{MANIFESTS[name]}]" for name in self.manifests))
        for key, value in self.stack.items():
            lines.append(f"{key.replace('_', ' ').capitalize()}: {value}")
        if self.top_level_dirs:
            lines.append("Top-level directories: " + ", ".join(f"{name}/" for name in self.top_level_dirs))
        lines.append("Tests: " + (", ".join(self.test_locations) if self.test_locations else "none found"))
        if self.entry_points:
            lines.append("Entry points: " + ", ".join(self.entry_points))
        return "\n".join(lines)


def _first_match(names: set[str], table: list[tuple[str, str]]) -> str | None:
    for dep, label in table:
        if dep in names:
            return label
    return None


def _python_dependencies(root: Path) -> set[str]:
    names: set[str] = set()
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, OSError):
            data = {}
        project = data.get("project", {})
        specs = list(project.get("dependencies", []))
        for extra in project.get("optional-dependencies", {}).values():
            specs.extend(extra)
        names.update(spec for spec in specs)
        names.update(data.get("tool", {}).get("poetry", {}).get("dependencies", {}))
    requirements = root / "requirements.txt"
    if requirements.is_file():
        names.update(
            line.strip()
            for line in requirements.read_text(encoding="utf-8", errors="replace").splitlines()
            if line.strip() and not line.startswith("#")
        )
    normalized = set()
    for spec in names:
        base = spec.split(";")[0].split("[")[0]
        for sep in ("==", ">=", "<=", "~=", ">", "<", "!=", " "):
            base = base.split(sep)[0]
        normalized.add(base.strip().lower())
    return normalized


def _detect_stack(root: Path, report: ProjectReport) -> None:
    package_json = root / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            data = {}
        deps = set(data.get("dependencies", {})) | set(data.get("devDependencies", {}))
        if framework := _first_match(deps, _JS_FRAMEWORKS):
            report.stack["framework"] = framework
        if tests := _first_match(deps, _JS_TEST):
            report.stack["test_framework"] = tests
        if build := _first_match(deps, _JS_BUILD):
            report.stack["build_tool"] = build
        if (root / "yarn.lock").exists():
            report.stack["package_manager"] = "yarn"
        elif (root / "pnpm-lock.yaml").exists():
            report.stack["package_manager"] = "pnpm"
        else:
            report.stack["package_manager"] = "npm"

    if (root / "pyproject.toml").is_file() or (root / "requirements.txt").is_file():
        deps = _python_dependencies(root)
        if framework := _first_match(deps, _PY_FRAMEWORKS):
            report.stack.setdefault("framework", framework)
        if tests := _first_match(deps, _PY_TEST):
            report.stack.setdefault("test_framework", tests)
        report.stack.setdefault("package_manager", "pip")


def analyze(root: Path) -> ProjectReport:
    report = ProjectReport(root=root)
    report.manifests = [name for name in MANIFESTS if (root / name).exists()]
    report.top_level_dirs = sorted(
        child.name
        for child in root.iterdir()
        if child.is_dir() and child.name not in IGNORED_DIRS and not child.name.startswith(".")
    )
    for candidate in ("tests", "test", "__tests__", "spec"):
        if (root / candidate).is_dir():
            report.test_locations.append(f"{candidate}/")

    test_files = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in IGNORED_DIRS and not d.startswith(".")]
        rel_dir = Path(dirpath).relative_to(root)
        for filename in filenames:
            if report.file_count >= MAX_FILES:
                report.truncated = True
                break
            report.file_count += 1
            suffix = Path(filename).suffix.lower()
            if suffix in LANGUAGES:
                report.languages[LANGUAGES[suffix]] += 1
            if filename.startswith("test_") or ".test." in filename or ".spec." in filename:
                test_files += 1
            if filename in ENTRY_POINT_NAMES and len(rel_dir.parts) <= 2:
                report.entry_points.append((rel_dir / filename).as_posix())
        if report.truncated:
            break

    if test_files and not report.test_locations:
        report.test_locations.append(f"{test_files} test files alongside sources")
    report.entry_points.sort()
    _detect_stack(root, report)
    return report


class ProjectAnalysisTool(Tool):
    """Summarize a project's structure without modifying it."""

    name = "analyze_project"
    display_name = "Analyze Project"
    description = "Analyze a project's tech stack, structure, tests and entry points."
    timeout_seconds = 60.0
    parameters = {
        "type": "object",
        "properties": {
            "project_path": {
                "type": "string",
                "description": "Project root to analyze (default: current directory)",
            },
        },
        "required": [],
    }

    def describe(self, params: dict[str, Any]) -> str:
        return f"Analyze project at {self.resolve_path(params.get('project_path') or '.')}"

    async def execute(self, project_path: str = ".", **kwargs: Any) -> ToolResult:
        root = self.resolve_path(project_path or ".")
        if not root.is_dir():
            return ToolResult.failure(f"Project directory not found: {project_path}")
        try:
            report = await asyncio.to_thread(analyze, root)
        except OSError as e:
            log.error("Project analysis failed", project_path=project_path, error=str(e))
            return ToolResult.failure(f"Failed to analyze {project_path}: {e}")

        summary = report.render()
        main_language = report.languages.most_common(1)[0][0] if report.languages else "unknown"
        return ToolResult(
            success=True,
            content=summary,
            display_result=f"Analyzed {root.name}: {report.file_count} files, mainly {main_language}",
        )
