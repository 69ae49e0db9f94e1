import json
from pathlib import Path

import pytest

from numidium.tools.analyze_project import ProjectAnalysisTool, analyze


def _node_project(root: Path) -> None:
    (root / "package.json").write_text(
        json.dumps(
            {
                "name": "demo",
                "dependencies": {"react": "^18.0.0"},
                "devDependencies": {"vite": "^5.0.0", "vitest": "^1.0.0"},
            }
        ),
        encoding="utf-8",
    )
    (root / "yarn.lock").write_text("", encoding="utf-8")
    (root / "src").mkdir()
    (root / "src" / "main.ts").write_text("export {}\n", encoding="utf-8")
    (root / "src" / "App.test.tsx").write_text("test('x', () => {})\n", encoding="utf-8")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "ignored.js").write_text("", encoding="utf-8")


def _python_project(root: Path) -> None:
    (root / "pyproject.toml").write_text(
        '[project]\nname = "demo"\ndependencies = ["fastapi>=0.110", "uvicorn"]\n'
        '[project.optional-dependencies]\ntest = ["pytest>=8"]\n',
        encoding="utf-8",
    )
    (root / "app").mkdir()
    (root / "app" / "main.py").write_text("app = None\n", encoding="utf-8")
    (root / "tests").mkdir()
    (root / "tests" / "test_main.py").write_text("def test_x(): pass\n", encoding="utf-8")


def test_node_stack_detection(tmp_path: Path):
    _node_project(tmp_path)

    report = analyze(tmp_path)

    assert report.manifests == ["package.json"]
    assert report.stack["framework"] == "React"
    assert report.stack["test_framework"] == "Vitest"
    assert report.stack["build_tool"] == "Vite"
    assert report.stack["package_manager"] == "yarn"
    assert report.top_level_dirs == ["src"]
    assert report.languages["TypeScript"] == 2
    assert "JavaScript" not in report.languages
    assert report.entry_points == ["src/main.ts"]
    assert report.test_locations == ["1 test files alongside sources"]


def test_python_stack_detection(tmp_path: Path):
    _python_project(tmp_path)

    report = analyze(tmp_path)

    assert report.stack["framework"] == "FastAPI"
    assert report.stack["test_framework"] == "pytest"
    assert report.stack["package_manager"] == "pip"
    assert report.test_locations == ["tests/"]
    assert report.entry_points == ["app/main.py"]


@pytest.mark.asyncio
async def test_tool_renders_report_without_touching_files(tmp_path: Path):
    _python_project(tmp_path)
    before = sorted(path.as_posix() for path in tmp_path.rglob("*"))
    tool = ProjectAnalysisTool(base_path=tmp_path)

    result = await tool.execute(project_path=".")

    assert result.success is True
    assert "Framework: FastAPI" in result.content
    assert "Languages: Python (2)" in result.content
    assert result.display_result.endswith("mainly Python")
    assert sorted(path.as_posix() for path in tmp_path.rglob("*")) == before


@pytest.mark.asyncio
async def test_missing_project_fails(tmp_path: Path):
    tool = ProjectAnalysisTool(base_path=tmp_path)

    result = await tool.execute(project_path="absent")

    assert result.success is False
    assert tool.assess_risk({}) == "safe"
