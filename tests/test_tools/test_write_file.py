from pathlib import Path

import pytest

from numidium.permissions import PermissionGate
from numidium.tools.registry import ToolRegistry
from numidium.tools.write import WriteFileTool


@pytest.mark.asyncio
async def test_write_creates_parent_directories(tmp_path: Path):
    tool = WriteFileTool(base_path=tmp_path)

    result = await tool.execute(file_path="src/pkg/hello.py", content="print('hi')\n")

    target = tmp_path / "src" / "pkg" / "hello.py"
    assert result.success is True
    assert target.read_text(encoding="utf-8") == "print('hi')\n"
    assert result.display_result == "Created file: src/pkg/hello.py (12 chars)"


@pytest.mark.asyncio
async def test_overwrite_is_reported_as_update(tmp_path: Path):
    (tmp_path / "notes.md").write_text("old", encoding="utf-8")
    tool = WriteFileTool(base_path=tmp_path)

    result = await tool.execute(file_path="notes.md", content="new")

    assert result.success is True
    assert result.display_result.startswith("Updated file: notes.md")
    assert (tmp_path / "notes.md").read_text(encoding="utf-8") == "new"


@pytest.mark.asyncio
async def test_writing_onto_a_directory_fails(tmp_path: Path):
    (tmp_path / "pkg").mkdir()
    tool = WriteFileTool(base_path=tmp_path)

    result = await tool.execute(file_path="pkg", content="x")

    assert result.success is False
    assert "directory" in (result.error or "")


def test_risk_depends_on_target(tmp_path: Path):
    tool = WriteFileTool(base_path=tmp_path)
    (tmp_path / "existing.txt").write_text("x", encoding="utf-8")

    assert tool.assess_risk({"file_path": "fresh.txt", "content": ""}) == "safe"
    assert tool.assess_risk({"file_path": "existing.txt", "content": ""}) == "moderate"
    assert tool.assess_risk({"file_path": "/etc/hosts", "content": ""}) == "dangerous"
    assert tool.assess_risk({"file_path": ".bashrc", "content": ""}) == "dangerous"


@pytest.mark.asyncio
async def test_confirmation_preview_is_clipped(tmp_path: Path):
    tool = WriteFileTool(base_path=tmp_path)
    content = "a" * 500

    details = await tool.should_confirm({"file_path": "big.txt", "content": content})

    assert details is not None
    assert details.tool_name == "write_file"
    assert details.description.startswith("Create file")
    assert details.preview.startswith("a" * 200)
    assert "(500 chars total)" in details.preview


@pytest.mark.asyncio
async def test_empty_path_is_rejected_before_confirmation(tmp_path: Path):
    registry = ToolRegistry()
    registry.register(WriteFileTool(base_path=tmp_path))
    asked = []

    result = await registry.execute_tool_call(
        "write_file",
        {"file_path": "  ", "content": "x"},
        PermissionGate(lambda details: asked.append(details) or True),
    )

    assert result.success is False
    assert result.content == "Validation failed: file_path must not be empty"
    assert asked == []
