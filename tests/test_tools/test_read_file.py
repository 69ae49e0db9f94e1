from pathlib import Path

import pytest

from numidium.permissions import PermissionGate
from numidium.tools.read import ReadFileTool
from numidium.tools.registry import ToolRegistry


@pytest.mark.asyncio
async def test_read_returns_header_and_content(tmp_path: Path):
    (tmp_path / "hello.py").write_text("print('Hello, World!')\n", encoding="utf-8")
    tool = ReadFileTool(base_path=tmp_path)

    result = await tool.execute(file_path="hello.py")

    assert result.success is True
    assert result.content.endswith("print('Hello, World!')")
    assert "1 lines]" in result.content.splitlines()[0]


@pytest.mark.asyncio
async def test_offset_and_limit_select_lines(tmp_path: Path):
    (tmp_path / "lines.txt").write_text("\n".join(f"line {i}" for i in range(1, 11)), encoding="utf-8")
    tool = ReadFileTool(base_path=tmp_path)

    result = await tool.execute(file_path="lines.txt", offset=3, line_limit=2)

    body = result.content.splitlines()[1:]
    assert body == ["line 3", "line 4"]
    assert "[lines 3-4]" in result.content


@pytest.mark.asyncio
async def test_invalid_bytes_are_replaced(tmp_path: Path):
    (tmp_path / "blob.bin").write_bytes(b"ok \xff\xfe end")
    tool = ReadFileTool(base_path=tmp_path)

    result = await tool.execute(file_path="blob.bin")

    assert result.success is True
    assert "�" in result.content


@pytest.mark.asyncio
async def test_missing_file_needs_no_confirmation_and_fails(tmp_path: Path):
    registry = ToolRegistry()
    registry.register(ReadFileTool(base_path=tmp_path))
    asked = []

    execution = await registry.run_tool_call(
        "read_file",
        {"file_path": "nope.txt"},
        PermissionGate(lambda details: asked.append(details) or True),
    )

    assert asked == []
    assert execution.result.success is False
    assert "File not found" in (execution.result.error or "")


def test_risk_grows_with_size(tmp_path: Path):
    small = tmp_path / "small.txt"
    small.write_text("x", encoding="utf-8")
    large = tmp_path / "large.txt"
    large.write_bytes(b"x" * (2 * 1024 * 1024))
    tool = ReadFileTool(base_path=tmp_path)

    assert tool.assess_risk({"file_path": "small.txt"}) == "safe"
    assert tool.assess_risk({"file_path": "large.txt"}) == "moderate"


def test_line_limit_must_be_positive(tmp_path: Path):
    tool = ReadFileTool(base_path=tmp_path)

    assert tool.validate_params({"file_path": "a.txt", "line_limit": 0}) == "line_limit must be at least 1"
    assert tool.validate_params({"file_path": "a.txt", "offset": 2}) is None
