from pathlib import Path

import pytest

from numidium.tools.list_directory import ListDirectoryTool, human_size


def _make_tree(root: Path) -> None:
    (root / "src").mkdir()
    (root / "docs").mkdir()
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    (root / "app.py").write_text("print(1)\n", encoding="utf-8")
    (root / ".env").write_text("SECRET=1\n", encoding="utf-8")


@pytest.mark.asyncio
async def test_directories_are_listed_first_with_slash(tmp_path: Path):
    _make_tree(tmp_path)
    tool = ListDirectoryTool(base_path=tmp_path)

    result = await tool.execute()

    listing = result.content.splitlines()[1:]
    assert listing == ["docs/", "src/", "app.py", "README.md"]
    assert "2 directories, 2 files" in result.display_result


@pytest.mark.asyncio
async def test_hidden_files_need_flag(tmp_path: Path):
    _make_tree(tmp_path)
    tool = ListDirectoryTool(base_path=tmp_path)

    result = await tool.execute(directory_path=".", show_hidden=True)

    assert ".env" in result.content.splitlines()


@pytest.mark.asyncio
async def test_detailed_view_has_types_and_sizes(tmp_path: Path):
    _make_tree(tmp_path)
    tool = ListDirectoryTool(base_path=tmp_path)

    result = await tool.execute(detailed=True)

    lines = result.content.splitlines()
    assert lines[1].startswith("TYPE")
    assert any(line.startswith("dir") and line.endswith("src/") for line in lines)
    assert any(line.startswith("file") and "9 B" in line and line.endswith("app.py") for line in lines)


@pytest.mark.asyncio
async def test_missing_directory_fails_without_confirmation(tmp_path: Path):
    tool = ListDirectoryTool(base_path=tmp_path)

    assert await tool.should_confirm({"directory_path": "nowhere"}) is None
    result = await tool.execute(directory_path="nowhere")
    assert result.success is False
    assert result.error == "Directory not found: nowhere"


def test_listing_is_safe(tmp_path: Path):
    tool = ListDirectoryTool(base_path=tmp_path)

    assert tool.assess_risk({"directory_path": "."}) == "safe"


def test_human_size():
    assert human_size(512) == "512 B"
    assert human_size(2048) == "2.0 KB"
    assert human_size(5 * 1024 * 1024) == "5.0 MB"
