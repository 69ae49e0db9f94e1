"""Directory listing tool."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from numidium.logging import get_logger
from numidium.tools.registry import ConfirmationDetails, Tool, ToolResult

log = get_logger(__name__)

MAX_ENTRIES = 500


@dataclass
class _Entry:
    name: str
    is_dir: bool
    size: int
    modified: float


def human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _scan(path: Path, show_hidden: bool) -> list[_Entry]:
    entries = []
    for child in path.iterdir():
        if not show_hidden and child.name.startswith("."):
            continue
        try:
            stat = child.stat()
        except OSError:
            continue
        is_dir = child.is_dir()
        entries.append(_Entry(child.name, is_dir, 0 if is_dir else stat.st_size, stat.st_mtime))
    entries.sort(key=lambda entry: (not entry.is_dir, entry.name.lower()))
    return entries


class ListDirectoryTool(Tool):
    """List the contents of a directory."""

    name = "list_directory"
    display_name = "List Directory"
    description = "List files and folders in a directory."
    parameters = {
        "type": "object",
        "properties": {
            "directory_path": {
                "type": "string",
                "description": "Directory to list (default: current directory)",
            },
            "show_hidden": {
                "type": "boolean",
                "description": "Include dotfiles",
            },
            "detailed": {
                "type": "boolean",
                "description": "Show type, size and modification time",
            },
        },
        "required": [],
    }

    def describe(self, params: dict[str, Any]) -> str:
        return f"List directory {self.resolve_path(params.get('directory_path') or '.')}"

    async def should_confirm(self, params: dict[str, Any]) -> ConfirmationDetails | None:
        if not self.resolve_path(params.get("directory_path") or ".").is_dir():
            return None
        return self.build_confirmation(params)

    async def execute(
        self,
        directory_path: str = ".",
        show_hidden: bool = False,
        detailed: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        path = self.resolve_path(directory_path or ".")
        if not path.exists():
            return ToolResult.failure(f"Directory not found: {directory_path}")
        if not path.is_dir():
            return ToolResult.failure(f"Not a directory: {directory_path}")

        try:
            entries = await asyncio.to_thread(_scan, path, show_hidden)
        except OSError as e:
            log.error("List directory failed", directory_path=directory_path, error=str(e))
            return ToolResult.failure(f"Failed to list {directory_path}: {e}")

        if not entries:
            return ToolResult(success=True, content=f"{path} is empty", display_result=f"{directory_path}: empty")

        truncated = len(entries) > MAX_ENTRIES
        entries = entries[:MAX_ENTRIES]

        if detailed:
            lines = [f"{'TYPE':<5} {'SIZE':>10}  {'MODIFIED':<16}  NAME"]
            for entry in entries:
                kind = "dir" if entry.is_dir else "file"
                size = "-" if entry.is_dir else human_size(entry.size)
                modified = datetime.fromtimestamp(entry.modified).strftime("%Y-%m-%d %H:%M")
                name = f"{entry.name}/" if entry.is_dir else entry.name
                lines.append(f"{kind:<5} {size:>10}  {modified:<16}  {name}")
        else:
            lines = [f"{entry.name}/" if entry.is_dir else entry.name for entry in entries]
        if truncated:
            lines.append(f"... [truncated at {MAX_ENTRIES} entries]")

        dirs = sum(1 for entry in entries if entry.is_dir)
        listing = "\n".join(lines)
        return ToolResult(
            success=True,
            content=f"Contents of {path}:\n{listing}",
            display_result=f"{directory_path}: {dirs} directories, {len(entries) - dirs} files\n{listing}",
        )
