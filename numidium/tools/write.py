"""Write tool for creating and overwriting files."""

import asyncio
from pathlib import Path
from typing import Any

from numidium.logging import get_logger
from numidium.tools.registry import RiskLevel, Tool, ToolResult
from numidium.tools.risk import classify_write_risk

log = get_logger(__name__)

PREVIEW_CHARS = 200


class WriteFileTool(Tool):
    """Write content to files."""

    name = "write_file"
    display_name = "Write File"
    description = "Create a new file or overwrite an existing file with the given content."
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path of the file to write (relative to the working directory or absolute)",
            },
            "content": {
                "type": "string",
                "description": "Full content to write to the file",
            },
        },
        "required": ["file_path", "content"],
    }

    def validate_params(self, params: dict[str, Any]) -> str | None:
        error = super().validate_params(params)
        if error:
            return error
        if not str(params["file_path"]).strip():
            return "file_path must not be empty"
        return None

    def assess_risk(self, params: dict[str, Any]) -> RiskLevel:
        path = self.resolve_path(params["file_path"])
        return classify_write_risk(path, path.exists())

    def describe(self, params: dict[str, Any]) -> str:
        path = self.resolve_path(params["file_path"])
        verb = "Overwrite" if path.exists() else "Create"
        return f"{verb} file {path}"

    def preview(self, params: dict[str, Any]) -> str:
        content = str(params.get("content", ""))
        if len(content) > PREVIEW_CHARS:
            return content[:PREVIEW_CHARS] + f"\n... ({len(content)} chars total)"
        return content

    async def execute(self, file_path: str, content: str, **kwargs: Any) -> ToolResult:
        """Write content to a file.

        Args:
            file_path: Path to file
            content: Content to write

        Returns:
            ToolResult with status
        """
        try:
            path = self.resolve_path(file_path)
            existed = path.exists()
            if existed and path.is_dir():
                return ToolResult.failure(f"Path is a directory: {file_path}")

            def _write() -> None:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")

            await asyncio.to_thread(_write)

            try:
                shown = path.relative_to(self.base_path)
            except ValueError:
                shown = path
            action = "Updated" if existed else "Created"
            return ToolResult(
                success=True,
                content=f"File written successfully: {path} ({len(content)} chars)",
                display_result=f"{action} file: {shown} ({len(content)} chars)",
            )

        except OSError as e:
            log.error("Write failed", file_path=file_path, error=str(e))
            return ToolResult.failure(f"Failed to write {file_path}: {e}")
