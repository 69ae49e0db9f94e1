"""Read tool for reading file contents."""

import asyncio
from typing import Any

from numidium.logging import get_logger
from numidium.tools.registry import ConfirmationDetails, RiskLevel, Tool, ToolResult
from numidium.tools.risk import classify_read_risk

log = get_logger(__name__)


class ReadFileTool(Tool):
    """Read file contents."""

    name = "read_file"
    display_name = "Read File"
    description = "Read the contents of a text file."
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to read",
            },
            "line_limit": {
                "type": "integer",
                "description": "Maximum number of lines to read",
            },
            "offset": {
                "type": "integer",
                "description": "Line number to start reading from (1-indexed)",
            },
        },
        "required": ["file_path"],
    }

    def validate_params(self, params: dict[str, Any]) -> str | None:
        error = super().validate_params(params)
        if error:
            return error
        if not str(params["file_path"]).strip():
            return "file_path must not be empty"
        for key in ("line_limit", "offset"):
            value = params.get(key)
            if value is not None and value < 1:
                return f"{key} must be at least 1"
        return None

    def assess_risk(self, params: dict[str, Any]) -> RiskLevel:
        path = self.resolve_path(params["file_path"])
        if not path.is_file():
            return "safe"
        return classify_read_risk(path.stat().st_size)

    def describe(self, params: dict[str, Any]) -> str:
        path = self.resolve_path(params["file_path"])
        size = path.stat().st_size if path.is_file() else 0
        return f"Read file {path} ({size} bytes)"

    async def should_confirm(self, params: dict[str, Any]) -> ConfirmationDetails | None:
        # nothing to protect when the file is missing; execute reports the error
        if not self.resolve_path(params["file_path"]).exists():
            return None
        return self.build_confirmation(params)

    async def execute(
        self,
        file_path: str,
        line_limit: int | None = None,
        offset: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Read a file.

        Args:
            file_path: Path to file
            line_limit: Optional line limit
            offset: Optional 1-indexed first line

        Returns:
            ToolResult with file contents
        """
        try:
            path = self.resolve_path(file_path)

            if not path.exists():
                return ToolResult.failure(f"File not found: {file_path}")
            if not path.is_file():
                return ToolResult.failure(f"Not a file: {file_path}")

            text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")

            lines = text.splitlines()
            total = len(lines)
            start = (offset or 1) - 1
            selected = lines[start:]
            if line_limit:
                selected = selected[:line_limit]
            body = "\n".join(selected)

            info = f"[{path} {total} lines]"
            if offset or (line_limit and line_limit < total):
                info += f" [lines {start + 1}-{start + len(selected)}]"

            return ToolResult(
                success=True,
                content=f"{info}\n{body}",
                display_result=f"Read {len(selected)} of {total} lines from {file_path}",
            )

        except OSError as e:
            log.error("Read failed", file_path=file_path, error=str(e))
            return ToolResult.failure(f"Failed to read {file_path}: {e}")
