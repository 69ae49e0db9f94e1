"""Tools package for Numidium."""

from pathlib import Path

from numidium.config import Config, get_config
from numidium.logging import get_logger
from numidium.tools.analyze_project import ProjectAnalysisTool
from numidium.tools.generate_code import GenerateCodeTool
from numidium.tools.list_directory import ListDirectoryTool
from numidium.tools.read import ReadFileTool
from numidium.tools.registry import (
    ConfirmationDetails,
    RiskLevel,
    Tool,
    ToolExecution,
    ToolRegistry,
    ToolResult,
)
from numidium.tools.shell import RunShellTool
from numidium.tools.write import WriteFileTool

log = get_logger(__name__)

BUILTIN_TOOLS: dict[str, type[Tool]] = {
    WriteFileTool.name: WriteFileTool,
    ReadFileTool.name: ReadFileTool,
    RunShellTool.name: RunShellTool,
    ListDirectoryTool.name: ListDirectoryTool,
    ProjectAnalysisTool.name: ProjectAnalysisTool,
    GenerateCodeTool.name: GenerateCodeTool,
}


def build_default_registry(
    config: Config | None = None,
    base_path: Path | str | None = None,
) -> ToolRegistry:
    """Create a registry holding the tools enabled in config."""
    cfg = config or get_config()
    registry = ToolRegistry()
    for name in cfg.tools.enabled:
        tool_cls = BUILTIN_TOOLS.get(name)
        if tool_cls is None:
            log.warning("Unknown tool in config, skipping", tool=name)
            continue
        registry.register(tool_cls(base_path=base_path))
    return registry


__all__ = [
    "BUILTIN_TOOLS",
    "ConfirmationDetails",
    "GenerateCodeTool",
    "ListDirectoryTool",
    "ProjectAnalysisTool",
    "ReadFileTool",
    "RiskLevel",
    "RunShellTool",
    "Tool",
    "ToolExecution",
    "ToolRegistry",
    "ToolResult",
    "WriteFileTool",
    "build_default_registry",
]
