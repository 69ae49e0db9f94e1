"""Tool registry and base tool class."""

from __future__ import annotations

import asyncio
import json
import re
import shlex
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, model_validator

from numidium.exceptions import ConfigurationError, ToolExecutionError, ToolNotFoundError
from numidium.logging import get_logger

if TYPE_CHECKING:
    from numidium.permissions import PermissionGate

log = get_logger(__name__)

RiskLevel = Literal["safe", "moderate", "dangerous"]

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time"}
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list, tuple),
}


def _compile_shell_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _tokenize_shell_command(command: str) -> list[str]:
    """Tokenize shell command while preserving control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def split_shell_segments(command: str) -> list[list[str]]:
    """Split shell command into tokenized segments separated by control operators.

    Raises ValueError for unbalanced quotes.
    """
    tokens = _tokenize_shell_command(command)
    segments: list[list[str]] = []
    current: list[str] = []
    for token in tokens:
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _extract_segment_base_command(tokens: list[str]) -> str:
    """Extract executable command token from a tokenized shell segment."""
    for token in tokens:
        token = str(token).strip()
        if not token or token in _SHELL_WRAPPER_TOKENS:
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            continue
        return token
    return ""


def extract_shell_base_commands(command: str) -> list[str]:
    """Extract base command token from each shell segment."""
    cleaned = str(command or "").strip()
    if not cleaned:
        return []
    try:
        segments = split_shell_segments(cleaned)
    except ValueError:
        return []
    return [base for segment in segments if (base := _extract_segment_base_command(segment))]


def is_blocked_shell_command(command: str, blocked_patterns: list[str]) -> tuple[bool, str]:
    """Evaluate command against blocked patterns using parsed command matching.

    Patterns containing whitespace are searched in each segment's text;
    others are matched against each segment's base command.
    """
    cleaned = str(command or "").strip()
    if not cleaned:
        return True, "empty_command"

    try:
        segments = split_shell_segments(cleaned)
    except ValueError:
        return True, "unparseable_command"
    if not segments:
        return True, "unparseable_command"

    segment_texts = [" ".join(tokens) for tokens in segments]
    base_commands = [
        base
        for segment in segments
        if (base := _extract_segment_base_command(segment))
    ]
    if not base_commands:
        return True, "unparseable_command"

    for raw_pattern in blocked_patterns or []:
        pattern = str(raw_pattern or "").strip()
        if not pattern:
            continue
        compiled = _compile_shell_pattern(pattern)
        segment_level_pattern = bool(re.search(r"\s", pattern))
        targets = segment_texts if segment_level_pattern else base_commands
        matcher = compiled.search if segment_level_pattern else compiled.match
        for target in targets:
            if matcher(target):
                return True, pattern
    return False, ""


class ToolResult(BaseModel):
    """Result from tool execution.

    ``content`` is fed back to the model; ``display_result`` is shown to the user.
    """

    success: bool = True
    content: str = ""
    display_result: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize(self) -> "ToolResult":
        """Ensure failed results carry an error and every result has a display line."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        if not self.display_result.strip():
            self.display_result = self.content if self.success else f"Failed: {self.error}"
        return self

    @classmethod
    def failure(cls, error: str, *, content: str = "", display_result: str = "") -> "ToolResult":
        return cls(success=False, content=content or error, display_result=display_result, error=error)


class ConfirmationDetails(BaseModel):
    """What the user is asked to approve before a tool runs."""

    tool_name: str
    params: dict[str, Any]
    description: str
    risk: RiskLevel
    preview: str = ""


@dataclass
class ToolExecution:
    """Record of one tool call within a turn.

    ``confirmed`` is true when the call was cleared to run, either because the
    gate granted it or because no confirmation was needed.
    """

    tool_name: str
    params: dict[str, Any]
    result: ToolResult
    execution_time: float = 0.0
    confirmed: bool = False

    @property
    def denied(self) -> bool:
        return not self.result.success and (self.result.error or "").startswith("Permission denied")


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    display_name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    def __init__(self, base_path: Path | str | None = None):
        self._base_path = Path(base_path).expanduser().resolve() if base_path is not None else None

    @property
    def base_path(self) -> Path:
        return getattr(self, "_base_path", None) or Path.cwd().resolve()

    def resolve_path(self, raw: str) -> Path:
        """Resolve a user-supplied path against the tool's base path."""
        path = Path(str(raw)).expanduser()
        if not path.is_absolute():
            path = self.base_path / path
        return path.resolve()

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for prompts."""
        return {
            "name": self.name,
            "display_name": self.display_name or self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_params(self, params: dict[str, Any]) -> str | None:
        """Check params against the schema. Returns an error message or None."""
        if not isinstance(params, dict):
            return "Parameters must be an object"
        properties = self.parameters.get("properties", {})
        for required in self.parameters.get("required", []):
            if params.get(required) is None:
                return f"Missing required parameter: {required}"
        for key, value in params.items():
            spec = properties.get(key)
            if spec is None or value is None:
                continue
            expected = _JSON_TYPES.get(str(spec.get("type", "")))
            if expected is None:
                continue
            # bool is an int subclass; keep booleans out of numeric fields
            if isinstance(value, bool) and bool not in expected:
                return f"Parameter '{key}' must be of type {spec['type']}"
            if not isinstance(value, expected):
                return f"Parameter '{key}' must be of type {spec['type']}"
        return None

    def assess_risk(self, params: dict[str, Any]) -> RiskLevel:
        return "safe"

    def describe(self, params: dict[str, Any]) -> str:
        return f"{self.display_name or self.name}"

    def preview(self, params: dict[str, Any]) -> str:
        return json.dumps(params, indent=2, default=str)

    def build_confirmation(self, params: dict[str, Any]) -> ConfirmationDetails:
        return ConfirmationDetails(
            tool_name=self.name,
            params=dict(params),
            description=self.describe(params),
            risk=self.assess_risk(params),
            preview=self.preview(params),
        )

    async def should_confirm(self, params: dict[str, Any]) -> ConfirmationDetails | None:
        """Return confirmation details, or None when the call needs no approval."""
        return self.build_confirmation(params)


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: unnamed or duplicate tool
            RuntimeError: registry already frozen by a session
        """
        if self._frozen:
            raise RuntimeError("Tool registry is frozen; restart to add tools")
        if not tool.name:
            raise ValueError("Tool must have a name")
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def freeze(self) -> None:
        """Disallow further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[dict[str, Any]]:
        return [tool.get_definition() for tool in self._tools.values()]

    def get_tool_descriptions(self) -> str:
        """One ``name(param: desc, ...) - description`` line per tool."""
        lines = []
        for tool in self._tools.values():
            properties = tool.parameters.get("properties", {})
            params = ", ".join(
                f"{key}: {spec.get('description', spec.get('type', ''))}"
                for key, spec in properties.items()
            )
            lines.append(f"{tool.name}({params}) - {tool.description}")
        return "\n".join(lines)

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.debug("Cancelled task raised", error=str(e))

    @staticmethod
    async def _bridge_abort_event(source: asyncio.Event, target: asyncio.Event) -> None:
        """Mirror external abort event to local tool abort event."""
        await source.wait()
        target.set()

    async def _execute_with_timeout(
        self,
        tool: Tool,
        params: dict[str, Any],
        abort_event: asyncio.Event | None,
    ) -> ToolResult:
        """Run the tool, honouring timeout and abort. Raises ToolExecutionError."""
        name = tool.name
        execute_task: asyncio.Task[ToolResult] | None = None
        abort_wait_task: asyncio.Task[bool] | None = None
        bridge_task: asyncio.Task[None] | None = None
        tool_abort_event = asyncio.Event()
        try:
            timeout_seconds = float(tool.timeout_seconds or 30.0)
            timeout_override = params.get("timeout")
            if isinstance(timeout_override, (int, float)) and not isinstance(timeout_override, bool):
                # leave the tool room to clean up after its own timeout
                timeout_seconds = float(timeout_override) + 5.0
            timeout_seconds = max(1.0, timeout_seconds)

            if abort_event is not None:
                bridge_task = asyncio.create_task(
                    self._bridge_abort_event(abort_event, tool_abort_event)
                )

            execute_task = asyncio.create_task(tool.execute(**params, _abort_event=tool_abort_event))
            abort_wait_task = asyncio.create_task(tool_abort_event.wait())
            done, _ = await asyncio.wait(
                {execute_task, abort_wait_task},
                timeout=timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if execute_task in done:
                result = await execute_task
                if not isinstance(result, ToolResult):
                    raise ToolExecutionError(name, "Tool returned invalid result payload")
                return result

            if abort_wait_task in done:
                await self._cancel_task(execute_task)
                raise ToolExecutionError(name, "Execution aborted")

            tool_abort_event.set()
            await self._cancel_task(execute_task)
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(name, f"Execution timed out after {timeout_label}s")
        except asyncio.CancelledError:
            tool_abort_event.set()
            await self._cancel_task(execute_task)
            raise
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(name, str(e)) from e
        finally:
            await self._cancel_task(abort_wait_task)
            await self._cancel_task(bridge_task)

    async def run_tool_call(
        self,
        name: str,
        params: dict[str, Any],
        gate: PermissionGate | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> ToolExecution:
        """Look up, validate, confirm and execute one tool call.

        Every failure mode is folded into the returned ToolResult except a
        missing confirmation gate, which raises ConfigurationError.
        """
        started = time.perf_counter()
        params = dict(params or {})

        def finish(result: ToolResult, confirmed: bool) -> ToolExecution:
            return ToolExecution(
                tool_name=name,
                params=params,
                result=result,
                execution_time=time.perf_counter() - started,
                confirmed=confirmed,
            )

        try:
            tool = self.get(name)
        except ToolNotFoundError as e:
            log.warning("Unknown tool requested", tool=name)
            return finish(ToolResult.failure(str(e), content=f"Unknown tool: {name}"), False)

        error = tool.validate_params(params)
        if error:
            log.info("Tool params rejected", tool=name, error=error)
            return finish(ToolResult.failure(f"Validation failed: {error}"), False)

        try:
            details = await tool.should_confirm(params)
            if details is None and tool.assess_risk(params) != "safe":
                details = tool.build_confirmation(params)
        except Exception as e:
            log.error("Confirmation check failed", tool=name, error=str(e))
            return finish(ToolResult.failure(f"Confirmation check failed: {e}"), False)

        if details is not None:
            if gate is None:
                raise ConfigurationError(
                    f"Tool '{name}' requires confirmation but no permission gate is configured"
                )
            if not await gate.request(details):
                log.info("Permission denied", tool=name, risk=details.risk)
                return finish(
                    ToolResult(
                        success=False,
                        content="Tool execution cancelled by user",
                        display_result=f"Operation cancelled: {tool.display_name or name}",
                        error=f"Permission denied: user declined {name}",
                    ),
                    False,
                )

        log.info("Executing tool", tool=name, params=params)
        try:
            result = await self._execute_with_timeout(tool, params, abort_event)
        except ToolExecutionError as e:
            log.error("Tool execution failed", tool=name, error=e.reason)
            result = ToolResult.failure(str(e))
        log.info("Tool executed", tool=name, success=result.success)
        return finish(result, True)

    async def execute_tool_call(
        self,
        name: str,
        params: dict[str, Any],
        gate: PermissionGate | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> ToolResult:
        """Execute a tool call and return only its result."""
        execution = await self.run_tool_call(name, params, gate, abort_event)
        return execution.result
