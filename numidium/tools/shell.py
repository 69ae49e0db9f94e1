"""Shell tool for executing commands."""

import asyncio
import os
import signal
from pathlib import Path
from typing import Any

from numidium.config import get_config
from numidium.logging import get_logger
from numidium.tools.registry import (
    RiskLevel,
    Tool,
    ToolResult,
    extract_shell_base_commands,
    is_blocked_shell_command,
)
from numidium.tools.risk import classify_command_risk

log = get_logger(__name__)

MAX_OUTPUT_CHARS = 10000


class RunShellTool(Tool):
    """Execute shell commands."""

    name = "run_shell_command"
    display_name = "Run Shell Command"
    description = "Execute a shell command and return its output."
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
            "working_directory": {
                "type": "string",
                "description": "Directory to run the command in (default: current directory)",
            },
            "timeout": {
                "type": "number",
                "description": "Timeout in seconds (optional, default from config)",
            },
        },
        "required": ["command"],
    }

    def __init__(self, base_path: Path | str | None = None):
        super().__init__(base_path)
        self.config = get_config()
        self.timeout_seconds = float(self.config.tools.shell.timeout or 30)

    def validate_params(self, params: dict[str, Any]) -> str | None:
        error = super().validate_params(params)
        if error:
            return error

        command = str(params["command"]).strip()
        shell_cfg = self.config.tools.shell

        timeout = params.get("timeout")
        if timeout is not None and not 1 <= timeout <= shell_cfg.max_timeout:
            return f"timeout must be between 1 and {shell_cfg.max_timeout} seconds"

        working_directory = params.get("working_directory")
        if working_directory and not self.resolve_path(working_directory).is_dir():
            return f"working_directory does not exist: {working_directory}"

        blocked, matched = is_blocked_shell_command(command, shell_cfg.blocked)
        if blocked:
            if matched == "empty_command":
                return "Command is empty"
            if matched == "unparseable_command":
                return "Command is not parseable"
            return f"Command blocked: matches pattern {matched}"

        if shell_cfg.allowed_commands:
            allowed = {str(item).strip() for item in shell_cfg.allowed_commands if str(item).strip()}
            for base_cmd in extract_shell_base_commands(command):
                normalized = base_cmd.split("/")[-1]
                if base_cmd not in allowed and normalized not in allowed:
                    return f"Command not in allowed list: {base_cmd}"
        return None

    def assess_risk(self, params: dict[str, Any]) -> RiskLevel:
        return classify_command_risk(str(params.get("command", "")))

    def describe(self, params: dict[str, Any]) -> str:
        cwd = self.resolve_path(params.get("working_directory") or ".")
        return f"Run shell command in {cwd}"

    def preview(self, params: dict[str, Any]) -> str:
        return f"$ {params.get('command', '')}"

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        """Kill the command's whole process group."""
        if process.returncode is not None:
            return
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            process.kill()
        await process.wait()

    async def execute(
        self,
        command: str,
        working_directory: str | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Execute a shell command.

        Args:
            command: Shell command to execute
            working_directory: Optional directory to run in
            timeout: Optional timeout override in seconds

        Returns:
            ToolResult with command output
        """
        if timeout is None:
            timeout = self.config.tools.shell.timeout
        timeout = max(1.0, float(timeout))

        abort_event = kwargs.get("_abort_event")
        if isinstance(abort_event, asyncio.Event) and abort_event.is_set():
            return ToolResult.failure("Command aborted")

        cwd = self.resolve_path(working_directory or ".")
        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")

        try:
            log.info("Executing shell command", command=command, cwd=str(cwd), timeout=timeout)

            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            log.error("Shell command failed to start", command=command, error=str(e))
            return ToolResult.failure(f"Failed to start command: {e}")

        communicate_task = asyncio.create_task(process.communicate())
        abort_wait_task: asyncio.Task[bool] | None = None
        if isinstance(abort_event, asyncio.Event):
            abort_wait_task = asyncio.create_task(abort_event.wait())
        try:
            wait_tasks: set[asyncio.Task[Any]] = {communicate_task}
            if abort_wait_task is not None:
                wait_tasks.add(abort_wait_task)
            done, _ = await asyncio.wait(
                wait_tasks,
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if communicate_task in done:
                stdout, stderr = await communicate_task
            else:
                await self._terminate(process)
                communicate_task.cancel()
                try:
                    await communicate_task
                except asyncio.CancelledError:
                    pass
                if abort_wait_task is not None and abort_wait_task in done:
                    return ToolResult.failure("Command aborted")
                timeout_label = int(timeout) if timeout.is_integer() else timeout
                return ToolResult.failure(f"Command timed out after {timeout_label}s")
        except asyncio.CancelledError:
            await self._terminate(process)
            communicate_task.cancel()
            raise
        finally:
            if abort_wait_task is not None and not abort_wait_task.done():
                abort_wait_task.cancel()
                try:
                    await abort_wait_task
                except asyncio.CancelledError:
                    pass

        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        output = stdout_text
        if stderr_text:
            output += f"\n[stderr] {stderr_text}"
        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + f"\n... [truncated, {len(output)} total chars]"
        output = output.strip() or "[no output]"

        if process.returncode == 0:
            return ToolResult(
                success=True,
                content=output,
                display_result=f"$ {command}\n{output}",
            )
        return ToolResult(
            success=False,
            content=output,
            display_result=f"$ {command} (exit {process.returncode})\n{output}",
            error=f"Command exited with code {process.returncode}",
        )
