import asyncio
from pathlib import Path

import pytest

from numidium.config import get_config, set_config
from numidium.permissions import PermissionGate
from numidium.tools.registry import ToolRegistry
from numidium.tools.shell import RunShellTool


@pytest.mark.asyncio
async def test_shell_runs_in_working_directory(tmp_path: Path):
    (tmp_path / "marker.txt").write_text("x", encoding="utf-8")
    tool = RunShellTool(base_path=tmp_path)

    result = await tool.execute(command="ls")

    assert result.success is True
    assert "marker.txt" in result.content
    assert result.display_result.startswith("$ ls")


@pytest.mark.asyncio
async def test_non_zero_exit_is_failure_with_output(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)

    result = await tool.execute(command="echo partial; exit 3")

    assert result.success is False
    assert result.error == "Command exited with code 3"
    assert "partial" in result.content


@pytest.mark.asyncio
async def test_stderr_is_included(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)

    result = await tool.execute(command="echo oops 1>&2")

    assert result.success is True
    assert "[stderr] oops" in result.content


@pytest.mark.asyncio
async def test_timeout_kills_command(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)

    result = await tool.execute(command="sleep 5", timeout=1)

    assert result.success is False
    assert result.error == "Command timed out after 1s"


@pytest.mark.asyncio
async def test_abort_event_kills_command(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)
    abort_event = asyncio.Event()

    async def trigger():
        await asyncio.sleep(0.2)
        abort_event.set()

    trigger_task = asyncio.create_task(trigger())
    result = await tool.execute(command="sleep 5", _abort_event=abort_event)
    await trigger_task

    assert result.success is False
    assert result.error == "Command aborted"


@pytest.mark.asyncio
async def test_output_is_truncated(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)

    result = await tool.execute(command="head -c 20000 /dev/zero | tr '\\0' 'a'")

    assert result.success is True
    assert "[truncated, 20000 total chars]" in result.content


def test_validation_rejects_blocked_and_out_of_range(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)

    assert tool.validate_params({"command": "mkfs.ext4 /dev/sda1"}) == "Command blocked: matches pattern mkfs"
    assert tool.validate_params({"command": "ls", "timeout": 0}) == "timeout must be between 1 and 300 seconds"
    assert tool.validate_params({"command": "ls", "working_directory": "missing"}).startswith(
        "working_directory does not exist"
    )
    assert tool.validate_params({"command": "ls -la"}) is None


def test_allowed_list_restricts_base_commands(tmp_path: Path):
    old_cfg = get_config().model_copy(deep=True)
    cfg = old_cfg.model_copy(deep=True)
    cfg.tools.shell.allowed_commands = ["ls", "git"]
    set_config(cfg)
    try:
        tool = RunShellTool(base_path=tmp_path)

        assert tool.validate_params({"command": "git status && ls"}) is None
        assert tool.validate_params({"command": "ls | grep x"}) == "Command not in allowed list: grep"
    finally:
        set_config(old_cfg)


def test_confirmation_shows_command_and_risk(tmp_path: Path):
    tool = RunShellTool(base_path=tmp_path)

    details = tool.build_confirmation({"command": "sudo rm -rf /tmp/x"})

    assert details.risk == "dangerous"
    assert details.preview == "$ sudo rm -rf /tmp/x"


@pytest.mark.asyncio
async def test_denied_command_never_runs(tmp_path: Path):
    registry = ToolRegistry()
    registry.register(RunShellTool(base_path=tmp_path))

    result = await registry.execute_tool_call(
        "run_shell_command",
        {"command": "touch created.txt"},
        PermissionGate(lambda details: False),
    )

    assert result.success is False
    assert result.error.startswith("Permission denied")
    assert not (tmp_path / "created.txt").exists()


@pytest.mark.asyncio
async def test_dangerous_command_denied_at_gate_spawns_nothing(tmp_path: Path, monkeypatch):
    spawned = []

    async def fake_spawn(*args, **kwargs):
        spawned.append(args)
        raise AssertionError("subprocess must not be started")

    monkeypatch.setattr(asyncio, "create_subprocess_shell", fake_spawn)
    seen = []

    async def deny(details):
        seen.append(details)
        return False

    registry = ToolRegistry()
    registry.register(RunShellTool(base_path=tmp_path))

    execution = await registry.run_tool_call(
        "run_shell_command",
        {"command": "sudo rm -rf /tmp/x"},
        PermissionGate(deny, auto_approve_safe=True),
    )

    assert [details.risk for details in seen] == ["dangerous"]
    assert seen[0].preview == "$ sudo rm -rf /tmp/x"
    assert execution.confirmed is False
    assert execution.result.success is False
    assert execution.result.content == "Tool execution cancelled by user"
    assert spawned == []


@pytest.mark.asyncio
async def test_safe_command_still_asks_for_confirmation(tmp_path: Path):
    registry = ToolRegistry()
    registry.register(RunShellTool(base_path=tmp_path))
    asked = []

    result = await registry.execute_tool_call(
        "run_shell_command",
        {"command": "echo hi"},
        PermissionGate(lambda details: asked.append(details) or True),
    )

    assert result.success is True
    assert [details.risk for details in asked] == ["safe"]
