import pytest

from numidium.exceptions import ConfigurationError
from numidium.permissions import PermissionGate
from numidium.tools.registry import ConfirmationDetails


def _details(risk: str = "moderate") -> ConfirmationDetails:
    return ConfirmationDetails(
        tool_name="run_shell_command",
        params={"command": "mkdir build"},
        description="Run shell command",
        risk=risk,
        preview="$ mkdir build",
    )


@pytest.mark.asyncio
async def test_safe_actions_auto_approved_without_callback():
    gate = PermissionGate(auto_approve_safe=True)

    assert await gate.request(_details("safe")) is True


@pytest.mark.asyncio
async def test_auto_approve_does_not_cover_moderate():
    gate = PermissionGate(auto_approve_safe=True)

    with pytest.raises(ConfigurationError):
        await gate.request(_details("moderate"))


@pytest.mark.asyncio
async def test_missing_callback_fails_closed_for_safe_without_auto_approve():
    gate = PermissionGate()

    with pytest.raises(ConfigurationError):
        await gate.request(_details("safe"))


@pytest.mark.asyncio
async def test_sync_and_async_callbacks():
    seen = []

    def sync_callback(details):
        seen.append(details.risk)
        return False

    async def async_callback(details):
        seen.append(details.risk)
        return True

    assert await PermissionGate(sync_callback).request(_details("dangerous")) is False
    assert await PermissionGate(async_callback).request(_details("moderate")) is True
    assert seen == ["dangerous", "moderate"]


@pytest.mark.asyncio
async def test_callback_exception_resolves_to_denied():
    def broken(details):
        raise RuntimeError("terminal closed")

    gate = PermissionGate(broken)

    assert await gate.request(_details()) is False


@pytest.mark.asyncio
async def test_callback_can_be_replaced():
    gate = PermissionGate()
    assert gate.has_callback is False

    gate.set_callback(lambda details: True)

    assert gate.has_callback is True
    assert await gate.request(_details()) is True
