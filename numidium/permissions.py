"""Permission gate in front of tool execution."""

import inspect
from typing import Awaitable, Callable

from numidium.exceptions import ConfigurationError
from numidium.logging import get_logger
from numidium.tools.registry import ConfirmationDetails

log = get_logger(__name__)

ConfirmCallback = Callable[[ConfirmationDetails], bool | Awaitable[bool]]


class PermissionGate:
    """Go/no-go decision for a risk-classified action.

    ``safe`` actions are granted without asking only when ``auto_approve_safe``
    is set. Everything else goes to the confirmation callback; if none is wired
    the gate refuses by raising ConfigurationError.
    """

    def __init__(self, callback: ConfirmCallback | None = None, *, auto_approve_safe: bool = False):
        self._callback = callback
        self.auto_approve_safe = auto_approve_safe

    def set_callback(self, callback: ConfirmCallback | None) -> None:
        self._callback = callback

    @property
    def has_callback(self) -> bool:
        return self._callback is not None

    async def request(self, details: ConfirmationDetails) -> bool:
        if details.risk == "safe" and self.auto_approve_safe:
            log.debug("Auto-approved safe action", tool=details.tool_name)
            return True

        if self._callback is None:
            raise ConfigurationError(
                f"No confirmation handler configured; refusing to run '{details.tool_name}' "
                f"({details.risk})"
            )

        try:
            decision = self._callback(details)
            if inspect.isawaitable(decision):
                decision = await decision
        except Exception as e:
            log.warning(
                "Confirmation handler failed; treating as denied",
                tool=details.tool_name,
                error=str(e),
            )
            return False

        granted = bool(decision)
        log.info("Confirmation resolved", tool=details.tool_name, risk=details.risk, granted=granted)
        return granted
