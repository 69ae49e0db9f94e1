"""Custom exceptions for Numidium.

Tool validation failures, permission denials and unparseable model output are
not exceptions: they surface as failed ``ToolResult`` values or ``None`` parse
results. Only the conditions below are raised.
"""


class NumidiumError(Exception):
    """Base exception for Numidium."""

    pass


class ConfigurationError(NumidiumError):
    """Configuration-related errors.

    Raised when a risky tool call reaches the permission gate and no
    confirmation handler is wired. Never recovered.
    """

    pass


class BackendError(NumidiumError):
    """Model backend errors."""

    pass


class BackendAPIError(BackendError):
    """Backend API errors (unreachable host, HTTP failure, bad payload)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolError(NumidiumError):
    """Tool errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.reason = message


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found in registry")
        self.tool_name = tool_name


class SessionError(NumidiumError):
    """Session-related errors."""

    pass


class SessionBusyError(SessionError):
    """A turn is already in flight."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} is busy with another turn")
        self.session_id = session_id


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
