"""
Error Taxonomy

All errors raised by the explorer derive from AnywhereError so callers
can catch the whole family at once.

Propagation rules:
- ConfigurationError, NotConnectedError, SessionStateError: raised to the caller
- ConnectionFailedError: raised from LiveSession.connect()
- TransportClosedError: internal, converted to a boolean non-delivery
- InvalidArgumentsError, ToolExecutionError: contained at the tool
  dispatch boundary and reported back to the remote agent as data
"""

from typing import Optional


class AnywhereError(Exception):
    """Base class for all explorer errors."""


class ConfigurationError(AnywhereError, ValueError):
    """Missing or invalid configuration (e.g. an empty API key)."""


class ConnectionFailedError(AnywhereError, ConnectionError):
    """The live connection could not be opened."""

    def __init__(self, reason: str):
        super().__init__(f"Connection failed: {reason}")
        self.reason = reason


class NotConnectedError(AnywhereError):
    """A connection-requiring operation was invoked while disconnected."""

    def __init__(self, operation: str = "operation"):
        super().__init__(f"Cannot {operation}: not connected to the live agent")
        self.operation = operation


class SessionStateError(AnywhereError):
    """The session is not in a state that allows the requested transition."""


class TransportClosedError(AnywhereError):
    """A send raced with a closing or closed transport."""


class InvalidArgumentsError(AnywhereError, ValueError):
    """Tool call arguments failed registry validation."""

    def __init__(self, tool_name: str, message: str, field: Optional[str] = None):
        super().__init__(f"Invalid arguments for {tool_name}: {message}")
        self.tool_name = tool_name
        self.field = field


class ToolExecutionError(AnywhereError):
    """A tool handler could not carry out its action."""


class LocationNotFoundError(ToolExecutionError):
    """A place name or coordinate could not be resolved to a panorama."""
