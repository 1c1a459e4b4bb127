"""Custom exception types for transport and engine errors.

This module extends the protocol exception hierarchy with connection-level
and request-level failures.
"""

from __future__ import annotations

from teletask.protocol.exceptions import TeletaskError
from teletask.protocol.types import Function, LogicalState


class TransportError(TeletaskError):
    """Socket-level failure (connect refused, connection closed, write failed).

    Fatal to the connection: the engine fails every pending and future
    request until the caller reconnects.

    Attributes:
        reason: Specific failure reason
        host: Central unit host
        port: Central unit port

    """

    def __init__(self, reason: str, host: str = "", port: int = 0) -> None:
        """Initialize transport error with reason and endpoint."""
        self.reason: str = reason
        self.host: str = host
        self.port: int = port
        endpoint = f" ({host}:{port})" if host else ""
        super().__init__(f"Transport error: {reason}{endpoint}")


class NoResponseError(TeletaskError):
    """Request deadline exceeded without its terminal signal.

    Raised when:
    - No acknowledge byte follows a SET/LOG/KEEP_ALIVE frame
    - No matching response frame follows a GET frame

    Attributes:
        command: Name of the command that timed out
        timeout: Deadline in seconds

    """

    def __init__(self, command: str, timeout: float) -> None:
        """Initialize no-response error with command and timeout."""
        self.command: str = command
        self.timeout: float = timeout
        super().__init__(f"No response to {command} within {timeout:.2f}s")


class StateConfirmationTimeoutError(TeletaskError):
    """SET acknowledged but the requested state was not observed in time.

    Attributes:
        function: Device category
        number: Output number
        expected: Requested state
        actual: Last cached state when the deadline expired
        timeout: Confirmation deadline in seconds

    """

    def __init__(
        self,
        function: Function,
        number: int,
        expected: LogicalState,
        actual: LogicalState | None,
        timeout: float,
    ) -> None:
        """Initialize confirmation error with the device and states involved."""
        self.function: Function = function
        self.number: int = number
        self.expected: LogicalState = expected
        self.actual: LogicalState | None = actual
        self.timeout: float = timeout
        super().__init__(
            f"{function}:{number} did not reach {expected} within {timeout:.2f}s (last state: {actual})",
        )
