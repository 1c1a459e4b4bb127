"""Teletask transport package - socket access and the serialized execution engine.

Public API:
- Byte streams (TCPConnection, LoopbackStream)
- Execution engine (ExecutionEngine, PendingExchange, ExchangeResult)
- Timeouts (TimeoutConfig)
- Errors (TransportError, NoResponseError, StateConfirmationTimeoutError)
"""

from teletask.transport.engine import ExecutionEngine
from teletask.transport.exceptions import NoResponseError, StateConfirmationTimeoutError, TransportError
from teletask.transport.loopback import LoopbackStream
from teletask.transport.socket_abstraction import ByteStream, TCPConnection
from teletask.transport.timeouts import TimeoutConfig
from teletask.transport.types import ConfirmationResult, ExchangeResult, PendingExchange, Terminal

__all__ = [
    "ByteStream",
    "ConfirmationResult",
    "ExchangeResult",
    "ExecutionEngine",
    "LoopbackStream",
    "NoResponseError",
    "PendingExchange",
    "StateConfirmationTimeoutError",
    "TCPConnection",
    "Terminal",
    "TimeoutConfig",
    "TransportError",
]
