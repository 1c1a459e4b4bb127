"""Core dataclasses for the serialized execution engine.

This module defines the data structures used to describe a unit of work
submitted to the engine, its outcome, and the outcome of a set()
confirmation wait.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from teletask.protocol.types import Command, Frame, LogicalState

FrameMatcher = Callable[[Frame], bool]


class Terminal(Enum):
    """Completion condition of an exchange."""

    ACK = "ack"  # standalone acknowledge byte
    RESPONSE = "response"  # frame accepted by the exchange's matcher
    IDLE = "idle"  # empty read with no overflow left (drain)


@dataclass
class ExchangeResult:
    """Outcome of a completed exchange.

    Attributes:
        acknowledged: Whether an acknowledge byte was observed
        response: Matching response frame (RESPONSE exchanges)
        events: EVENT frames collected (IDLE exchanges)
        elapsed: Seconds from start of execution to completion
        correlation_id: UUID v7 of the submitting call
    """

    acknowledged: bool = False
    response: Frame | None = None
    events: list[Frame] = field(default_factory=list)
    elapsed: float = 0.0
    correlation_id: str = ""


@dataclass
class PendingExchange:
    """In-flight request awaiting its terminal signal.

    Attributes:
        name: Label for logs and metrics (command name, or "DRAIN")
        terminal: Completion condition
        timeout: Deadline in seconds, counted from the start of execution
        frame: Bytes to write before waiting (empty for drains)
        matcher: Accepts the response frame of a RESPONSE exchange
        correlation_id: UUID v7 for observability
        future: Result slot, created by the engine on submit
    """

    name: str
    terminal: Terminal
    timeout: float
    frame: bytes = b""
    matcher: FrameMatcher | None = None
    correlation_id: str = ""
    future: asyncio.Future[ExchangeResult] | None = None

    @classmethod
    def ack(cls, command: Command, frame: bytes, timeout: float) -> PendingExchange:
        """Fire-and-forget command completed by an acknowledge byte."""
        return cls(name=command.name, terminal=Terminal.ACK, timeout=timeout, frame=frame)

    @classmethod
    def response(cls, command: Command, frame: bytes, matcher: FrameMatcher, timeout: float) -> PendingExchange:
        """Query completed by the first frame the matcher accepts."""
        return cls(name=command.name, terminal=Terminal.RESPONSE, timeout=timeout, frame=frame, matcher=matcher)

    @classmethod
    def drain(cls, timeout: float) -> PendingExchange:
        """Collect unsolicited frames until the stream goes idle."""
        return cls(name="DRAIN", terminal=Terminal.IDLE, timeout=timeout)


@dataclass
class ConfirmationResult:
    """Result of waiting for the registry to reflect a SET.

    Attributes:
        success: Whether the cached state matched before the deadline
        state: Last cached state observed
        elapsed: Seconds spent waiting
        attempts: Number of registry polls performed
    """

    success: bool
    state: LogicalState | None
    elapsed: float
    attempts: int
