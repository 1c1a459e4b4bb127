"""Logical protocol types shared by every Teletask profile.

These types are protocol-independent. Numeric wire codes live in the
profile tables (see ``teletask.protocol.profiles``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, StrEnum


class Command(Enum):
    """Protocol commands supported by the client."""

    SET = "set"
    GET = "get"
    GROUP_GET = "group_get"
    LOG = "log"
    EVENT = "event"
    KEEP_ALIVE = "keep_alive"
    ACKNOWLEDGE = "acknowledge"


class Function(StrEnum):
    """Logical device categories."""

    RELAY = "relay"
    DIMMER = "dimmer"
    MOTOR = "motor"
    LOCMOOD = "locmood"
    TIMEDMOOD = "timedmood"
    GENMOOD = "genmood"
    FLAG = "flag"
    SENSOR = "sensor"
    COND = "cond"


class State(StrEnum):
    """Protocol-independent state intents."""

    ON = "on"
    OFF = "off"
    UP = "up"
    DOWN = "down"
    STOP = "stop"
    TOGGLE = "toggle"


# Symbolic state or an 8-bit level (dimmers, sensors)
LogicalState = State | int


class Param(Enum):
    """Named parameter slots of a command layout."""

    CENTRAL_UNIT = "central_unit"
    FUNCTION = "function"
    OUTPUT = "output"
    STATE = "state"
    ERROR_STATE = "error_state"


@dataclass(frozen=True)
class Acknowledge:
    """Standalone acknowledge byte observed outside a frame."""

    value: int


@dataclass(frozen=True)
class Frame:
    """A checksum-validated frame.

    Attributes:
        command: Logical command resolved through the profile
        code: Raw command code byte
        params: Parameter bytes (between command and checksum)
        raw: Complete frame bytes including start and checksum

    """

    command: Command
    code: int
    params: bytes
    raw: bytes = field(repr=False)


@dataclass(frozen=True)
class EventMessage:
    """Decoded EVENT frame.

    Attributes:
        function: Device category
        number: Output number within the category
        state: Decoded logical state
        central_unit: Central unit number (0 where the profile omits it)
        error_state: Error byte reported by the profile (0 where omitted)

    """

    function: Function
    number: int
    state: LogicalState
    central_unit: int = 0
    error_state: int = 0


@dataclass(frozen=True)
class LogMessage:
    """Decoded LOG frame (a log-channel subscription toggle)."""

    function: Function
    state: State
