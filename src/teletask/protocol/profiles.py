"""Data-driven description of the Teletask wire-format generations.

A ``ProtocolProfile`` is an immutable value holding the code tables and the
small set of strategies (checksum, output width, keep-alive) that differ
between central-unit generations. The codec and engine are written against
this value only.

Two profiles exist:

- ``MICROS``: the older v2.8 format (1-byte outputs, no central-unit slot)
- ``MICROS_PLUS``: the v3.1 format (2-byte outputs, central-unit slot,
  dedicated KEEP_ALIVE command)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TypeVar

from teletask.protocol.checksum import modular_sum
from teletask.protocol.exceptions import DecodeError, EncodeError
from teletask.protocol.types import Command, Function, LogicalState, Param, State

START_BYTE = 0x02
ACK_BYTE = 0x0A
MAX_LEVEL = 255

_RELAY_LIKE = (
    Function.RELAY,
    Function.LOCMOOD,
    Function.TIMEDMOOD,
    Function.GENMOOD,
    Function.FLAG,
    Function.COND,
)
_NUMERIC = (Function.DIMMER, Function.SENSOR)


@dataclass(frozen=True)
class CommandSpec:
    """Numeric code and ordered parameter layout of one command."""

    code: int
    params: tuple[Param, ...] = ()


@dataclass(frozen=True)
class StateTable:
    """State mapping for one Function.

    Attributes:
        encode: Logical state to wire value
        decode: Wire value to logical state (may hold decode-only aliases)
        numeric: Whether raw levels 0-255 are valid states for this Function

    """

    encode: Mapping[State, int]
    decode: Mapping[int, State]
    numeric: bool = False


@dataclass(frozen=True)
class KeepAliveSpec:
    """Liveness request a profile sends periodically.

    Attributes:
        interval: Seconds between two keep-alive requests
        command: Command to send (KEEP_ALIVE or LOG)
        function: Function argument for LOG-based keep-alives
        state: State argument for LOG-based keep-alives

    """

    interval: float
    command: Command
    function: Function | None = None
    state: State | None = None


K = TypeVar("K")
V = TypeVar("V")


def _freeze(mapping: Mapping[K, V]) -> Mapping[K, V]:
    return MappingProxyType(dict(mapping))


def _state_table(
    encode: Mapping[State, int],
    aliases: Mapping[int, State] | None = None,
    numeric: bool = False,
) -> StateTable:
    decode = {value: state for state, value in encode.items()}
    if aliases:
        decode.update(aliases)
    return StateTable(encode=_freeze(encode), decode=_freeze(decode), numeric=numeric)


@dataclass(frozen=True)
class ProtocolProfile:
    """Immutable wire-format description for one central-unit generation."""

    name: str
    output_width: int
    commands: Mapping[Command, CommandSpec]
    functions: Mapping[Function, int]
    states: Mapping[Function, StateTable]
    keep_alive: KeepAliveSpec
    log_states: Mapping[State, int] = field(default_factory=lambda: _freeze({State.ON: 255, State.OFF: 0}))
    start_byte: int = START_BYTE
    ack_byte: int = ACK_BYTE
    checksum: Callable[[bytes], int] = field(default=modular_sum, repr=False)
    _commands_by_code: Mapping[int, Command] = field(init=False, repr=False, compare=False)
    _functions_by_code: Mapping[int, Function] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Reverse lookups built once; ACKNOWLEDGE shares its code with the ack byte
        by_code = {
            spec.code: command for command, spec in self.commands.items() if command is not Command.ACKNOWLEDGE
        }
        object.__setattr__(self, "_commands_by_code", _freeze(by_code))
        object.__setattr__(self, "_functions_by_code", _freeze({code: fn for fn, code in self.functions.items()}))

    # Commands

    def supports(self, command: Command) -> bool:
        return command in self.commands

    def command_spec(self, command: Command) -> CommandSpec:
        try:
            return self.commands[command]
        except KeyError:
            raise EncodeError(f"unsupported_command {command.name} for {self.name}") from None

    def command_for_code(self, code: int) -> Command:
        try:
            return self._commands_by_code[code]
        except KeyError:
            raise DecodeError(f"unknown_command 0x{code:02x}") from None

    # Functions

    def function_code(self, function: Function) -> int:
        try:
            return self.functions[function]
        except KeyError:
            raise EncodeError(f"unsupported_function {function} for {self.name}") from None

    def function_for_code(self, code: int) -> Function:
        try:
            return self._functions_by_code[code]
        except KeyError:
            raise DecodeError(f"unknown_function {code}") from None

    # States

    def encode_state(self, function: Function, state: LogicalState) -> int:
        """Resolve the wire value of ``state`` for ``function``.

        Raises:
            EncodeError: If the pair has no wire representation in this profile

        """
        table = self.states.get(function)
        if table is None:
            raise EncodeError(f"no_state_table {function}")
        if isinstance(state, State):
            try:
                return table.encode[state]
            except KeyError:
                raise EncodeError(f"unsupported_state {state} for {function}") from None
        if table.numeric and 0 <= state <= MAX_LEVEL:
            return state
        raise EncodeError(f"invalid_level {state} for {function}")

    def decode_state(self, function: Function, value: int) -> LogicalState:
        """Resolve a wire value back to a logical state for ``function``.

        A value of -1 (0xFF read as a signed byte) is normalized to 255.
        Numeric functions always decode to their integer level; ON and OFF
        are accepted on encode only and compare equal to 255 and 0 through
        ``states_equal``.

        Raises:
            DecodeError: If the value has no logical mapping for ``function``

        """
        value &= 0xFF
        table = self.states.get(function)
        if table is None:
            raise DecodeError(f"no_state_table {function}")
        if table.numeric:
            return value
        try:
            return table.decode[value]
        except KeyError:
            raise DecodeError(f"unknown_state {value} for {function}") from None

    def encode_log_state(self, state: State) -> int:
        try:
            return self.log_states[state]
        except KeyError:
            raise EncodeError(f"unsupported_log_state {state}") from None

    def decode_log_state(self, value: int) -> State:
        value &= 0xFF
        for state, code in self.log_states.items():
            if code == value:
                return state
        raise DecodeError(f"unknown_log_state {value}")

    def states_equal(self, function: Function, left: LogicalState | None, right: LogicalState | None) -> bool:
        """Compare two states by their wire encoding (ON == 255 for a dimmer)."""
        if left is None or right is None:
            return left is right
        try:
            return self.encode_state(function, left) == self.encode_state(function, right)
        except EncodeError:
            return left == right

    # Outputs

    def encode_output(self, number: int) -> bytes:
        if not 0 <= number < 256**self.output_width:
            raise EncodeError(f"output_out_of_range {number}")
        return number.to_bytes(self.output_width, "big")

    def decode_output(self, data: bytes) -> int:
        return int.from_bytes(data[: self.output_width], "big")


_MICROS_RELAY = _state_table({State.ON: 255, State.OFF: 0}, aliases={1: State.ON})
_MICROS_MOTOR = _state_table({State.UP: 255, State.DOWN: 0}, aliases={1: State.UP})
_LEVEL = _state_table({State.ON: 255, State.OFF: 0}, numeric=True)

MICROS = ProtocolProfile(
    name="MICROS",
    output_width=1,
    commands=_freeze(
        {
            Command.SET: CommandSpec(1, (Param.FUNCTION, Param.OUTPUT, Param.STATE)),
            Command.GET: CommandSpec(2, (Param.FUNCTION, Param.OUTPUT)),
            Command.LOG: CommandSpec(3, (Param.FUNCTION, Param.STATE)),
            Command.EVENT: CommandSpec(8, (Param.FUNCTION, Param.OUTPUT, Param.STATE)),
            Command.ACKNOWLEDGE: CommandSpec(ACK_BYTE),
        },
    ),
    functions=_freeze(
        {
            Function.RELAY: 1,
            Function.DIMMER: 2,
            Function.MOTOR: 55,
            Function.LOCMOOD: 8,
            Function.TIMEDMOOD: 9,
            Function.GENMOOD: 10,
            Function.FLAG: 15,
            Function.SENSOR: 20,
            Function.COND: 60,
        },
    ),
    states=_freeze(
        {
            **dict.fromkeys(_RELAY_LIKE, _MICROS_RELAY),
            **dict.fromkeys(_NUMERIC, _LEVEL),
            Function.MOTOR: _MICROS_MOTOR,
        },
    ),
    # No dedicated command: re-subscribing the motor log channel keeps the socket alive
    keep_alive=KeepAliveSpec(interval=30 * 60, command=Command.LOG, function=Function.MOTOR, state=State.ON),
)

_PLUS_RELAY = _state_table({State.ON: 255, State.OFF: 0, State.TOGGLE: 103})
_PLUS_MOTOR = _state_table({State.UP: 1, State.DOWN: 2, State.STOP: 3, State.ON: 255, State.OFF: 0})

MICROS_PLUS = ProtocolProfile(
    name="MICROS_PLUS",
    output_width=2,
    commands=_freeze(
        {
            Command.SET: CommandSpec(7, (Param.CENTRAL_UNIT, Param.FUNCTION, Param.OUTPUT, Param.STATE)),
            Command.GET: CommandSpec(6, (Param.CENTRAL_UNIT, Param.FUNCTION, Param.OUTPUT)),
            Command.GROUP_GET: CommandSpec(9, (Param.CENTRAL_UNIT, Param.FUNCTION, Param.OUTPUT)),
            Command.LOG: CommandSpec(3, (Param.FUNCTION, Param.STATE)),
            Command.EVENT: CommandSpec(
                16,
                (Param.CENTRAL_UNIT, Param.FUNCTION, Param.OUTPUT, Param.ERROR_STATE, Param.STATE),
            ),
            Command.KEEP_ALIVE: CommandSpec(11),
            Command.ACKNOWLEDGE: CommandSpec(ACK_BYTE),
        },
    ),
    functions=_freeze({**MICROS.functions, Function.MOTOR: 6}),
    states=_freeze(
        {
            **dict.fromkeys(_RELAY_LIKE, _PLUS_RELAY),
            **dict.fromkeys(_NUMERIC, _LEVEL),
            Function.MOTOR: _PLUS_MOTOR,
        },
    ),
    keep_alive=KeepAliveSpec(interval=20 * 60, command=Command.KEEP_ALIVE),
)

PROFILES: Mapping[str, ProtocolProfile] = _freeze({MICROS.name: MICROS, MICROS_PLUS.name: MICROS_PLUS})


def get_profile(central_unit_type: str) -> ProtocolProfile:
    """Select the profile for a central-unit type (case-insensitive).

    Raises:
        ValueError: If the type is unknown

    """
    key = central_unit_type.strip().upper().replace("+", "_PLUS").replace("-", "_")
    try:
        return PROFILES[key]
    except KeyError:
        known = ", ".join(PROFILES)
        msg = f"Unknown central unit type {central_unit_type!r} (known: {known})"
        raise ValueError(msg) from None
