"""Teletask frame encoder/decoder.

Frame layout (all profiles)::

    [START][LENGTH][COMMAND]{params...}[CHECKSUM]

``LENGTH`` counts the command byte plus the parameter bytes and never the
checksum, so a complete frame is ``LENGTH + 3`` bytes long. The checksum is
computed by the profile over every byte preceding it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TypeVar

from teletask.protocol.exceptions import ChecksumMismatchError, DecodeError, EncodeError
from teletask.protocol.profiles import ProtocolProfile
from teletask.protocol.types import (
    Command,
    EventMessage,
    Frame,
    Function,
    LogicalState,
    LogMessage,
    Param,
    State,
)

FRAME_HEADER_LENGTH = 3  # start + length + command
FRAME_OVERHEAD = 3  # start + length + checksum
MIN_FRAME_LENGTH = 4
MAX_PARAM_BYTES = 254

logger = logging.getLogger(__name__)


class FrameCodec:
    """Encoder/decoder bound to one protocol profile.

    The codec is stateless apart from its profile and the central-unit number
    written into the CENTRAL_UNIT slot of profiles that carry one.
    """

    def __init__(self, profile: ProtocolProfile, central_unit: int = 1) -> None:
        self.profile: ProtocolProfile = profile
        self.central_unit: int = central_unit

    # Encoding

    def compose(self, command: Command, params: Iterable[int] = ()) -> bytes:
        """Build a checksummed frame for ``command`` with raw parameter bytes.

        Args:
            command: Logical command, resolved to its code through the profile
            params: Parameter bytes in wire order

        Returns:
            Complete frame bytes

        Raises:
            EncodeError: If the profile does not support the command or a
                parameter does not fit in a byte

        Example:
            >>> from teletask.protocol.profiles import MICROS_PLUS
            >>> FrameCodec(MICROS_PLUS).compose(Command.KEEP_ALIVE).hex(" ")
            '02 01 0b 0e'

        """
        spec = self.profile.command_spec(command)
        try:
            payload = bytes(params)
        except ValueError:
            raise EncodeError("param_out_of_range") from None
        if len(payload) > MAX_PARAM_BYTES:
            raise EncodeError(f"too_many_params {len(payload)}")

        body = bytes([self.profile.start_byte, 1 + len(payload), spec.code]) + payload
        frame = body + bytes([self.profile.checksum(body)])
        logger.debug(
            "Composed %s frame: %s",
            command.name,
            frame.hex(" "),
            extra={"command": command.name, "bytes": len(frame)},
        )
        return frame

    def _params(
        self,
        command: Command,
        function: Function | None = None,
        number: int | None = None,
        state: LogicalState | None = None,
        error_state: int = 0,
    ) -> bytes:
        out = bytearray()
        for slot in self.profile.command_spec(command).params:
            if slot is Param.CENTRAL_UNIT:
                out.append(self.central_unit)
            elif slot is Param.FUNCTION:
                out.append(self.profile.function_code(_required(function, slot)))
            elif slot is Param.OUTPUT:
                out.extend(self.profile.encode_output(_required(number, slot)))
            elif slot is Param.ERROR_STATE:
                out.append(error_state)
            elif command is Command.LOG:
                out.append(self.profile.encode_log_state(_as_state(_required(state, slot))))
            else:
                out.append(self.profile.encode_state(_required(function, Param.FUNCTION), _required(state, slot)))
        return bytes(out)

    def compose_set(self, function: Function, number: int, state: LogicalState) -> bytes:
        return self.compose(Command.SET, self._params(Command.SET, function, number, state))

    def compose_get(self, function: Function, number: int) -> bytes:
        return self.compose(Command.GET, self._params(Command.GET, function, number))

    def compose_group_get(self, function: Function, numbers: Sequence[int]) -> bytes:
        """Build a GROUP_GET frame; the OUTPUT slot repeats once per number."""
        spec = self.profile.command_spec(Command.GROUP_GET)
        if not numbers:
            raise EncodeError("group_get_without_outputs")
        out = bytearray()
        for slot in spec.params:
            if slot is Param.CENTRAL_UNIT:
                out.append(self.central_unit)
            elif slot is Param.FUNCTION:
                out.append(self.profile.function_code(function))
            elif slot is Param.OUTPUT:
                for number in numbers:
                    out.extend(self.profile.encode_output(number))
        return self.compose(Command.GROUP_GET, out)

    def compose_log(self, function: Function, state: State) -> bytes:
        return self.compose(Command.LOG, self._params(Command.LOG, function, state=state))

    def compose_keep_alive(self) -> bytes:
        """Build the profile's liveness request.

        Profiles without a KEEP_ALIVE command re-send a LOG subscription
        for the function named by their keep-alive strategy.
        """
        spec = self.profile.keep_alive
        if spec.command is Command.LOG:
            return self.compose_log(_required(spec.function, Param.FUNCTION), _required(spec.state, Param.STATE))
        return self.compose(spec.command)

    def compose_event(
        self,
        function: Function,
        number: int,
        state: LogicalState,
        error_state: int = 0,
    ) -> bytes:
        """Build an EVENT frame as the central unit would send it."""
        return self.compose(Command.EVENT, self._params(Command.EVENT, function, number, state, error_state))

    # Decoding

    def parse_frame(self, data: bytes) -> Frame:
        """Validate checksum and framing and resolve the command.

        The checksum is verified before the header so a corrupted start or
        length byte is reported as a checksum mismatch like any other bit
        error.

        Raises:
            ChecksumMismatchError: If the checksum byte does not match
            DecodeError: If the frame is truncated, mis-framed or has an
                unknown command code

        """
        if len(data) < MIN_FRAME_LENGTH:
            raise DecodeError("too_short", data)
        expected = self.profile.checksum(data[:-1])
        if expected != data[-1]:
            raise ChecksumMismatchError(expected, data[-1], data)

        if data[0] != self.profile.start_byte:
            raise DecodeError("missing_start_byte", data)
        length = data[1]
        if length < 1 or len(data) != length + FRAME_OVERHEAD:
            raise DecodeError(f"invalid_length {length} for {len(data)} bytes", data)

        code = data[2]
        command = self.profile.command_for_code(code)
        return Frame(command=command, code=code, params=bytes(data[FRAME_HEADER_LENGTH:-1]), raw=bytes(data))

    def _fields(self, frame: Frame) -> dict[Param, int]:
        spec = self.profile.command_spec(frame.command)
        fields: dict[Param, int] = {}
        offset = 0
        for slot in spec.params:
            width = self.profile.output_width if slot is Param.OUTPUT else 1
            chunk = frame.params[offset : offset + width]
            if len(chunk) < width:
                raise DecodeError(f"missing_{slot.value}", frame.raw)
            fields[slot] = self.profile.decode_output(chunk) if slot is Param.OUTPUT else chunk[0]
            offset += width
        return fields

    def _as_frame(self, data: bytes | Frame) -> Frame:
        return data if isinstance(data, Frame) else self.parse_frame(data)

    def event_target(self, data: bytes | Frame) -> tuple[int, int]:
        """Return the raw (function code, output number) of an EVENT frame.

        Used to match responses without resolving the state, so an undecodable
        state still completes the exchange and surfaces to the caller.
        """
        frame = self._as_frame(data)
        if frame.command is not Command.EVENT:
            raise DecodeError(f"not_an_event {frame.command.name}", frame.raw)
        fields = self._fields(frame)
        return fields[Param.FUNCTION], fields[Param.OUTPUT]

    def decode_event(self, data: bytes | Frame) -> EventMessage:
        """Decode an EVENT frame into (function, number, state).

        Raises:
            DecodeError: If the frame is not an EVENT, or carries an unknown
                function or state code

        """
        frame = self._as_frame(data)
        if frame.command is not Command.EVENT:
            raise DecodeError(f"not_an_event {frame.command.name}", frame.raw)
        fields = self._fields(frame)
        function = self.profile.function_for_code(fields[Param.FUNCTION])
        state = self.profile.decode_state(function, fields[Param.STATE])
        return EventMessage(
            function=function,
            number=fields[Param.OUTPUT],
            state=state,
            central_unit=fields.get(Param.CENTRAL_UNIT, 0),
            error_state=fields.get(Param.ERROR_STATE, 0),
        )

    def decode_log(self, data: bytes | Frame) -> LogMessage:
        frame = self._as_frame(data)
        if frame.command is not Command.LOG:
            raise DecodeError(f"not_a_log {frame.command.name}", frame.raw)
        fields = self._fields(frame)
        function = self.profile.function_for_code(fields[Param.FUNCTION])
        return LogMessage(function=function, state=self.profile.decode_log_state(fields[Param.STATE]))


T = TypeVar("T")


def _required(value: T | None, slot: Param) -> T:
    if value is None:
        raise EncodeError(f"missing_{slot.value}")
    return value


def _as_state(state: LogicalState) -> State:
    if not isinstance(state, State):
        raise EncodeError(f"log_state_must_be_symbolic {state}")
    return state
