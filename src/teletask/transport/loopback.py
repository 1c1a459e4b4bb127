"""In-memory byte stream used by the engine's test mode.

``LoopbackStream`` stands in for the TCP socket. It acknowledges every frame
written to it and, when ``simulate`` is enabled, behaves like a minimal
central unit: SET changes a simulated output and echoes the resulting EVENT,
GET answers with an EVENT carrying the current state. Tests and dry runs can
also inject EVENT frames directly. Everything injected goes through the real
reassembler and codec on the way back in.
"""

from __future__ import annotations

import asyncio
import logging

from teletask.protocol.codec import FrameCodec
from teletask.protocol.exceptions import DecodeError
from teletask.protocol.types import Command, Frame, Function, LogicalState, Param, State

logger = logging.getLogger(__name__)

# Sent frames remembered for inspection; older ones are discarded
MAX_SENT = 1024


class LoopbackStream:
    """Byte stream backed by an in-memory buffer."""

    def __init__(self, codec: FrameCodec, *, simulate: bool = True, auto_ack: bool = True) -> None:
        self.codec: FrameCodec = codec
        self.simulate: bool = simulate
        self.auto_ack: bool = auto_ack
        self.sent: list[bytes] = []
        self.states: dict[tuple[Function, int], LogicalState] = {}
        self._inbound: bytearray = bytearray()
        self._ready: asyncio.Event = asyncio.Event()
        self._connected: bool = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = True
        logger.info("✓ Loopback stream connected (test mode)")
        return True

    async def close(self) -> None:
        self._connected = False
        self._inbound.clear()

    def inject(self, data: bytes) -> None:
        """Queue raw bytes to be read by the next poll."""
        self._inbound.extend(data)
        self._ready.set()

    def inject_event(self, function: Function, number: int, state: LogicalState, error_state: int = 0) -> bytes:
        """Queue an EVENT frame as the central unit would send it.

        Returns:
            The injected frame bytes
        """
        frame = self.codec.compose_event(function, number, state, error_state)
        self.inject(frame)
        logger.debug(
            "Injected EVENT %s:%d -> %s",
            function,
            number,
            state,
            extra={"function": str(function), "number": number, "state": str(state)},
        )
        return frame

    async def send(self, data: bytes) -> bool:
        if not self._connected:
            return False
        self.sent.append(bytes(data))
        if len(self.sent) > MAX_SENT:
            del self.sent[:-MAX_SENT]
        if self.auto_ack:
            self.inject(bytes([self.codec.profile.ack_byte]))
        if self.simulate:
            self._simulate(data)
        return True

    async def poll(self, timeout: float) -> bytes:
        if not self._inbound:
            self._ready.clear()
            try:
                await asyncio.wait_for(self._ready.wait(), timeout=timeout)
            except TimeoutError:
                return b""
        data = bytes(self._inbound)
        self._inbound.clear()
        return data

    def state_of(self, function: Function, number: int) -> LogicalState:
        """Simulated output state (the profile's zero value until first SET)."""
        try:
            return self.states[(function, number)]
        except KeyError:
            return self.codec.profile.decode_state(function, 0)

    def _simulate(self, data: bytes) -> None:
        try:
            frame = self.codec.parse_frame(data)
        except DecodeError:
            logger.warning("Loopback received an undecodable frame: %s", data.hex(" "))
            return

        if frame.command is Command.SET:
            function, number, state = self._set_target(frame)
            if state is State.TOGGLE:
                state = State.OFF if self.state_of(function, number) == State.ON else State.ON
            self.states[(function, number)] = state
            self.inject_event(function, number, state)
        elif frame.command is Command.GET:
            function, number = self._get_target(frame)
            self.inject_event(function, number, self.state_of(function, number))

    def _slots(self, frame: Frame) -> dict[Param, bytes]:
        profile = self.codec.profile
        slots: dict[Param, bytes] = {}
        offset = 0
        for slot in profile.command_spec(frame.command).params:
            width = profile.output_width if slot is Param.OUTPUT else 1
            slots[slot] = frame.params[offset : offset + width]
            offset += width
        return slots

    def _get_target(self, frame: Frame) -> tuple[Function, int]:
        slots = self._slots(frame)
        profile = self.codec.profile
        return profile.function_for_code(slots[Param.FUNCTION][0]), profile.decode_output(slots[Param.OUTPUT])

    def _set_target(self, frame: Frame) -> tuple[Function, int, LogicalState]:
        function, number = self._get_target(frame)
        value = self._slots(frame)[Param.STATE][0]
        return function, number, self.codec.profile.decode_state(function, value)
