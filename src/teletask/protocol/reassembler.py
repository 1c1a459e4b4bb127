"""TCP stream reassembly for Teletask frames.

This module provides StreamReassembler for extracting complete frames and
standalone acknowledge bytes from an arbitrarily chunked TCP byte stream.
"""

from __future__ import annotations

import logging

from teletask.protocol.codec import FRAME_OVERHEAD
from teletask.protocol.profiles import ProtocolProfile
from teletask.protocol.types import Acknowledge

logger = logging.getLogger(__name__)

StreamItem = bytes | Acknowledge


class StreamReassembler:
    r"""Extract complete frames from a TCP byte stream.

    TCP reads may return partial frames, several frames, or frames mixed with
    standalone acknowledge bytes. The reassembler keeps the incomplete tail
    of the previous read (the overflow) and prepends it to the next one.

    Algorithm (single pass over ``overflow + data``):

    1. Start byte: peek the length byte; total frame length is ``length + 3``
    2. If fewer bytes remain than the total, keep the rest as overflow and stop
    3. Otherwise emit the frame and continue right after it
    4. Acknowledge byte outside a frame: emit an ``Acknowledge`` signal
    5. Any other byte outside a frame: log and discard it

    A zero length byte cannot describe a frame (the command byte is always
    counted), so the start byte is skipped to resynchronize.

    Example:
        reassembler = StreamReassembler(MICROS_PLUS)
        items = reassembler.feed(b'\x02\x01')  # header only
        assert items == [] and not reassembler.is_idle

        items = reassembler.feed(b'\x0b\x0e\x0a')
        assert items == [b'\x02\x01\x0b\x0e', Acknowledge(0x0A)]
        assert reassembler.is_idle

    """

    def __init__(self, profile: ProtocolProfile) -> None:
        """Initialize reassembler with an empty overflow buffer."""
        self.start_byte: int = profile.start_byte
        self.ack_byte: int = profile.ack_byte
        self.buffer: bytearray = bytearray()

    @property
    def overflow(self) -> bytes:
        """Bytes carried forward to the next read."""
        return bytes(self.buffer)

    @property
    def is_idle(self) -> bool:
        """True when every byte fed so far has been consumed."""
        return not self.buffer

    def reset(self) -> None:
        self.buffer.clear()

    def feed(self, data: bytes) -> list[StreamItem]:
        """Add data to the buffer and return the complete items found.

        Args:
            data: Incoming bytes from a stream read

        Returns:
            Frames (``bytes``) and ``Acknowledge`` signals in stream order;
            the buffer retains any incomplete trailing frame

        """
        self.buffer.extend(data)
        buf = self.buffer
        items: list[StreamItem] = []
        discarded = bytearray()
        pos = 0

        while pos < len(buf):
            byte = buf[pos]
            if byte == self.start_byte:
                if pos + 1 >= len(buf):
                    break  # length byte not read yet
                length = buf[pos + 1]
                if length == 0:
                    discarded.append(byte)
                    pos += 1
                    continue
                total = length + FRAME_OVERHEAD
                if len(buf) - pos < total:
                    break
                items.append(bytes(buf[pos : pos + total]))
                pos += total
            elif byte == self.ack_byte:
                items.append(Acknowledge(byte))
                pos += 1
            else:
                discarded.append(byte)
                pos += 1

        del buf[:pos]

        if discarded:
            logger.warning(
                "Discarded %d unexpected byte(s) outside a frame: %s",
                len(discarded),
                discarded.hex(" "),
                extra={"discarded": len(discarded), "overflow": len(buf)},
            )
        if buf:
            logger.debug(
                "Carrying %d byte(s) of overflow",
                len(buf),
                extra={"overflow": len(buf)},
            )
        return items
