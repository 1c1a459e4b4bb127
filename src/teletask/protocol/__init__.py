"""Teletask protocol package - frame encoding, decoding, and reassembly.

This package implements the Central Unit wire format for the MICROS and
MICROS_PLUS generations. It provides the logical types, the data-driven
profiles, the frame codec, and TCP stream reassembly.

Public API:
- Logical types (Command, Function, State, LogicalState)
- Profiles (ProtocolProfile, MICROS, MICROS_PLUS, get_profile)
- Frame encoder/decoder (FrameCodec)
- Stream reassembly (StreamReassembler)
"""

from teletask.protocol.codec import FrameCodec
from teletask.protocol.exceptions import (
    ChecksumMismatchError,
    DecodeError,
    EncodeError,
    TeletaskError,
    TeletaskProtocolError,
)
from teletask.protocol.profiles import MICROS, MICROS_PLUS, ProtocolProfile, get_profile
from teletask.protocol.reassembler import StreamReassembler
from teletask.protocol.types import (
    Acknowledge,
    Command,
    EventMessage,
    Frame,
    Function,
    LogicalState,
    LogMessage,
    State,
)

__all__ = [
    # Codec
    "FrameCodec",
    "StreamReassembler",
    # Profiles
    "MICROS",
    "MICROS_PLUS",
    "ProtocolProfile",
    "get_profile",
    # Types
    "Acknowledge",
    "Command",
    "EventMessage",
    "Frame",
    "Function",
    "LogMessage",
    "LogicalState",
    "State",
    # Errors
    "ChecksumMismatchError",
    "DecodeError",
    "EncodeError",
    "TeletaskError",
    "TeletaskProtocolError",
]
