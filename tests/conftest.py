"""Shared fixtures for unit tests.

This module provides reusable fixtures for testing the Teletask client stack
against an in-memory loopback stream.
"""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from teletask.protocol.codec import FrameCodec
from teletask.protocol.profiles import MICROS_PLUS
from teletask.protocol.types import Function
from teletask.registry import Device, DeviceRegistry
from teletask.transport.engine import ExecutionEngine
from teletask.transport.loopback import LoopbackStream
from teletask.transport.timeouts import TimeoutConfig


@pytest.fixture
def codec() -> FrameCodec:
    """MICROS_PLUS codec for central unit 1."""
    return FrameCodec(MICROS_PLUS, central_unit=1)


@pytest.fixture
def fast_timeouts() -> TimeoutConfig:
    """Short deadlines so timeout paths finish quickly."""
    return TimeoutConfig(
        request_timeout=0.2,
        poll_interval=0.005,
        confirmation_timeout=0.2,
        confirmation_interval=0.005,
    )


@pytest.fixture
def registry() -> DeviceRegistry:
    """Registry with three relays, a dimmer and a motor."""
    return DeviceRegistry(
        [
            Device(Function.RELAY, 1, "Kitchen"),
            Device(Function.RELAY, 2, "Hall"),
            Device(Function.RELAY, 3, "Garden"),
            Device(Function.DIMMER, 5, "Living room"),
            Device(Function.MOTOR, 2, "Blinds"),
        ],
    )


@pytest.fixture
def loopback(codec: FrameCodec) -> LoopbackStream:
    """Connected-on-demand loopback that simulates a central unit."""
    return LoopbackStream(codec)


@pytest_asyncio.fixture
async def engine(
    loopback: LoopbackStream,
    codec: FrameCodec,
    fast_timeouts: TimeoutConfig,
) -> AsyncIterator[ExecutionEngine]:
    """Started engine over the loopback stream, stopped after the test."""
    _ = await loopback.connect()
    engine = ExecutionEngine(loopback, codec, fast_timeouts, endpoint="loopback")
    engine.start()
    yield engine
    await engine.stop()
    await loopback.close()
