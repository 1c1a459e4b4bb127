"""Unit tests for the TeletaskClient facade running in test mode."""

from __future__ import annotations

from pathlib import Path

import pytest

from teletask import const
from teletask.client import TeletaskClient
from teletask.config import ClientConfig
from teletask.protocol.codec import FrameCodec
from teletask.protocol.profiles import MICROS, MICROS_PLUS
from teletask.protocol.types import Function, State
from teletask.registry import ComponentNotFoundError, Device, DeviceRegistry, RegistryLoadError
from teletask.transport.exceptions import StateConfirmationTimeoutError, TransportError
from teletask.transport.loopback import LoopbackStream
from tests.fixtures import frames
from tests.helpers.expectations import expect_async_exception, expect_exception, wait_until

pytestmark = pytest.mark.unit

GET_CODE = 6
SET_CODE = 7
LOG_CODE = 3
MONITORED = 5


class RefusingStream(LoopbackStream):
    """Loopback that refuses the connection."""

    async def connect(self) -> bool:
        return False


class FlakyStream(LoopbackStream):
    """Loopback whose reads fail while ``broken`` is set."""

    broken = False

    async def poll(self, timeout: float) -> bytes:
        if self.broken:
            raise TransportError("connection_reset", "loopback", 0)
        return await super().poll(timeout)


def make_config(**overrides: object) -> ClientConfig:
    values: dict[str, object] = {
        "test_mode": True,
        "request_timeout": 0.2,
        "poll_interval": 0.005,
        "event_interval": 0.005,
        "confirmation_timeout": 0.5,
        "confirmation_interval": 0.005,
        "refresh_on_connect": False,
    }
    values.update(overrides)
    return ClientConfig.model_validate(values)


def loopback_of(client: TeletaskClient) -> LoopbackStream:
    assert isinstance(client.stream, LoopbackStream)
    return client.stream


def command_codes(stream: LoopbackStream) -> list[int]:
    return [frame[2] for frame in stream.sent]


class TestLifecycle:
    """connect() / disconnect() ordering and failures."""

    @pytest.mark.asyncio
    async def test_connect_refreshes_then_subscribes(self, registry: DeviceRegistry) -> None:
        client = TeletaskClient(make_config(refresh_on_connect=True), registry)
        stream = loopback_of(client)

        await client.connect()
        try:
            assert client.is_connected
            assert client.test_mode
            assert client.dispatcher.is_running
            assert client.keep_alive.is_running
            assert command_codes(stream) == [GET_CODE] * len(registry) + [LOG_CODE] * MONITORED
            assert registry.resolve(Function.RELAY, 1).state is State.OFF
            assert registry.resolve(Function.DIMMER, 5).state == 0
        finally:
            await client.disconnect()

        assert command_codes(stream)[-MONITORED:] == [LOG_CODE] * MONITORED
        assert stream.sent[-1][-2] == 0  # LOG OFF
        assert not client.is_connected
        assert not client.engine.is_running
        assert not client.dispatcher.is_running
        assert not stream.is_connected

    @pytest.mark.asyncio
    async def test_connect_without_refresh(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            assert command_codes(loopback_of(client)) == [LOG_CODE] * MONITORED
            assert registry.resolve(Function.RELAY, 1).state is None

    @pytest.mark.asyncio
    async def test_connect_failure(self, registry: DeviceRegistry) -> None:
        stream = RefusingStream(FrameCodec(MICROS_PLUS))
        client = TeletaskClient(make_config(), registry, stream=stream)

        error = await expect_async_exception(client.connect, TransportError)

        assert error.reason == "connect_failed"
        assert not client.is_connected
        assert not client.engine.is_running

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            await client.connect()
            assert command_codes(loopback_of(client)) == [LOG_CODE] * MONITORED

    @pytest.mark.asyncio
    async def test_reconnect_after_transport_failure(self, registry: DeviceRegistry) -> None:
        stream = FlakyStream(FrameCodec(MICROS_PLUS))
        client = TeletaskClient(make_config(), registry, stream=stream)
        await client.connect()
        try:
            stream.broken = True
            await wait_until(lambda: client.engine.failure is not None)

            assert not client.is_connected
            _ = await expect_async_exception(client.get, TransportError, Function.RELAY, 1)

            stream.broken = False
            await client.connect()

            assert client.is_connected
            assert client.engine.is_running
            assert client.dispatcher.is_running
            assert await client.get(Function.RELAY, 1) is State.OFF
        finally:
            await client.disconnect()

        assert not stream.is_connected


class TestSet:
    """set() with confirmation through the event channel."""

    @pytest.mark.asyncio
    async def test_set_is_confirmed(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            result = await client.set(Function.RELAY, 1, State.ON)

            assert result.success is True
            assert result.state is State.ON
            assert result.attempts >= 1
            assert registry.resolve(Function.RELAY, 1).state is State.ON
            assert loopback_of(client).sent[-1][2] == SET_CODE

    @pytest.mark.asyncio
    async def test_dimmer_on_matches_full_level(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            result = await client.set(Function.DIMMER, 5, State.ON)

            assert result.success is True
            assert result.state == 255

    @pytest.mark.asyncio
    async def test_toggle_confirms_any_change(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(refresh_on_connect=True), registry) as client:
            assert registry.resolve(Function.RELAY, 2).state is State.OFF

            result = await client.set(Function.RELAY, 2, State.TOGGLE)

            assert result.success is True
            assert result.state is State.ON

    @pytest.mark.asyncio
    async def test_unconfirmed_set_times_out(self, registry: DeviceRegistry) -> None:
        stream = LoopbackStream(FrameCodec(MICROS_PLUS), simulate=False)
        config = make_config(confirmation_timeout=0.05)
        async with TeletaskClient(config, registry, stream=stream) as client:
            error = await expect_async_exception(
                client.set,
                StateConfirmationTimeoutError,
                Function.RELAY,
                3,
                State.ON,
            )

        assert error.function is Function.RELAY
        assert error.number == 3
        assert error.expected is State.ON
        assert error.actual is None

    @pytest.mark.asyncio
    async def test_set_unknown_component(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            sent_before = len(loopback_of(client).sent)

            error = await expect_async_exception(client.set, ComponentNotFoundError, Function.RELAY, 99, State.ON)

            assert error.number == 99
            assert len(loopback_of(client).sent) == sent_before


class TestGet:
    """get() and group_get()."""

    @pytest.mark.asyncio
    async def test_get_updates_registered_device(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            loopback_of(client).states[(Function.MOTOR, 2)] = State.DOWN

            assert await client.get(Function.MOTOR, 2) is State.DOWN
            assert registry.resolve(Function.MOTOR, 2).state is State.DOWN

    @pytest.mark.asyncio
    async def test_get_unregistered_device(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            assert await client.get(Function.RELAY, 77) is State.OFF
            assert (Function.RELAY, 77) not in registry

    @pytest.mark.asyncio
    async def test_group_get_issues_gets_in_order(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            stream = loopback_of(client)
            stream.states[(Function.RELAY, 2)] = State.ON
            sent_before = len(stream.sent)

            states = await client.group_get(Function.RELAY, 1, 2, 3)

            gets = stream.sent[sent_before:]
            assert states == [State.OFF, State.ON, State.OFF]
            assert [frame[2] for frame in gets] == [GET_CODE] * 3
            assert [frame[-2] for frame in gets] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_group_get_defaults_to_registered_devices(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            assert await client.group_get(Function.RELAY) == [State.OFF, State.OFF, State.OFF]

    @pytest.mark.asyncio
    async def test_refresh_all(self, registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(), registry) as client:
            results = await client.refresh_all()

        assert list(results) == [Function.RELAY, Function.DIMMER, Function.MOTOR]
        assert results[Function.MOTOR] == [State.OFF]


class TestEvents:
    """Listener notification for unsolicited EVENTs."""

    @pytest.mark.asyncio
    async def test_listener_receives_injected_event(self, registry: DeviceRegistry) -> None:
        batches: list[list[Device]] = []
        async with TeletaskClient(make_config(), registry) as client:
            client.register_listener(batches.append)
            _ = client.inject_event(Function.RELAY, 3, State.ON)

            await wait_until(lambda: bool(batches))
            client.unregister_listener(batches.append)

        assert [d.key for d in batches[0]] == [(Function.RELAY, 3)]
        assert registry.resolve(Function.RELAY, 3).state is State.ON


class TestMicros:
    """The 1-byte-output generation end to end."""

    @pytest.fixture
    def micros_registry(self) -> DeviceRegistry:
        return DeviceRegistry([Device(Function.RELAY, 3, "Garden"), Device(Function.MOTOR, 2, "Blinds")])

    @pytest.mark.asyncio
    async def test_set_uses_one_byte_output(self, micros_registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(central_unit_type="MICROS"), micros_registry) as client:
            result = await client.set(Function.RELAY, 3, State.ON)
            sent = loopback_of(client).sent[-1]

        assert result.success is True
        assert micros_registry.resolve(Function.RELAY, 3).state is State.ON
        assert sent == FrameCodec(MICROS).compose_set(Function.RELAY, 3, State.ON)
        assert sent == bytes.fromhex("02 04 01 01 03 ff 0a")

    @pytest.mark.asyncio
    async def test_relay_value_one_reads_as_on(self, micros_registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(central_unit_type="MICROS"), micros_registry) as client:
            loopback_of(client).inject(frames.MICROS_EVENT_RELAY_3_ALIAS_ON)

            await wait_until(lambda: micros_registry.resolve(Function.RELAY, 3).state is State.ON)

    @pytest.mark.asyncio
    async def test_motor_full_level_reads_as_up(self, micros_registry: DeviceRegistry) -> None:
        async with TeletaskClient(make_config(central_unit_type="MICROS"), micros_registry) as client:
            stream = loopback_of(client)
            stream.states[(Function.MOTOR, 2)] = State.UP

            assert await client.get(Function.MOTOR, 2) is State.UP
            assert stream.sent[-1] == bytes.fromhex("02 03 02 37 02 40")
            assert micros_registry.resolve(Function.MOTOR, 2).state is State.UP

            micros_registry.resolve(Function.MOTOR, 2).state = State.DOWN
            stream.inject(frames.MICROS_EVENT_MOTOR_2_UP)
            await wait_until(lambda: micros_registry.resolve(Function.MOTOR, 2).state is State.UP)


class TestConstruction:
    def test_from_registry_file(self, tmp_path: Path) -> None:
        path = tmp_path / "registry.yaml"
        _ = path.write_text(
            "central_unit:\n"
            "  host: 10.0.0.5\n"
            "  central_unit_type: MICROS\n"
            "components:\n"
            "  relay:\n"
            "    - {number: 1, description: Kitchen}\n",
        )

        client = TeletaskClient.from_registry_file(path, test_mode=True)

        assert client.config.host == "10.0.0.5"
        assert client.profile.name == "MICROS"
        assert client.test_mode
        assert len(client.registry) == 1

    def test_default_stream_is_tcp(self) -> None:
        client = TeletaskClient(ClientConfig(host="10.0.0.5"))

        assert not client.test_mode
        assert client.config.endpoint == "10.0.0.5:55957"

    def test_from_registry_file_defaults_to_configured_path(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = tmp_path / "registry.yaml"
        _ = path.write_text("components:\n  motor:\n    - {number: 2, description: Blinds}\n")
        monkeypatch.setattr(const, "TELETASK_REGISTRY_FILE", str(path))

        client = TeletaskClient.from_registry_file(test_mode=True)

        assert (Function.MOTOR, 2) in client.registry

    def test_from_registry_file_needs_a_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(const, "TELETASK_REGISTRY_FILE", None)

        error = expect_exception(TeletaskClient.from_registry_file, RegistryLoadError)

        assert "TELETASK_REGISTRY_FILE" in str(error)
