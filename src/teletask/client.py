"""Client facade over the Teletask protocol engine.

``TeletaskClient`` wires the profile, codec, execution engine, event
dispatcher, and keep-alive scheduler for one central unit, and exposes the
caller-facing operations: ``connect``, ``disconnect``, ``get``,
``group_get``, ``set``, ``log_subscribe``, and listener registration.

The caller owns the client; there is no process-wide instance.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from types import TracebackType
from typing import Self

from teletask import const, metrics
from teletask.config import ClientConfig
from teletask.correlation import correlation_context, get_correlation_id
from teletask.dispatcher import EventDispatcher, StateChangeListener
from teletask.keepalive import KeepAliveScheduler
from teletask.protocol.codec import FrameCodec
from teletask.protocol.exceptions import DecodeError, TeletaskProtocolError
from teletask.protocol.types import Command, Frame, Function, LogicalState, State
from teletask.registry import Device, DeviceRegistry, RegistryLoadError, load_registry_config
from teletask.transport.engine import ExecutionEngine
from teletask.transport.exceptions import NoResponseError, StateConfirmationTimeoutError, TransportError
from teletask.transport.loopback import LoopbackStream
from teletask.transport.socket_abstraction import ByteStream, TCPConnection
from teletask.transport.types import ConfirmationResult

logger = logging.getLogger(__name__)


class TeletaskClient:
    """Connection to one central unit."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        registry: DeviceRegistry | None = None,
        *,
        stream: ByteStream | None = None,
    ) -> None:
        """Build the engine stack for ``config``.

        Args:
            config: Connection settings (defaults to ``ClientConfig()``)
            registry: Known devices (defaults to an empty registry)
            stream: Byte stream override; by default a TCPConnection, or a
                LoopbackStream when ``config.test_mode`` is set
        """
        self.config: ClientConfig = config or ClientConfig()
        self.registry: DeviceRegistry = registry if registry is not None else DeviceRegistry()
        self.profile = self.config.profile
        self.codec: FrameCodec = FrameCodec(self.profile, central_unit=self.config.central_unit_number)
        self.timeouts = self.config.timeouts()
        self.stream: ByteStream = stream or self._default_stream()
        self.engine: ExecutionEngine = ExecutionEngine(
            self.stream,
            self.codec,
            self.timeouts,
            endpoint=self.config.endpoint,
        )
        self.dispatcher: EventDispatcher = EventDispatcher(
            self.engine,
            self.codec,
            self.registry,
            interval=self.config.event_interval,
        )
        self.keep_alive: KeepAliveScheduler = KeepAliveScheduler(
            self.engine,
            self.codec,
            interval=self.config.keep_alive_interval,
        )
        self._connected = False

    def _default_stream(self) -> ByteStream:
        if self.config.test_mode:
            return LoopbackStream(self.codec)
        return TCPConnection(self.config.host, self.config.port, connect_timeout=self.config.connect_timeout)

    @classmethod
    def from_registry_file(cls, path: str | Path | None = None, **overrides: object) -> TeletaskClient:
        """Build a client from a YAML registry file.

        ``path`` defaults to ``TELETASK_REGISTRY_FILE``. The file's
        ``central_unit`` section (or the environment, when absent) provides
        the connection settings; ``overrides`` replace single fields.

        Raises:
            RegistryLoadError: If no path is given or configured, or the file
                does not load
        """
        path = path or const.TELETASK_REGISTRY_FILE
        if not path:
            msg = "No registry file given and TELETASK_REGISTRY_FILE is not set"
            raise RegistryLoadError(msg)
        registry_config = load_registry_config(path)
        config = registry_config.central_unit or ClientConfig.from_env()
        if overrides:
            config = ClientConfig.model_validate({**config.model_dump(), **overrides})
        return cls(config, registry_config.build_registry())

    @property
    def is_connected(self) -> bool:
        """True while the session is open and the engine has not failed."""
        return self._connected and self.engine.failure is None

    @property
    def test_mode(self) -> bool:
        return self.engine.test_mode

    # Lifecycle

    async def connect(self) -> None:
        """Open the connection and start the background tasks.

        Order: connect socket → start engine → optional state refresh →
        subscribe log channels → start keep-alive → start event dispatcher.

        A session whose engine failed with a TransportError is torn down
        first, so calling connect() again reconnects.

        Raises:
            TransportError: If the socket cannot be opened or fails during
                the start-up exchanges
        """
        if self._connected:
            if self.engine.failure is None:
                return
            logger.warning(
                "Reconnecting after transport failure",
                extra={"endpoint": self.config.endpoint, "reason": self.engine.failure.reason},
            )
            await self._shutdown()
            self._connected = False

        endpoint = self.config.endpoint
        logger.info(
            "→ Connecting to central unit",
            extra={"endpoint": endpoint, "profile": self.profile.name, "test_mode": self.config.test_mode},
        )
        metrics.record_connection_state(endpoint, "connecting")
        if self.config.metrics_port is not None:
            metrics.start_metrics_server(self.config.metrics_port)

        if not await self.stream.connect():
            metrics.record_connection_state(endpoint, "failed")
            raise TransportError("connect_failed", self.config.host, self.config.port)

        self.engine.start()
        try:
            if self.config.refresh_on_connect:
                await self.refresh_all()
            for function in self.config.monitored_functions:
                await self._log_subscribe_quietly(function, State.ON)
        except TransportError:
            await self._shutdown()
            metrics.record_connection_state(endpoint, "failed")
            raise

        self.keep_alive.start()
        self.dispatcher.start()
        self._connected = True
        metrics.record_connection_state(endpoint, "connected")
        logger.info("✓ Connected to central unit", extra={"endpoint": endpoint, "devices": len(self.registry)})

    async def disconnect(self) -> None:
        """Unsubscribe log channels, stop background tasks, then close the socket."""
        if self._connected and self.engine.failure is None:
            for function in self.config.monitored_functions:
                try:
                    await self._log_subscribe_quietly(function, State.OFF)
                except TransportError as e:
                    logger.warning("Log unsubscribe skipped: %s", e.reason)
                    break

        await self._shutdown()
        self._connected = False
        metrics.record_connection_state(self.config.endpoint, "disconnected")
        logger.info("✓ Disconnected from central unit", extra={"endpoint": self.config.endpoint})

    async def _shutdown(self) -> None:
        await self.dispatcher.stop()
        await self.keep_alive.stop()
        await self.engine.stop()
        await self.stream.close()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # Listeners

    def register_listener(self, listener: StateChangeListener) -> None:
        """Register ``listener(batch)``, called once per dispatcher tick with changed devices."""
        self.dispatcher.add_listener(listener)

    def unregister_listener(self, listener: StateChangeListener) -> None:
        self.dispatcher.remove_listener(listener)

    # Operations

    async def log_subscribe(self, function: Function, state: State | bool = True) -> None:
        """Turn the log channel (unsolicited EVENTs) for ``function`` on or off.

        Raises:
            NoResponseError: If the central unit does not acknowledge
        """
        log_state = state if isinstance(state, State) else (State.ON if state else State.OFF)
        frame = self.codec.compose_log(function, log_state)
        _ = await self.engine.execute_ack(Command.LOG, frame)
        logger.debug("Log channel %s -> %s", function, log_state, extra={"function": str(function)})

    async def _log_subscribe_quietly(self, function: Function, state: State) -> None:
        try:
            await self.log_subscribe(function, state)
        except (NoResponseError, TeletaskProtocolError) as e:
            logger.warning(
                "✗ Log %s for %s failed: %s",
                state,
                function,
                e,
                extra={"function": str(function), "state": str(state)},
            )

    async def get(self, function: Function, number: int) -> LogicalState:
        """Read the current state of one output.

        The response is the EVENT frame the central unit sends for the same
        function and number. A registered device's cached state is updated.

        Raises:
            NoResponseError: If no matching response arrives in time
            DecodeError: If the response carries an unknown state
        """
        with correlation_context(get_correlation_id()):
            target = (self.profile.function_code(function), number)
            frame = self.codec.compose_get(function, number)
            response = await self.engine.execute_query(Command.GET, frame, lambda f: self._targets(f, target))
            event = self.codec.decode_event(response)

            device = self.registry.find(function, number)
            if device is not None:
                self.registry.update_state(device, event.state)
            logger.debug(
                "GET %s:%d -> %s",
                function,
                number,
                event.state,
                extra={"function": str(function), "number": number, "state": str(event.state)},
            )
            return event.state

    def _targets(self, frame: Frame, target: tuple[int, int]) -> bool:
        if frame.command is not Command.EVENT:
            return False
        try:
            return self.codec.event_target(frame) == target
        except DecodeError:
            return False

    async def group_get(self, function: Function, *numbers: int) -> list[LogicalState]:
        """Read several outputs, one GET at a time, in argument order.

        With no numbers, every registered device of ``function`` is read.
        """
        if not numbers:
            numbers = tuple(device.number for device in self.registry.all_devices(function))
        with correlation_context(get_correlation_id()):
            logger.debug("Group get %s %s", function, list(numbers), extra={"count": len(numbers)})
            return [await self.get(function, number) for number in numbers]

    async def refresh_all(self) -> dict[Function, list[LogicalState]]:
        """Group-get every function present in the registry.

        Per-function failures are logged; a TransportError propagates.
        """
        results: dict[Function, list[LogicalState]] = {}
        for function in self.registry.functions():
            try:
                results[function] = await self.group_get(function)
            except (NoResponseError, TeletaskProtocolError) as e:
                logger.warning(
                    "✗ State refresh failed for %s: %s",
                    function,
                    e,
                    extra={"function": str(function)},
                )
        return results

    async def set(self, function: Function, number: int, state: LogicalState) -> ConfirmationResult:
        """Change an output and wait until the event channel confirms it.

        The SET is only acknowledged by the central unit; the effect is
        confirmed when the dispatcher applies an EVENT that brings the cached
        state to ``state`` (for TOGGLE: to anything other than before).

        Raises:
            ComponentNotFoundError: If the device is not registered
            EncodeError: If ``state`` has no wire value for ``function``
            NoResponseError: If the SET is not acknowledged
            StateConfirmationTimeoutError: If no confirming EVENT is applied in time
        """
        device = self.registry.resolve(function, number)
        with correlation_context(get_correlation_id()):
            frame = self.codec.compose_set(function, number, state)
            before = self.registry.get_state(device)
            logger.info(
                "→ SET %s:%d -> %s",
                function,
                number,
                state,
                extra={"function": str(function), "number": number, "state": str(state), "previous": str(before)},
            )
            _ = await self.engine.execute_ack(Command.SET, frame)

            result = await self._await_confirmation(device, state, before)
            outcome = "confirmed" if result.success else "timeout"
            metrics.record_state_confirmation(self.config.endpoint, str(function), outcome)
            if not result.success:
                logger.warning(
                    "✗ SET %s:%d not confirmed after %.2fs",
                    function,
                    number,
                    result.elapsed,
                    extra={
                        "previous": str(before),
                        "last_state": str(result.state),
                        "attempts": result.attempts,
                    },
                )
                raise StateConfirmationTimeoutError(
                    function,
                    number,
                    state,
                    result.state,
                    self.timeouts.confirmation_timeout_seconds,
                )
            logger.info(
                "✓ SET %s:%d confirmed in %.1fms",
                function,
                number,
                result.elapsed * 1000,
                extra={"attempts": result.attempts},
            )
            return result

    async def _await_confirmation(
        self,
        device: Device,
        requested: LogicalState,
        before: LogicalState | None,
    ) -> ConfirmationResult:
        start = time.monotonic()
        deadline = start + self.timeouts.confirmation_timeout_seconds
        attempts = 0
        while True:
            attempts += 1
            current = self.registry.get_state(device)
            if self._confirmed(device.function, requested, before, current):
                return ConfirmationResult(True, current, time.monotonic() - start, attempts)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return ConfirmationResult(False, current, time.monotonic() - start, attempts)
            if self.engine.failure is not None:
                raise TransportError(
                    f"connection_failed: {self.engine.failure.reason}",
                    self.config.host,
                    self.config.port,
                ) from self.engine.failure
            await asyncio.sleep(min(self.timeouts.confirmation_interval_seconds, remaining))

    def _confirmed(
        self,
        function: Function,
        requested: LogicalState,
        before: LogicalState | None,
        current: LogicalState | None,
    ) -> bool:
        if current is None:
            return False
        if requested is State.TOGGLE:
            return not self.profile.states_equal(function, current, before)
        return self.profile.states_equal(function, current, requested)

    # Test mode

    def inject_event(self, function: Function, number: int, state: LogicalState) -> bytes:
        """Queue a synthetic EVENT frame for the dispatcher (test mode only)."""
        return self.engine.inject_event(function, number, state)
