"""Event dispatcher: applies unsolicited EVENT frames to the device registry."""

from __future__ import annotations

import logging
from collections.abc import Callable

from teletask import metrics
from teletask.correlation import correlation_context
from teletask.protocol.codec import FrameCodec
from teletask.protocol.exceptions import DecodeError
from teletask.registry import ComponentNotFoundError, Device, DeviceRegistry
from teletask.scheduler import PeriodicTask
from teletask.transport.engine import ExecutionEngine

logger = logging.getLogger(__name__)

StateChangeListener = Callable[[list[Device]], object]


class EventDispatcher:
    """Drain the stream on a short period and notify listeners in batches.

    Each tick:

    1. Submit a drain exchange to the engine
    2. Decode each EVENT frame; undecodable frames are dropped
    3. Resolve the device; unknown devices are logged and skipped
    4. Update the cached state and collect the device into the batch
    5. Call every listener once with the whole batch
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        codec: FrameCodec,
        registry: DeviceRegistry,
        interval: float = 0.02,
    ) -> None:
        self.engine: ExecutionEngine = engine
        self.codec: FrameCodec = codec
        self.registry: DeviceRegistry = registry
        self.listeners: list[StateChangeListener] = []
        self._task: PeriodicTask = PeriodicTask("event-dispatcher", interval, self.tick)

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def add_listener(self, listener: StateChangeListener) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    async def tick(self) -> list[Device]:
        """Run one drain-decode-apply-notify cycle.

        Returns:
            The batch of devices whose EVENT was applied (may repeat a device
            that changed more than once in the burst)
        """
        frames = await self.engine.drain()
        if not frames:
            return []

        batch: list[Device] = []
        with correlation_context():
            for frame in frames:
                try:
                    event = self.codec.decode_event(frame)
                except DecodeError as e:
                    metrics.record_event_dropped(self.engine.endpoint, "decode_error")
                    logger.warning(
                        "Dropping undecodable EVENT: %s",
                        frame.raw.hex(" "),
                        extra={"reason": e.reason},
                    )
                    continue

                try:
                    device = self.registry.resolve(event.function, event.number)
                except ComponentNotFoundError:
                    metrics.record_event_dropped(self.engine.endpoint, "unknown_component")
                    logger.info(
                        "EVENT for unregistered component %s:%d ignored",
                        event.function,
                        event.number,
                        extra={"function": str(event.function), "number": event.number, "state": str(event.state)},
                    )
                    continue

                self.registry.update_state(device, event.state)
                metrics.record_event_dispatched(self.engine.endpoint, str(event.function))
                batch.append(device)

            if batch:
                logger.debug("Dispatching %d state change(s)", len(batch), extra={"batch": len(batch)})
                self._notify(batch)
        return batch

    def _notify(self, batch: list[Device]) -> None:
        for listener in list(self.listeners):
            try:
                _ = listener(list(batch))
            except Exception as e:
                logger.exception(
                    "State change listener failed",
                    extra={"listener": getattr(listener, "__name__", repr(listener)), "error": str(e)},
                )
