"""Keep-alive scheduler: periodic liveness request through the engine."""

from __future__ import annotations

import logging

from teletask import metrics
from teletask.protocol.codec import FrameCodec
from teletask.protocol.exceptions import TeletaskProtocolError
from teletask.scheduler import PeriodicTask
from teletask.transport.engine import ExecutionEngine
from teletask.transport.exceptions import NoResponseError

logger = logging.getLogger(__name__)


class KeepAliveScheduler:
    """Submit the profile's liveness request once per interval.

    MICROS_PLUS sends its KEEP_ALIVE command; MICROS has none and re-sends a
    LOG subscription instead. A missed keep-alive is logged and never raised:
    the central unit may already have dropped the connection, and
    reconnecting is the caller's decision.
    """

    def __init__(self, engine: ExecutionEngine, codec: FrameCodec, interval: float | None = None) -> None:
        self.engine: ExecutionEngine = engine
        self.codec: FrameCodec = codec
        self.interval: float = interval if interval is not None else codec.profile.keep_alive.interval
        self._task: PeriodicTask = PeriodicTask("keep-alive", self.interval, self.send, run_immediately=False)

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    async def send(self) -> bool:
        """Send one keep-alive request.

        Returns:
            True if the central unit acknowledged it

        Raises:
            TransportError: If the connection is gone (stops the scheduler)
        """
        spec = self.codec.profile.keep_alive
        frame = self.codec.compose_keep_alive()
        try:
            _ = await self.engine.execute_ack(spec.command, frame)
        except NoResponseError:
            metrics.record_keepalive(self.engine.endpoint, "timeout")
            logger.warning("✗ Keep-alive not acknowledged", extra={"command": spec.command.name})
            return False
        except TeletaskProtocolError as e:
            metrics.record_keepalive(self.engine.endpoint, "error")
            logger.warning("✗ Keep-alive failed: %s", e, extra={"command": spec.command.name})
            return False

        metrics.record_keepalive(self.engine.endpoint, "ok")
        logger.debug("✓ Keep-alive acknowledged", extra={"command": spec.command.name})
        return True
