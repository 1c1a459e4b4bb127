"""Periodic background task driven by an explicit stop token."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from teletask.transport.exceptions import TransportError

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async action at a fixed interval until stopped.

    - ``stop()`` sets the stop token; the loop exits after the current run
    - A ``TransportError`` from the action stops the loop (the connection is
      gone, further submissions would fail)
    - Any other exception is logged and the loop keeps its schedule
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], Awaitable[object]],
        *,
        run_immediately: bool = True,
    ) -> None:
        self.name: str = name
        self.interval: float = interval
        self.action: Callable[[], Awaitable[object]] = action
        self.run_immediately: bool = run_immediately
        self.runs: int = 0
        self._stop: asyncio.Event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(
            "Starting %s task (every %.2fs)",
            self.name,
            self.interval,
            extra={"task": self.name, "interval": self.interval},
        )

    async def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to exit and wait for it, cancelling after ``timeout``."""
        if self._task is None:
            return
        self._stop.set()
        if not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except TimeoutError:
                logger.warning("%s did not stop within %.1fs, cancelling", self.name, timeout)
                _ = self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
        self._task = None
        logger.debug("%s task stopped", self.name, extra={"task": self.name, "runs": self.runs})

    async def _sleep(self) -> bool:
        """Wait one interval; True if the stop token was set meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
        except TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        try:
            if not self.run_immediately and await self._sleep():
                return
            while not self._stop.is_set():
                try:
                    await self.action()
                except TransportError as e:
                    logger.error(
                        "✗ %s stopped: transport failure",
                        self.name,
                        extra={"task": self.name, "reason": e.reason},
                    )
                    return
                except Exception as e:
                    logger.exception(
                        "Error in %s task",
                        self.name,
                        extra={"task": self.name, "error": str(e), "error_type": type(e).__name__},
                    )
                finally:
                    self.runs += 1
                if await self._sleep():
                    return
        except asyncio.CancelledError:
            logger.debug("%s task cancelled", self.name)
            raise
