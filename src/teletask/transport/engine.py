"""Serialized execution engine owning the central-unit socket.

Exactly one exchange is in flight at any time. Callers (the client facade,
the event dispatcher, the keep-alive scheduler) submit ``PendingExchange``
objects and await their result; a single worker task executes them in
submission order:

    compose (done by the caller) → send → poll + reassemble → terminal check

Frames that do not complete the current exchange are routed, never lost:

- EVENT frames seen during an ACK/RESPONSE exchange are buffered and handed
  to the next drain, so a SET's confirming EVENT reaches the dispatcher
  even when it arrives in the same read as the acknowledge byte (the newest
  ``MAX_UNSOLICITED`` are kept)
- Any other unmatched frame (for example a late response to an abandoned
  request) is discarded with a debug log
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque

from teletask import metrics
from teletask.correlation import correlation_context, ensure_correlation_id
from teletask.protocol.codec import FrameCodec
from teletask.protocol.exceptions import ChecksumMismatchError, DecodeError
from teletask.protocol.reassembler import StreamItem, StreamReassembler
from teletask.protocol.types import Acknowledge, Command, Frame, Function, LogicalState
from teletask.transport.exceptions import NoResponseError, TransportError
from teletask.transport.loopback import LoopbackStream
from teletask.transport.socket_abstraction import ByteStream
from teletask.transport.timeouts import TimeoutConfig
from teletask.transport.types import ExchangeResult, FrameMatcher, PendingExchange, Terminal

logger = logging.getLogger(__name__)

# EVENTs kept for the next drain; the oldest are dropped beyond this
MAX_UNSOLICITED = 256


class ExecutionEngine:
    """Single-worker queue serializing every read and write on one stream."""

    def __init__(
        self,
        stream: ByteStream,
        codec: FrameCodec,
        timeouts: TimeoutConfig | None = None,
        endpoint: str = "unknown",
    ) -> None:
        self.stream: ByteStream = stream
        self.codec: FrameCodec = codec
        self.timeouts: TimeoutConfig = timeouts or TimeoutConfig()
        self.endpoint: str = endpoint
        self.reassembler: StreamReassembler = StreamReassembler(codec.profile)
        self._queue: asyncio.Queue[PendingExchange] = asyncio.Queue()
        self._worker_task: asyncio.Task[None] | None = None
        self._current: PendingExchange | None = None
        self._unsolicited: deque[Frame] = deque(maxlen=MAX_UNSOLICITED)
        self._failure: TransportError | None = None

    @property
    def test_mode(self) -> bool:
        return isinstance(self.stream, LoopbackStream)

    @property
    def is_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    @property
    def failure(self) -> TransportError | None:
        """Fatal transport error that stopped the engine, if any."""
        return self._failure

    # Lifecycle

    def start(self) -> None:
        if self.is_running:
            return
        self._failure = None
        self._worker_task = asyncio.create_task(self._worker(), name=f"teletask-engine-{self.endpoint}")
        logger.debug("Execution engine started", extra={"endpoint": self.endpoint, "test_mode": self.test_mode})

    async def stop(self) -> None:
        """Cancel the worker and fail every exchange still waiting."""
        if self._worker_task and not self._worker_task.done():
            _ = self._worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker_task
        self._worker_task = None
        self._fail_pending(TransportError("engine_stopped", *self._address()))
        self.reassembler.reset()
        self._unsolicited.clear()
        logger.debug("Execution engine stopped", extra={"endpoint": self.endpoint})

    # Submission

    async def submit(self, exchange: PendingExchange) -> ExchangeResult:
        """Queue an exchange and wait for its result.

        Raises:
            TransportError: If the engine is stopped or the connection failed
            NoResponseError: If an ACK/RESPONSE exchange hit its deadline
        """
        if self._failure is not None:
            raise TransportError(f"connection_failed: {self._failure.reason}", *self._address()) from self._failure
        if not self.is_running:
            raise TransportError("engine_not_running", *self._address())

        exchange.correlation_id = exchange.correlation_id or ensure_correlation_id()
        exchange.future = asyncio.get_running_loop().create_future()
        await self._queue.put(exchange)
        return await exchange.future

    async def execute_ack(self, command: Command, frame: bytes) -> ExchangeResult:
        return await self.submit(PendingExchange.ack(command, frame, self.timeouts.request_timeout_seconds))

    async def execute_query(self, command: Command, frame: bytes, matcher: FrameMatcher) -> Frame:
        result = await self.submit(
            PendingExchange.response(command, frame, matcher, self.timeouts.request_timeout_seconds),
        )
        if result.response is None:
            raise NoResponseError(command.name, self.timeouts.request_timeout_seconds)
        return result.response

    async def drain(self) -> list[Frame]:
        """Collect the EVENT frames currently available on the stream."""
        result = await self.submit(PendingExchange.drain(self.timeouts.drain_timeout_seconds))
        return result.events

    def inject_event(self, function: Function, number: int, state: LogicalState) -> bytes:
        """Queue a synthetic EVENT frame (test mode only)."""
        if not isinstance(self.stream, LoopbackStream):
            msg = "inject_event() requires test mode"
            raise RuntimeError(msg)
        return self.stream.inject_event(function, number, state)

    # Worker

    async def _worker(self) -> None:
        try:
            while True:
                exchange = await self._queue.get()
                # Left set on cancellation so stop() can fail it
                self._current = exchange
                try:
                    if exchange.future is None or exchange.future.done():
                        continue  # caller gave up before execution
                    with correlation_context(exchange.correlation_id or None):
                        await self._execute(exchange)
                except TransportError as e:
                    logger.error(
                        "✗ Transport failure, engine stopping",
                        extra={"endpoint": self.endpoint, "reason": e.reason, "exchange": exchange.name},
                    )
                    metrics.record_connection_state(self.endpoint, "failed")
                    self._failure = e
                    self._fail_pending(e)
                    return
                finally:
                    self._queue.task_done()
                self._current = None
        except asyncio.CancelledError:
            logger.debug("Engine worker cancelled (clean shutdown)")
            raise

    async def _execute(self, exchange: PendingExchange) -> None:
        start = time.monotonic()
        deadline = start + exchange.timeout
        result = ExchangeResult(correlation_id=exchange.correlation_id)

        if exchange.frame:
            if not await self.stream.send(exchange.frame):
                raise TransportError("send_failed", *self._address())
            metrics.record_frame_sent(self.endpoint, exchange.name)

        if exchange.terminal is Terminal.IDLE and self._unsolicited:
            result.events.extend(self._unsolicited)
            self._unsolicited.clear()

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            data = await self.stream.poll(min(self.timeouts.poll_interval_seconds, remaining))
            if data:
                self._route(exchange, self.reassembler.feed(data), result)
            elif exchange.terminal is Terminal.IDLE and self.reassembler.is_idle:
                self._complete(exchange, result, start, "idle")
                return
            if self._is_done(exchange, result):
                self._complete(exchange, result, start, "ok")
                return

        if exchange.terminal is Terminal.IDLE:
            # Continuous traffic: hand over what we have, overflow stays for the next drain
            self._complete(exchange, result, start, "deadline")
            return

        elapsed = time.monotonic() - start
        metrics.record_exchange(self.endpoint, exchange.name, "timeout", elapsed)
        logger.warning(
            "✗ No response to %s within %.2fs",
            exchange.name,
            exchange.timeout,
            extra={"exchange": exchange.name, "timeout": exchange.timeout, "endpoint": self.endpoint},
        )
        self._resolve(exchange, error=NoResponseError(exchange.name, exchange.timeout))

    def _route(self, exchange: PendingExchange, items: list[StreamItem], result: ExchangeResult) -> None:
        for item in items:
            if isinstance(item, Acknowledge):
                metrics.record_frame_received(self.endpoint, "ack")
                result.acknowledged = True
                continue

            try:
                frame = self.codec.parse_frame(item)
            except ChecksumMismatchError as e:
                metrics.record_decode_error(self.endpoint, "checksum")
                logger.warning(
                    "Checksum mismatch, frame discarded: %s",
                    item.hex(" "),
                    extra={"expected": e.expected, "actual": e.actual},
                )
                continue
            except DecodeError as e:
                metrics.record_decode_error(self.endpoint, e.reason.split(" ", 1)[0])
                logger.warning("Undecodable frame discarded: %s", item.hex(" "), extra={"reason": e.reason})
                continue

            metrics.record_frame_received(self.endpoint, frame.command.name)
            if (
                exchange.terminal is Terminal.RESPONSE
                and result.response is None
                and exchange.matcher is not None
                and exchange.matcher(frame)
            ):
                result.response = frame
            elif frame.command is Command.EVENT:
                if exchange.terminal is Terminal.IDLE:
                    result.events.append(frame)
                else:
                    self._buffer_unsolicited(frame)
            else:
                logger.debug(
                    "Discarding unmatched %s frame: %s",
                    frame.command.name,
                    frame.raw.hex(" "),
                    extra={"exchange": exchange.name},
                )

    def _buffer_unsolicited(self, frame: Frame) -> None:
        if len(self._unsolicited) == MAX_UNSOLICITED:
            dropped = self._unsolicited[0]
            logger.warning(
                "Unsolicited buffer full, dropping oldest EVENT: %s",
                dropped.raw.hex(" "),
                extra={"endpoint": self.endpoint, "buffered": MAX_UNSOLICITED},
            )
        self._unsolicited.append(frame)

    @staticmethod
    def _is_done(exchange: PendingExchange, result: ExchangeResult) -> bool:
        if exchange.terminal is Terminal.ACK:
            return result.acknowledged
        if exchange.terminal is Terminal.RESPONSE:
            return result.response is not None
        return False

    def _complete(self, exchange: PendingExchange, result: ExchangeResult, start: float, outcome: str) -> None:
        result.elapsed = time.monotonic() - start
        if exchange.terminal is not Terminal.IDLE:
            metrics.record_exchange(self.endpoint, exchange.name, outcome, result.elapsed)
            logger.debug(
                "✓ %s completed in %.1fms",
                exchange.name,
                result.elapsed * 1000,
                extra={"exchange": exchange.name, "elapsed_ms": result.elapsed * 1000},
            )
        self._resolve(exchange, result=result)

    @staticmethod
    def _resolve(
        exchange: PendingExchange,
        result: ExchangeResult | None = None,
        error: BaseException | None = None,
    ) -> None:
        future = exchange.future
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result or ExchangeResult())

    def _fail_pending(self, error: TransportError) -> None:
        if self._current is not None:
            self._resolve(self._current, error=TransportError(error.reason, error.host, error.port))
        while not self._queue.empty():
            exchange = self._queue.get_nowait()
            self._resolve(exchange, error=TransportError(error.reason, error.host, error.port))
            self._queue.task_done()

    def _address(self) -> tuple[str, int]:
        host = getattr(self.stream, "host", "")
        port = getattr(self.stream, "port", 0)
        return host, port
