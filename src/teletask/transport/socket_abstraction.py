"""Asyncio TCP socket abstraction with deadlines and instrumentation."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

from teletask.transport.exceptions import TransportError

logger = logging.getLogger(__name__)


class ByteStream(Protocol):
    """Byte source/sink the execution engine reads from and writes to."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> bool: ...

    async def send(self, data: bytes) -> bool: ...

    async def poll(self, timeout: float) -> bytes: ...

    async def close(self) -> None: ...


class TCPConnection:
    """Async TCP connection to a central unit with timeouts and instrumentation."""

    def __init__(
        self,
        host: str,
        port: int,
        connect_timeout: float = 5.0,
        io_timeout: float = 1.5,
        max_read_size: int = 4096,
    ):
        """
        Initialize TCP connection parameters.

        Args:
            host: Central unit host
            port: Central unit port
            connect_timeout: Connection timeout in seconds
            io_timeout: Write (drain) timeout in seconds
            max_read_size: Maximum bytes to read in one operation
        """
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.max_read_size = max_read_size
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self._connected = False

    async def connect(self) -> bool:
        """
        Establish TCP connection with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        start_time = time.perf_counter()
        try:
            logger.info(
                "→ Connecting to %s:%d (timeout: %.1fs)",
                self.host,
                self.port,
                self.connect_timeout,
                extra={"host": self.host, "port": self.port, "timeout": self.connect_timeout},
            )
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self._connected = True
            logger.info(
                "✓ Connected to %s:%d in %.1fms",
                self.host,
                self.port,
                elapsed_ms,
                extra={"host": self.host, "port": self.port, "elapsed_ms": elapsed_ms},
            )
        except TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "✗ Connection to %s:%d timed out after %.1fms",
                self.host,
                self.port,
                elapsed_ms,
                extra={"host": self.host, "port": self.port, "elapsed_ms": elapsed_ms, "error": "timeout"},
            )
            return False
        except OSError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "✗ Connection to %s:%d failed after %.1fms",
                self.host,
                self.port,
                elapsed_ms,
                extra={"host": self.host, "port": self.port, "elapsed_ms": elapsed_ms, "error": str(e)},
            )
            return False
        else:
            return True

    async def send(self, data: bytes) -> bool:
        """
        Write data and flush with timeout.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._connected or not self.writer:
            logger.error(
                "Cannot send: not connected",
                extra={"host": self.host, "port": self.port},
            )
            return False

        start_time = time.perf_counter()
        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.io_timeout)
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(
                "Sent %d bytes to %s:%d in %.1fms: %s",
                len(data),
                self.host,
                self.port,
                elapsed_ms,
                data.hex(" "),
                extra={"bytes": len(data), "elapsed_ms": elapsed_ms},
            )
        except TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "✗ Send to %s:%d timed out after %.1fms",
                self.host,
                self.port,
                elapsed_ms,
                extra={"host": self.host, "port": self.port, "elapsed_ms": elapsed_ms, "error": "timeout"},
            )
            return False
        except OSError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "✗ Send to %s:%d failed after %.1fms",
                self.host,
                self.port,
                elapsed_ms,
                extra={"host": self.host, "port": self.port, "elapsed_ms": elapsed_ms, "error": str(e)},
            )
            return False
        else:
            return True

    async def poll(self, timeout: float) -> bytes:
        """
        Read whatever bytes arrive within ``timeout``.

        Args:
            timeout: Seconds to wait for data

        Returns:
            Received bytes, or ``b""`` when nothing arrived in time

        Raises:
            TransportError: If not connected, the peer closed the connection,
                or the socket failed
        """
        if not self._connected or not self.reader:
            raise TransportError("not_connected", self.host, self.port)

        try:
            data = await asyncio.wait_for(self.reader.read(self.max_read_size), timeout=timeout)
        except TimeoutError:
            return b""
        except OSError as e:
            self._connected = False
            logger.exception(
                "✗ Receive from %s:%d failed",
                self.host,
                self.port,
                extra={"host": self.host, "port": self.port, "error": str(e)},
            )
            raise TransportError(f"receive_failed: {e}", self.host, self.port) from e

        if not data:
            self._connected = False
            logger.warning(
                "Connection closed by %s:%d",
                self.host,
                self.port,
                extra={"host": self.host, "port": self.port},
            )
            raise TransportError("connection_closed", self.host, self.port)

        logger.debug(
            "Received %d bytes from %s:%d: %s",
            len(data),
            self.host,
            self.port,
            data.hex(" "),
            extra={"bytes": len(data)},
        )
        return data

    async def close(self) -> None:
        """Close the connection."""
        if self.writer:
            logger.info(
                "Closing connection to %s:%d",
                self.host,
                self.port,
                extra={"host": self.host, "port": self.port},
            )
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except (OSError, ConnectionError) as e:
                logger.warning(
                    "Error closing connection: %s",
                    e,
                    extra={"host": self.host, "port": self.port, "error": str(e), "error_type": type(e).__name__},
                )
            finally:
                self._connected = False
                self.writer = None
                self.reader = None

    @property
    def is_connected(self) -> bool:
        """Check if connection is active."""
        return self._connected

    def __repr__(self) -> str:
        """String representation."""
        status = "connected" if self._connected else "disconnected"
        return f"TCPConnection({self.host}:{self.port}, {status})"
