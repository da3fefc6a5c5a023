#!/usr/bin/env python3
"""
LIFX UDP Transport

asyncio datagram endpoint shared by device connections and discovery.
Received datagrams are queued for awaiting callers, and socket failures are
raised as NetworkError: send errors from send(), everything else from the
next receive().
"""

import asyncio
import logging
from typing import Optional

from lifx_protocol import NetworkError

logger = logging.getLogger(__name__)

Address = tuple[str, int]


class DatagramQueue(asyncio.DatagramProtocol):
    """UDP protocol handler that queues received datagrams for awaiting callers."""

    def __init__(self) -> None:
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._sending = False
        self._send_error: Optional[Exception] = None
        self._failed = False
        self._error: Optional[Exception] = None

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.transport = transport
        logger.debug("UDP endpoint bound to %s", transport.get_extra_info("sockname"))

    def datagram_received(self, data: bytes, addr: Address) -> None:
        if self._failed:
            logger.debug("Dropping %d bytes from %s after socket failure", len(data), addr)
            return
        logger.debug("Received %d bytes from %s", len(data), addr)
        self._queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        # transport.sendto() reports its own failures here, synchronously
        if self._sending:
            self._send_error = exc
            return
        logger.error("UDP socket error: %s", exc)
        self._fail(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            logger.error("UDP endpoint lost: %s", exc)
        else:
            logger.debug("UDP endpoint closed")
        self._fail(exc or ConnectionError("Socket closed"))

    def _fail(self, exc: Exception) -> None:
        # Only the first failure is kept; it follows any datagrams already queued
        if self._failed:
            return
        self._failed = True
        self._queue.put_nowait(exc)

    async def receive(self) -> tuple[bytes, Address]:
        """Wait for the next datagram. Raises NetworkError on socket failure."""
        if self._error is not None:
            raise NetworkError(f"Receive failed: {self._error}") from self._error
        item = await self._queue.get()
        if isinstance(item, Exception):
            self._error = item
            raise NetworkError(f"Receive failed: {item}") from item
        return item

    def send(self, data: bytes, addr: Address) -> None:
        """Send one datagram. Raises NetworkError on socket failure."""
        if self.transport is None or self.transport.is_closing():
            raise NetworkError("Socket is closed")

        self._send_error = None
        self._sending = True
        try:
            self.transport.sendto(data, addr)
        finally:
            self._sending = False

        exc = self._send_error
        if exc is not None:
            self._send_error = None
            raise NetworkError(f"Send to {addr[0]}:{addr[1]} failed: {exc}") from exc
        logger.debug("Sent %d bytes to %s", len(data), addr)

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()


async def open_endpoint(broadcast: bool = False) -> DatagramQueue:
    """
    Bind a UDP endpoint to an ephemeral local port.

    Args:
        broadcast: Allow sending to broadcast addresses

    Returns:
        Connected DatagramQueue protocol
    """
    loop = asyncio.get_running_loop()
    try:
        _, protocol = await loop.create_datagram_endpoint(
            DatagramQueue,
            local_addr=("0.0.0.0", 0),
            allow_broadcast=broadcast,
        )
    except OSError as e:
        raise NetworkError(f"Unable to bind UDP socket: {e}") from e
    return protocol
