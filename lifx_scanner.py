#!/usr/bin/env python3
"""
LIFX Device Scanner

Finds LIFX devices on the local network by broadcasting a single GetService
(packet 2) and reporting every distinct address that replies.

Protocol documentation: https://lan.developer.lifx.com/docs/packet-contents
"""

import asyncio
import logging

from lifx_protocol import LIFX_PORT, GetService, NetworkError
from lifx_transport import Address, DatagramQueue, open_endpoint

logger = logging.getLogger(__name__)

BROADCAST_ADDRESS = '255.255.255.255'


class DeviceStream:
    """
    Async iterator over the addresses of responding devices.

    Any reply counts, whatever it contains. Each address is produced once;
    the stream never ends on its own unless the socket fails, so callers
    bound it with a timeout or stop iterating.
    """

    def __init__(self, endpoint: DatagramQueue):
        self.endpoint = endpoint
        self.seen: set[Address] = set()
        self._done = False

    @classmethod
    async def open(cls, broadcast_address: str = BROADCAST_ADDRESS,
                   port: int = LIFX_PORT) -> 'DeviceStream':
        """
        Bind a broadcast socket and send the discovery request.

        Args:
            broadcast_address: Address the GetService request is sent to
            port: LIFX UDP port (default 56700)
        """
        endpoint = await open_endpoint(broadcast=True)
        try:
            endpoint.send(GetService().encode(ack_required=False, sequence=0), (broadcast_address, port))
        except NetworkError:
            endpoint.close()
            raise
        logger.debug("Sent GetService to %s:%d", broadcast_address, port)
        return cls(endpoint)

    def __aiter__(self) -> 'DeviceStream':
        return self

    async def __anext__(self) -> Address:
        while not self._done:
            try:
                _, addr = await self.endpoint.receive()
            except NetworkError as e:
                logger.debug("Discovery stream ended: %s", e)
                self._done = True
                break
            if addr in self.seen:
                logger.debug("Skipping repeat reply from %s", addr)
                continue
            self.seen.add(addr)
            return addr
        raise StopAsyncIteration

    async def __aenter__(self) -> 'DeviceStream':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.endpoint.close()


async def discover(timeout_ms: int = 1000, broadcast_address: str = BROADCAST_ADDRESS,
                   port: int = LIFX_PORT) -> list[Address]:
    """
    Collect the addresses of devices that answer within timeout_ms milliseconds.

    Returns:
        Addresses in the order they replied
    """
    found: list[Address] = []

    async def collect(stream: DeviceStream) -> None:
        async for addr in stream:
            found.append(addr)

    async with await DeviceStream.open(broadcast_address, port) as stream:
        try:
            await asyncio.wait_for(collect(stream), timeout_ms / 1000)
        except asyncio.TimeoutError:
            pass

    logger.debug("Discovery found %d device(s)", len(found))
    return found
