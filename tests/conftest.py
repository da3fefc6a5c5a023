#!/usr/bin/env python3
"""pytest fixtures"""

import asyncio

import pytest_asyncio

from lifx_protocol import create_lifx_header


def make_frame(message_type: int, payload: bytes = b'', sequence: int = 0) -> bytes:
    """Build a frame the way a device would send it."""
    return create_lifx_header(
        message_type=message_type,
        sequence=sequence,
        payload_size=len(payload)
    ) + payload


class FakeDevice(asyncio.DatagramProtocol):
    """Loopback stand-in for a LIFX bulb; answers each frame with respond(frame)."""

    def __init__(self, respond):
        self.respond = respond
        self.received = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.received.append(data)
        for reply in self.respond(data):
            self.transport.sendto(reply, addr)

    @property
    def address(self):
        return self.transport.get_extra_info('sockname')[:2]


@pytest_asyncio.fixture
async def fake_device():
    """Factory that starts fake devices on 127.0.0.1 and closes them afterwards."""
    loop = asyncio.get_running_loop()
    devices = []

    async def start(respond=lambda frame: []):
        _, device = await loop.create_datagram_endpoint(
            lambda: FakeDevice(respond),
            local_addr=('127.0.0.1', 0),
        )
        devices.append(device)
        return device

    yield start

    for device in devices:
        device.transport.close()
