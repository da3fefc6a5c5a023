#!/usr/bin/env python3
"""
LIFX Device Controller

Request/response exchange with a single LIFX device over UDP.
Supports power, label and color queries and changes.

A connection allows one request in flight at a time. Replies are matched to
requests by arrival order only: the sequence number, source and target of a
reply are not checked against the request that caused it.

Protocol documentation: https://lan.developer.lifx.com/docs/packet-contents
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from lifx_protocol import (
    # Messages
    Message,
    GetPower,
    SetPower,
    StatePower,
    GetLabel,
    SetLabel,
    StateLabel,
    GetColor,
    SetColor,
    LightState,
    Response,

    # Errors
    OperationTimeoutError,
    UnexpectedResponseError,
)
from lifx_transport import Address, DatagramQueue, open_endpoint

logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# Timeouts
# =============================================================================

async def with_timeout(operation: Awaitable[T], timeout_ms: int) -> T:
    """
    Await an operation, abandoning it once timeout_ms milliseconds pass.

    Raises OperationTimeoutError if the deadline elapses first.
    """
    try:
        return await asyncio.wait_for(operation, timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError("Operation timed out.") from e


# =============================================================================
# Network Communication
# =============================================================================

class LightConnection:
    """Connection to one LIFX device."""

    def __init__(self, endpoint: DatagramQueue, address: Address):
        self.endpoint = endpoint
        self.address = address
        self.sequence = 0

    @classmethod
    async def open(cls, address: Address) -> 'LightConnection':
        """Bind an ephemeral UDP port for talking to the device at address."""
        endpoint = await open_endpoint()
        return cls(endpoint, address)

    async def __aenter__(self) -> 'LightConnection':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.endpoint.close()

    def _next_sequence(self) -> int:
        """Get next sequence number (wraps at 255)."""
        seq = self.sequence
        self.sequence = (self.sequence + 1) % 256
        return seq

    async def send_message(self, message: Message, require_ack: bool = False) -> None:
        """
        Send a message to the device.

        Args:
            message: Message to send
            require_ack: Wait for the device to acknowledge the message
        """
        sequence = self._next_sequence()
        packet = message.encode(ack_required=require_ack, sequence=sequence)
        logger.debug("-> %s seq=%d %s", self.address, sequence, message)
        self.endpoint.send(packet, self.address)

        if require_ack:
            # Any frame that decodes counts as the acknowledgement
            await self._receive_response(sequence)

    async def _receive_response(self, sequence: Optional[int] = None) -> Response:
        data, addr = await self.endpoint.receive()
        response = Response.decode(data)
        logger.debug("<- %s seq=%d %s", addr, response.sequence, response.message)
        if sequence is not None and response.sequence != sequence:
            logger.debug("Reply sequence %d does not match request %d", response.sequence, sequence)
        return response

    async def _request(self, message: Message, expected: type) -> Message:
        sequence = self.sequence
        await self.send_message(message, require_ack=False)
        response = await self._receive_response(sequence)
        if not isinstance(response.message, expected):
            raise UnexpectedResponseError(expected.__name__, response.message)
        return response.message

    async def get_power(self) -> bool:
        """Get device power state."""
        state = await self._request(GetPower(), StatePower)
        return state.power

    async def set_power(self, power: bool) -> None:
        """
        Set device power state.

        Args:
            power: True for on, False for off
        """
        await self.send_message(SetPower(power), require_ack=True)

    async def get_label(self) -> str:
        """Get device label."""
        state = await self._request(GetLabel(), StateLabel)
        return state.label

    async def set_label(self, label: str) -> None:
        """
        Set device label.

        Labels longer than 32 bytes of UTF-8 are truncated.
        """
        await self.send_message(SetLabel(label), require_ack=True)

    async def get_state(self) -> LightState:
        """Get device color, power and label."""
        return await self._request(GetColor(), LightState)

    async def set_color(self, hue: int, saturation: int, brightness: int,
                        kelvin: int, duration: int = 0) -> None:
        """
        Set device color.

        Args:
            hue: 0-65535 (maps to 0-360 degrees)
            saturation: 0-65535 (maps to 0-100%)
            brightness: 0-65535 (maps to 0-100%)
            kelvin: Color temperature
            duration: Transition time in milliseconds
        """
        await self.send_message(
            SetColor(hue, saturation, brightness, kelvin, duration),
            require_ack=True
        )
