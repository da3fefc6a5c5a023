#!/usr/bin/env python3
"""
LIFX LAN Protocol Library

Message types, frame encoding and frame decoding for LIFX device communication.
Every frame is a 36-byte header followed by a type-specific payload, with all
integers little-endian.

Protocol documentation: https://lan.developer.lifx.com/docs/packet-contents
"""

import struct
from dataclasses import dataclass
from typing import ClassVar, Optional


# =============================================================================
# Protocol Constants
# =============================================================================

LIFX_PORT = 56700
PROTOCOL_NUMBER = 1024

HEADER_SIZE = 36
LABEL_SIZE = 32

# Every frame we send carries this source identifier
SOURCE_ID = 2


# =============================================================================
# Message Types
# =============================================================================

# Discovery
GETSERVICE_TYPE = 0x02

# Device
GETPOWER_TYPE = 0x14
SETPOWER_TYPE = 0x15
STATEPOWER_TYPE = 0x16
GETLABEL_TYPE = 0x17
SETLABEL_TYPE = 0x18
STATELABEL_TYPE = 0x19

# Light
GETCOLOR_TYPE = 0x65
SETCOLOR_TYPE = 0x66
LIGHTSTATE_TYPE = 0x6B

UNKNOWN_TYPE = 0xFFFF


# =============================================================================
# Errors
# =============================================================================

class LIFXError(Exception):
    """Base exception for LIFX errors."""


class MalformedPacketError(LIFXError):
    """A frame or payload received from a device could not be decoded."""

    def __init__(self, reason: str = "Bad packet received from device."):
        super().__init__(reason)


class UnexpectedResponseError(LIFXError):
    """A device answered with a message other than the one awaited."""

    def __init__(self, expected: str, received: 'Message'):
        super().__init__(
            f"Unexpected packet received from device "
            f"(expected {expected}, got {type(received).__name__})."
        )
        self.expected = expected
        self.received = received


class NetworkError(LIFXError):
    """Socket bind, send or receive failure."""


class OperationTimeoutError(LIFXError):
    """An operation did not complete before its deadline."""


# =============================================================================
# Helpers
# =============================================================================

def _check_range(name: str, value: int, maximum: int) -> None:
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} must be between 0 and {maximum}, got {value}")


def encode_label(label: str) -> bytes:
    """
    Encode a label into its fixed 32-byte field.

    Labels are zero-padded, and labels of 32 bytes or more are silently
    truncated. Only labels of at most 31 bytes survive a round trip.
    """
    return label.encode('utf-8')[:LABEL_SIZE].ljust(LABEL_SIZE, b'\x00')


def decode_label(field: bytes) -> str:
    """Read a null-terminated UTF-8 string from a fixed-width field."""
    end = field.find(b'\x00')
    if end < 0:
        raise MalformedPacketError("Label is not null-terminated.")
    try:
        return field[:end].decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedPacketError("Label is not valid UTF-8.") from e


def create_lifx_header(
    message_type: int,
    target: Optional[int] = None,
    ack_required: bool = False,
    sequence: int = 0,
    payload_size: int = 0
) -> bytes:
    """
    Create a LIFX protocol header.

    Header structure (36 bytes total):
    - Frame Header (8 bytes)
    - Frame Address (16 bytes)
    - Protocol Header (12 bytes)

    Args:
        message_type: Packet type number
        target: Device identifier, or None to address every device
        ack_required: Request acknowledgement
        sequence: Sequence number (0-255)
        payload_size: Size of payload in bytes

    Returns:
        36-byte header as bytes
    """
    size = HEADER_SIZE + payload_size

    # Frame Header (8 bytes)
    # Bytes 0-1: size (uint16)
    # Bytes 2-3: protocol (bits 0-11) | addressable (bit 12) | tagged (bit 13)
    # Bytes 4-7: source (uint32)
    protocol_and_flags = PROTOCOL_NUMBER
    protocol_and_flags |= (1 << 12)
    if target is not None:
        protocol_and_flags |= (1 << 13)

    frame_header = struct.pack('<HHI', size, protocol_and_flags, SOURCE_ID)

    # Frame Address (16 bytes)
    # Bytes 8-15: target (uint64)
    # Bytes 16-21: reserved
    # Byte 22: ack_required (bit 1)
    # Byte 23: sequence (uint8)
    flags_byte = 0x02 if ack_required else 0x00
    frame_address = (
        struct.pack('<Q', target or 0)
        + b'\x00' * 6
        + struct.pack('<BB', flags_byte, sequence)
    )

    # Protocol Header (12 bytes)
    # Bytes 24-31: reserved
    # Bytes 32-33: type (uint16)
    # Bytes 34-35: reserved
    protocol_header = struct.pack('<QHH', 0, message_type, 0)

    return frame_header + frame_address + protocol_header


# =============================================================================
# Messages
# =============================================================================

@dataclass(frozen=True)
class Message:
    """Base class for every logical LIFX message."""

    TYPE: ClassVar[int] = UNKNOWN_TYPE

    @property
    def message_type(self) -> int:
        return self.TYPE

    def payload(self) -> bytes:
        """Outbound payload bytes. Requests without fields and state reports send none."""
        return b''

    def encode(self, ack_required: bool = False, sequence: int = 0,
               target: Optional[int] = None) -> bytes:
        """
        Encode this message into a complete frame.

        Args:
            ack_required: Ask the device to acknowledge the frame
            sequence: Sequence number (0-255)
            target: Device identifier; sets the tagged bit when given
        """
        _check_range('sequence', sequence, 0xFF)
        payload = self.payload()
        header = create_lifx_header(
            message_type=self.message_type,
            target=target,
            ack_required=ack_required,
            sequence=sequence,
            payload_size=len(payload)
        )
        return header + payload

    @staticmethod
    def decode(message_type: int, payload: bytes) -> 'Message':
        """
        Decode a payload into a logical message.

        Unrecognized types decode to Unknown. Raises MalformedPacketError when
        a known type's payload has the wrong size or holds a bad label.
        """
        decoder = _DECODERS.get(message_type)
        if decoder is None:
            return Unknown(message_type)
        return decoder(payload)


@dataclass(frozen=True)
class GetService(Message):
    TYPE: ClassVar[int] = GETSERVICE_TYPE


@dataclass(frozen=True)
class GetPower(Message):
    TYPE: ClassVar[int] = GETPOWER_TYPE


@dataclass(frozen=True)
class SetPower(Message):
    TYPE: ClassVar[int] = SETPOWER_TYPE

    power: bool

    def payload(self) -> bytes:
        return struct.pack('<H', 0xFFFF if self.power else 0)


@dataclass(frozen=True)
class StatePower(Message):
    TYPE: ClassVar[int] = STATEPOWER_TYPE
    PAYLOAD_SIZE: ClassVar[int] = 2

    power: bool

    @classmethod
    def from_payload(cls, payload: bytes) -> 'StatePower':
        (level,) = struct.unpack('<H', payload)
        return cls(power=level > 0)


@dataclass(frozen=True)
class GetLabel(Message):
    TYPE: ClassVar[int] = GETLABEL_TYPE


@dataclass(frozen=True)
class SetLabel(Message):
    TYPE: ClassVar[int] = SETLABEL_TYPE

    label: str

    def payload(self) -> bytes:
        return encode_label(self.label)


@dataclass(frozen=True)
class StateLabel(Message):
    TYPE: ClassVar[int] = STATELABEL_TYPE
    PAYLOAD_SIZE: ClassVar[int] = LABEL_SIZE

    label: str

    @classmethod
    def from_payload(cls, payload: bytes) -> 'StateLabel':
        return cls(label=decode_label(payload))


@dataclass(frozen=True)
class GetColor(Message):
    TYPE: ClassVar[int] = GETCOLOR_TYPE


@dataclass(frozen=True)
class SetColor(Message):
    """
    Set the color of a light.

    Hue, saturation and brightness use the full 16-bit scale (0-65535),
    kelvin is the color temperature and duration the transition time in
    milliseconds.
    """

    TYPE: ClassVar[int] = SETCOLOR_TYPE

    hue: int
    saturation: int
    brightness: int
    kelvin: int
    duration: int = 0

    def __post_init__(self) -> None:
        for name in ('hue', 'saturation', 'brightness', 'kelvin'):
            _check_range(name, getattr(self, name), 0xFFFF)
        _check_range('duration', self.duration, 0xFFFFFFFF)

    def payload(self) -> bytes:
        return struct.pack(
            '<BHHHHI',
            0,  # reserved
            self.hue,
            self.saturation,
            self.brightness,
            self.kelvin,
            self.duration
        )


@dataclass(frozen=True)
class LightState(Message):
    TYPE: ClassVar[int] = LIGHTSTATE_TYPE
    PAYLOAD_SIZE: ClassVar[int] = 52

    hue: int
    saturation: int
    brightness: int
    kelvin: int
    power: bool
    label: str

    def __post_init__(self) -> None:
        for name in ('hue', 'saturation', 'brightness', 'kelvin'):
            _check_range(name, getattr(self, name), 0xFFFF)

    @classmethod
    def from_payload(cls, payload: bytes) -> 'LightState':
        # hue, saturation, brightness, kelvin, reserved(2), power, label(32), reserved(8)
        hue, saturation, brightness, kelvin = struct.unpack('<HHHH', payload[0:8])
        (power,) = struct.unpack('<H', payload[10:12])
        label = decode_label(payload[12:12 + LABEL_SIZE])
        return cls(
            hue=hue,
            saturation=saturation,
            brightness=brightness,
            kelvin=kelvin,
            power=power > 0,
            label=label
        )


@dataclass(frozen=True)
class Unknown(Message):
    """Any message type this library does not model."""

    original_type: int = UNKNOWN_TYPE

    @property
    def message_type(self) -> int:
        return self.original_type


def _fixed_size(cls):
    def decode(payload: bytes) -> Message:
        if len(payload) != cls.PAYLOAD_SIZE:
            raise MalformedPacketError(
                f"{cls.__name__} payload must be {cls.PAYLOAD_SIZE} bytes, got {len(payload)}."
            )
        return cls.from_payload(payload)
    return decode


_DECODERS = {
    STATEPOWER_TYPE: _fixed_size(StatePower),
    STATELABEL_TYPE: _fixed_size(StateLabel),
    LIGHTSTATE_TYPE: _fixed_size(LightState),
}


# =============================================================================
# Responses
# =============================================================================

@dataclass(frozen=True)
class Response:
    """A frame received from a device."""

    message_type: int
    payload: bytes
    source: int
    target: int
    sequence: int
    message: Message

    @property
    def serial(self) -> str:
        """Device serial (first 6 bytes of the target) as colon-separated hex."""
        return ':'.join(f'{b:02x}' for b in struct.pack('<Q', self.target)[0:6])

    @classmethod
    def decode(cls, data: bytes) -> 'Response':
        """
        Parse a received frame.

        Raises MalformedPacketError when the buffer is too short, the declared
        size exceeds the buffer, the protocol marker is wrong, or the payload
        does not decode. Bytes past the declared size are ignored.
        """
        if len(data) < 3:
            raise MalformedPacketError("Packet too short.")

        (size,) = struct.unpack('<H', data[0:2])
        if size > len(data):
            raise MalformedPacketError(
                f"Packet declares {size} bytes but only {len(data)} were received."
            )
        if size < HEADER_SIZE:
            raise MalformedPacketError(f"Packet declares {size} bytes, shorter than its header.")

        # Protocol 1024: low byte zero, low bits of the high byte equal to 4
        if data[2] != 0 or (data[3] & 0x07) != 0x04:
            raise MalformedPacketError("Packet has an unsupported protocol number.")

        (source,) = struct.unpack('<I', data[4:8])
        (target,) = struct.unpack('<Q', data[8:16])
        sequence = data[23]
        (message_type,) = struct.unpack('<H', data[32:34])
        payload = bytes(data[HEADER_SIZE:size])

        return cls(
            message_type=message_type,
            payload=payload,
            source=source,
            target=target,
            sequence=sequence,
            message=Message.decode(message_type, payload)
        )
