#!/usr/bin/env python3
"""
lifxc - Command-line utility for controlling LIFX smart lights

Usage:
    lifxc discover                          # List devices on the local network
    lifxc power -d desk                     # Print power state
    lifxc power -d desk --set on            # Turn light on
    lifxc toggle -d 192.168.1.40            # Flip power state
    lifxc label -d desk --set "Desk Lamp"   # Rename a light
    lifxc brightness -d desk --set 40       # Set brightness (percent)
    lifxc color -d desk --hue 240 --saturation 100
    lifxc color -d desk --kelvin 2700 --duration 1000

Devices are given as an alias from the config file, an IP address, or
ip:port. Without -d, the LIFXC_DEVICE environment variable or the config
file's default_device is used.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from lifx_config import Config, ConfigError, resolve_device
from lifx_control import LightConnection, with_timeout
from lifx_protocol import LIFXError
from lifx_scanner import discover

logger = logging.getLogger('lifxc')


# =============================================================================
# Unit Conversion
# =============================================================================

def _to_wire(value: float, scale: float) -> int:
    return max(0, min(int(value * 0x10000 / scale), 0xFFFF))


def hue_to_wire(degrees: float) -> int:
    """Convert hue in degrees (0-360) to the 16-bit wire scale."""
    return _to_wire(degrees, 360)


def percent_to_wire(percent: float) -> int:
    """Convert saturation or brightness in percent (0-100) to the 16-bit wire scale."""
    return _to_wire(percent, 100)


def hue_from_wire(value: int) -> float:
    return 360 * value / 0x10000


def percent_from_wire(value: int) -> float:
    return 100 * value / 0x10000


# =============================================================================
# Commands
# =============================================================================

async def cmd_discover(args: argparse.Namespace) -> int:
    addresses = await discover(args.timeout)
    for address in addresses:
        try:
            async with await LightConnection.open(address) as conn:
                state = await with_timeout(conn.get_state(), args.timeout)
            label = state.label
        except LIFXError as e:
            logger.info("No state from %s:%d: %s", address[0], address[1], e)
            label = '?'
        print(f"Found device: {label} {address[0]}:{address[1]}")
    return 0


async def cmd_label(conn: LightConnection, args: argparse.Namespace) -> int:
    if args.set is not None:
        await with_timeout(conn.set_label(args.set), args.timeout)
        print("Success")
    else:
        print(await with_timeout(conn.get_label(), args.timeout))
    return 0


async def cmd_power(conn: LightConnection, args: argparse.Namespace) -> int:
    if args.set is not None:
        await with_timeout(conn.set_power(args.set == 'on'), args.timeout)
    else:
        power = await with_timeout(conn.get_power(), args.timeout)
        print("on" if power else "off")
    return 0


async def cmd_toggle(conn: LightConnection, args: argparse.Namespace) -> int:
    power = await with_timeout(conn.get_power(), args.timeout)
    await with_timeout(conn.set_power(not power), args.timeout)
    return 0


async def cmd_brightness(conn: LightConnection, args: argparse.Namespace) -> int:
    state = await with_timeout(conn.get_state(), args.timeout)
    if args.set is None:
        print(f"{percent_from_wire(state.brightness):.1f}%")
        return 0

    await with_timeout(
        conn.set_color(state.hue, state.saturation, percent_to_wire(args.set),
                       state.kelvin, args.duration),
        args.timeout
    )
    return 0


async def cmd_color(conn: LightConnection, args: argparse.Namespace) -> int:
    state = await with_timeout(conn.get_state(), args.timeout)
    requested = (args.hue, args.saturation, args.brightness, args.kelvin)

    if all(value is None for value in requested):
        print(f"Hue: {hue_from_wire(state.hue):.1f}")
        print(f"Saturation: {percent_from_wire(state.saturation):.1f}%")
        print(f"Brightness: {percent_from_wire(state.brightness):.1f}%")
        print(f"Kelvin: {state.kelvin}")
        return 0

    hue = hue_to_wire(args.hue) if args.hue is not None else state.hue
    saturation = percent_to_wire(args.saturation) if args.saturation is not None else state.saturation
    brightness = percent_to_wire(args.brightness) if args.brightness is not None else state.brightness
    kelvin = args.kelvin if args.kelvin is not None else state.kelvin

    await with_timeout(
        conn.set_color(hue, saturation, brightness, kelvin, args.duration),
        args.timeout
    )
    return 0


DEVICE_COMMANDS = {
    'label': cmd_label,
    'power': cmd_power,
    'toggle': cmd_toggle,
    'brightness': cmd_brightness,
    'color': cmd_color,
}


async def run(args: argparse.Namespace, config: Config) -> int:
    if args.command == 'discover':
        return await cmd_discover(args)

    address = resolve_device(config, args.device)
    async with await LightConnection.open(address) as conn:
        return await DEVICE_COMMANDS[args.command](conn, args)


# =============================================================================
# Argument Parsing
# =============================================================================

def _kelvin(value: str) -> int:
    kelvin = int(value)
    if not 0 <= kelvin <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"kelvin must be between 0 and 65535, got {kelvin}")
    return kelvin


def _duration(value: str) -> int:
    duration = int(value)
    if not 0 <= duration <= 0xFFFFFFFF:
        raise argparse.ArgumentTypeError(f"duration must be a non-negative number of milliseconds, got {duration}")
    return duration


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lifxc',
        description='Command line utility for controlling LIFX smart lights',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', required=True, metavar='command')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '-t', '--timeout',
        type=int,
        default=1000,
        help='Timeout in milliseconds for each network operation (default: 1000)'
    )

    device = argparse.ArgumentParser(add_help=False, parents=[common])
    device.add_argument(
        '-d', '--device',
        default=os.environ.get('LIFXC_DEVICE'),
        help='Address or alias of device to control (default: $LIFXC_DEVICE)'
    )

    subparsers.add_parser(
        'discover', parents=[common],
        help='Discover devices on your local network'
    )

    label = subparsers.add_parser(
        'label', parents=[device],
        help='Get or set label of the specified device'
    )
    label.add_argument('--set', metavar='LABEL', help='Label to assign to device')

    power = subparsers.add_parser(
        'power', parents=[device],
        help='Get or set power state of the specified device'
    )
    power.add_argument('--set', choices=['on', 'off'], help='Power state to set device')

    subparsers.add_parser(
        'toggle', parents=[device],
        help='Toggle power state of the specified device'
    )

    brightness = subparsers.add_parser(
        'brightness', parents=[device],
        help='Get or set brightness of the specified device'
    )
    brightness.add_argument('--set', type=float, metavar='PERCENT',
                            help='Brightness (in percent) to set device')
    brightness.add_argument('--duration', type=_duration, default=0,
                            help='Duration (in milliseconds) of brightness transition')

    color = subparsers.add_parser(
        'color', parents=[device],
        help='Get or set color of the specified device'
    )
    color.add_argument('--hue', type=float, help='Hue (in degrees) to set device')
    color.add_argument('--saturation', type=float, help='Saturation (in percent) to set device')
    color.add_argument('--brightness', type=float, help='Brightness (in percent) to set device')
    color.add_argument('--kelvin', type=_kelvin, help='Color temperature (in kelvin) to set device')
    color.add_argument('--duration', type=_duration, default=0,
                       help='Duration (in milliseconds) of color transition')

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s'
    )

    try:
        config = Config.load()
        return asyncio.run(run(args, config))
    except (LIFXError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
