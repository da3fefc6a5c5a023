#!/usr/bin/env python3
"""
LIFX Configuration

Configuration file and device address handling for lifxc.

The config file is TOML:

    default_device = "desk"

    [[devices]]
    alias = "desk"
    address = "192.168.1.40"

    [[devices]]
    alias = "lamp"
    address = "192.168.1.41:56700"
"""

import ipaddress
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from lifx_protocol import LIFX_PORT
from lifx_transport import Address

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Invalid configuration or unresolvable device name."""


def parse_address(raw: str) -> Optional[Address]:
    """
    Parse "host:port", "[v6host]:port" or a bare IP address (default port 56700).

    Returns None when raw is not an IP address.
    """
    raw = raw.strip()
    try:
        return (str(ipaddress.ip_address(raw)), LIFX_PORT)
    except ValueError:
        pass

    host, sep, port = raw.rpartition(':')
    if not sep or not port.isdigit():
        return None
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
        version = 6
    else:
        version = 4
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if ip.version != version or not 0 < int(port) <= 0xFFFF:
        return None
    return (str(ip), int(port))


def config_path() -> Path:
    """Location of the config file, honoring LIFXC_CONFIG and XDG_CONFIG_HOME."""
    override = os.environ.get('LIFXC_CONFIG')
    if override:
        return Path(override)
    base = os.environ.get('XDG_CONFIG_HOME') or Path.home() / '.config'
    return Path(base) / 'lifxc' / 'config.toml'


@dataclass
class DeviceAlias:
    alias: str
    address: Address


@dataclass
class Config:
    default_device: Optional[Address] = None
    devices: list[DeviceAlias] = field(default_factory=list)

    def find_alias(self, alias: str) -> Optional[Address]:
        for device in self.devices:
            if device.alias == alias:
                return device.address
        return None

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build and validate a Config from parsed TOML."""
        devices = []
        seen = set()
        for entry in data.get('devices', []):
            try:
                alias = entry['alias']
                raw_address = entry['address']
            except (KeyError, TypeError) as e:
                raise ConfigError("Each device needs an 'alias' and an 'address'.") from e
            if alias in seen:
                raise ConfigError(f"Device alias '{alias}' is used multiple times.")
            seen.add(alias)
            address = parse_address(str(raw_address))
            if address is None:
                raise ConfigError(f"Device '{alias}' has an invalid IP address: {raw_address}")
            devices.append(DeviceAlias(alias, address))

        config = cls(devices=devices)

        default = data.get('default_device')
        if default is not None:
            config.default_device = config.find_alias(default) or parse_address(str(default))
            if config.default_device is None:
                raise ConfigError("Default device is neither a valid IP address or alias.")

        return config

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'Config':
        """Load the config file. A missing file gives an empty config."""
        path = path or config_path()
        try:
            with open(path, 'rb') as f:
                data = tomllib.load(f)
        except FileNotFoundError:
            logger.debug("No config file at %s", path)
            return cls()
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Unable to parse configuration file {path}: {e}") from e

        logger.debug("Loaded config from %s", path)
        return cls.from_dict(data)


def resolve_device(config: Config, name: Optional[str]) -> Address:
    """
    Turn a device alias or address into a socket address.

    With no name, falls back to the configured default device.
    """
    if name:
        address = config.find_alias(name) or parse_address(name)
        if address is None:
            raise ConfigError("Device is neither a valid IP address or alias.")
        return address
    if config.default_device is not None:
        return config.default_device
    raise ConfigError("No device address specified.")
