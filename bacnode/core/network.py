"""Host address resolution for the local device."""

from __future__ import annotations

import ipaddress
import socket

from bacnode.core.errors import ConfigError

DEFAULT_PREFIX_LENGTH = 24


def get_ip() -> str:
    """Return the IPv4 address of the interface used for outgoing traffic.

    A UDP connect selects the route without sending any datagram.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("10.255.255.255", 1))
            ip: str = s.getsockname()[0]
            return ip
    except OSError as exc:
        raise ConfigError(f"Could not resolve the local IP address: {exc}") from exc


def get_broadcast_address(ip: str, prefix_length: int = DEFAULT_PREFIX_LENGTH) -> str:
    try:
        network = ipaddress.IPv4Network(f"{ip}/{prefix_length}", strict=False)
    except ValueError as exc:
        raise ConfigError(f"Invalid IPv4 address '{ip}': {exc}") from exc
    return str(network.broadcast_address)
