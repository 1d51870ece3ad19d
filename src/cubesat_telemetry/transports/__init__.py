"""Transport sessions: serial, BLE and WebSocket links behind one interface."""

from __future__ import annotations

from typing import Union

from ..config import BleConfig, SerialConfig, SocketConfig
from .base import SessionState, TransportSession
from .ble_link import BleSession, DiscoveredDevice, discover_devices
from .serial_link import SerialSession, list_serial_ports
from .socket_link import SocketSession

TransportConfig = Union[SerialConfig, BleConfig, SocketConfig]


def open_session(config: TransportConfig) -> TransportSession:
    """Create an unconnected session for ``config``."""
    if isinstance(config, SerialConfig):
        return SerialSession(config)
    if isinstance(config, BleConfig):
        return BleSession(config)
    if isinstance(config, SocketConfig):
        return SocketSession(config)
    raise TypeError(f"Unsupported transport config: {type(config).__name__}")


__all__ = [
    "BleSession",
    "DiscoveredDevice",
    "SerialSession",
    "SessionState",
    "SocketSession",
    "TransportConfig",
    "TransportSession",
    "discover_devices",
    "list_serial_ports",
    "open_session",
]
