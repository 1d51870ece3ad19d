"""Configuration constants and transport settings for the telemetry receiver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

# Serial link
BAUD_RATES: Tuple[int, ...] = (9600, 19200, 38400, 57600, 115200, 230400, 460800, 921600)
DEFAULT_BAUD = 115200
SERIAL_READ_TIMEOUT_S = 0.1

# BLE UART service used by ESP32/HM-10 style firmware
BLE_UART_SERVICE = "0000ffe0-0000-1000-8000-00805f9b34fb"
BLE_UART_TX_CHAR = "0000ffe1-0000-1000-8000-00805f9b34fb"
BLE_UART_RX_CHAR = "0000ffe2-0000-1000-8000-00805f9b34fb"
BLE_NAME_PREFIXES: Tuple[str, ...] = ("ESP32", "CUBESAT", "BLE")
BLE_SCAN_TIMEOUT_S = 10.0

# WebSocket link
DEFAULT_WS_HOST = "192.168.4.1"
DEFAULT_WS_PORT = 81
DEFAULT_WS_PATH = "/ws"
SOCKET_CONNECT_TIMEOUT_S = 5.0

# Pipeline windows
AUDIT_LOG_CAPACITY = 10
AUDIT_TEXT_LIMIT = 60
CHART_MAX_POINTS = 20
FRAMER_MAX_BUFFER = 64 * 1024

GENERATOR_INTERVAL_S = 1.0


@dataclass(frozen=True)
class SerialConfig:
    """Serial port settings. ``baudrate`` must be one of ``BAUD_RATES``."""

    port: str
    baudrate: int = DEFAULT_BAUD
    read_timeout: float = SERIAL_READ_TIMEOUT_S

    def __post_init__(self) -> None:
        if not self.port:
            raise ValueError("Serial port must be specified")
        if self.baudrate not in BAUD_RATES:
            raise ValueError(
                f"Unsupported baud rate {self.baudrate}; choose one of {BAUD_RATES}"
            )


@dataclass(frozen=True)
class BleConfig:
    """BLE discovery filter and GATT layout.

    A device matches when its advertised name starts with one of
    ``name_prefixes`` or it advertises one of ``service_uuids``. When
    ``address`` is set, discovery is skipped.
    """

    name_prefixes: Tuple[str, ...] = BLE_NAME_PREFIXES
    service_uuids: Tuple[str, ...] = (BLE_UART_SERVICE,)
    uart_service: str = BLE_UART_SERVICE
    inbound_char: str = BLE_UART_RX_CHAR
    address: Optional[str] = None
    scan_timeout: float = BLE_SCAN_TIMEOUT_S

    def __post_init__(self) -> None:
        if not self.address and not self.name_prefixes and not self.service_uuids:
            raise ValueError("BLE filter needs a name prefix, a service UUID or an address")
        if self.scan_timeout <= 0:
            raise ValueError("scan_timeout must be positive")


@dataclass(frozen=True)
class SocketConfig:
    """WebSocket endpoint served by the board (``ws://host:port/path``)."""

    host: str = DEFAULT_WS_HOST
    port: int = DEFAULT_WS_PORT
    path: str = DEFAULT_WS_PATH
    connect_timeout: float = SOCKET_CONNECT_TIMEOUT_S

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Socket host must be specified")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid socket port: {self.port}")

    @property
    def url(self) -> str:
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"ws://{self.host}:{self.port}{path}"
