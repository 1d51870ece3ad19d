"""BLE UART link via bleak.

Boards advertise a UART-style GATT service (``ffe0``) and push telemetry as
notifications on its inbound characteristic. Each notification payload is
decoded as UTF-8 and handed to the session queue as one chunk; records can
span notifications, so framing happens downstream.

Requirements:
- bleak: Cross-platform BLE library for device communication
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from ..config import BleConfig
from ..errors import TransportConnectError
from .base import TransportSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredDevice:
    """A device that passed the discovery filter."""

    address: str
    name: Optional[str]
    rssi: Optional[int]
    service_uuids: Tuple[str, ...] = ()

    def label(self) -> str:
        return f"{self.name or '(unnamed)'} [{self.address}] rssi={self.rssi}"


async def _scan_ble_devices(
    timeout: float,
) -> dict[str, tuple[BLEDevice, AdvertisementData]]:
    """Scan for BLE devices together with their advertisement data.

    Raises:
        TransportConnectError: The scanner could not start (adapter off,
            missing permissions, no Bluetooth stack).
    """
    try:
        # Bleak 0.22+ keeps metadata out of BLEDevice; ask for it explicitly
        devices_adv = await BleakScanner.discover(timeout=timeout, return_adv=True)
        logger.debug("Scan completed: %d devices found", len(devices_adv))
        return devices_adv
    except BleakError as e:
        raise TransportConnectError(
            "BLE scanner initialization failed. Please verify:\n"
            "- Bluetooth is enabled on this machine\n"
            "- Location permission is granted where the OS requires it\n"
            "- The Bluetooth adapter and drivers are installed\n"
            f"({e})"
        ) from e


def _match_device(dev: BLEDevice, adv: AdvertisementData, config: BleConfig) -> bool:
    """Name-prefix match first, advertised service UUID second."""
    logger.debug(
        "Device discovered: addr=%s name=%s rssi=%s uuids=%s",
        getattr(dev, "address", "?"),
        getattr(dev, "name", None),
        getattr(adv, "rssi", None),
        getattr(adv, "service_uuids", None),
    )

    name = dev.name or adv.local_name or ""
    if name and any(name.startswith(prefix) for prefix in config.name_prefixes):
        logger.info("Device matched by name prefix: %s (%s)", name, dev.address)
        return True

    uuids: Iterable[str] = adv.service_uuids or []
    wanted = {u.lower() for u in config.service_uuids}
    if any(u.lower() in wanted for u in uuids):
        logger.info("Device matched by service UUID: %s (%s)", name, dev.address)
        return True

    return False


async def discover_devices(config: BleConfig) -> List[DiscoveredDevice]:
    """Scan once and return matching devices, strongest signal first."""
    logger.info(
        "BLE discovery started: prefixes=%s services=%s timeout=%.1fs",
        ",".join(config.name_prefixes),
        ",".join(config.service_uuids),
        config.scan_timeout,
    )
    devices_adv = await _scan_ble_devices(config.scan_timeout)

    found = [
        DiscoveredDevice(
            address=dev.address,
            name=dev.name or adv.local_name,
            rssi=adv.rssi,
            service_uuids=tuple(adv.service_uuids or ()),
        )
        for dev, adv in devices_adv.values()
        if _match_device(dev, adv, config)
    ]
    found.sort(key=lambda d: d.rssi if d.rssi is not None else -999, reverse=True)
    logger.info("BLE discovery finished: %d matching devices", len(found))
    return found


class BleSession(TransportSession):
    """Telemetry over BLE notifications.

    Args:
        config: Discovery filter and GATT layout.
        device: Device to connect to. When omitted, ``config.address`` is
            used, or the best match of a fresh scan.
    """

    kind = "ble"

    def __init__(
        self,
        config: BleConfig,
        device: Union[DiscoveredDevice, str, None] = None,
    ) -> None:
        super().__init__()
        self._config = config
        if isinstance(device, DiscoveredDevice):
            self._address: Optional[str] = device.address
            self._name: Optional[str] = device.name
        else:
            self._address = device or config.address
            self._name = None
        self._client: Optional[BleakClient] = None
        self._char: Optional[BleakGATTCharacteristic] = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def config(self) -> BleConfig:
        return self._config

    @property
    def address(self) -> Optional[str]:
        return self._address

    def describe(self) -> str:
        if self._address is None:
            return f"first device matching {'/'.join(self._config.name_prefixes)}"
        if self._name:
            return f"{self._name} ({self._address})"
        return self._address

    async def _resolve_address(self) -> str:
        if self._address is not None:
            return self._address

        devices = await discover_devices(self._config)
        if not devices:
            raise TransportConnectError(
                "No BLE device found. Check that the board is powered, advertising "
                "and in range."
            )
        chosen = devices[0]
        self._address, self._name = chosen.address, chosen.name
        logger.info("Connection target: %s", chosen.label())
        return chosen.address

    async def _open(self) -> None:
        address = await self._resolve_address()

        def on_disconnect(_: BleakClient) -> None:
            self._end_of_stream("BLE device disconnected")

        self._client = BleakClient(address, disconnected_callback=on_disconnect)
        await self._client.connect()
        if not self._client.is_connected:
            raise TransportConnectError(f"BLE connection to {address} failed")
        logger.info("BLE connection established: %s", address)

        service = self._client.services.get_service(self._config.uart_service)
        if service is None:
            available = ", ".join(s.uuid for s in self._client.services)
            raise TransportConnectError(
                f"Service {self._config.uart_service} not found on {address} "
                f"(available: {available or 'none'})"
            )
        char = service.get_characteristic(self._config.inbound_char)
        if char is None:
            raise TransportConnectError(
                f"Characteristic {self._config.inbound_char} not found in "
                f"service {self._config.uart_service}"
            )
        if not {"notify", "indicate"} & set(char.properties):
            raise TransportConnectError(
                f"Characteristic {char.uuid} does not support notifications "
                f"(properties: {', '.join(char.properties)})"
            )

        logger.info("Starting notification subscription: char=%s", char.uuid)
        await self._client.start_notify(char, self._on_notification)
        self._char = char

    def _on_notification(self, _sender: BleakGATTCharacteristic, data: bytearray) -> None:
        logger.debug("Notification received: %d bytes", len(data))
        text = self._decoder.decode(bytes(data))
        if text:
            self._deliver_threadsafe(text)

    async def _release(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        if self._char is not None and client.is_connected:
            try:
                logger.info("Stopping notification subscription")
                await client.stop_notify(self._char)
            except (BleakError, OSError) as e:
                logger.debug("stop_notify failed: %s", e)
        self._char = None
        await client.disconnect()
        self._decoder.reset()
