"""Canonical telemetry fields, wire aliases and the immutable packet type.

Every record, whatever its wire format, is normalized onto the field names
defined here. The alias table is shared by the JSON and key=value parsers so
that both formats accept the same spellings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, Tuple

# Canonical field names in display order
FIELDS: Tuple[str, ...] = (
    "temperature",
    "humidity",
    "pressure",
    "accelX",
    "accelY",
    "accelZ",
    "gyroX",
    "gyroY",
    "gyroZ",
    "roll",
    "pitch",
    "yaw",
    "co2",
    "altitude",
    "rssi",
    "snr",
    "ber",
    "wifiRSSI",
    "bleRSSI",
    "cpuUsage",
    "cpuTemp",
    "freeHeap",
    "power",
    "lightLevel",
)

ORIENTATION_FIELDS: Tuple[str, str, str] = ("roll", "pitch", "yaw")

# Values shown before any packet arrives, and the JSON fallback for missing fields
SEED_DEFAULTS: Mapping[str, float] = MappingProxyType(
    {
        "temperature": 23.0,
        "humidity": 52.7,
        "pressure": 1016.01,
        "accelX": 10.10,
        "accelY": 11.23,
        "accelZ": 9.32,
        "gyroX": 18.2,
        "gyroY": 7.4,
        "gyroZ": -16.5,
        "roll": 0.0,
        "pitch": 0.0,
        "yaw": 0.0,
        "co2": 464.0,
        "altitude": 920.0,
        "rssi": -65.0,
        "snr": 15.2,
        "ber": 1.2e-6,
        "wifiRSSI": -65.0,
        "bleRSSI": -72.0,
        "cpuUsage": 23.0,
        "cpuTemp": 42.0,
        "freeHeap": 181.0,
        "power": 3.62,
        "lightLevel": 51.0,
    }
)

# Accepted spellings per field, in lookup priority order
ALIASES: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "temperature": ("t", "temp", "T", "temperature"),
        "humidity": ("h", "hum", "H", "humidity"),
        "pressure": ("p", "press", "P", "pressure"),
        "accelX": ("ax", "accelX", "AX"),
        "accelY": ("ay", "accelY", "AY"),
        "accelZ": ("az", "accelZ", "AZ"),
        "gyroX": ("gx", "gyroX", "GX"),
        "gyroY": ("gy", "gyroY", "GY"),
        "gyroZ": ("gz", "gyroZ", "GZ"),
        "roll": ("roll", "R"),
        "pitch": ("pitch",),
        "yaw": ("yaw", "Y"),
        "co2": ("co2", "CO2"),
        "altitude": ("alt", "altitude"),
        "rssi": ("rssi", "RSSI"),
        "snr": ("snr", "SNR"),
        "ber": ("ber", "BER"),
        "wifiRSSI": ("wifi_rssi", "wifiRSSI"),
        "bleRSSI": ("ble_rssi", "bleRSSI"),
        "cpuUsage": ("cpu", "cpuUsage"),
        "cpuTemp": ("cpu_temp", "cpuTemp"),
        "freeHeap": ("heap", "freeHeap"),
        "power": ("power", "voltage"),
        "lightLevel": ("light", "lightLevel"),
    }
)


def _build_key_lookup() -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for name, aliases in ALIASES.items():
        for alias in aliases:
            key = alias.lower()
            existing = lookup.setdefault(key, name)
            if existing != name:
                raise RuntimeError(f"Alias {alias!r} maps to both {existing} and {name}")
    return lookup


# Case-insensitive alias -> canonical field, used by the key=value format
KEY_LOOKUP: Mapping[str, str] = MappingProxyType(_build_key_lookup())

# Key and number format used when rendering a packet back into key=value text
WIRE_FORMAT: Tuple[Tuple[str, str, str], ...] = (
    ("temperature", "T", ".1f"),
    ("humidity", "H", ".1f"),
    ("pressure", "P", ".2f"),
    ("accelX", "AX", ".2f"),
    ("accelY", "AY", ".2f"),
    ("accelZ", "AZ", ".2f"),
    ("gyroX", "GX", ".1f"),
    ("gyroY", "GY", ".1f"),
    ("gyroZ", "GZ", ".1f"),
    ("roll", "ROLL", ".1f"),
    ("pitch", "PITCH", ".1f"),
    ("yaw", "YAW", ".1f"),
    ("co2", "CO2", ".0f"),
    ("altitude", "ALT", ".0f"),
    ("rssi", "RSSI", ".0f"),
    ("snr", "SNR", ".1f"),
    ("ber", "BER", ".1e"),
    ("wifiRSSI", "WIFI_RSSI", ".0f"),
    ("bleRSSI", "BLE_RSSI", ".0f"),
    ("cpuUsage", "CPU", ".0f"),
    ("cpuTemp", "CPU_TEMP", ".0f"),
    ("freeHeap", "HEAP", ".0f"),
    ("power", "POWER", ".2f"),
    ("lightLevel", "LIGHT", ".0f"),
)


@dataclass(frozen=True, eq=False)
class CanonicalPacket(Mapping[str, float]):
    """One parsed telemetry record as a sparse, read-only field mapping.

    Only fields actually carried by the record are present; nothing is
    defaulted here. The packet compares equal to any mapping with the same
    items, which keeps assertions on parsed records short.

    Attributes:
        values: Field name to numeric value. Keys must be canonical names
            from ``FIELDS``.
    """

    values: Mapping[str, float]

    def __post_init__(self) -> None:
        unknown = set(self.values) - set(FIELDS)
        if unknown:
            raise ValueError(f"Unknown telemetry fields: {sorted(unknown)}")
        frozen = MappingProxyType({k: float(v) for k, v in self.values.items()})
        object.__setattr__(self, "values", frozen)

    def __getitem__(self, key: str) -> float:
        return self.values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f"CanonicalPacket({dict(self.values)!r})"

    @property
    def has_orientation(self) -> bool:
        """True when roll, pitch and yaw are all carried by this packet."""
        return all(name in self.values for name in ORIENTATION_FIELDS)

    def to_wire(self) -> str:
        """Render as a ``KEY=value`` line that parses back to the same fields."""
        parts = [
            f"{key}={self.values[name]:{spec}}"
            for name, key, spec in WIRE_FORMAT
            if name in self.values
        ]
        return ",".join(parts)
