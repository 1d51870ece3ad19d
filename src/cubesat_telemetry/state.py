"""Process-wide telemetry state shared by the aggregator and display sinks."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .packet import SEED_DEFAULTS, CanonicalPacket


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Read-only copy of the state at one instant."""

    values: Mapping[str, float]
    packet_count: int
    last_packet_time: Optional[float]
    data_rate: float


@dataclass(frozen=True)
class StateDelta:
    """Outcome of merging one packet into the state.

    Attributes:
        packet_count: Counter value after this packet.
        changed: Fields written by this packet with their new values.
        data_rate: Newly computed rate in Hz, or None when no rate update
            happened (first packet, or first packet after a reset).
        orientation: (roll, pitch, yaw) when the packet carried all three.
    """

    packet_count: int
    changed: Mapping[str, float]
    data_rate: Optional[float]
    orientation: Optional[Tuple[float, float, float]] = None


class TelemetryState:
    """Last known value of every field plus packet statistics.

    Writes go through :meth:`record_packet` and :meth:`reset_counters`, both
    serialized by ``lock``; only the aggregator calls them. Readers use the
    accessors without locking and may observe a state one packet old.
    """

    def __init__(self, defaults: Mapping[str, float] = SEED_DEFAULTS) -> None:
        self.lock = threading.RLock()
        self._values: Dict[str, float] = dict(defaults)
        self._packet_count = 0
        self._last_packet_time: Optional[float] = None
        self._data_rate = 0.0

    def value(self, name: str) -> float:
        return self._values[name]

    def snapshot(self) -> TelemetrySnapshot:
        return TelemetrySnapshot(
            values=MappingProxyType(dict(self._values)),
            packet_count=self._packet_count,
            last_packet_time=self._last_packet_time,
            data_rate=self._data_rate,
        )

    @property
    def packet_count(self) -> int:
        return self._packet_count

    @property
    def data_rate(self) -> float:
        return self._data_rate

    @property
    def last_packet_time(self) -> Optional[float]:
        return self._last_packet_time

    def record_packet(self, packet: CanonicalPacket, now: float) -> StateDelta:
        """Merge ``packet`` observed at monotonic time ``now``."""
        with self.lock:
            self._packet_count += 1

            rate: Optional[float] = None
            if self._last_packet_time is not None:
                elapsed = now - self._last_packet_time
                if elapsed > 0:
                    rate = 1.0 / elapsed
                    self._data_rate = rate
            self._last_packet_time = now

            changed = dict(packet)
            self._values.update(changed)

            orientation = None
            if packet.has_orientation:
                orientation = (packet["roll"], packet["pitch"], packet["yaw"])

            return StateDelta(
                packet_count=self._packet_count,
                changed=MappingProxyType(changed),
                data_rate=rate,
                orientation=orientation,
            )

    def reset_counters(self) -> None:
        """Zero the counter and rate and forget the last packet time.

        Field values are kept; the displays keep showing the last readings.
        """
        with self.lock:
            self._packet_count = 0
            self._data_rate = 0.0
            self._last_packet_time = None
