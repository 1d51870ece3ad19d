"""Merge canonical packets into the telemetry state and fan them out."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .packet import CanonicalPacket
from .sinks import SinkHub
from .state import StateDelta, TelemetryState

logger = logging.getLogger(__name__)


class PacketAggregator:
    """Single writer of :class:`TelemetryState`.

    ``apply`` never raises for packet content: an empty packet still counts
    as a packet and still advances the inter-arrival clock. The merge and the
    fan-out run under the state lock, so a transport read loop and the
    synthetic generator cannot interleave their updates.

    Args:
        state: The state object to mutate.
        hub: Sinks to notify about changed fields and orientation.
        clock: Monotonic time source in seconds, replaceable in tests.
    """

    def __init__(
        self,
        state: TelemetryState,
        hub: SinkHub,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = state
        self._hub = hub
        self._clock = clock

    @property
    def state(self) -> TelemetryState:
        return self._state

    def apply(self, packet: CanonicalPacket) -> StateDelta:
        with self._state.lock:
            delta = self._state.record_packet(packet, self._clock())

            if delta.data_rate is not None:
                logger.debug(
                    "Packet %d: %d fields, rate %.1f Hz",
                    delta.packet_count,
                    len(delta.changed),
                    delta.data_rate,
                )
            else:
                logger.debug(
                    "Packet %d: %d fields", delta.packet_count, len(delta.changed)
                )

            if delta.changed:
                self._hub.publish_fields(delta.changed)
            if delta.orientation is not None:
                self._hub.publish_orientation(*delta.orientation)
            return delta

    def reset(self) -> None:
        """Forget packet statistics; the next packet starts a fresh rate window."""
        self._state.reset_counters()
        logger.info("Packet counters reset")
