"""Synthetic telemetry for demos and bench testing without hardware."""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, Optional

from .config import GENERATOR_INTERVAL_S
from .packet import FIELDS, ORIENTATION_FIELDS, SEED_DEFAULTS, CanonicalPacket
from .state import StateDelta

if TYPE_CHECKING:
    from .pipeline import TelemetryPipeline

logger = logging.getLogger(__name__)

# Half-width of the uniform jitter applied around each field's center
JITTER: Mapping[str, float] = MappingProxyType(
    {
        "temperature": 1.0,
        "humidity": 2.5,
        "pressure": 2.5,
        "accelX": 1.0,
        "accelY": 1.0,
        "accelZ": 1.0,
        "gyroX": 2.5,
        "gyroY": 1.5,
        "gyroZ": 2.0,
        "roll": 10.0,
        "pitch": 10.0,
        "yaw": 10.0,
        "co2": 15.0,
        "altitude": 5.0,
        "rssi": 5.0,
        "snr": 1.0,
        "ber": 0.5e-6,
        "wifiRSSI": 5.0,
        "bleRSSI": 5.0,
        "cpuUsage": 2.5,
        "cpuTemp": 1.0,
        "freeHeap": 2.5,
        "power": 0.05,
        "lightLevel": 5.0,
    }
)


class GeneratorState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class SyntheticGenerator:
    """Emit one plausible packet per interval through the pipeline.

    Every tick produces a complete packet: each field is its seed value plus
    uniform jitter, with orientation centered on level flight. The packet and
    its ``KEY=value`` rendering go through ``TelemetryPipeline.ingest_packet``
    so they are counted, displayed and logged like received data.

    ``start`` and ``stop`` must be called on the event loop that runs the
    generator task.

    Args:
        pipeline: Destination for generated packets.
        interval: Seconds between packets.
        rng: Random source; pass a seeded ``random.Random`` for repeatable runs.
        centers: Center value per field. Defaults to the seed values.
    """

    def __init__(
        self,
        pipeline: "TelemetryPipeline",
        interval: float = GENERATOR_INTERVAL_S,
        rng: Optional[random.Random] = None,
        centers: Mapping[str, float] = SEED_DEFAULTS,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._pipeline = pipeline
        self._interval = interval
        self._rng = rng or random.Random()
        self._centers = dict(centers)
        for name in ORIENTATION_FIELDS:
            self._centers[name] = 0.0
        self._state = GeneratorState.IDLE
        self._task: Optional[asyncio.Task[None]] = None
        self.ticks = 0

    @property
    def state(self) -> GeneratorState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is GeneratorState.RUNNING

    def make_packet(self) -> CanonicalPacket:
        values = {
            name: self._centers[name] + self._rng.uniform(-JITTER[name], JITTER[name])
            for name in FIELDS
        }
        return CanonicalPacket(values)

    def tick(self) -> StateDelta:
        """Generate and ingest one packet now."""
        packet = self.make_packet()
        self.ticks += 1
        return self._pipeline.ingest_packet(packet, packet.to_wire())

    def start(self) -> None:
        if self.running:
            return
        self._state = GeneratorState.RUNNING
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="synthetic-generator"
        )
        logger.info("Synthetic data generator started (interval=%.2fs)", self._interval)

    def stop(self) -> None:
        if not self.running:
            return
        self._state = GeneratorState.IDLE
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        logger.info("Synthetic data generator stopped after %d packets", self.ticks)

    async def _run(self) -> None:
        while self._state is GeneratorState.RUNNING:
            await asyncio.sleep(self._interval)
            if self._state is not GeneratorState.RUNNING:
                break
            self.tick()
