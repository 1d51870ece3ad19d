"""Downstream consumers of canonical telemetry.

A sink subscribes to the :class:`SinkHub` and receives three kinds of event:
field updates (filtered by the sink's ``fields``), full orientation updates,
and raw records. Rendering is left to whatever hosts the sink; the sinks here
only keep the data a display needs.
"""

from __future__ import annotations

import logging
import math
import sys
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, FrozenSet, List, Mapping, Optional, TextIO, Tuple

from .config import CHART_MAX_POINTS
from .packet import SEED_DEFAULTS

logger = logging.getLogger(__name__)


class TelemetrySink:
    """Base class for sinks. All callbacks default to no-ops.

    Attributes:
        fields: Canonical field names this sink wants ``on_field_update`` for.
            ``None`` subscribes to every field; an empty set to none.
    """

    fields: Optional[FrozenSet[str]] = None

    def wants(self, name: str) -> bool:
        return self.fields is None or name in self.fields

    def on_field_update(self, name: str, value: float) -> None:
        pass

    def on_orientation_update(self, roll: float, pitch: float, yaw: float) -> None:
        pass

    def on_raw_record(self, text: str) -> None:
        pass


class SinkHub:
    """Fan-out point between the pipeline and its sinks.

    A sink that raises is logged and skipped; the remaining sinks still get
    the event.
    """

    def __init__(self) -> None:
        self._sinks: List[TelemetrySink] = []
        self._lock = threading.Lock()

    def subscribe(self, sink: TelemetrySink) -> None:
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)

    def unsubscribe(self, sink: TelemetrySink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    @property
    def sinks(self) -> Tuple[TelemetrySink, ...]:
        with self._lock:
            return tuple(self._sinks)

    def publish_fields(self, changed: Mapping[str, float]) -> None:
        for sink in self.sinks:
            for name, value in changed.items():
                if sink.wants(name):
                    self._deliver(sink, "on_field_update", name, value)

    def publish_orientation(self, roll: float, pitch: float, yaw: float) -> None:
        for sink in self.sinks:
            self._deliver(sink, "on_orientation_update", roll, pitch, yaw)

    def publish_raw(self, text: str) -> None:
        for sink in self.sinks:
            self._deliver(sink, "on_raw_record", text)

    def _deliver(self, sink: TelemetrySink, method: str, *args: object) -> None:
        try:
            getattr(sink, method)(*args)
        except Exception:
            logger.exception("Sink %s failed in %s", type(sink).__name__, method)


class NumericDisplaySink(TelemetrySink):
    """Latest reading of every field, plus the derived status readouts."""

    def __init__(self, defaults: Mapping[str, float] = SEED_DEFAULTS) -> None:
        self._values: Dict[str, float] = dict(defaults)

    def on_field_update(self, name: str, value: float) -> None:
        self._values[name] = value

    def value(self, name: str) -> float:
        return self._values[name]

    def values(self) -> Dict[str, float]:
        return dict(self._values)

    @property
    def signal_quality(self) -> str:
        rssi = self._values["rssi"]
        if rssi > -60:
            return "Excellent"
        if rssi > -70:
            return "Good"
        return "Fair"

    @property
    def air_quality(self) -> str:
        co2 = round(self._values["co2"])
        if co2 < 500:
            return "Good"
        if co2 < 1000:
            return "Moderate"
        return "Poor"

    @property
    def battery_percent(self) -> int:
        # Single Li-ion cell: 3.0 V empty, 4.2 V full
        percent = (self._values["power"] - 3.0) / (4.2 - 3.0) * 100
        return round(min(max(percent, 0.0), 100.0))


class ChartSink(TelemetrySink):
    """Bounded time series for the temperature and Wi-Fi RSSI charts."""

    fields = frozenset({"temperature", "wifiRSSI"})

    def __init__(
        self,
        max_points: int = CHART_MAX_POINTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._series: Dict[str, Deque[Tuple[float, float]]] = {
            name: deque(maxlen=max_points) for name in self.fields
        }

    def on_field_update(self, name: str, value: float) -> None:
        self._series[name].append((self._clock(), value))

    def series(self, name: str) -> List[Tuple[float, float]]:
        """(unix time, value) points for ``name``, oldest first."""
        return list(self._series[name])

    def clear(self) -> None:
        for points in self._series.values():
            points.clear()


class OrientationSink(TelemetrySink):
    """Target attitude for the 3D model.

    Only complete (roll, pitch, yaw) triples arrive here, so the model never
    rotates on a single axis from a partial update.
    """

    fields = frozenset()

    def __init__(self) -> None:
        self.roll = 0.0
        self.pitch = 0.0
        self.yaw = 0.0
        self.updates = 0

    def on_orientation_update(self, roll: float, pitch: float, yaw: float) -> None:
        self.roll, self.pitch, self.yaw = roll, pitch, yaw
        self.updates += 1

    @property
    def target_rotation(self) -> Tuple[float, float, float]:
        """Euler rotation in radians as (x, y, z).

        Pitch turns about X, yaw about Y, and roll about Z with the sign
        flipped to match the model's axes.
        """
        return (
            math.radians(self.pitch),
            math.radians(self.yaw),
            -math.radians(self.roll),
        )


class ConsoleSink(TelemetrySink):
    """Write each raw record to a text stream, one line per record."""

    fields = frozenset()

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def on_raw_record(self, text: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(f"{time.strftime('%H:%M:%S')} {text}\n")
        stream.flush()
