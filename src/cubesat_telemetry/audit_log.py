"""Bounded log of the most recent raw telemetry records.

The log keeps display-ready entries only: text beyond the display limit is
cut and marked with ``...`` at append time, and the export produced by
:meth:`AuditLog.to_csv` contains exactly what is displayed.
"""

from __future__ import annotations

import csv
import io
import threading
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Deque, List, Optional

from .config import AUDIT_LOG_CAPACITY, AUDIT_TEXT_LIMIT
from .sinks import TelemetrySink

ELLIPSIS = "..."


@dataclass(frozen=True)
class AuditEntry:
    """One logged record."""

    timestamp: datetime
    text: str

    @property
    def time_label(self) -> str:
        return self.timestamp.strftime("%H:%M:%S")


def truncate(text: str, limit: int = AUDIT_TEXT_LIMIT) -> str:
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


class AuditLog(TelemetrySink):
    """Newest-first ring buffer of raw records.

    Subscribed to the sink hub, it receives every framed record (parsed or
    not) and every synthetic packet rendering through ``on_raw_record``.
    """

    fields = frozenset()

    def __init__(
        self,
        capacity: int = AUDIT_LOG_CAPACITY,
        text_limit: int = AUDIT_TEXT_LIMIT,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._entries: Deque[AuditEntry] = deque(maxlen=capacity)
        self._text_limit = text_limit
        self._clock = clock
        self._lock = threading.Lock()

    def on_raw_record(self, text: str) -> None:
        self.append(text)

    def append(self, raw: str) -> None:
        entry = AuditEntry(self._clock(), truncate(raw, self._text_limit))
        with self._lock:
            # appendleft on a bounded deque evicts from the right (the oldest)
            self._entries.appendleft(entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def snapshot(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    def to_csv(self) -> str:
        """Two-column ``Time,Data`` export of the current entries, newest first."""
        out = io.StringIO()
        out.write("Time,Data\n")
        writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for entry in self.snapshot():
            writer.writerow([entry.time_label, entry.text])
        return out.getvalue().rstrip("\n")


def export_filename(day: Optional[date] = None) -> str:
    """File name offered for the CSV export, e.g. ``cubesat_telemetry_2024-05-01.csv``."""
    day = day or date.today()
    return f"cubesat_telemetry_{day.isoformat()}.csv"
