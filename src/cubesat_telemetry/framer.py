"""Line framing for arbitrarily chunked telemetry streams.

Transports hand over text in whatever pieces the link produced: a serial read,
one BLE notification, one WebSocket message. None of these are guaranteed to
be line aligned, so the framer keeps the unterminated tail between calls and
only emits records once their newline has arrived.
"""

from __future__ import annotations

import logging
from typing import List

from .config import FRAMER_MAX_BUFFER

logger = logging.getLogger(__name__)


class LineFramer:
    """Split a chunked text stream into newline-delimited records.

    Records are emitted in arrival order, trimmed of surrounding whitespace
    (which also removes the ``\\r`` of CRLF endings). Blank lines are dropped.

    Attributes:
        _buffer: Carry-over text not yet terminated by a newline.
        _max_buffer: Upper bound for the carry-over. A peer that never sends a
            newline would otherwise grow the buffer without limit.
    """

    def __init__(self, max_buffer: int = FRAMER_MAX_BUFFER) -> None:
        self._buffer = ""
        self._max_buffer = max_buffer

    def feed(self, chunk: str) -> List[str]:
        """Append a chunk and return every record it completed.

        Args:
            chunk: Text received from the transport. May contain zero, one or
                many newlines and may end mid-record.

        Returns:
            Complete, trimmed, non-empty records in arrival order. An empty
            list means the chunk only extended the pending record.
        """
        if not chunk:
            return []

        data = self._buffer + chunk
        *complete, self._buffer = data.split("\n")

        records = []
        for segment in complete:
            text = segment.strip()
            if text:
                records.append(text)
            elif segment:
                logger.debug("Skipping blank line: %r", segment)

        if len(self._buffer) > self._max_buffer:
            drop = len(self._buffer) - self._max_buffer
            logger.warning("Line buffer overflow: trimming %d characters", drop)
            self._buffer = self._buffer[drop:]
        elif self._buffer:
            logger.debug("Line incomplete: %d characters pending", len(self._buffer))

        return records

    def reset(self) -> None:
        """Discard any partial record, e.g. when a new session starts."""
        if self._buffer:
            logger.debug("Discarding %d pending characters", len(self._buffer))
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer
