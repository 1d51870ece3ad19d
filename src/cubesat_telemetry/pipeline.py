"""Framer -> parser -> aggregator path shared by every telemetry source."""

from __future__ import annotations

import logging
from typing import List, Optional

from .aggregator import PacketAggregator
from .errors import DecodeError, UnrecognizedRecord
from .framer import LineFramer
from .packet import CanonicalPacket
from .parser import parse_record
from .sinks import SinkHub
from .state import StateDelta
from .transports.base import TransportSession

logger = logging.getLogger(__name__)


class TelemetryPipeline:
    """Turn transport chunks into state updates.

    Every framed record reaches the raw-record sinks (the audit log among
    them), whether or not it parsed. Record errors are logged and never
    propagate out of the pipeline.

    Attributes:
        records_seen: Framed records processed since creation.
        records_unparsed: Records that produced no packet.
    """

    def __init__(self, aggregator: PacketAggregator, hub: SinkHub) -> None:
        self._aggregator = aggregator
        self._hub = hub
        self._framer = LineFramer()
        self.records_seen = 0
        self.records_unparsed = 0

    def feed_chunk(self, chunk: str) -> List[StateDelta]:
        deltas = []
        for record in self._framer.feed(chunk):
            delta = self.process_record(record)
            if delta is not None:
                deltas.append(delta)
        return deltas

    def process_record(self, record: str) -> Optional[StateDelta]:
        self.records_seen += 1
        try:
            packet = parse_record(record)
        except DecodeError as e:
            self.records_unparsed += 1
            logger.warning("Dropping malformed JSON record: %s (error=%s)", record, e)
            self._hub.publish_raw(record)
            return None
        except UnrecognizedRecord:
            self.records_unparsed += 1
            logger.debug("Unrecognized record kept in log only: %s", record)
            self._hub.publish_raw(record)
            return None

        delta = self._aggregator.apply(packet)
        self._hub.publish_raw(record)
        return delta

    def ingest_packet(self, packet: CanonicalPacket, raw: str) -> StateDelta:
        """Apply an already-built packet, logging ``raw`` as its record text."""
        delta = self._aggregator.apply(packet)
        self._hub.publish_raw(raw)
        return delta

    async def pump(self, session: TransportSession) -> int:
        """Feed every chunk of ``session`` through the pipeline until it ends.

        Returns:
            Number of records framed during this session.
        """
        self._framer.reset()
        start = self.records_seen
        async for chunk in session.chunks():
            logger.debug("Chunk received: %d characters", len(chunk))
            self.feed_chunk(chunk)
        if self._framer.pending:
            logger.debug("Session ended with an incomplete record: %r", self._framer.pending)
        self._framer.reset()
        return self.records_seen - start
