"""Exception hierarchy for the telemetry pipeline.

Only ``TransportConnectError`` is meant to reach the operator. Record errors
are handled inside the pipeline: the record is logged and kept in the audit
log, and processing continues with the next record.
"""


class TelemetryError(Exception):
    """Base class for all telemetry pipeline errors."""


class TransportError(TelemetryError):
    """Base class for transport failures."""


class TransportConnectError(TransportError):
    """Discovery, connection or handshake failed."""


class TransportClosed(TransportError):
    """The session ended (local close, remote close, or I/O failure)."""


class RecordError(TelemetryError, ValueError):
    """A record could not be turned into a packet."""

    def __init__(self, message: str, record: str) -> None:
        super().__init__(message)
        self.record = record


class DecodeError(RecordError):
    """A record shaped like a JSON object failed to decode."""


class UnrecognizedRecord(RecordError):
    """A record matched neither the JSON nor the key=value shape."""
