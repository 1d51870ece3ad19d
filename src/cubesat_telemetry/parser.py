"""Record parsing for the two telemetry wire formats.

Boards in the field send either a single-line JSON object::

    {"temp": 24.1, "hum": 48.0, "roll": 1.5, "pitch": -0.4, "yaw": 90.0}

or a flat comma-separated list of ``key=value`` tokens::

    T=23.5,H=50.0,RSSI=-65

Both resolve through the shared alias table in :mod:`.packet`. The formats
differ in one respect: a JSON record always yields every canonical field,
with seed defaults standing in for missing ones, while a key=value record
yields only the fields it carries.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

from .errors import DecodeError, UnrecognizedRecord
from .packet import ALIASES, KEY_LOOKUP, SEED_DEFAULTS, CanonicalPacket

logger = logging.getLogger(__name__)


def parse_record(record: str) -> CanonicalPacket:
    """Classify and decode one framed record.

    Args:
        record: A single trimmed line from the framer.

    Returns:
        CanonicalPacket: The normalized packet. May be empty for a key=value
        record whose keys are all unknown.

    Raises:
        DecodeError: The record looks like a JSON object but does not decode
            to one.
        UnrecognizedRecord: The record is neither a JSON object nor contains
            any ``=``.
    """
    text = record.strip()
    if text.startswith("{") and text.endswith("}"):
        return parse_json_record(text)
    if "=" in text:
        return parse_kv_record(text)
    raise UnrecognizedRecord(f"Unrecognized record shape: {text[:40]!r}", record)


def parse_json_record(text: str) -> CanonicalPacket:
    """Decode a JSON object record; missing fields take their seed default."""
    # ValueError also covers JSONDecodeError and over-long integer literals
    try:
        data = json.loads(text)
    except ValueError as e:
        raise DecodeError(f"JSON decode failed: {e}", text) from e
    if not isinstance(data, dict):
        raise DecodeError(f"JSON record is {type(data).__name__}, not an object", text)

    values: Dict[str, float] = {}
    for name, aliases in ALIASES.items():
        value = _first_numeric(data, aliases)
        values[name] = SEED_DEFAULTS[name] if value is None else value
    return CanonicalPacket(values)


def parse_kv_record(text: str) -> CanonicalPacket:
    """Decode ``key=value`` pairs; unknown keys and bad numbers are skipped."""
    values: Dict[str, float] = {}
    for part in text.split(","):
        key, sep, raw_value = part.partition("=")
        key = key.strip()
        raw_value = raw_value.strip()
        if not sep or not key or not raw_value:
            continue

        name = KEY_LOOKUP.get(key.lower())
        if name is None:
            logger.debug("Ignoring unknown key: %s", key)
            continue

        number = _to_float(raw_value)
        if number is None:
            logger.debug("Ignoring non-numeric value: %s=%s", key, raw_value)
            continue
        values[name] = number
    return CanonicalPacket(values)


def _first_numeric(data: Mapping[str, Any], aliases: tuple) -> Optional[float]:
    for alias in aliases:
        if alias in data:
            number = _to_float(data[alias])
            if number is not None:
                return number
    return None


def _to_float(value: Any) -> Optional[float]:
    # bool is an int subclass; "true" is not a reading
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        return float(value)
    except (OverflowError, ValueError):
        # Integers beyond float range are not readings either
        return None
