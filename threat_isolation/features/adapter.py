"""
Mapping from loosely-typed network event records to the fixed-length
feature vector expected by the anomaly model.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import numpy as np

from ..errors import InvalidInput

FEATURE_NAMES: tuple[str, ...] = (
    "packet_size",
    "connection_frequency",
    "port_diversity",
    "protocol_type",
    "byte_rate",
    "connection_duration",
    "src_ip_reputation",
    "dst_ip_reputation",
    "time_of_day",
    "day_of_week",
)

PROTOCOL_CODES: dict[str, int] = {
    "tcp": 1,
    "udp": 2,
    "icmp": 3,
    "http": 4,
    "https": 5,
}

NEUTRAL_REPUTATION = 0.5

# (feature, accepted keys, default)
_NUMERIC_FIELDS: tuple[tuple[str, tuple[str, ...], float], ...] = (
    ("packet_size", ("packet_size", "packetSize"), 0.0),
    ("connection_frequency", ("connection_frequency", "connectionFrequency"), 0.0),
    ("port_diversity", ("port_diversity", "portDiversity"), 0.0),
    ("byte_rate", ("byte_rate", "byteRate"), 0.0),
    ("connection_duration", ("connection_duration", "connectionDuration"), 0.0),
    ("src_ip_reputation", ("src_ip_reputation", "srcIpReputation"), NEUTRAL_REPUTATION),
    ("dst_ip_reputation", ("dst_ip_reputation", "dstIpReputation"), NEUTRAL_REPUTATION),
)


def encode_protocol(protocol: str | None) -> int:
    """Small integer code for a protocol name; unknown or missing protocols map to 0."""
    if not protocol:
        return 0
    return PROTOCOL_CODES.get(str(protocol).strip().lower(), 0)


def _resolve_timezone(name: str | None) -> ZoneInfo | timezone:
    if name is None or str(name).upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidInput(f"Unknown time zone: {name!r}") from exc


def parse_timestamp(value: Any, tz_name: str | None = None) -> datetime:
    """
    Convert a timestamp to an aware datetime in the given zone.
    Naive timestamps are read as local time of that zone.
    Args:
        value: ISO-8601 string (a trailing "Z" is accepted), datetime, or None for now.
        tz_name: IANA zone name, UTC when omitted.
    Returns:
        Aware datetime in tz_name.
    """
    tz = _resolve_timezone(tz_name)

    if value is None:
        return datetime.now(tz)

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidInput(f"Malformed timestamp: {value!r}") from exc
    else:
        raise InvalidInput(f"Unsupported timestamp type: {type(value).__name__}")

    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def timestamp_features(value: Any, tz_name: str | None = None) -> tuple[int, int]:
    """
    Returns:
        (hour of day 0-23, day of week 0-6 with 0 = Sunday)
    """
    moment = parse_timestamp(value, tz_name)
    return moment.hour, (moment.weekday() + 1) % 7


def coerce_vector(values: Sequence[Any], expected_length: int = len(FEATURE_NAMES)) -> tuple[float, ...]:
    """
    Validate a caller-supplied feature vector.
    Args:
        values: Sequence or 1D array of numbers.
        expected_length: Length of the feature contract.
    Returns:
        Tuple of floats.
    """
    if isinstance(values, np.ndarray):
        if values.ndim != 1:
            raise InvalidInput(f"Feature vector must be 1-dimensional, got shape {values.shape}")
        values = values.tolist()

    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise InvalidInput(f"Feature vector must be a sequence of numbers, got {type(values).__name__}")

    if len(values) != expected_length:
        raise InvalidInput(f"Expected {expected_length} features, received {len(values)}")

    vector = []
    for idx, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
            raise InvalidInput(f"Feature {idx} is not a number: {value!r}")
        value = float(value)
        if not math.isfinite(value):
            raise InvalidInput(f"Feature {idx} is not finite: {value!r}")
        vector.append(value)

    return tuple(vector)


def _lookup(source: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if source.get(key) is not None:
            return source[key]
    return None


def extract_features(record: Mapping[str, Any], default_timezone: str = "UTC") -> tuple[float, ...]:
    """
    Build the feature vector for an event record.

    A non-empty "features" entry is passed through unchanged. Otherwise the named
    fields are read from record["metadata"] (or the record itself when there is no
    metadata), with counts and rates defaulting to 0 and reputations to 0.5. The
    record's "timestamp" is converted to hour of day and day of week in the record's
    "timezone" (default_timezone when absent).

    Args:
        record: Event record.
        default_timezone: Zone used when the record does not name one.
    Returns:
        Feature vector in FEATURE_NAMES order.
    """
    features = record.get("features")
    if features is not None:
        # Only an empty sequence falls through to the metadata fields.
        if isinstance(features, np.ndarray):
            empty = features.size == 0
        else:
            empty = isinstance(features, Sequence) and len(features) == 0
        if not empty:
            return coerce_vector(features)

    metadata = record.get("metadata")
    if metadata is None:
        metadata = record
    if not isinstance(metadata, Mapping):
        raise InvalidInput(f"Event metadata must be a mapping, got {type(metadata).__name__}")

    values: dict[str, Any] = {}
    for name, keys, default in _NUMERIC_FIELDS:
        value = _lookup(metadata, keys)
        values[name] = default if value is None else value

    values["protocol_type"] = encode_protocol(metadata.get("protocol"))

    tz_name = record.get("timezone") or default_timezone
    hour, weekday = timestamp_features(record.get("timestamp"), tz_name)
    values["time_of_day"] = hour
    values["day_of_week"] = weekday

    return coerce_vector([values[name] for name in FEATURE_NAMES])
