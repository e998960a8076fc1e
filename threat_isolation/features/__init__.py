"""Feature extraction for network events."""

from .adapter import (
    FEATURE_NAMES,
    PROTOCOL_CODES,
    coerce_vector,
    encode_protocol,
    extract_features,
    parse_timestamp,
    timestamp_features,
)
from .synthetic import BASELINE_RANGES, generate_baseline_traffic

__all__ = [
    "BASELINE_RANGES",
    "FEATURE_NAMES",
    "PROTOCOL_CODES",
    "coerce_vector",
    "encode_protocol",
    "extract_features",
    "generate_baseline_traffic",
    "parse_timestamp",
    "timestamp_features",
]
