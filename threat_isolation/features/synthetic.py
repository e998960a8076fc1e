"""
Synthetic baseline traffic used to bootstrap an untrained model.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

from .adapter import FEATURE_NAMES

# (low, high, integer-valued) per feature, in FEATURE_NAMES order
BASELINE_RANGES: dict[str, tuple[float, float, bool]] = {
    "packet_size": (0.0, 10000.0, False),
    "connection_frequency": (0.0, 100.0, False),
    "port_diversity": (0.0, 10.0, True),
    "protocol_type": (0.0, 5.0, True),
    "byte_rate": (0.0, 1000000.0, False),
    "connection_duration": (0.0, 3600.0, False),
    "src_ip_reputation": (0.3, 0.7, False),
    "dst_ip_reputation": (0.3, 0.7, False),
    "time_of_day": (0.0, 24.0, True),
    "day_of_week": (0.0, 7.0, True),
}


def generate_baseline_traffic(
    n_samples: int,
    random_state: int | np.random.Generator | None = None,
) -> npt.NDArray[np.floating[Any]]:
    """
    Pseudo-normal network feature rows, uniform within realistic ranges.
    Integer-valued features are floored.
    Args:
        n_samples: Number of rows to generate.
        random_state: Seed or generator.
    Returns:
        Array of shape (n_samples, len(FEATURE_NAMES)).
    """
    rng = np.random.default_rng(random_state)

    Xs = np.empty((n_samples, len(FEATURE_NAMES)), dtype=np.float64)
    for idx, name in enumerate(FEATURE_NAMES):
        low, high, integral = BASELINE_RANGES[name]
        column = rng.uniform(low, high, size=n_samples)
        Xs[:, idx] = np.floor(column) if integral else column
    return Xs
