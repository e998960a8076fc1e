"""Shared fixtures: realistic baseline traffic and trained models."""

import numpy as np
import pytest

from threat_isolation import AnomalyModel, EngineConfig, TrainingConfig, TrainingData

BENIGN_EVENT = [1500, 10, 3, 1, 50000, 300, 0.8, 0.7, 14, 2]
EXTREME_EVENT = [50000, 1000, 50, 99, 1000000, 1, 0.1, 0.1, 25, 8]


def generate_normal_traffic(n_samples, random_state):
    """Narrow, realistic office traffic around BENIGN_EVENT."""
    rng = np.random.default_rng(random_state)
    return np.column_stack([
        rng.normal(1500, 200, n_samples),                          # packet_size
        rng.normal(10, 2, n_samples),                              # connection_frequency
        rng.integers(1, 6, n_samples).astype(float),               # port_diversity
        rng.choice([1.0, 2.0, 4.0, 5.0], n_samples),               # protocol_type
        rng.normal(50000, 8000, n_samples),                        # byte_rate
        rng.normal(300, 60, n_samples),                            # connection_duration
        np.clip(rng.normal(0.75, 0.1, n_samples), 0.0, 1.0),       # src_ip_reputation
        np.clip(rng.normal(0.7, 0.1, n_samples), 0.0, 1.0),        # dst_ip_reputation
        rng.integers(8, 19, n_samples).astype(float),              # time_of_day
        rng.integers(1, 6, n_samples).astype(float),               # day_of_week
    ])


@pytest.fixture
def benign_event():
    return list(BENIGN_EVENT)


@pytest.fixture
def extreme_event():
    return list(EXTREME_EVENT)


@pytest.fixture(scope="session")
def normal_traffic():
    return generate_normal_traffic(1000, random_state=7)


@pytest.fixture(scope="session")
def held_out_traffic():
    return generate_normal_traffic(200, random_state=8)


@pytest.fixture(scope="session")
def trained_model(normal_traffic):
    """Model trained once per session; tests must not retrain it."""
    model = AnomalyModel(EngineConfig(random_state=42))
    model.train(
        TrainingData(features=normal_traffic),
        TrainingConfig(hyperparameters={"numTrees": 100, "subsampleSize": 256}),
    )
    return model


@pytest.fixture
def small_model(normal_traffic):
    """Cheap model that tests may retrain or overwrite."""
    model = AnomalyModel(EngineConfig(random_state=3, num_trees=20, subsample_size=64))
    model.train(TrainingData(features=normal_traffic[:300]))
    return model
