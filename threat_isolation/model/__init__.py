"""Anomaly model lifecycle and result records."""

from .anomaly_model import AnomalyModel, TrainedState
from .types import (
    AnomalyResult,
    Hyperparameters,
    ModelMetrics,
    ModelStatus,
    Severity,
    TrainingConfig,
    TrainingData,
    TrainingResult,
    TrainingStats,
    severity_for_score,
)

__all__ = [
    "AnomalyModel",
    "AnomalyResult",
    "Hyperparameters",
    "ModelMetrics",
    "ModelStatus",
    "Severity",
    "TrainedState",
    "TrainingConfig",
    "TrainingData",
    "TrainingResult",
    "TrainingStats",
    "severity_for_score",
]
