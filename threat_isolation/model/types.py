"""
Records exchanged between the anomaly model and its callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from ..config import SeverityThresholds


class ModelStatus(str, Enum):
    UNLOADED = "unloaded"
    TRAINED = "trained"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def severity_for_score(score: float, thresholds: SeverityThresholds | None = None) -> Severity:
    """Bucket an anomaly score; monotonic in score."""
    thresholds = thresholds or SeverityThresholds()
    if score >= thresholds.critical:
        return Severity.CRITICAL
    if score >= thresholds.high:
        return Severity.HIGH
    if score >= thresholds.medium:
        return Severity.MEDIUM
    return Severity.LOW


@dataclass
class TrainingData:
    """
    Attributes:
        features: Training matrix, one feature vector per row.
        labels: Optional ground truth (True = anomaly), used only for evaluation.
    """
    features: Sequence[Sequence[float]]
    labels: Sequence[bool] | None = None


@dataclass
class TrainingConfig:
    """
    Attributes:
        algorithm: Informational name of the algorithm.
        hyperparameters: Overrides such as numTrees, subsampleSize.
    """
    algorithm: str = "isolation-forest"
    hyperparameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Hyperparameters:
    num_trees: int
    subsample_size: int
    max_depth: int

    def to_dict(self) -> dict[str, int]:
        return {
            "numTrees": self.num_trees,
            "subsampleSize": self.subsample_size,
            "maxDepth": self.max_depth,
        }


@dataclass(frozen=True)
class TrainingStats:
    """
    Statistics computed once per training run.
    Attributes:
        mean_per_feature: Population mean of each training column.
        std_per_feature: Population standard deviation of each training column.
        min_score: Smallest average path length over the training rows.
        max_score: Largest average path length over the training rows.
    """
    mean_per_feature: tuple[float, ...]
    std_per_feature: tuple[float, ...]
    min_score: float
    max_score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "meanPerFeature": list(self.mean_per_feature),
            "stdPerFeature": list(self.std_per_feature),
            "minScore": self.min_score,
            "maxScore": self.max_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrainingStats:
        return cls(
            mean_per_feature=tuple(float(v) for v in data["meanPerFeature"]),
            std_per_feature=tuple(float(v) for v in data["stdPerFeature"]),
            min_score=float(data["minScore"]),
            max_score=float(data["maxScore"]),
        )


@dataclass(frozen=True)
class ModelMetrics:
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    inference_time_ms: float
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1Score": self.f1_score,
            "inferenceTime": self.inference_time_ms,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelMetrics:
        return cls(
            accuracy=float(data["accuracy"]),
            precision=float(data["precision"]),
            recall=float(data["recall"]),
            f1_score=float(data["f1Score"]),
            inference_time_ms=float(data["inferenceTime"]),
            timestamp=str(data["timestamp"]),
        )


@dataclass(frozen=True)
class TrainingResult:
    model_id: str
    metrics: ModelMetrics
    hyperparameters: Hyperparameters
    training_time: float
    iterations: int
    convergence: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "modelId": self.model_id,
            "metrics": self.metrics.to_dict(),
            "hyperparameters": self.hyperparameters.to_dict(),
            "trainingTime": self.training_time,
            "iterations": self.iterations,
            "convergence": self.convergence,
        }


@dataclass(frozen=True)
class AnomalyResult:
    """
    Outcome of scoring one feature vector.
    Attributes:
        is_anomaly: Whether the score exceeds the anomaly threshold.
        anomaly_score: Normalized score in [0, 1], higher is more anomalous.
        confidence: Agreement between trees in [0, 1].
        severity: Score bucket.
        explanation: Human-readable summary.
        affected_features: Features named in the explanation (empty for normal input).
        metadata: avgPathLength, scoreVariance, inferenceTimeMs, modelVersion.
    """
    is_anomaly: bool
    anomaly_score: float
    confidence: float
    severity: Severity
    explanation: str
    affected_features: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isAnomaly": self.is_anomaly,
            "anomalyScore": self.anomaly_score,
            "confidence": self.confidence,
            "severity": self.severity.value,
            "explanation": self.explanation,
            "affectedFeatures": list(self.affected_features),
            "metadata": dict(self.metadata),
        }
