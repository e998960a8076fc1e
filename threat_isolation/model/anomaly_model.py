"""
This module contains the AnomalyModel class that coordinates an isolation
forest with its feature contract and training statistics, and manages the
train / predict / serialize lifecycle.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import numpy as np
import numpy.typing as npt
from loguru import logger

from ..config import EngineConfig
from ..errors import (
    AnomalyEngineError,
    InvalidInput,
    InvalidModelState,
    ModelNotLoaded,
    TrainingFailed,
)
from ..features import FEATURE_NAMES, coerce_vector, extract_features, generate_baseline_traffic
from ..isolation import IsolationForest, max_depth_for
from .types import (
    AnomalyResult,
    Hyperparameters,
    ModelMetrics,
    ModelStatus,
    TrainingConfig,
    TrainingData,
    TrainingResult,
    TrainingStats,
    severity_for_score,
)

MODEL_ID = "isolation-forest-v1"
MODEL_NAME = "Isolation Forest Anomaly Detector"
MODEL_VERSION = "1.0.0"
MODEL_TYPE = "anomaly-detection"

NORMAL_EXPLANATION = "Network behavior appears normal based on learned patterns"
N_INDICATORS = 3
CONFIDENCE_SCALE = 10.0


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pick(overrides: Mapping[str, Any], keys: Sequence[str], default: Any) -> Any:
    for key in keys:
        if overrides.get(key) is not None:
            return overrides[key]
    return default


@dataclass(frozen=True)
class TrainedState:
    """
    Everything predict needs, published as one immutable snapshot.
    Attributes:
        forest: Fitted isolation forest.
        stats: Training statistics, None for states restored without them.
        hyperparameters: Hyperparameters the forest was built with.
        feature_names: Feature contract, in vector order.
        performance: Metrics from the training-time evaluation.
        trained_at: ISO timestamp of the training run.
    """
    forest: IsolationForest
    stats: TrainingStats | None
    hyperparameters: Hyperparameters
    feature_names: tuple[str, ...]
    performance: ModelMetrics | None
    trained_at: str


class AnomalyModel:
    """
    Isolation Forest anomaly detector for network events.

    The model starts UNLOADED. A successful train() or deserialize() publishes a
    new TrainedState in a single assignment, so concurrent predict() calls see
    either the old or the new model in full. Failed calls leave the previous
    state untouched.

    Attributes:
        config: Engine defaults and thresholds.
        model_id: Identifier reported in results and serialized state.
        feature_names: Feature contract every input must follow.
    """

    def __init__(self, config: EngineConfig | None = None, model_id: str = MODEL_ID) -> None:
        """
        Initialize an unloaded model.
        Args:
            config: Engine configuration; built-in defaults when omitted.
            model_id: Identifier of this model instance.
        """
        self.config = config or EngineConfig()
        self.model_id = model_id
        self.model_name = MODEL_NAME
        self.version = MODEL_VERSION
        self.feature_names: tuple[str, ...] = FEATURE_NAMES
        self._logger = logger.bind(model_id=model_id)

        self._state: TrainedState | None = None
        self._train_lock = threading.Lock()
        self._bootstrap_lock = threading.Lock()
        self._created_at = _utc_now()
        self._updated_at = self._created_at

        self._logger.info(f"Initializing ML model: {self.model_name} ({self.model_id} v{self.version})")

    @property
    def status(self) -> ModelStatus:
        return ModelStatus.UNLOADED if self._state is None else ModelStatus.TRAINED

    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    def initialize(self) -> ModelStatus:
        """
        Bootstrap path: train on synthetic baseline traffic if the model has never been trained.
        Returns:
            Model status after initialization.
        """
        with self._bootstrap_lock:
            if self._state is None:
                self._train_default()

        self._logger.info(
            f"Isolation Forest model initialized: {len(self._require_state().forest.trees)} trees, "
            f"{len(self.feature_names)} features"
        )
        return self.status

    def _train_default(self) -> TrainingResult:
        bootstrap = self.config.bootstrap
        self._logger.info(
            f"Creating default Isolation Forest model with {bootstrap.num_samples} synthetic rows"
        )

        Xs = generate_baseline_traffic(bootstrap.num_samples, self.config.random_state)
        data = TrainingData(features=Xs, labels=[False] * bootstrap.num_samples)
        config = TrainingConfig(
            hyperparameters={
                "numTrees": bootstrap.num_trees,
                "subsampleSize": bootstrap.subsample_size,
            },
        )
        return self.train(data, config)

    def _training_error(self, message: str) -> TrainingFailed:
        self._logger.error(f"Isolation Forest training failed: {message}")
        return TrainingFailed(message)

    def _resolve_hyperparameters(self, config: TrainingConfig | Mapping[str, Any] | None) -> Hyperparameters:
        if config is None:
            raw = {}
        elif isinstance(config, Mapping):
            raw = config.get("hyperparameters") or {}
        else:
            raw = getattr(config, "hyperparameters", None) or {}
        if not isinstance(raw, Mapping):
            raise self._training_error(f"hyperparameters must be a mapping, got {type(raw).__name__}")
        overrides = dict(raw)

        num_trees = _pick(overrides, ("numTrees", "num_trees"), self.config.num_trees)
        subsample_size = _pick(overrides, ("subsampleSize", "subsample_size"), self.config.subsample_size)

        for name, value in (("numTrees", num_trees), ("subsampleSize", subsample_size)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise self._training_error(f"{name} must be an integer, got {value!r}")
        if num_trees < 1:
            raise self._training_error(f"numTrees must be positive, got {num_trees}")
        if subsample_size < 2:
            raise self._training_error(f"subsampleSize must be at least 2, got {subsample_size}")

        return Hyperparameters(
            num_trees=int(num_trees),
            subsample_size=int(subsample_size),
            max_depth=max_depth_for(int(subsample_size)),
        )

    def _as_matrix(self, features: Any) -> npt.NDArray[np.floating[Any]]:
        """
        Convert a feature matrix to a float array.
        Raises ValueError or TypeError describing the first problem found.
        """
        n_features = len(self.feature_names)

        if features is None or len(features) == 0:
            raise ValueError("matrix has no rows")

        for idx, row in enumerate(features):
            if isinstance(row, (str, bytes)) or not hasattr(row, "__len__"):
                raise ValueError(f"row {idx} is not a sequence")
            if len(row) != n_features:
                raise ValueError(f"row {idx} has {len(row)} features, expected {n_features}")

        try:
            Xs = np.asarray(features, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"matrix is not numeric: {exc}") from exc

        if not np.all(np.isfinite(Xs)):
            raise ValueError("matrix contains non-finite values")
        return Xs

    def _as_labels(self, labels: Sequence[bool] | None, n_rows: int) -> npt.NDArray[np.bool_]:
        if labels is None:
            return np.zeros(n_rows, dtype=bool)
        if len(labels) != n_rows:
            raise ValueError(f"{len(labels)} labels for {n_rows} rows")
        return np.asarray(labels, dtype=bool)

    def train(
        self,
        data: TrainingData | Mapping[str, Any],
        config: TrainingConfig | Mapping[str, Any] | None = None,
    ) -> TrainingResult:
        """
        Build a fresh forest and training statistics, then publish them together.

        Args:
            data: Training matrix and optional labels.
            config: Hyperparameter overrides (numTrees, subsampleSize).
        Returns:
            TrainingResult with metrics from re-scoring the training data.
        Raises:
            TrainingFailed: Malformed matrix, bad hyperparameters or a failure while building.
        """
        if isinstance(data, Mapping):
            data = TrainingData(features=data.get("features"), labels=data.get("labels"))

        hyperparameters = self._resolve_hyperparameters(config)
        try:
            Xs = self._as_matrix(data.features)
            labels = self._as_labels(data.labels, Xs.shape[0])
        except (TypeError, ValueError) as exc:
            raise self._training_error(f"invalid training data: {exc}") from exc

        self._logger.info(
            f"Starting Isolation Forest training: {Xs.shape[0]} rows, "
            f"{hyperparameters.num_trees} trees, subsample {hyperparameters.subsample_size}"
        )
        start_time = time.perf_counter()

        with self._train_lock:
            try:
                forest = IsolationForest(
                    ensemble_size=hyperparameters.num_trees,
                    subsample_size=hyperparameters.subsample_size,
                    n_jobs=self.config.n_jobs,
                    random_state=self.config.random_state,
                ).fit(Xs)
                candidate = TrainedState(
                    forest=forest,
                    stats=self._compute_training_stats(forest, Xs),
                    hyperparameters=hyperparameters,
                    feature_names=self.feature_names,
                    performance=None,
                    trained_at=_utc_now(),
                )
                metrics = self._evaluate_state(candidate, Xs, labels)
            except Exception as exc:
                raise self._training_error(f"{type(exc).__name__}: {exc}") from exc

            self._state = replace(candidate, performance=metrics)
            self._updated_at = candidate.trained_at

        training_time = time.perf_counter() - start_time
        self._logger.info(
            f"Isolation Forest training completed in {training_time:.3f}s "
            f"(accuracy={metrics.accuracy:.3f}, trees={hyperparameters.num_trees})"
        )

        return TrainingResult(
            model_id=self.model_id,
            metrics=metrics,
            hyperparameters=hyperparameters,
            training_time=training_time,
            iterations=hyperparameters.num_trees,
        )

    def _compute_training_stats(
        self, forest: IsolationForest, Xs: npt.NDArray[np.floating[Any]],
    ) -> TrainingStats:
        mean_path_lengths = forest.mean_path_lengths(Xs)
        return TrainingStats(
            mean_per_feature=tuple(float(v) for v in Xs.mean(axis=0)),
            std_per_feature=tuple(float(v) for v in Xs.std(axis=0)),
            min_score=float(mean_path_lengths.min()),
            max_score=float(mean_path_lengths.max()),
        )

    def _normalize(self, state: TrainedState, avg_path_lengths: Any) -> Any:
        """
        Map average path lengths to anomaly scores in [0, 1].
        Without statistics the closed form 2^(-h / c(n)) is used; with statistics the
        path length is min-max scaled over the training range so that the shortest
        training path scores 1 and the longest scores 0.
        """
        if state.stats is None:
            scores = 2.0 ** (-np.asarray(avg_path_lengths) / state.forest.expected_path_length)
        else:
            span = state.stats.max_score - state.stats.min_score
            scores = (state.stats.max_score - np.asarray(avg_path_lengths)) / (span or 1.0)
        return np.clip(scores, 0.0, 1.0)

    def _require_state(self) -> TrainedState:
        state = self._state
        if state is None:
            raise ModelNotLoaded(f"Model {self.model_name} is not loaded")
        return state

    def _resolve_features(self, input: Any) -> tuple[float, ...]:
        if isinstance(input, Mapping):
            return extract_features(input)
        return coerce_vector(input, len(self.feature_names))

    def _indicator_features(self, state: TrainedState, features: Sequence[float]) -> tuple[str, ...]:
        # heuristic ranking by (standardized) magnitude, not an attribution method
        values = np.asarray(features, dtype=np.float64)
        if state.stats is not None:
            std = np.asarray(state.stats.std_per_feature)
            values = (values - np.asarray(state.stats.mean_per_feature)) / np.where(std > 0, std, 1.0)
        order = np.argsort(-np.abs(values), kind="stable")[:N_INDICATORS]
        return tuple(state.feature_names[idx] for idx in order)

    def predict(self, input: Any) -> AnomalyResult:
        """
        Score one feature vector or event record.

        Args:
            input: Feature vector of length 10, or an event record mapping.
        Returns:
            AnomalyResult
        Raises:
            ModelNotLoaded: The model has not been trained or loaded.
            InvalidInput: Wrong feature count, non-finite values or a malformed timestamp.
        """
        state = self._require_state()
        start_time = time.perf_counter()

        try:
            features = self._resolve_features(input)
        except InvalidInput as exc:
            self._logger.warning(f"Rejected input for {self.model_id}: {exc}")
            raise

        path_lengths = np.asarray(state.forest.path_lengths(features))
        avg_path_length = float(np.mean(path_lengths))
        score_spread = float(np.std(path_lengths))

        anomaly_score = float(self._normalize(state, avg_path_length))
        is_anomaly = anomaly_score > self.config.anomaly_threshold
        confidence = max(0.0, 1.0 - score_spread / CONFIDENCE_SCALE)
        severity = severity_for_score(anomaly_score, self.config.severity)

        if is_anomaly:
            affected = self._indicator_features(state, features)
            explanation = (
                f"Anomalous network behavior detected (score: {anomaly_score:.3f}). "
                f"Primary indicators: {', '.join(affected)}"
            )
        else:
            affected = ()
            explanation = NORMAL_EXPLANATION

        inference_time_ms = (time.perf_counter() - start_time) * 1000.0
        self._logger.debug(
            f"Anomaly prediction completed: model={self.model_id} anomaly={is_anomaly} "
            f"score={anomaly_score:.4f} confidence={confidence:.4f} time={inference_time_ms:.2f}ms"
        )

        return AnomalyResult(
            is_anomaly=is_anomaly,
            anomaly_score=anomaly_score,
            confidence=confidence,
            severity=severity,
            explanation=explanation,
            affected_features=affected,
            metadata={
                "avgPathLength": avg_path_length,
                "scoreVariance": score_spread,
                "inferenceTimeMs": inference_time_ms,
                "modelVersion": self.version,
            },
        )

    def _evaluate_state(
        self,
        state: TrainedState,
        Xs: npt.NDArray[np.floating[Any]],
        labels: npt.NDArray[np.bool_],
    ) -> ModelMetrics:
        start_time = time.perf_counter()
        scores = self._normalize(state, state.forest.mean_path_lengths(Xs))
        predicted = scores > self.config.anomaly_threshold
        elapsed_ms = (time.perf_counter() - start_time) * 1000.0

        true_positives = int(np.sum(predicted & labels))
        false_positives = int(np.sum(predicted & ~labels))
        false_negatives = int(np.sum(~predicted & labels))

        precision = true_positives / (true_positives + false_positives) if true_positives + false_positives else 0.0
        recall = true_positives / (true_positives + false_negatives) if true_positives + false_negatives else 0.0
        f1_score = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

        return ModelMetrics(
            accuracy=float(np.mean(predicted == labels)),
            precision=precision,
            recall=recall,
            f1_score=f1_score,
            inference_time_ms=elapsed_ms / Xs.shape[0],
            timestamp=_utc_now(),
        )

    def evaluate(self, features: Any, labels: Sequence[bool]) -> ModelMetrics:
        """
        Score a labelled batch against the current model without changing it.
        Args:
            features: Matrix of feature vectors.
            labels: True for rows that are anomalies.
        Returns:
            ModelMetrics
        """
        state = self._require_state()
        try:
            Xs = self._as_matrix(features)
            label_arr = self._as_labels(labels, Xs.shape[0])
        except ValueError as exc:
            raise InvalidInput(f"Invalid evaluation data: {exc}") from exc

        metrics = self._evaluate_state(state, Xs, label_arr)
        self._logger.info(f"Model evaluation completed: {self.model_id} accuracy={metrics.accuracy:.3f}")
        return metrics

    def serialize(self) -> dict[str, Any]:
        """
        Export the trained state as plain JSON-compatible data.
        Returns:
            Dictionary accepted by deserialize().
        """
        state = self._require_state()
        return {
            "modelId": self.model_id,
            "modelName": self.model_name,
            "version": self.version,
            "featureNames": list(state.feature_names),
            "hyperparameters": state.hyperparameters.to_dict(),
            "forest": state.forest.serialize(),
            "trainingStats": None if state.stats is None else state.stats.to_dict(),
            "performance": None if state.performance is None else state.performance.to_dict(),
            "trainedAt": state.trained_at,
        }

    def _restore_state(self, data: Mapping[str, Any]) -> TrainedState:
        if not isinstance(data, Mapping):
            raise InvalidModelState(f"Model state must be a mapping, got {type(data).__name__}")

        try:
            if data["modelId"] != self.model_id:
                raise InvalidModelState(
                    f"Model ID mismatch: expected {self.model_id}, got {data['modelId']}"
                )

            feature_names = tuple(str(name) for name in data["featureNames"])
            if feature_names != self.feature_names:
                raise InvalidModelState(f"Feature contract mismatch: {list(feature_names)}")

            params = data["hyperparameters"]
            hyperparameters = Hyperparameters(
                num_trees=int(params["numTrees"]),
                subsample_size=int(params["subsampleSize"]),
                max_depth=int(params["maxDepth"]),
            )

            forest = IsolationForest.deserialize(data["forest"], n_jobs=self.config.n_jobs)
            if (forest.ensemble_size, forest.subsample_size) != (
                hyperparameters.num_trees, hyperparameters.subsample_size,
            ):
                raise InvalidModelState("Forest does not match the declared hyperparameters")

            stats = None
            if data.get("trainingStats") is not None:
                stats = TrainingStats.from_dict(data["trainingStats"])
                if len(stats.mean_per_feature) != len(feature_names) or len(stats.std_per_feature) != len(feature_names):
                    raise InvalidModelState("Training statistics do not match the feature contract")

            performance = None
            if data.get("performance") is not None:
                performance = ModelMetrics.from_dict(data["performance"])

            return TrainedState(
                forest=forest,
                stats=stats,
                hyperparameters=hyperparameters,
                feature_names=feature_names,
                performance=performance,
                trained_at=str(data.get("trainedAt") or _utc_now()),
            )
        except AnomalyEngineError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidModelState(f"Malformed model state: {exc}") from exc

    def deserialize(self, data: Mapping[str, Any]) -> None:
        """
        Install a state produced by serialize(). Predictions afterwards are identical to
        those of the model that produced it.
        Raises:
            InvalidModelState: The state is malformed; the current model is kept.
        """
        try:
            state = self._restore_state(data)
        except InvalidModelState as exc:
            self._logger.error(f"Failed to load model {self.model_id}: {exc}")
            raise

        with self._train_lock:
            self._state = state
            self._updated_at = _utc_now()

        self._logger.info(f"Model loaded: {self.model_id} ({len(state.forest.trees)} trees)")

    @classmethod
    def from_state(cls, data: Mapping[str, Any], config: EngineConfig | None = None) -> AnomalyModel:
        """Create a model directly from serialized state."""
        model_id = data.get("modelId", MODEL_ID) if isinstance(data, Mapping) else MODEL_ID
        model = cls(config=config, model_id=model_id)
        model.deserialize(data)
        return model

    def get_model_info(self) -> dict[str, Any]:
        """Descriptive summary of the model and its current state."""
        state = self._state
        return {
            "id": self.model_id,
            "name": self.model_name,
            "version": self.version,
            "type": MODEL_TYPE,
            "description": "Isolation Forest model for detecting network anomalies using an ensemble of isolation trees",
            "features": list(self.feature_names),
            "status": self.status.value,
            "hyperparameters": None if state is None else state.hyperparameters.to_dict(),
            "trainingData": {
                "size": 0 if state is None else state.hyperparameters.num_trees * state.hyperparameters.subsample_size,
                "nodes": 0 if state is None else state.forest.count_nodes(),
                "lastUpdated": self._updated_at,
            },
            "performance": None if state is None or state.performance is None else state.performance.to_dict(),
            "createdAt": self._created_at,
            "updatedAt": self._updated_at,
        }
