"""Network anomaly detection package.

This package scores network events with an ensemble of randomized isolation trees:
- isolation: isolation trees and the forest built on bootstrap subsamples
- features: event-record to feature-vector mapping and synthetic baseline traffic
- model: the train / predict / serialize lifecycle around a forest
"""

from . import features
from . import isolation
from . import model
from .config import EngineConfig, load_config
from .errors import (
    AnomalyEngineError,
    InvalidInput,
    InvalidModelState,
    ModelNotLoaded,
    TrainingFailed,
)
from .logger import setup_logger, setup_logger_from_config
from .model import AnomalyModel, AnomalyResult, TrainingConfig, TrainingData

__all__ = [
    "AnomalyEngineError",
    "AnomalyModel",
    "AnomalyResult",
    "EngineConfig",
    "InvalidInput",
    "InvalidModelState",
    "ModelNotLoaded",
    "TrainingConfig",
    "TrainingData",
    "TrainingFailed",
    "features",
    "isolation",
    "load_config",
    "model",
    "setup_logger",
    "setup_logger_from_config",
]
