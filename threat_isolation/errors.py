"""
Exception types raised by the anomaly-detection engine.
Every error is terminal for the call that raised it and leaves model state untouched.
"""


class AnomalyEngineError(Exception):
    """Base class for all engine errors."""


class ModelNotLoaded(AnomalyEngineError):
    """Raised when predicting with a model that has never been trained or loaded."""


class InvalidInput(AnomalyEngineError, ValueError):
    """Raised for wrong feature counts, non-finite values or malformed timestamps."""


class TrainingFailed(AnomalyEngineError):
    """Raised when a training run cannot complete (ragged or empty matrix, bad hyperparameters)."""


class InvalidModelState(AnomalyEngineError, ValueError):
    """Raised when a serialized model state cannot be restored."""
