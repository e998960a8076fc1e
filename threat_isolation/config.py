"""
Configuration for the anomaly engine.
Handles YAML configuration loading and validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "engine.yaml"


@dataclass(frozen=True)
class SeverityThresholds:
    """Lower score bounds of each severity bucket. Tunable, not statistically calibrated."""
    critical: float = 0.9
    high: float = 0.75
    medium: float = 0.6

    def __post_init__(self) -> None:
        if not 0.0 <= self.medium <= self.high <= self.critical <= 1.0:
            raise ValueError(
                f"Severity thresholds must satisfy 0 <= medium <= high <= critical <= 1, "
                f"got medium={self.medium}, high={self.high}, critical={self.critical}"
            )


@dataclass(frozen=True)
class BootstrapConfig:
    """Synthetic training run used when a model is initialized without data."""
    num_samples: int = 1000
    num_trees: int = 50
    subsample_size: int = 256


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide defaults. Per-call hyperparameters in TrainingConfig override these."""
    num_trees: int = 100
    subsample_size: int = 256
    n_jobs: int = 1
    random_state: Optional[int] = None
    anomaly_threshold: float = 0.6
    severity: SeverityThresholds = field(default_factory=SeverityThresholds)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.num_trees < 1:
            raise ValueError(f"num_trees must be positive, got {self.num_trees}")
        if self.subsample_size < 2:
            raise ValueError(f"subsample_size must be at least 2, got {self.subsample_size}")
        if not 0.0 <= self.anomaly_threshold <= 1.0:
            raise ValueError(f"anomaly_threshold must lie in [0, 1], got {self.anomaly_threshold}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """
        Build a config from the parsed YAML document.

        Args:
            data: Mapping with optional 'isolation_forest' and 'logging' sections

        Returns:
            EngineConfig
        """
        section = dict(data.get("isolation_forest") or {})
        logging_section = data.get("logging") or {}

        severity = SeverityThresholds(**(section.pop("severity", None) or {}))
        bootstrap = BootstrapConfig(**(section.pop("bootstrap", None) or {}))

        try:
            return cls(
                severity=severity,
                bootstrap=bootstrap,
                log_level=logging_section.get("level", "INFO"),
                log_file=logging_section.get("file"),
                **section,
            )
        except TypeError as e:
            raise ValueError(f"Unknown isolation_forest option: {e}") from e


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Optional path to config file. Defaults to config/engine.yaml

    Returns:
        EngineConfig (built-in defaults when no file is found)
    """
    path = DEFAULT_CONFIG_PATH if config_path is None else Path(config_path)

    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return EngineConfig()

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing config file: {e}")
        raise

    config = EngineConfig.from_dict(data)
    logger.info(f"Loaded configuration from {path}")
    return config
