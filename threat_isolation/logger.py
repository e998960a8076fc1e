"""
Logging setup for the anomaly engine.

Every record carries a `model_id` extra: AnomalyModel binds its own id, and
records from elsewhere (config loading, scripts) show "-".
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import EngineConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[model_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[model_id]} | {name}:{function}:{line} | {message}"


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    json_lines: bool = False,
) -> None:
    """
    Replace loguru's default sink with the engine's console sink and an optional
    rotating file sink.

    Args:
        log_level: Minimum level for both sinks (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to log file; parent directories are created
        rotation: Size or age at which the file is rotated
        retention: How long rotated files are kept
        json_lines: Write the file sink as one JSON record per line, for log shippers
    """
    logger.remove()
    logger.configure(extra={"model_id": "-"})

    logger.add(sys.stderr, level=log_level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=json_lines,
        )

    logger.info(f"Logger initialized with level: {log_level}")


def setup_logger_from_config(config: EngineConfig, **kwargs) -> None:
    """Configure logging from the `logging` section of an EngineConfig."""
    setup_logger(log_level=config.log_level, log_file=config.log_file, **kwargs)
