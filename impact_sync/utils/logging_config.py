"""Logging setup shared by the recorder, the analysis pipeline and the CLI."""

import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Model runtimes log every inference at INFO
QUIET_LOGGERS = ("ultralytics", "absl", "mediapipe", "asyncio")


@dataclass
class LoggingSettings:
    """
    The ``logging`` section of config.yaml.

    Attributes:
        level: Level name for the root logger.
        file: Optional rotating log file.
        max_bytes: Rotation size of the log file.
        backup_count: Rotated files kept.
    """
    level: str = "INFO"
    file: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @classmethod
    def from_dict(cls, section: Optional[Dict[str, Any]]) -> "LoggingSettings":
        section = section or {}
        return cls(
            level=section.get("level", cls.level),
            file=section.get("file"),
            max_bytes=section.get("max_bytes", cls.max_bytes),
            backup_count=section.get("backup_count", cls.backup_count),
        )


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the root logger.

    Console output goes to stderr so CLI results printed on stdout stay
    machine-readable.

    Args:
        level: Logging level name.
        log_file: Optional path of a rotating log file.
        max_bytes: Size at which the log file rotates.
        backup_count: Number of rotated files kept.

    Returns:
        Root logger instance.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    root_logger.debug(f"Logging configured: level={level}, file={log_file}")
    return root_logger


def configure_logging(settings: LoggingSettings, verbose: bool = False) -> logging.Logger:
    """Apply config.yaml settings; ``verbose`` forces DEBUG."""
    return setup_logging(
        level="DEBUG" if verbose else settings.level,
        log_file=settings.file,
        max_bytes=settings.max_bytes,
        backup_count=settings.backup_count,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerMixin:
    """Gives instances a ``logger`` named after their module and class."""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            cls = type(self)
            self._logger = logging.getLogger(f"{cls.__module__}.{cls.__name__}")
        return self._logger
