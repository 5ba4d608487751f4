"""Structured logging utilities for lyricsnap.

This module provides configurable, structured logging with support for:
- JSON format for machine parsing
- Human-readable text format for interactive use
- Component-specific log levels
- Log rotation

Example usage:
    >>> from lyricsnap.utils.logging import LogConfig, configure_logging, get_logger
    >>>
    >>> configure_logging(LogConfig(log_level="DEBUG", log_format="json"))
    >>> logger = get_logger("capture")
    >>> logger.info("Captured frame", frame=120, total=300)
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Literal, Optional

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]

ROOT_LOGGER_NAME = "lyricsnap"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class LogConfig:
    """Configuration for lyricsnap logging.

    Attributes:
        log_level: Default log level for all components
        log_format: 'text' for human-readable, 'json' for structured output
        log_file: Optional file path for log output
        component_levels: Component-specific log levels, e.g. {"encoder": "DEBUG"}
        max_file_size_mb: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
        include_timestamp: Whether to include timestamps in text output
    """

    log_level: LogLevel = "INFO"
    log_format: LogFormat = "text"
    log_file: Optional[str] = None
    component_levels: Dict[str, LogLevel] = field(default_factory=dict)
    max_file_size_mb: int = 10
    backup_count: int = 5
    include_timestamp: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.log_level.upper() not in _VALID_LEVELS:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. Must be one of: {sorted(_VALID_LEVELS)}"
            )
        if self.log_format not in ("text", "json"):
            raise ValueError(
                f"Invalid log_format '{self.log_format}'. Must be 'text' or 'json'"
            )
        for component, level in self.component_levels.items():
            if level.upper() not in _VALID_LEVELS:
                raise ValueError(
                    f"Invalid log level '{level}' for component '{component}'"
                )


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, component, message, extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "component": record.name.split(".")[-1],
            "message": record.getMessage(),
        }

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable formatter.

    2026-01-05 10:30:45 | INFO     | capture      | Captured frame [frame=120, total=300]
    """

    def __init__(self, include_timestamp: bool = True) -> None:
        if include_timestamp:
            fmt = "%(asctime)s | %(levelname)-8s | %(component)-12s | %(message)s"
        else:
            fmt = "%(levelname)-8s | %(component)-12s | %(message)s"
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        record.component = record.name.split(".")[-1]
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            extra_str = ", ".join(f"{k}={v}" for k, v in extra_fields.items())
            # Leave record.msg alone; other handlers format the same record.
            original = record.msg
            record.msg = f"{record.msg} [{extra_str}]"
            try:
                return super().format(record)
            finally:
                record.msg = original
        return super().format(record)


class ExportLogger(logging.LoggerAdapter):
    """Logger adapter turning keyword arguments into structured fields."""

    def __init__(self, logger: logging.Logger, component: str) -> None:
        super().__init__(logger, {})
        self.component = component

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra_fields = {}
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra_fields[key] = kwargs.pop(key)

        kwargs.setdefault("extra", {})
        kwargs["extra"]["extra_fields"] = extra_fields
        return msg, kwargs


_log_config: Optional[LogConfig] = None


def _build_formatter(config: LogConfig) -> logging.Formatter:
    if config.log_format == "json":
        return JSONFormatter()
    return TextFormatter(include_timestamp=config.include_timestamp)


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Configure the ``lyricsnap`` logger hierarchy.

    Call once at application startup. Library code only ever creates
    module loggers and never configures handlers itself.
    """
    global _log_config

    if config is None:
        config = LogConfig()
    _log_config = config

    level = getattr(logging, config.log_level.upper())
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = _build_formatter(config)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if config.log_file:
        add_file_handler(config.log_file)

    for component, component_level in config.component_levels.items():
        logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}").setLevel(
            getattr(logging, component_level.upper())
        )

    root_logger.propagate = False


def get_logger(component: str) -> ExportLogger:
    """Get a structured logger for a component (e.g. 'capture', 'encoder')."""
    return ExportLogger(logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}"), component)


def get_config() -> Optional[LogConfig]:
    """Get current logging configuration."""
    return _log_config


def set_level(level: LogLevel, component: Optional[str] = None) -> None:
    """Set log level dynamically for the root or a single component."""
    name = f"{ROOT_LOGGER_NAME}.{component}" if component else ROOT_LOGGER_NAME
    logging.getLogger(name).setLevel(getattr(logging, level.upper()))


def add_file_handler(log_file: str, level: Optional[LogLevel] = None) -> RotatingFileHandler:
    """Attach a rotating file handler using the current configuration."""
    config = _log_config or LogConfig()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_build_formatter(config))
    handler.setLevel(getattr(logging, (level or config.log_level).upper()))
    logging.getLogger(ROOT_LOGGER_NAME).addHandler(handler)
    return handler
