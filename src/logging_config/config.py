"""Logging Configuration.

Settings for structured logging, log levels, and output formats.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    slow_threshold_ms: float = 250.0
    service_name: str = "nlscreen"

    @classmethod
    def from_settings(cls, settings: Optional[object] = None) -> "LoggingConfig":
        """Build from the process settings (``NLSCREEN_LOG_*``)."""
        if settings is None:
            from src.settings import get_settings
            settings = get_settings()
        return cls(
            level=LogLevel(settings.log_level.upper()),
            format=LogFormat(settings.log_format.lower()),
            slow_threshold_ms=settings.slow_query_ms,
        )


DEFAULT_LOGGING_CONFIG = LoggingConfig()
