"""Structured Logging & Query Tracing.

Provides structured JSON logging, session/query ID propagation,
and performance timing for the screener.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import SessionLogContext, generate_id
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PerformanceTimer",
    "SessionLogContext",
    "configure_logging",
    "generate_id",
    "log_performance",
]
