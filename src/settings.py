"""Centralized settings for the screener.

Uses pydantic-settings to load from environment variables (prefixed
NLSCREEN_) or a ``.env`` file, with defaults matching
``src.nlscreen.config.ScreenerConfig``.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Screener settings loaded from environment variables."""

    # --- Query engine ---
    max_results: int = 500
    history_size: int = 20
    large_result_threshold: int = 50
    max_columns: int = 12
    currency_style: str = "western"  # western (K/M/B/T) or indian (L/Cr)

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"
    slow_query_ms: float = 250.0

    model_config = {
        "env_prefix": "NLSCREEN_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
