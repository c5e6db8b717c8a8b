"""
Application Configuration

All settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    app_name: str = "StockStat Analyzer"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # SQLite (local persistence)
    sqlite_path: Optional[str] = None  # Defaults to ./data/stockstat.db
    database_echo: bool = False

    # Exchange clock (update status checks)
    exchange_timezone: str = "Europe/Warsaw"

    # Statistic calculation
    quote_window: int = 100  # Quotes loaded for an incremental update
    statistic_lookback_days: int = 10  # Days returned by statistic list reads
    backfill_min_quotes: int = 5  # Shortest indicator window (EMA 5)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "STOCKSTAT_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
