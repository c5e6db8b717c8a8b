"""
Database module for StockStat.

Provides SQLite database connection and models.
"""

from stockstat.db.database import (
    get_db_context,
    init_db,
    close_db,
    enable_savepoints,
    AsyncSessionLocal,
)
from stockstat.db.models import (
    Base,
    Company,
    StockIndex,
    DailyQuoteRecord,
    StatisticRecord,
    UpdateHistory,
)

__all__ = [
    "get_db_context",
    "init_db",
    "close_db",
    "enable_savepoints",
    "AsyncSessionLocal",
    "Base",
    "Company",
    "StockIndex",
    "DailyQuoteRecord",
    "StatisticRecord",
    "UpdateHistory",
]
