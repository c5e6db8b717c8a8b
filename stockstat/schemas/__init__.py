"""
StockStat Schema Contracts

This module defines the contracts between the ingestion feed, the statistic
service and its readers.
"""

from stockstat.schemas.quotes import DailyQuote, QuoteIn
from stockstat.schemas.statistics import (
    INDICATOR_FIELDS,
    DailyCalculationReport,
    IndicatorValues,
    StatisticDetails,
    StatisticPoint,
    StatisticRecordSimple,
    UpdateStatus,
)

__all__ = [
    # Quotes
    "QuoteIn",
    "DailyQuote",
    # Statistics
    "INDICATOR_FIELDS",
    "IndicatorValues",
    "StatisticPoint",
    "StatisticRecordSimple",
    "StatisticDetails",
    "DailyCalculationReport",
    "UpdateStatus",
]
