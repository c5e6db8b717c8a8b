"""
Statistic Service

CONTRACT:
    Input:  parsed daily quotes, calculation triggers, read requests
    Output: stored StatisticRecords, DailyCalculationReport, read DTOs

RESPONSIBILITIES:
    - Resolve or create companies for incoming quotes
    - Track ingestion batches and record update history
    - Run the indicator engine incrementally or over the whole history
    - Assemble one statistic row per quote and hand it to storage
    - Fold stored rows into per-company read objects
"""

from stockstat.services.statistics.batch import UpdateBatch
from stockstat.services.statistics.conversion import ConversionService
from stockstat.services.statistics.interface import (
    CompanyDirectory,
    IndexDirectory,
    QuoteStore,
    StatisticServiceInterface,
    StatisticStore,
    UpdateLog,
)
from stockstat.services.statistics.service import StatisticService, create_statistic_service

__all__ = [
    "UpdateBatch",
    "ConversionService",
    "CompanyDirectory",
    "IndexDirectory",
    "QuoteStore",
    "StatisticServiceInterface",
    "StatisticStore",
    "UpdateLog",
    "StatisticService",
    "create_statistic_service",
]
