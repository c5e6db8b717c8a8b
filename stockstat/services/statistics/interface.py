"""
Statistic Service Interface

Defines the contract for the statistic orchestration layer and the storage
collaborators it works through.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import AsyncContextManager, Optional, Sequence

from stockstat.db.models import (
    Company,
    DailyQuoteRecord,
    StatisticRecord,
    StockIndex,
    UpdateHistory,
)
from stockstat.schemas.statistics import DailyCalculationReport
from stockstat.services.base import BaseService


# =============================================================================
# STORAGE COLLABORATORS
# =============================================================================


class CompanyDirectory(ABC):
    """Company lookup and creation."""

    @abstractmethod
    async def find_by_symbol(self, symbol: str) -> Optional[Company]:
        pass

    @abstractmethod
    async def add(self, company: Company) -> int:
        """Store a new company and return its id."""
        pass

    @abstractmethod
    async def load(self, company_id: int) -> Optional[Company]:
        pass

    @abstractmethod
    async def load_all(self) -> Sequence[Company]:
        pass


class QuoteStore(ABC):
    """Daily quote storage. Every sequence is ordered newest first."""

    @abstractmethod
    async def add(self, quote: DailyQuoteRecord) -> int:
        pass

    @abstractmethod
    async def find_by_company(self, company: Company, limit: int) -> Sequence[DailyQuoteRecord]:
        """Newest `limit` quotes of a company."""
        pass

    @abstractmethod
    async def find_all_by_company(self, company: Company) -> Sequence[DailyQuoteRecord]:
        pass

    @abstractmethod
    async def find_last_by_company(self, company: Company) -> Optional[DailyQuoteRecord]:
        pass

    @abstractmethod
    async def find_by_company_and_date(
        self, company: Company, quote_date: date
    ) -> Optional[DailyQuoteRecord]:
        pass


class StatisticStore(ABC):
    """Statistic row storage."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager:
        """
        Scope whose writes are rolled back together if it exits with an error;
        writes made before it are kept.
        """
        pass

    @abstractmethod
    async def add(self, statistic: StatisticRecord) -> int:
        """Store a row, replacing any existing row of the same quote."""
        pass

    @abstractmethod
    async def find_by_company_and_date(
        self, company_id: int, quote_date: date
    ) -> Optional[StatisticRecord]:
        pass

    @abstractmethod
    async def find_by_date_and_ids(
        self, date_from: date, date_to: date, company_ids: Sequence[int]
    ) -> Sequence[StatisticRecord]:
        """Rows in the date range for the given companies, grouped by company, oldest first."""
        pass

    @abstractmethod
    async def find_by_date_period(self, date_from: date, date_to: date) -> Sequence[StatisticRecord]:
        """Rows in the date range, grouped by company, oldest first."""
        pass


class UpdateLog(ABC):
    """Append-only log of finished ingestion batches."""

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def find_newest(self) -> Optional[UpdateHistory]:
        pass

    @abstractmethod
    async def add(self, history: UpdateHistory) -> int:
        pass


class IndexDirectory(ABC):
    """Stock index lookup."""

    @abstractmethod
    async def load(self, index_id: int) -> Optional[StockIndex]:
        pass


# =============================================================================
# SERVICE CONTRACT
# =============================================================================


class StatisticServiceInterface(BaseService[Optional[datetime], DailyCalculationReport]):
    """
    Statistic Service Contract.

    INPUT: calculation timestamp (defaults to now)

    OUTPUT: DailyCalculationReport
        - created: symbol -> id of the new statistic row
        - errors: companies that could not be updated and why

    CONCURRENCY:
        At most one calculation may run per company at a time; the newest
        statistic row of a company seeds its next one.
    """

    @property
    def name(self) -> str:
        return "StatisticService"

    @abstractmethod
    async def execute(self, input_data: Optional[datetime] = None) -> DailyCalculationReport:
        """Run the incremental calculation for all companies."""
        pass

    @abstractmethod
    async def process_daily_calculation(
        self, now: Optional[datetime] = None
    ) -> DailyCalculationReport:
        pass

    @abstractmethod
    async def process_calculation_for_company(self, symbol: str) -> bool:
        pass

    async def health_check(self) -> bool:
        return True
