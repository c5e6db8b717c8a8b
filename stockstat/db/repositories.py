"""
SQLAlchemy implementations of the statistic service storage collaborators.

Each repository works inside the caller's session: writes are flushed,
committing is left to the session owner (see get_db_context).
"""

import functools
import logging
from datetime import date
from typing import AsyncContextManager, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stockstat.db.models import (
    Company,
    DailyQuoteRecord,
    StatisticRecord,
    StockIndex,
    UpdateHistory,
)
from stockstat.services.base import PersistenceFailure
from stockstat.services.statistics.interface import (
    CompanyDirectory,
    IndexDirectory,
    QuoteStore,
    StatisticStore,
    UpdateLog,
)

logger = logging.getLogger(__name__)


def _storage_errors(method):
    """Re-raise database errors as PersistenceFailure."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"{type(self).__name__}.{method.__name__} failed: {e}")
            raise PersistenceFailure(type(self).__name__, str(e)) from e

    return wrapper


class _SqlRepository:
    def __init__(self, session: AsyncSession):
        self.session = session


class SqlCompanyDirectory(_SqlRepository, CompanyDirectory):
    @_storage_errors
    async def find_by_symbol(self, symbol: str) -> Optional[Company]:
        result = await self.session.execute(select(Company).where(Company.symbol == symbol))
        return result.scalar_one_or_none()

    @_storage_errors
    async def add(self, company: Company) -> int:
        self.session.add(company)
        await self.session.flush()
        return company.id

    @_storage_errors
    async def load(self, company_id: int) -> Optional[Company]:
        return await self.session.get(Company, company_id)

    @_storage_errors
    async def load_all(self) -> Sequence[Company]:
        result = await self.session.execute(select(Company).order_by(Company.symbol))
        return result.scalars().all()


class SqlQuoteStore(_SqlRepository, QuoteStore):
    @_storage_errors
    async def add(self, quote: DailyQuoteRecord) -> int:
        self.session.add(quote)
        await self.session.flush()
        return quote.id

    @_storage_errors
    async def find_by_company(self, company: Company, limit: int) -> Sequence[DailyQuoteRecord]:
        result = await self.session.execute(
            select(DailyQuoteRecord)
            .where(DailyQuoteRecord.company_id == company.id)
            .order_by(DailyQuoteRecord.quote_date.desc())
            .limit(limit)
        )
        return result.scalars().all()

    @_storage_errors
    async def find_all_by_company(self, company: Company) -> Sequence[DailyQuoteRecord]:
        result = await self.session.execute(
            select(DailyQuoteRecord)
            .where(DailyQuoteRecord.company_id == company.id)
            .order_by(DailyQuoteRecord.quote_date.desc())
        )
        return result.scalars().all()

    @_storage_errors
    async def find_last_by_company(self, company: Company) -> Optional[DailyQuoteRecord]:
        quotes = await self.find_by_company(company, 1)
        return quotes[0] if quotes else None

    @_storage_errors
    async def find_by_company_and_date(
        self, company: Company, quote_date: date
    ) -> Optional[DailyQuoteRecord]:
        result = await self.session.execute(
            select(DailyQuoteRecord).where(
                DailyQuoteRecord.company_id == company.id,
                DailyQuoteRecord.quote_date == quote_date,
            )
        )
        return result.scalar_one_or_none()


class SqlStatisticStore(_SqlRepository, StatisticStore):
    def savepoint(self) -> AsyncContextManager:
        return self.session.begin_nested()

    @_storage_errors
    async def add(self, statistic: StatisticRecord) -> int:
        result = await self.session.execute(
            select(StatisticRecord).where(StatisticRecord.quote_id == statistic.quote_id)
        )
        existing = result.scalar_one_or_none()
        if existing is not None and existing is not statistic:
            # Rows are replaced, never patched
            await self.session.delete(existing)
            await self.session.flush()

        self.session.add(statistic)
        await self.session.flush()
        return statistic.id

    @_storage_errors
    async def find_by_company_and_date(
        self, company_id: int, quote_date: date
    ) -> Optional[StatisticRecord]:
        result = await self.session.execute(
            select(StatisticRecord)
            .join(StatisticRecord.quote)
            .where(
                DailyQuoteRecord.company_id == company_id,
                DailyQuoteRecord.quote_date == quote_date,
            )
        )
        return result.scalar_one_or_none()

    @_storage_errors
    async def find_by_date_and_ids(
        self, date_from: date, date_to: date, company_ids: Sequence[int]
    ) -> Sequence[StatisticRecord]:
        result = await self.session.execute(
            select(StatisticRecord)
            .join(StatisticRecord.quote)
            .where(
                DailyQuoteRecord.quote_date.between(date_from, date_to),
                DailyQuoteRecord.company_id.in_(list(company_ids)),
            )
            .order_by(DailyQuoteRecord.company_id, DailyQuoteRecord.quote_date)
        )
        return result.scalars().all()

    @_storage_errors
    async def find_by_date_period(self, date_from: date, date_to: date) -> Sequence[StatisticRecord]:
        result = await self.session.execute(
            select(StatisticRecord)
            .join(StatisticRecord.quote)
            .where(DailyQuoteRecord.quote_date.between(date_from, date_to))
            .order_by(DailyQuoteRecord.company_id, DailyQuoteRecord.quote_date)
        )
        return result.scalars().all()


class SqlUpdateLog(_SqlRepository, UpdateLog):
    @_storage_errors
    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(UpdateHistory))
        return result.scalar_one()

    @_storage_errors
    async def find_newest(self) -> Optional[UpdateHistory]:
        result = await self.session.execute(
            select(UpdateHistory)
            .order_by(UpdateHistory.created_at.desc(), UpdateHistory.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @_storage_errors
    async def add(self, history: UpdateHistory) -> int:
        self.session.add(history)
        await self.session.flush()
        return history.id


class SqlIndexDirectory(_SqlRepository, IndexDirectory):
    @_storage_errors
    async def load(self, index_id: int) -> Optional[StockIndex]:
        return await self.session.get(StockIndex, index_id)
