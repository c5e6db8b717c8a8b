"""
Statistic Service Implementation

Orchestrates quote ingestion, indicator calculation and statistic reads.
Storage is reached only through the collaborator interfaces.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from itertools import groupby
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from stockstat.core.config import settings
from stockstat.core.market_hours import EXCHANGE_TZ, get_exchange_now, is_weekend, to_exchange_date
from stockstat.db.models import Company, DailyQuoteRecord, StatisticRecord, UpdateHistory
from stockstat.schemas.quotes import DailyQuote, QuoteIn
from stockstat.schemas.statistics import (
    DailyCalculationReport,
    IndicatorValues,
    StatisticDetails,
    StatisticRecordSimple,
    UpdateStatus,
)
from stockstat.services.base import UnknownCompany, UnknownCompanySeed, ValidationError
from stockstat.services.indicators import IndicatorServiceInterface, PriceHistory, get_indicator_service
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

logger = logging.getLogger(__name__)

CompanyIds = Union[str, Sequence[int]]


class StatisticService(StatisticServiceInterface):
    """
    Statistic Service.

    Modes:
    - process_daily_calculation: one new row per company with a new quote,
      seeded by the row of the previous quote
    - process_calculation_for_company: recompute a company's whole history

    Calculations for one company must not overlap; this instance serializes
    them per symbol, callers sharing storage across processes must do the same.
    One lock is kept per symbol seen, for the lifetime of the instance, so
    create a service per run (as create_statistic_service does per session).
    """

    def __init__(
        self,
        companies: CompanyDirectory,
        quotes: QuoteStore,
        statistics: StatisticStore,
        updates: UpdateLog,
        indices: IndexDirectory,
        engine: Optional[IndicatorServiceInterface] = None,
        converter: Optional[ConversionService] = None,
    ):
        self.companies = companies
        self.quotes = quotes
        self.statistics = statistics
        self.updates = updates
        self.indices = indices
        self.engine = engine or get_indicator_service()
        self.converter = converter or ConversionService()
        self.quote_window = settings.quote_window
        self.lookback_days = settings.statistic_lookback_days
        self.min_quotes = settings.backfill_min_quotes
        self._company_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def name(self) -> str:
        return "StatisticService"

    async def execute(self, input_data: Optional[datetime] = None) -> DailyCalculationReport:
        return await self.process_daily_calculation(input_data)

    # =========================================================================
    # INGESTION
    # =========================================================================

    def new_batch(self) -> UpdateBatch:
        """Start a batch that records update history when it completes."""
        return UpdateBatch(on_complete=self._on_batch_complete)

    async def process_quote_update(
        self,
        records: Iterable[QuoteIn],
        batch: Optional[UpdateBatch] = None,
        finished: bool = False,
    ) -> UpdateBatch:
        """
        Store one chunk of daily quotes.

        Args:
            records: Parsed quotes
            batch: Batch this chunk belongs to (a new one when omitted)
            finished: True for the final chunk of the batch

        Returns:
            The batch, to pass along with the next chunk
        """
        batch = batch or self.new_batch()
        async with batch.task(finished=finished):
            companies: dict[str, Company] = {}
            added = skipped = 0

            for record in records:
                company = await self._resolve_company(record.symbol, companies)

                existing = await self.quotes.find_by_company_and_date(company, record.quote_date)
                if existing is not None:
                    logger.warning(f"{record.symbol} | Quote for {record.quote_date} already stored, skipped")
                    skipped += 1
                    continue

                quote = DailyQuoteRecord(
                    company_id=company.id,
                    company=company,
                    quote_date=record.quote_date,
                    open=record.open,
                    close=record.close,
                    min=record.min,
                    max=record.max,
                    volume=record.volume,
                )
                quote_id = await self.quotes.add(quote)
                logger.debug(f"{record.symbol} | Daily quote {quote_id} added")
                added += 1

            logger.info(f"Batch {batch.batch_id}: {added} quotes added, {skipped} duplicates skipped")
        return batch

    async def _resolve_company(self, symbol: str, cache: dict[str, Company]) -> Company:
        company = cache.get(symbol) or await self.companies.find_by_symbol(symbol)
        if company is None:
            # Display name is filled in later, outside this service
            company = Company(symbol=symbol, name=symbol)
            company_id = await self.companies.add(company)
            logger.debug(f"{symbol} | Company {company_id} added")
        cache[symbol] = company
        return company

    async def _on_batch_complete(self, batch: UpdateBatch) -> None:
        if batch.failed:
            logger.error(f"Batch {batch.batch_id} had failed tasks, update history not recorded")
            return
        await self.save_update()

    # =========================================================================
    # UPDATE STATUS
    # =========================================================================

    async def save_update(self, now: Optional[datetime] = None) -> int:
        """Store a successful update with the current exchange time."""
        history = UpdateHistory(
            status=UpdateStatus.SUCCESS.value,
            created_at=self._local_timestamp(now),
        )
        history_id = await self.updates.add(history)
        logger.info(f"Update {history_id} added")
        return history_id

    async def check_if_initial_update(self) -> bool:
        """True when no update has ever been recorded."""
        return await self.updates.count() == 0

    async def check_if_update_performed(self, now: Optional[datetime] = None) -> bool:
        """True on weekends or when the newest update ran today (exchange calendar)."""
        today = to_exchange_date(now or get_exchange_now())
        if is_weekend(today):
            return True

        newest = await self.updates.find_newest()
        if newest is None:
            return False
        return to_exchange_date(newest.created_at) == today

    # =========================================================================
    # INCREMENTAL MODE
    # =========================================================================

    async def process_daily_calculation(
        self, now: Optional[datetime] = None
    ) -> DailyCalculationReport:
        """Add a statistic row for every company with a new quote."""
        report = DailyCalculationReport()
        created_at = self._local_timestamp(now)

        for company in await self.companies.load_all():
            try:
                async with self._company_locks[company.symbol]:
                    statistic_id = await self._calculate_daily(company, created_at)
            except UnknownCompanySeed as e:
                logger.warning(f"{company.symbol} | {e.message}")
                report.errors[company.symbol] = e.message
                continue
            if statistic_id is not None:
                report.created[company.symbol] = statistic_id

        logger.info(
            f"Daily calculation: {len(report.created)} statistics added, "
            f"{len(report.errors)} companies skipped"
        )
        return report

    async def _calculate_daily(self, company: Company, created_at: datetime) -> Optional[int]:
        """Id of the new row; None when the newest quote already has one."""
        quotes = await self.quotes.find_by_company(company, self.quote_window)
        if len(quotes) < 2:
            raise UnknownCompanySeed(
                self.name,
                f"{len(quotes)} quote(s) stored, at least 2 needed",
                {"symbol": company.symbol},
            )

        current = await self.statistics.find_by_company_and_date(company.id, quotes[0].quote_date)
        if current is not None:
            logger.debug(f"{company.symbol} | No new quote since {quotes[0].quote_date}, skipped")
            return None

        seed = await self.statistics.find_by_company_and_date(company.id, quotes[1].quote_date)
        if seed is None:
            raise UnknownCompanySeed(
                self.name,
                f"No statistic for {quotes[1].quote_date} to seed from, run a backfill first",
                {"symbol": company.symbol},
            )

        values = self.engine.calculate_step(
            PriceHistory.from_quotes(quotes), IndicatorValues.model_validate(seed)
        )
        statistic_id = await self.statistics.add(self._build_statistic(quotes[0], values, created_at))
        logger.info(f"{company.symbol} | Statistic {statistic_id} added")
        return statistic_id

    # =========================================================================
    # BACKFILL MODE
    # =========================================================================

    async def process_calculation_for_company(self, symbol: str) -> bool:
        """
        Recompute and store statistics for a company's whole history.

        Best effort: failures are logged and reported as False. The company's
        writes run in a savepoint, so a failure discards only its own rows.
        """
        async with self._company_locks[symbol]:
            try:
                async with self.statistics.savepoint():
                    count = await self._backfill(symbol)
            except Exception:
                logger.exception(f"ERR.CALC.STAT.{symbol}")
                return False

        logger.info(f"{symbol} | Backfilled {count} statistics")
        return True

    async def process_calculation_for_companies(self, symbols: Iterable[str]) -> dict[str, bool]:
        """Backfill several companies; one failure does not stop the rest."""
        return {symbol: await self.process_calculation_for_company(symbol) for symbol in symbols}

    async def _backfill(self, symbol: str) -> int:
        company = await self.companies.find_by_symbol(symbol)
        if company is None:
            raise UnknownCompany(self.name, f"Unknown symbol {symbol}")

        quotes = await self.quotes.find_all_by_company(company)
        if len(quotes) < self.min_quotes:
            logger.info(f"{symbol} | {len(quotes)} quote(s), shortest indicator needs {self.min_quotes}")
            return 0

        indicators = self.engine.calculate_history(PriceHistory.from_quotes(quotes))
        created_at = self._local_timestamp()

        # Oldest day the shortest indicator covers, then forward to the newest
        count = 0
        for offset in range(len(quotes) - self.min_quotes, -1, -1):
            statistic = self._build_statistic(quotes[offset], indicators.values_at(offset), created_at)
            statistic_id = await self.statistics.add(statistic)
            logger.debug(f"{symbol} | Statistic {statistic_id} added")
            count += 1
        return count

    # =========================================================================
    # READS
    # =========================================================================

    async def get_statistic_list(
        self, on_date: date, ids: Optional[CompanyIds] = None
    ) -> list[StatisticRecordSimple]:
        """
        Statistics of the days up to `on_date`, one object per company.

        Args:
            on_date: Last quote date to include
            ids: Company ids as a list or a comma separated string; all
                 companies when omitted
        """
        date_from = on_date - timedelta(days=self.lookback_days)
        if ids is None:
            statistics = await self.statistics.find_by_date_period(date_from, on_date)
        else:
            statistics = await self.statistics.find_by_date_and_ids(
                date_from, on_date, self._parse_ids(ids)
            )
        return self._fold_by_company(statistics)

    async def get_statistic_list_for_index(
        self, on_date: date, index_id: int
    ) -> list[StatisticRecordSimple]:
        """Statistics of the companies in a stock index."""
        index = await self.indices.load(index_id)
        if index is None:
            raise UnknownCompany(self.name, f"Unknown stock index {index_id}")
        return await self.get_statistic_list(on_date, [company.id for company in index.companies])

    async def get_statistic_details(self, on_date: date, company_id: int) -> StatisticDetails:
        """Latest quote and recent statistics of one company."""
        company = await self.companies.load(company_id)
        if company is None:
            raise UnknownCompany(self.name, f"Unknown company {company_id}")

        quote = await self.quotes.find_last_by_company(company)
        date_from = on_date - timedelta(days=self.lookback_days)
        statistics = await self.statistics.find_by_date_and_ids(date_from, on_date, [company_id])

        if statistics:
            statistic = self.converter.create_statistic_simple(statistics)
        else:
            statistic = StatisticRecordSimple(
                company_id=company.id, symbol=company.symbol, name=company.name
            )
        return StatisticDetails(
            quote=DailyQuote.model_validate(quote) if quote is not None else None,
            statistic=statistic,
        )

    def _fold_by_company(self, statistics: Sequence[StatisticRecord]) -> list[StatisticRecordSimple]:
        """
        One DTO per run of consecutive same-company rows.

        Expects rows grouped by company, as the store returns them.
        """
        return [
            self.converter.create_statistic_simple(list(rows))
            for _, rows in groupby(statistics, key=lambda s: s.quote.company_id)
        ]

    def _parse_ids(self, ids: CompanyIds) -> list[int]:
        if not isinstance(ids, str):
            return list(ids)
        try:
            return [int(part) for part in ids.split(",") if part.strip()]
        except ValueError as e:
            raise ValidationError(self.name, f"Malformed company id list: {ids!r}") from e

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _build_statistic(
        quote: DailyQuoteRecord, values: IndicatorValues, created_at: datetime
    ) -> StatisticRecord:
        return StatisticRecord(
            quote_id=quote.id,
            quote=quote,
            created_at=created_at,
            **values.model_dump(),
        )

    @staticmethod
    def _local_timestamp(now: Optional[datetime] = None) -> datetime:
        """Naive timestamp on the exchange clock, as stored."""
        now = now or get_exchange_now()
        if now.tzinfo is None:
            return now
        return now.astimezone(EXCHANGE_TZ).replace(tzinfo=None)


def create_statistic_service(session: AsyncSession) -> StatisticService:
    """Statistic service backed by the SQLAlchemy repositories of one session."""
    from stockstat.db.repositories import (
        SqlCompanyDirectory,
        SqlIndexDirectory,
        SqlQuoteStore,
        SqlStatisticStore,
        SqlUpdateLog,
    )

    return StatisticService(
        companies=SqlCompanyDirectory(session),
        quotes=SqlQuoteStore(session),
        statistics=SqlStatisticStore(session),
        updates=SqlUpdateLog(session),
        indices=SqlIndexDirectory(session),
    )
