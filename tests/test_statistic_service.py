"""Tests for StatisticService against an in-memory SQLite database."""

from datetime import date, datetime, timedelta

import pytest
import pytz

from stockstat.core.market_hours import get_previous_trading_day
from stockstat.db.models import StatisticRecord, StockIndex
from stockstat.db.repositories import (
    SqlCompanyDirectory,
    SqlIndexDirectory,
    SqlQuoteStore,
    SqlStatisticStore,
    SqlUpdateLog,
)
from stockstat.schemas.quotes import QuoteIn
from stockstat.services.base import PersistenceFailure, UnknownCompany, ValidationError
from stockstat.services.indicators import IndicatorService, PriceHistory
from stockstat.services.statistics import StatisticService, create_statistic_service

from tests.conftest import (
    SCENARIO_CLOSES,
    assert_rows_match,
    make_quotes,
    random_walk,
    trading_days,
)


def walk_quotes(symbol: str, n: int) -> list[QuoteIn]:
    closes, mins, maxs, volumes = random_walk(n, seed=21)
    return [
        QuoteIn(
            symbol=symbol,
            quote_date=day,
            open=float(close),
            close=float(close),
            min=float(low),
            max=float(high),
            volume=int(volume),
        )
        for day, close, low, high, volume in zip(
            trading_days(date(2024, 1, 2), n), closes, mins, maxs, volumes
        )
    ]


async def ingest(service: StatisticService, quotes) -> None:
    await service.process_quote_update(quotes, finished=True)


async def stored_statistics(service: StatisticService, symbol: str):
    company = await service.companies.find_by_symbol(symbol)
    return await service.statistics.find_by_date_and_ids(date(2000, 1, 1), date(2100, 1, 1), [company.id])


class TestIngestion:
    async def test_creates_company_named_after_symbol(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES[:3]))

        company = await service.companies.find_by_symbol("ABC")
        assert company.name == "ABC"
        quotes = await service.quotes.find_all_by_company(company)
        assert [q.close for q in quotes] == [9.0, 11.0, 10.0]

    async def test_duplicate_quotes_are_skipped(self, service):
        quotes = make_quotes("ABC", SCENARIO_CLOSES[:4])
        await ingest(service, quotes[:3])
        await ingest(service, quotes)

        company = await service.companies.find_by_symbol("ABC")
        assert len(await service.quotes.find_all_by_company(company)) == 4

    async def test_finished_batch_records_update(self, service):
        assert await service.check_if_initial_update()

        batch = await service.process_quote_update(make_quotes("ABC", SCENARIO_CLOSES[:2]))
        assert await service.check_if_initial_update()

        await service.process_quote_update(make_quotes("XYZ", SCENARIO_CLOSES[:2]), batch, finished=True)
        assert batch.completed
        assert not await service.check_if_initial_update()
        assert await service.updates.count() == 1

    async def test_storage_failure_propagates_without_history(self, session):
        class FailingQuoteStore(SqlQuoteStore):
            async def add(self, quote):
                raise PersistenceFailure("QuoteStore", "disk full")

        service = StatisticService(
            companies=SqlCompanyDirectory(session),
            quotes=FailingQuoteStore(session),
            statistics=SqlStatisticStore(session),
            updates=SqlUpdateLog(session),
            indices=SqlIndexDirectory(session),
        )
        batch = service.new_batch()
        with pytest.raises(PersistenceFailure):
            await service.process_quote_update(make_quotes("ABC", SCENARIO_CLOSES[:2]), batch, finished=True)

        assert batch.in_flight == 0
        assert batch.failed
        assert await service.check_if_initial_update()


class TestUpdateStatus:
    async def test_weekend_counts_as_updated(self, service):
        assert await service.check_if_update_performed(datetime(2024, 1, 6, 12, 0))
        assert await service.check_if_update_performed(datetime(2024, 1, 7, 12, 0))

    async def test_weekday_without_history(self, service):
        friday = get_previous_trading_day(date(2024, 1, 7))
        assert not await service.check_if_update_performed(datetime.combine(friday, datetime.min.time()))

    async def test_update_on_same_day(self, service):
        await service.save_update(datetime(2024, 1, 8, 9, 0))
        assert await service.check_if_update_performed(datetime(2024, 1, 8, 18, 0))
        assert not await service.check_if_update_performed(datetime(2024, 1, 9, 9, 0))

    async def test_dates_compared_on_exchange_clock(self, service):
        # 23:30 UTC is already the next day in Warsaw
        await service.save_update(pytz.utc.localize(datetime(2024, 1, 8, 23, 30)))
        assert await service.check_if_update_performed(datetime(2024, 1, 9, 10, 0))


class TestBackfill:
    async def test_rows_from_shortest_indicator_onwards(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        assert await service.process_calculation_for_company("ABC")

        rows = await stored_statistics(service, "ABC")
        assert len(rows) == len(SCENARIO_CLOSES) - 4
        assert rows[0].ema5 == pytest.approx(11.0)
        assert rows[0].ema10 is None
        assert rows[-1].ema5 == pytest.approx(14.0)
        assert rows[-1].ema10 == pytest.approx(12.4)
        assert all(row.rsi is None and row.adx is None for row in rows)
        assert rows[-1].average_vol5 is not None

    async def test_too_few_quotes(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES[:4]))
        assert await service.process_calculation_for_company("ABC")
        assert await stored_statistics(service, "ABC") == []

    async def test_unknown_symbol_reports_failure(self, service):
        assert not await service.process_calculation_for_company("NOPE")

    async def test_rerun_replaces_rows(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        assert await service.process_calculation_for_company("ABC")
        assert await service.process_calculation_for_company("ABC")
        assert len(await stored_statistics(service, "ABC")) == len(SCENARIO_CLOSES) - 4

    async def test_several_companies(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        results = await service.process_calculation_for_companies(["ABC", "NOPE"])
        assert results == {"ABC": True, "NOPE": False}

    async def test_company_locks_belong_to_one_service(self, service, session):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        assert await service.process_calculation_for_company("ABC")

        assert set(service._company_locks) == {"ABC"}
        assert create_statistic_service(session)._company_locks == {}

    async def test_storage_failure_is_isolated_per_company(self, session):
        class ConflictingStatisticStore(SqlStatisticStore):
            """Inserts a second row for the third quote of BAD."""

            def __init__(self, session):
                super().__init__(session)
                self.bad_rows = 0

            async def add(self, statistic):
                if statistic.quote.company.symbol == "BAD":
                    self.bad_rows += 1
                    if self.bad_rows == 3:
                        self.session.add_all([statistic, StatisticRecord(quote_id=statistic.quote_id)])
                        await self.session.flush()
                return await super().add(statistic)

        service = StatisticService(
            companies=SqlCompanyDirectory(session),
            quotes=SqlQuoteStore(session),
            statistics=ConflictingStatisticStore(session),
            updates=SqlUpdateLog(session),
            indices=SqlIndexDirectory(session),
        )
        for symbol in ("ABC", "BAD", "XYZ"):
            await ingest(service, make_quotes(symbol, SCENARIO_CLOSES))

        results = await service.process_calculation_for_companies(["ABC", "BAD", "XYZ"])

        assert results == {"ABC": True, "BAD": False, "XYZ": True}
        assert len(await stored_statistics(service, "ABC")) == len(SCENARIO_CLOSES) - 4
        assert len(await stored_statistics(service, "XYZ")) == len(SCENARIO_CLOSES) - 4
        assert await stored_statistics(service, "BAD") == []

        await session.commit()
        assert len(await stored_statistics(service, "ABC")) == len(SCENARIO_CLOSES) - 4


class TestDailyCalculation:
    async def test_matches_full_recompute(self, service):
        quotes = walk_quotes("KGHM", 40)
        await ingest(service, quotes[:39])
        assert await service.process_calculation_for_company("KGHM")
        await ingest(service, quotes[39:])

        report = await service.process_daily_calculation(datetime(2024, 2, 27, 18, 0))
        assert not report.has_errors
        assert "KGHM" in report.created

        rows = await stored_statistics(service, "KGHM")
        assert rows[-1].quote.quote_date == quotes[-1].quote_date
        expected = IndicatorService().calculate_history(PriceHistory.from_quotes(quotes[::-1])).latest()
        assert_rows_match(rows[-1], expected)
        assert rows[-1].average_vol5 is None

    async def test_companies_without_seed_are_reported(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        assert await service.process_calculation_for_company("ABC")
        await ingest(service, make_quotes("ABC", [17], start=date(2024, 1, 16)))
        await ingest(service, make_quotes("ONE", [10]))
        await ingest(service, make_quotes("TWO", [10, 11]))

        report = await service.process_daily_calculation()
        assert list(report.created) == ["ABC"]
        assert set(report.errors) == {"ONE", "TWO"}
        assert report.has_errors

    async def test_rerun_does_not_duplicate(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        assert await service.process_calculation_for_company("ABC")
        await ingest(service, make_quotes("ABC", [17], start=date(2024, 1, 16)))

        first = await service.process_daily_calculation()
        second = await service.process_daily_calculation()

        assert list(first.created) == ["ABC"]
        assert second.created == {}
        assert len(await stored_statistics(service, "ABC")) == len(SCENARIO_CLOSES) - 3

    async def test_no_new_quote_keeps_backfilled_row(self, service):
        await ingest(service, make_quotes("ABC", SCENARIO_CLOSES))
        assert await service.process_calculation_for_company("ABC")
        newest = (await stored_statistics(service, "ABC"))[-1]
        row_id, volume_average = newest.id, newest.average_vol5
        assert volume_average is not None

        report = await service.process_daily_calculation()

        assert report.created == {}
        assert report.errors == {}
        newest = (await stored_statistics(service, "ABC"))[-1]
        assert newest.id == row_id
        assert newest.average_vol5 == volume_average

    async def test_execute_runs_daily_calculation(self, service):
        report = await service.execute()
        assert report.created == {}
        assert report.errors == {}

    async def test_health_check(self, service):
        assert await service.health_check()


class TestReads:
    @pytest.fixture
    def days(self):
        return trading_days(date(2024, 1, 2), 30)

    @pytest.fixture
    async def loaded(self, service, days):
        await ingest(service, make_quotes("FULL", [20 + (i % 7) for i in range(30)]))
        await ingest(service, make_quotes("NEW", [15, 16, 17, 16, 18, 19, 20], start=days[-7]))
        assert await service.process_calculation_for_companies(["FULL", "NEW"]) == {
            "FULL": True,
            "NEW": True,
        }
        return service

    async def test_one_object_per_company(self, loaded, days):
        last = days[-1]
        records = await loaded.get_statistic_list(last)

        assert [r.symbol for r in records] == ["FULL", "NEW"]
        window = [d for d in days if d >= last - timedelta(days=10)]
        assert [s.quote_date for s in records[0].statistics] == window
        assert [s.quote_date for s in records[1].statistics] == days[-3:]
        assert records[1].statistics[-1].close == 20.0

    async def test_filtered_by_ids(self, loaded, days):
        full = await loaded.companies.find_by_symbol("FULL")
        new = await loaded.companies.find_by_symbol("NEW")

        records = await loaded.get_statistic_list(days[-1], f"{new.id}")
        assert [r.symbol for r in records] == ["NEW"]
        records = await loaded.get_statistic_list(days[-1], f"{full.id},{new.id}")
        assert [r.symbol for r in records] == ["FULL", "NEW"]
        records = await loaded.get_statistic_list(days[-1], [full.id])
        assert [r.symbol for r in records] == ["FULL"]

    async def test_malformed_ids(self, loaded, days):
        with pytest.raises(ValidationError):
            await loaded.get_statistic_list(days[-1], "1,x")

    async def test_nothing_in_period(self, loaded):
        assert await loaded.get_statistic_list(date(2020, 1, 1)) == []

    async def test_index_members_only(self, loaded, session, days):
        full = await loaded.companies.find_by_symbol("FULL")
        index = StockIndex(name="WIG20", companies=[full])
        session.add(index)
        await session.flush()

        records = await loaded.get_statistic_list_for_index(days[-1], index.id)
        assert [r.symbol for r in records] == ["FULL"]

    async def test_unknown_index(self, loaded, days):
        with pytest.raises(UnknownCompany):
            await loaded.get_statistic_list_for_index(days[-1], 999)

    async def test_details(self, loaded, days):
        full = await loaded.companies.find_by_symbol("FULL")
        details = await loaded.get_statistic_details(days[-1], full.id)

        assert details.quote.quote_date == days[-1]
        assert details.statistic.symbol == "FULL"
        assert details.statistic.statistics[-1].quote_date == days[-1]

    async def test_details_without_statistics(self, loaded, days):
        await ingest(loaded, make_quotes("ONE", [10]))
        one = await loaded.companies.find_by_symbol("ONE")
        details = await loaded.get_statistic_details(days[-1], one.id)

        assert details.statistic.symbol == "ONE"
        assert details.statistic.statistics == []

    async def test_details_unknown_company(self, loaded, days):
        with pytest.raises(UnknownCompany):
            await loaded.get_statistic_details(days[-1], 999)
