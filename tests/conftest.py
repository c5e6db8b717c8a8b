"""Shared fixtures: in-memory database, statistic service and quote builders."""

from datetime import date, timedelta

import numpy as np
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stockstat.core.market_hours import is_trading_day
from stockstat.db.database import enable_savepoints
from stockstat.db.models import Base
from stockstat.schemas.quotes import QuoteIn
from stockstat.schemas.statistics import INDICATOR_FIELDS
from stockstat.services.indicators import PriceHistory
from stockstat.services.statistics import create_statistic_service

SCENARIO_CLOSES = [10, 11, 9, 12, 13, 11, 14, 15, 13, 16]

# Volume averages are produced by the full recompute only
STEP_FIELDS = [name for name in INDICATOR_FIELDS if not name.startswith("average_vol")]


def assert_rows_match(actual, expected, fields=STEP_FIELDS):
    """Compare indicator rows field by field; None must stay None."""
    for name in fields:
        want = getattr(expected, name)
        got = getattr(actual, name)
        if want is None:
            assert got is None, name
        else:
            assert got == pytest.approx(want, rel=1e-9, abs=1e-9), name


def trading_days(start: date, count: int) -> list[date]:
    """`count` consecutive weekdays starting at (or after) `start`."""
    days = []
    current = start
    while len(days) < count:
        if is_trading_day(current):
            days.append(current)
        current += timedelta(days=1)
    return days


def make_quotes(symbol: str, closes, start: date = date(2024, 1, 2)) -> list[QuoteIn]:
    """Quotes on consecutive trading days with a one-unit range around each close."""
    days = trading_days(start, len(closes))
    return [
        QuoteIn(
            symbol=symbol,
            quote_date=day,
            open=float(close),
            close=float(close),
            min=float(close) - 0.5,
            max=float(close) + 0.5,
            volume=1000 + 10 * i,
        )
        for i, (day, close) in enumerate(zip(days, closes))
    ]


def random_walk(n: int, seed: int = 7) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Chronological (closes, mins, maxs, volumes) with min <= close <= max."""
    rng = np.random.default_rng(seed)
    closes = 100 + np.cumsum(rng.normal(0, 1.5, n))
    mins = closes - rng.uniform(0.1, 2.0, n)
    maxs = closes + rng.uniform(0.1, 2.0, n)
    volumes = rng.integers(1_000, 50_000, n).astype(float)
    return closes, mins, maxs, volumes


def history_from_chronological(closes, mins, maxs, volumes) -> PriceHistory:
    """PriceHistory (newest first) from chronological arrays."""
    return PriceHistory(
        closes=np.asarray(closes, dtype=float)[::-1],
        mins=np.asarray(mins, dtype=float)[::-1],
        maxs=np.asarray(maxs, dtype=float)[::-1],
        volumes=np.asarray(volumes, dtype=float)[::-1],
    )


def without_newest(history: PriceHistory) -> PriceHistory:
    """The same history one day earlier."""
    return PriceHistory(
        history.closes[1:], history.mins[1:], history.maxs[1:], history.volumes[1:]
    )


@pytest.fixture
def walk_history() -> PriceHistory:
    return history_from_chronological(*random_walk(80))


@pytest_asyncio.fixture
async def session() -> AsyncSession:
    engine = enable_savepoints(
        create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def service(session):
    return create_statistic_service(session)
