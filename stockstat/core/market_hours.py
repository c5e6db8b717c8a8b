"""
Market Hours Utility

Exchange clock used by the update scheduler checks.
"""

from datetime import datetime, date, timedelta
from typing import Optional
import pytz

from stockstat.core.config import settings

EXCHANGE_TZ = pytz.timezone(settings.exchange_timezone)


def get_exchange_now() -> datetime:
    """Get current time in the exchange time zone."""
    return datetime.now(EXCHANGE_TZ)


def get_exchange_today() -> date:
    """Get current calendar date in the exchange time zone."""
    return get_exchange_now().date()


def to_exchange_date(dt: datetime) -> date:
    """Calendar date of a timestamp on the exchange clock (naive = exchange local)."""
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(EXCHANGE_TZ).date()


def is_weekend(dt: date) -> bool:
    """Check if date is a weekend."""
    return dt.weekday() >= 5  # Saturday = 5, Sunday = 6


def is_trading_day(dt: date) -> bool:
    """Check if date is a trading day."""
    return not is_weekend(dt)


def get_previous_trading_day(dt: Optional[date] = None) -> date:
    """Get the previous trading day."""
    if dt is None:
        dt = get_exchange_today()

    prev_day = dt - timedelta(days=1)
    while not is_trading_day(prev_day):
        prev_day -= timedelta(days=1)

    return prev_day
