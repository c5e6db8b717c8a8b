"""
CONTRACT 2: Statistic Rows

Input: quote history (newest first) + previous statistic row
Output: IndicatorValues, persisted as one StatisticRecord per quote

Read DTOs fold consecutive statistic rows of one company into one object.
"""

from datetime import date
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from stockstat.schemas.quotes import DailyQuote


# =============================================================================
# ENUMS
# =============================================================================


class UpdateStatus(str, Enum):
    SUCCESS = "SUCCESS"


# =============================================================================
# INDICATOR ROW
# =============================================================================


class IndicatorValues(BaseModel):
    """
    Indicator values for one trading day.

    None means the indicator's warm-up window does not reach this day.
    Field names match the StatisticRecord columns.
    """

    model_config = ConfigDict(from_attributes=True)

    # Moving averages
    ema5: Optional[float] = None
    ema10: Optional[float] = None
    ema12: Optional[float] = None
    ema14: Optional[float] = None
    ema20: Optional[float] = None
    ema26: Optional[float] = None
    ema50: Optional[float] = None
    ema100: Optional[float] = None
    sma14: Optional[float] = None
    sma28: Optional[float] = None
    sma42: Optional[float] = None

    # Oscillators
    rsi: Optional[float] = Field(default=None, ge=0, le=100)
    sts: Optional[float] = None
    sts_ema: Optional[float] = None
    macd: Optional[float] = None
    macd_ema: Optional[float] = None
    roc: Optional[float] = None
    sroc: Optional[float] = None

    # Volatility / trend strength
    atr: Optional[float] = Field(default=None, ge=0)
    adx: Optional[float] = Field(default=None, ge=0)
    dmi_plus: Optional[float] = Field(default=None, ge=0)
    dmi_minus: Optional[float] = Field(default=None, ge=0)

    # Volume averages
    average_vol5: Optional[float] = None
    average_vol12: Optional[float] = None
    average_vol26: Optional[float] = None
    average_vol50: Optional[float] = None


INDICATOR_FIELDS: tuple[str, ...] = tuple(IndicatorValues.model_fields)


# =============================================================================
# READ DTOs
# =============================================================================


class StatisticPoint(IndicatorValues):
    """One day of a company's statistics together with its quote."""

    quote_date: date
    close: float
    volume: int


class StatisticRecordSimple(BaseModel):
    """Consecutive statistic rows of one company."""

    company_id: int
    symbol: str
    name: str
    statistics: list[StatisticPoint] = Field(default_factory=list)


class StatisticDetails(BaseModel):
    """Latest quote of a company with its recent statistics."""

    quote: Optional[DailyQuote] = None
    statistic: StatisticRecordSimple


# =============================================================================
# RUN REPORTS
# =============================================================================


class DailyCalculationReport(BaseModel):
    """Outcome of one incremental calculation run."""

    created: dict[str, int] = Field(
        default_factory=dict, description="Symbol -> id of the new statistic row"
    )
    errors: dict[str, str] = Field(
        default_factory=dict, description="Symbol -> reason the company was skipped"
    )

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
