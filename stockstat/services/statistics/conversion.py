"""
Statistic row to DTO conversion.
"""

from typing import Sequence

from stockstat.db.models import StatisticRecord
from stockstat.schemas.statistics import (
    INDICATOR_FIELDS,
    StatisticPoint,
    StatisticRecordSimple,
)


class ConversionService:
    """Folds statistic rows of one company into response objects."""

    def create_statistic_point(self, statistic: StatisticRecord) -> StatisticPoint:
        quote = statistic.quote
        return StatisticPoint(
            quote_date=quote.quote_date,
            close=quote.close,
            volume=quote.volume,
            **{name: getattr(statistic, name) for name in INDICATOR_FIELDS},
        )

    def create_statistic_simple(self, statistics: Sequence[StatisticRecord]) -> StatisticRecordSimple:
        """
        Concatenate consecutive rows of one company.

        All rows must belong to the same company; they keep their order.
        """
        if not statistics:
            raise ValueError("Cannot convert an empty statistic list")

        company = statistics[0].quote.company
        return StatisticRecordSimple(
            company_id=company.id,
            symbol=company.symbol,
            name=company.name,
            statistics=[self.create_statistic_point(s) for s in statistics],
        )
