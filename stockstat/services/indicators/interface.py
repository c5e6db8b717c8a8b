"""
Indicator Engine Service Interface

Defines the contract for the indicator calculation layer.
"""

from abc import abstractmethod
from typing import Optional

import numpy as np

from stockstat.services.base import BaseService
from stockstat.schemas.statistics import IndicatorValues
from stockstat.services.indicators.series import IndicatorHistory, PriceHistory


class IndicatorServiceInterface(BaseService[PriceHistory, IndicatorHistory]):
    """
    Indicator Engine Service Contract.

    INPUT: PriceHistory
        - close/min/max/volume arrays, newest day first

    OUTPUT: IndicatorHistory
        - one newest-first sequence per indicator, each as long as the
          indicator is valid
    """

    @property
    def name(self) -> str:
        return "IndicatorService"

    @abstractmethod
    async def execute(self, input_data: PriceHistory) -> IndicatorHistory:
        """Batch-calculate all indicators over the whole history."""
        pass

    @abstractmethod
    def calculate_history(self, history: PriceHistory) -> IndicatorHistory:
        """
        Batch mode: recompute every indicator over the full history.

        Args:
            history: Quote arrays, newest first

        Returns:
            Indicator sequences, newest first
        """
        pass

    @abstractmethod
    def calculate_step(
        self, history: PriceHistory, previous: Optional[IndicatorValues]
    ) -> IndicatorValues:
        """
        Incremental mode: indicator row for the newest day of `history`.

        Args:
            history: Bounded quote window, newest first (at least 2 days)
            previous: Row of the day before the newest one (recurrence seeds)

        Returns:
            Values for the newest day; fields that cannot be derived are None
        """
        pass

    @abstractmethod
    def ema_history(self, period: int, series: np.ndarray) -> np.ndarray:
        """SMA-seeded EMA over a newest-first series, newest first."""
        pass

    @abstractmethod
    def sma_history(self, period: int, series: np.ndarray) -> np.ndarray:
        """SMA over a newest-first series, newest first."""
        pass

    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        return True
