"""
Indicator Engine Service Implementation

Calculates the statistic indicator set from quote history.
Pure Python/NumPy calculations, no storage access.
"""

import logging
from typing import Callable, Optional

import numpy as np

from stockstat.core.config import settings
from stockstat.schemas.statistics import IndicatorValues
from stockstat.services.base import InsufficientSeed, ValidationError
from stockstat.services.indicators.interface import IndicatorServiceInterface
from stockstat.services.indicators.series import IndicatorHistory, PriceHistory
from stockstat.services.indicators.calculations import (
    ADX_PERIOD,
    ATR_PERIOD,
    EMA_PERIODS,
    MACD_SIGNAL_PERIOD,
    ROC_PERIOD,
    RSI_PERIOD,
    SMA_PERIODS,
    SROC_PERIOD,
    STS_EMA_PERIOD,
    STS_PERIOD,
    VOLUME_EMA_PERIODS,
    adx,
    atr,
    directional_index,
    directional_movement,
    directional_movement_index,
    ema,
    ema_step,
    macd,
    roc,
    roc_value,
    rsi,
    sma,
    stochastic,
    true_range,
    valid_newest_first,
    wilder_step,
)

logger = logging.getLogger(__name__)


def _last(arr: np.ndarray) -> Optional[float]:
    """Newest value of a chronological array, None while still warming up."""
    if len(arr) == 0 or np.isnan(arr[-1]):
        return None
    return float(arr[-1])


class _WindowBootstrap:
    """Seeds missing recurrences from a batch run over the update window."""

    def __init__(self, service: "IndicatorService", history: PriceHistory):
        self._service = service
        self._history = history
        self._values: Optional[IndicatorValues] = None

    def latest(self, name: str) -> Optional[float]:
        if self._values is None:
            logger.debug(f"Bootstrapping missing seeds from {len(self._history)}-day window")
            self._values = self._service.calculate_history(self._history).latest()
        return getattr(self._values, name)


class IndicatorService(IndicatorServiceInterface):
    """
    Indicator Engine Service.

    Two modes over the same formulas:
    - calculate_history: full recompute, one value per valid day
    - calculate_step: one new day seeded from the previous day's row

    Running both over the same history gives the same values for the
    newest day (volume averages are produced in batch mode only).
    """

    def __init__(self, rsi_window: Optional[int] = None):
        self.rsi_window = rsi_window or settings.quote_window

    @property
    def name(self) -> str:
        return "IndicatorService"

    async def execute(self, input_data: PriceHistory) -> IndicatorHistory:
        """Batch-calculate all indicators over the whole history."""
        return self.calculate_history(input_data)

    # =========================================================================
    # BATCH MODE
    # =========================================================================

    def ema_history(self, period: int, series: np.ndarray) -> np.ndarray:
        chronological = np.asarray(series, dtype=float)[::-1]
        return valid_newest_first(ema(chronological, period))

    def sma_history(self, period: int, series: np.ndarray) -> np.ndarray:
        chronological = np.asarray(series, dtype=float)[::-1]
        return valid_newest_first(sma(chronological, period))

    def calculate_history(self, history: PriceHistory) -> IndicatorHistory:
        """Recompute every indicator over the full history."""
        closes, mins, maxs, volumes = history.chronological()
        series: dict[str, np.ndarray] = {}

        # Moving averages
        for period in EMA_PERIODS:
            series[f"ema{period}"] = ema(closes, period)
        for period in SMA_PERIODS:
            series[f"sma{period}"] = sma(closes, period)
        for period in VOLUME_EMA_PERIODS:
            series[f"average_vol{period}"] = ema(volumes, period)

        # Oscillators
        series["rsi"] = rsi(closes, RSI_PERIOD, window=self.rsi_window)
        series["sts"], series["sts_ema"] = stochastic(maxs, mins, closes, STS_PERIOD, STS_EMA_PERIOD)
        series["macd"], series["macd_ema"] = macd(closes)
        series["roc"], series["sroc"] = roc(closes, ROC_PERIOD, SROC_PERIOD)

        # Volatility / trend strength
        series["atr"] = atr(maxs, mins, closes, ATR_PERIOD)
        series["dmi_plus"], series["dmi_minus"], series["adx"] = adx(maxs, mins, closes, ADX_PERIOD)

        return IndicatorHistory(
            size=len(history),
            series={name: valid_newest_first(values) for name, values in series.items()},
        )

    # =========================================================================
    # INCREMENTAL MODE
    # =========================================================================

    def calculate_step(
        self, history: PriceHistory, previous: Optional[IndicatorValues]
    ) -> IndicatorValues:
        """Indicator row for the newest day, seeded from the previous row."""
        if len(history) < 2:
            raise ValidationError(self.name, "Incremental step needs at least two days of history")

        closes, mins, maxs, _ = history.chronological()
        close, low, high = float(closes[-1]), float(mins[-1]), float(maxs[-1])
        seeds = previous or IndicatorValues()
        bootstrap = _WindowBootstrap(self, history)
        values: dict[str, Optional[float]] = {}

        def advance(name: str, step: Callable, period: int, value: Optional[float]) -> Optional[float]:
            if value is None:
                return None
            try:
                return float(step(period, value, getattr(seeds, name)))
            except InsufficientSeed:
                return bootstrap.latest(name)

        # Moving averages
        for period in EMA_PERIODS:
            values[f"ema{period}"] = advance(f"ema{period}", ema_step, period, close)
        for period in SMA_PERIODS:
            values[f"sma{period}"] = _last(sma(closes[-period:], period))

        # RSI over the trailing window only
        values["rsi"] = _last(rsi(closes[-self.rsi_window:], RSI_PERIOD))

        # Stochastic %K and its EMA
        k = _last(stochastic(maxs[-STS_PERIOD:], mins[-STS_PERIOD:], closes[-STS_PERIOD:], STS_PERIOD)[0])
        values["sts"] = k
        values["sts_ema"] = advance("sts_ema", ema_step, STS_EMA_PERIOD, k)

        # ATR
        tr = true_range(high, low, float(closes[-2]))
        values["atr"] = advance("atr", wilder_step, ATR_PERIOD, tr)

        # MACD from the EMAs advanced above
        ema12, ema26 = values["ema12"], values["ema26"]
        macd_value = ema12 - ema26 if ema12 is not None and ema26 is not None else None
        values["macd"] = macd_value
        values["macd_ema"] = advance("macd_ema", ema_step, MACD_SIGNAL_PERIOD, macd_value)

        # Rate of change
        roc_now = roc_value(close, float(closes[-ROC_PERIOD - 1])) if len(closes) > ROC_PERIOD else None
        values["roc"] = roc_now
        values["sroc"] = advance("sroc", ema_step, SROC_PERIOD, roc_now)

        # Directional movement
        values["dmi_plus"], values["dmi_minus"] = self._step_directional_index(
            high, low, float(maxs[-2]), float(mins[-2]), values["atr"], seeds, bootstrap
        )
        if values["dmi_plus"] is not None and values["dmi_minus"] is not None:
            dx = directional_movement_index(values["dmi_plus"], values["dmi_minus"])
            values["adx"] = advance("adx", wilder_step, ADX_PERIOD, dx)

        return IndicatorValues(**values)

    def _step_directional_index(
        self,
        high: float,
        low: float,
        prev_high: float,
        prev_low: float,
        atr_now: Optional[float],
        seeds: IndicatorValues,
        bootstrap: _WindowBootstrap,
    ) -> tuple[Optional[float], Optional[float]]:
        """
        Advance +DI/-DI by one day.

        The smoothed true range is the ATR, so yesterday's smoothed
        movement is DI * ATR / 100 of the previous row.
        """
        if atr_now is None:
            return None, None
        if seeds.dmi_plus is None or seeds.dmi_minus is None or seeds.atr is None:
            return bootstrap.latest("dmi_plus"), bootstrap.latest("dmi_minus")

        plus_dm, minus_dm = directional_movement(high, low, prev_high, prev_low)
        smoothed_plus = wilder_step(ADX_PERIOD, plus_dm, seeds.dmi_plus * seeds.atr / 100)
        smoothed_minus = wilder_step(ADX_PERIOD, minus_dm, seeds.dmi_minus * seeds.atr / 100)
        return directional_index(smoothed_plus, smoothed_minus, atr_now)


# Singleton instance
_service_instance: Optional[IndicatorService] = None


def get_indicator_service() -> IndicatorService:
    """Get or create indicator service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = IndicatorService()
    return _service_instance
