"""
Indicator Engine Service

CONTRACT:
    Input:  PriceHistory (close/min/max/volume, newest first)
    Output: IndicatorHistory (batch) or IndicatorValues (single step)

RESPONSIBILITIES:
    - EMA (5..100), SMA (14, 28, 42) and volume EMAs
    - RSI, stochastic oscillator with its EMA, MACD with signal line
    - ATR, rate of change with its EMA, ADX with +DI/-DI

PURE PYTHON - Uses NumPy for calculations, no storage access.
"""

from stockstat.services.indicators.interface import IndicatorServiceInterface
from stockstat.services.indicators.series import IndicatorHistory, PriceHistory
from stockstat.services.indicators.service import IndicatorService, get_indicator_service

__all__ = [
    "IndicatorServiceInterface",
    "IndicatorHistory",
    "PriceHistory",
    "IndicatorService",
    "get_indicator_service",
]
