"""
Technical Indicator Calculations

Pure Python/NumPy implementations of the statistic indicators.
All math is deterministic.

Array functions take series in chronological order (oldest first) and return
arrays of the same length with NaN for the warm-up positions. Single-step
functions advance one recurrence by one day; the array functions are built
on the same step functions so both modes produce identical floats.
"""

import math
import numpy as np
from typing import Optional

from stockstat.services.base import InsufficientSeed

ENGINE_NAME = "IndicatorEngine"

# Standard periods
EMA_PERIODS = (5, 10, 12, 14, 20, 26, 50, 100)
SMA_PERIODS = (14, 28, 42)
VOLUME_EMA_PERIODS = (5, 12, 26, 50)
RSI_PERIOD = 14
STS_PERIOD = 9
STS_EMA_PERIOD = 5
ATR_PERIOD = 14
MACD_FAST_PERIOD = 12
MACD_SLOW_PERIOD = 26
MACD_SIGNAL_PERIOD = 9
ROC_PERIOD = 12
SROC_PERIOD = 9
ADX_PERIOD = 14


# =============================================================================
# SINGLE STEPS
# =============================================================================


def _require_seed(previous: Optional[float], what: str) -> float:
    if previous is None or math.isnan(previous):
        raise InsufficientSeed(ENGINE_NAME, f"No previous value to advance {what}")
    return previous


def ema_factor(period: int) -> float:
    """EMA decay factor 2/(period+1)."""
    return 2 / (period + 1)


def ema_step(period: int, value: float, previous: Optional[float]) -> float:
    """Advance an exponential moving average by one value."""
    previous = _require_seed(previous, f"EMA{period}")
    k = ema_factor(period)
    return value * k + previous * (1 - k)


def wilder_step(period: int, value: float, previous: Optional[float]) -> float:
    """Advance a Wilder-smoothed average by one value."""
    previous = _require_seed(previous, f"Wilder average({period})")
    return (previous * (period - 1) + value) / period


def true_range(high: float, low: float, prev_close: float) -> float:
    """True range of one day."""
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def directional_movement(
    high: float, low: float, prev_high: float, prev_low: float
) -> tuple[float, float]:
    """
    Directional movement of one day.

    Returns: (plus_dm, minus_dm)
    """
    up_move = high - prev_high
    down_move = prev_low - low

    plus_dm = up_move if up_move > down_move and up_move > 0 else 0.0
    minus_dm = down_move if down_move > up_move and down_move > 0 else 0.0
    return plus_dm, minus_dm


def directional_index(
    smoothed_plus_dm: float, smoothed_minus_dm: float, smoothed_tr: float
) -> tuple[float, float]:
    """
    +DI and -DI from smoothed movement and true range.

    Both are 0 when the smoothed true range is 0 (flat market).
    """
    if smoothed_tr == 0:
        return 0.0, 0.0
    return 100 * smoothed_plus_dm / smoothed_tr, 100 * smoothed_minus_dm / smoothed_tr


def directional_movement_index(plus_di: float, minus_di: float) -> float:
    """DX; 0 when both directional indicators are 0."""
    total = plus_di + minus_di
    if total == 0:
        return 0.0
    return 100 * abs(plus_di - minus_di) / total


def rsi_value(avg_gain: float, avg_loss: float) -> float:
    """RSI from average gain/loss; fully bullish (100) when there is no loss."""
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def stochastic_value(close: float, lowest_low: float, highest_high: float) -> float:
    """%K of one day; 50 when the high-low range is zero."""
    if highest_high == lowest_low:
        return 50.0
    return 100 * (close - lowest_low) / (highest_high - lowest_low)


def roc_value(close: float, base_close: float) -> float:
    """Rate of change in percent; 0 when the base close is 0."""
    if base_close == 0:
        return 0.0
    return 100 * (close - base_close) / base_close


# =============================================================================
# MOVING AVERAGES
# =============================================================================


def _first_valid(data: np.ndarray) -> int:
    """Index of the first non-NaN value (len(data) when there is none)."""
    valid = np.flatnonzero(~np.isnan(data))
    return int(valid[0]) if len(valid) > 0 else len(data)


def sma(data: np.ndarray, period: int) -> np.ndarray:
    """Simple Moving Average."""
    data = np.asarray(data, dtype=float)
    result = np.full(len(data), np.nan)
    if len(data) < period:
        return result

    for i in range(period - 1, len(data)):
        result[i] = np.mean(data[i - period + 1 : i + 1])
    return result


def ema(data: np.ndarray, period: int) -> np.ndarray:
    """
    Exponential Moving Average.

    Leading NaNs are skipped; the first value is the SMA of the first
    `period` valid points.
    """
    data = np.asarray(data, dtype=float)
    result = np.full(len(data), np.nan)
    start = _first_valid(data)
    if len(data) - start < period:
        return result

    seed_at = start + period - 1
    result[seed_at] = np.mean(data[start : seed_at + 1])
    for i in range(seed_at + 1, len(data)):
        result[i] = ema_step(period, data[i], result[i - 1])
    return result


def wilder(data: np.ndarray, period: int) -> np.ndarray:
    """Wilder smoothing (seeded by the SMA of the first `period` valid points)."""
    data = np.asarray(data, dtype=float)
    result = np.full(len(data), np.nan)
    start = _first_valid(data)
    if len(data) - start < period:
        return result

    seed_at = start + period - 1
    result[seed_at] = np.mean(data[start : seed_at + 1])
    for i in range(seed_at + 1, len(data)):
        result[i] = wilder_step(period, data[i], result[i - 1])
    return result


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================


def _rsi_full(closes: np.ndarray, period: int) -> np.ndarray:
    result = np.full(len(closes), np.nan)
    if len(closes) < period + 1:
        return result

    gains = np.full(len(closes), np.nan)
    losses = np.full(len(closes), np.nan)
    deltas = np.diff(closes)
    gains[1:] = np.where(deltas > 0, deltas, 0.0)
    losses[1:] = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = wilder(gains, period)
    avg_loss = wilder(losses, period)

    for i in range(period, len(closes)):
        result[i] = rsi_value(avg_gain[i], avg_loss[i])
    return result


def rsi(closes: np.ndarray, period: int = RSI_PERIOD, window: Optional[int] = None) -> np.ndarray:
    """
    Relative Strength Index (Wilder).

    With `window`, each day's RSI is computed from the trailing `window`
    closes only, which is what an update working on a bounded quote window
    sees.
    """
    closes = np.asarray(closes, dtype=float)
    if window is None or len(closes) <= window:
        return _rsi_full(closes, period)

    result = _rsi_full(closes[:window], period)
    result = np.concatenate([result, np.full(len(closes) - window, np.nan)])
    for i in range(window, len(closes)):
        result[i] = _rsi_full(closes[i - window + 1 : i + 1], period)[-1]
    return result


def stochastic(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    k_period: int = STS_PERIOD,
    d_period: int = STS_EMA_PERIOD,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Stochastic Oscillator.

    Returns: (k, d) where d is the EMA of k
    """
    closes = np.asarray(closes, dtype=float)
    k = np.full(len(closes), np.nan)

    for i in range(k_period - 1, len(closes)):
        highest_high = np.max(highs[i - k_period + 1 : i + 1])
        lowest_low = np.min(lows[i - k_period + 1 : i + 1])
        k[i] = stochastic_value(closes[i], lowest_low, highest_high)

    return k, ema(k, d_period)


def macd(
    closes: np.ndarray,
    fast_period: int = MACD_FAST_PERIOD,
    slow_period: int = MACD_SLOW_PERIOD,
    signal_period: int = MACD_SIGNAL_PERIOD,
) -> tuple[np.ndarray, np.ndarray]:
    """
    MACD (Moving Average Convergence Divergence).

    Returns: (macd_line, signal_line)
    """
    macd_line = ema(closes, fast_period) - ema(closes, slow_period)
    return macd_line, ema(macd_line, signal_period)


def roc(
    closes: np.ndarray, period: int = ROC_PERIOD, smoothing: int = SROC_PERIOD
) -> tuple[np.ndarray, np.ndarray]:
    """
    Rate of Change.

    Returns: (roc, smoothed_roc) where smoothed_roc is the EMA of roc
    """
    closes = np.asarray(closes, dtype=float)
    result = np.full(len(closes), np.nan)
    for i in range(period, len(closes)):
        result[i] = roc_value(closes[i], closes[i - period])
    return result, ema(result, smoothing)


# =============================================================================
# VOLATILITY INDICATORS
# =============================================================================


def true_ranges(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    """True range per day; NaN on the first day (no previous close)."""
    tr = np.full(len(closes), np.nan)
    for i in range(1, len(closes)):
        tr[i] = true_range(highs[i], lows[i], closes[i - 1])
    return tr


def atr(
    highs: np.ndarray, lows: np.ndarray, closes: np.ndarray, period: int = ATR_PERIOD
) -> np.ndarray:
    """Average True Range (Wilder)."""
    return wilder(true_ranges(highs, lows, closes), period)


# =============================================================================
# TREND INDICATORS
# =============================================================================


def adx(
    highs: np.ndarray, lows: np.ndarray, closes: np.ndarray, period: int = ADX_PERIOD
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Average Directional Index.

    Returns: (plus_di, minus_di, adx)
    """
    n = len(closes)
    plus_dm = np.full(n, np.nan)
    minus_dm = np.full(n, np.nan)
    for i in range(1, n):
        plus_dm[i], minus_dm[i] = directional_movement(
            highs[i], lows[i], highs[i - 1], lows[i - 1]
        )

    smoothed_plus_dm = wilder(plus_dm, period)
    smoothed_minus_dm = wilder(minus_dm, period)
    smoothed_tr = atr(highs, lows, closes, period)

    plus_di = np.full(n, np.nan)
    minus_di = np.full(n, np.nan)
    dx = np.full(n, np.nan)
    for i in range(_first_valid(smoothed_tr), n):
        plus_di[i], minus_di[i] = directional_index(
            smoothed_plus_dm[i], smoothed_minus_dm[i], smoothed_tr[i]
        )
        dx[i] = directional_movement_index(plus_di[i], minus_di[i])

    return plus_di, minus_di, wilder(dx, period)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def valid_newest_first(arr: np.ndarray) -> np.ndarray:
    """Drop the NaN warm-up and reverse to newest-first order."""
    return arr[_first_valid(arr):][::-1]
