"""Shared numeric helpers for the indicator library.

All helpers operate on 1-D float64 numpy arrays. Inputs are validated once
through ``as_array``/``aligned`` so indicators can assume finite, aligned data.
"""

from typing import Optional, Sequence, Tuple

import numpy as np


def as_array(values: Sequence[float], name: str = "values") -> np.ndarray:
    """Convert a sequence to a float64 array, rejecting NaN and infinities.

    Raises:
        ValueError: If any value is not finite.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values")
    return arr


def aligned(**series: Sequence[float]) -> Tuple[np.ndarray, ...]:
    """Validate several named series and check they share one length.

    Returns:
        The converted arrays, in keyword order.

    Raises:
        ValueError: If lengths differ or any value is not finite.
    """
    arrays = tuple(as_array(values, name) for name, values in series.items())
    lengths = {name: len(arr) for name, arr in zip(series, arrays)}
    if len(set(lengths.values())) > 1:
        detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
        raise ValueError(f"Series lengths differ: {detail}")
    return arrays


def sma(values: np.ndarray, period: int) -> Optional[float]:
    """Simple average of the last ``period`` values."""
    if period <= 0 or len(values) < period:
        return None
    return float(np.mean(values[-period:]))


def sma_series(values: np.ndarray, period: int) -> np.ndarray:
    """Rolling simple average; element ``i`` covers ``values[i:i+period]``."""
    if period <= 0 or len(values) < period:
        return np.empty(0, dtype=np.float64)
    return rolling_sum(values, period) / period


def rolling_sum(values: np.ndarray, period: int) -> np.ndarray:
    """Moving sum over windows of ``period`` values (length n - period + 1)."""
    if period <= 0 or len(values) < period:
        return np.empty(0, dtype=np.float64)
    csum = np.concatenate(([0.0], np.cumsum(values, dtype=np.float64)))
    return csum[period:] - csum[:-period]


def ema_series(values: np.ndarray, period: int) -> np.ndarray:
    """Exponential moving average seeded with the SMA of the first ``period``.

    Element 0 of the result corresponds to ``values[period - 1]``.
    """
    n = len(values)
    if period <= 0 or n < period:
        return np.empty(0, dtype=np.float64)
    multiplier = 2.0 / (period + 1)
    out = np.empty(n - period + 1, dtype=np.float64)
    ema = float(np.mean(values[:period]))
    out[0] = ema
    for i in range(period, n):
        ema = (values[i] - ema) * multiplier + ema
        out[i - period + 1] = ema
    return out


def wilder_smooth(values: np.ndarray, period: int) -> np.ndarray:
    """Wilder's moving average: seed with the mean, then (avg*(n-1) + x) / n.

    Element 0 corresponds to ``values[period - 1]``.
    """
    n = len(values)
    if period <= 0 or n < period:
        return np.empty(0, dtype=np.float64)
    out = np.empty(n - period + 1, dtype=np.float64)
    avg = float(np.mean(values[:period]))
    out[0] = avg
    for i in range(period, n):
        avg = (avg * (period - 1) + values[i]) / period
        out[i - period + 1] = avg
    return out


def wilder_running_sum(values: np.ndarray, period: int) -> np.ndarray:
    """Wilder's running-total form used by ADX: sum - sum/n + x."""
    n = len(values)
    if period <= 0 or n < period:
        return np.empty(0, dtype=np.float64)
    out = np.empty(n - period + 1, dtype=np.float64)
    total = float(np.sum(values[:period]))
    out[0] = total
    for i in range(period, n):
        total = total - total / period + values[i]
        out[i - period + 1] = total
    return out


def std_dev(values: np.ndarray) -> float:
    """Population standard deviation (divide by N)."""
    if len(values) == 0:
        return 0.0
    return float(np.std(values, ddof=0))


def true_range(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    """True range for bars 1..n-1 (length n - 1)."""
    prev_close = closes[:-1]
    high = highs[1:]
    low = lows[1:]
    return np.maximum.reduce(
        [high - low, np.abs(high - prev_close), np.abs(low - prev_close)]
    )


def linear_regression(values: np.ndarray) -> Tuple[float, float, float]:
    """Least-squares fit of ``values`` against 0..n-1.

    Returns:
        (slope, intercept, r_squared). r_squared is 0 for a constant series.
    """
    n = len(values)
    if n < 2:
        return 0.0, float(values[0]) if n else 0.0, 0.0
    x = np.arange(n, dtype=np.float64)
    x_mean = x.mean()
    y_mean = float(values.mean())
    sxx = float(np.sum((x - x_mean) ** 2))
    slope = float(np.sum((x - x_mean) * (values - y_mean)) / sxx)
    intercept = y_mean - slope * x_mean
    ss_tot = float(np.sum((values - y_mean) ** 2))
    if ss_tot == 0:
        return slope, intercept, 0.0
    ss_res = float(np.sum((values - (slope * x + intercept)) ** 2))
    return slope, intercept, 1.0 - ss_res / ss_tot


def pct_returns(values: np.ndarray) -> np.ndarray:
    """Simple bar-to-bar returns (length n - 1); zero where the base is zero."""
    if len(values) < 2:
        return np.empty(0, dtype=np.float64)
    base = values[:-1]
    diff = np.diff(values)
    return np.divide(diff, base, out=np.zeros_like(diff), where=base != 0)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
