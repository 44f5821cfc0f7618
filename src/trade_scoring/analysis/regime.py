"""Market regime classification from the dispersion and drift of recent closes."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from trade_scoring.analysis import series as s

REGIME_WINDOW = 20
REGIME_MIN_BARS = 10
STRONG_TREND = 0.05
STRONG_MAX_DISPERSION = 0.05
MODERATE_TREND = 0.02
RANGING_MAX_RANGE = 0.05
VOLATILE_DISPERSION = 0.08


class Regime(str, Enum):
    STRONG_UPTREND = "strong_uptrend"
    STRONG_DOWNTREND = "strong_downtrend"
    MODERATE_UPTREND = "moderate_uptrend"
    MODERATE_DOWNTREND = "moderate_downtrend"
    RANGING = "ranging"
    CHOPPY = "choppy"


@dataclass(frozen=True)
class RegimeResult:
    """Regime label with the statistics it was derived from.

    ``trend`` is the second-half mean over the first-half mean minus one;
    ``dispersion`` is std-dev / mean; ``range_percent`` is (max - min) / mean.
    """

    regime: Regime
    trend: float
    dispersion: float
    range_percent: float
    volatile: bool

    @property
    def is_trending(self) -> bool:
        return self.regime not in (Regime.RANGING, Regime.CHOPPY)

    @property
    def is_bullish(self) -> bool:
        return self.regime in (Regime.STRONG_UPTREND, Regime.MODERATE_UPTREND)

    @property
    def is_bearish(self) -> bool:
        return self.regime in (Regime.STRONG_DOWNTREND, Regime.MODERATE_DOWNTREND)


def classify_regime(
    closes: Sequence[float], window: int = REGIME_WINDOW
) -> Optional[RegimeResult]:
    """Label the trailing window, checking strong trend, moderate trend,
    ranging and choppy in that order."""
    c = s.as_array(closes, "closes")
    if len(c) < REGIME_MIN_BARS:
        return None

    recent = c[-window:]
    mean = float(np.mean(recent))
    if mean <= 0:
        return None

    half = len(recent) // 2
    first_mean = float(np.mean(recent[:half]))
    second_mean = float(np.mean(recent[half:]))
    trend = second_mean / first_mean - 1.0 if first_mean else 0.0
    dispersion = s.std_dev(recent) / mean
    range_percent = float(np.max(recent) - np.min(recent)) / mean

    if abs(trend) > STRONG_TREND and dispersion < STRONG_MAX_DISPERSION:
        regime = Regime.STRONG_UPTREND if trend > 0 else Regime.STRONG_DOWNTREND
    elif abs(trend) > MODERATE_TREND:
        regime = Regime.MODERATE_UPTREND if trend > 0 else Regime.MODERATE_DOWNTREND
    elif range_percent < RANGING_MAX_RANGE:
        regime = Regime.RANGING
    else:
        regime = Regime.CHOPPY

    return RegimeResult(
        regime=regime,
        trend=trend,
        dispersion=dispersion,
        range_percent=range_percent,
        volatile=dispersion > VOLATILE_DISPERSION,
    )
