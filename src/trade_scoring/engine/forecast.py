"""
Forecast Ensemble Module.

Projects a short-horizon price from several independent methods and blends
them by confidence:

- linear_regression: least-squares trend over the last 30 closes
- momentum: average daily change over the last 10 closes
- volatility: mean daily return compounded over the horizon
- support_resistance: pull toward the closer of nearest support/resistance
- pattern: measured move of a bull flag or ascending triangle

The reported interval is current price +/- 2 standard deviations of the
candidate prices. It describes disagreement between methods, not the spread
around the ensemble, so the ensemble can fall outside it.
"""

from typing import List, Optional

import numpy as np
from loguru import logger

from trade_scoring.analysis import series as s
from trade_scoring.analysis.levels import find_levels
from trade_scoring.analysis.patterns import PatternDetector
from trade_scoring.domain.schemas import (
    ForecastOutlook,
    ForecastResult,
    MethodPrediction,
    PriceHistory,
)

FORECAST_MIN_BARS = 20
HORIZON_DAYS = 7
REGRESSION_WINDOW = 30
MOMENTUM_WINDOW = 10
INTERVAL_WIDTH = 2.0
PATTERN_CONFIDENCE_FACTOR = 0.8
SR_FULL_PULL_TOUCHES = 6
PATTERN_TYPES = ("bull_flag", "ascending_triangle")


def _regression(closes: np.ndarray, horizon: int) -> MethodPrediction:
    window = closes[-REGRESSION_WINDOW:]
    slope, intercept, r2 = s.linear_regression(window)
    predicted = intercept + slope * (len(window) - 1 + horizon)
    mean_price = float(np.mean(window))
    slope_pct = abs(slope) / mean_price * 100 if mean_price else 0.0
    confidence = s.clamp(30 + r2 * 40 + min(slope_pct * 10, 20), 0, 90)
    return MethodPrediction(
        method="linear_regression", predicted_price=predicted, confidence=confidence
    )


def _momentum(closes: np.ndarray, horizon: int) -> MethodPrediction:
    diffs = np.diff(closes[-(MOMENTUM_WINDOW + 1) :])
    avg_change = float(np.mean(diffs))
    if avg_change == 0:
        consistency = 1.0 if np.all(diffs == 0) else 0.0
    else:
        consistency = float(np.mean(np.sign(diffs) == np.sign(avg_change)))
    return MethodPrediction(
        method="momentum",
        predicted_price=float(closes[-1]) + avg_change * horizon,
        confidence=s.clamp(30 + consistency * 40, 0, 70),
    )


def _volatility(closes: np.ndarray, horizon: int) -> MethodPrediction:
    returns = s.pct_returns(closes)
    mean_return = float(np.mean(returns))
    dispersion = s.std_dev(returns)
    return MethodPrediction(
        method="volatility",
        predicted_price=float(closes[-1]) * (1 + mean_return) ** horizon,
        confidence=s.clamp(80 / (1 + dispersion * 100), 10, 80),
    )


def _support_resistance(
    history: PriceHistory, current_price: float
) -> Optional[MethodPrediction]:
    if not history.has_range:
        return None
    summary = find_levels(history.highs, history.lows, current_price)
    candidates = [
        lvl
        for lvl in (summary.nearest_support, summary.nearest_resistance)
        if lvl is not None
    ]
    if not candidates:
        return None
    level = min(candidates, key=lambda lvl: abs(lvl.price - current_price))
    pull = min(1.0, level.touches / SR_FULL_PULL_TOUCHES)
    return MethodPrediction(
        method="support_resistance",
        predicted_price=current_price + (level.price - current_price) * pull,
        confidence=min(85.0, 40.0 + 5.0 * level.touches),
    )


def _pattern(history: PriceHistory, detector: PatternDetector) -> Optional[MethodPrediction]:
    for match in detector.detect_all(history.closes, history.highs, history.lows):
        if match.type in PATTERN_TYPES and match.target is not None:
            return MethodPrediction(
                method=f"pattern_{match.type}",
                predicted_price=match.target,
                confidence=match.confidence * PATTERN_CONFIDENCE_FACTOR,
            )
    return None


def outlook_for(change_percent: float) -> ForecastOutlook:
    """Qualitative label for an expected percent move."""
    if change_percent > 5:
        return ForecastOutlook.STRONG_UPSIDE
    if change_percent > 2:
        return ForecastOutlook.MODERATE_UPSIDE
    if change_percent >= -2:
        return ForecastOutlook.SIDEWAYS
    if change_percent >= -5:
        return ForecastOutlook.MODERATE_DOWNSIDE
    return ForecastOutlook.STRONG_DOWNSIDE


def forecast_price(
    current_price: float,
    history: PriceHistory,
    horizon_days: int = HORIZON_DAYS,
    detector: Optional[PatternDetector] = None,
) -> Optional[ForecastResult]:
    """
    Blend every applicable method into one forecast.

    Args:
        current_price: Latest price; the interval is centred on it.
        history: Historical OHLCV arrays, oldest first.
        horizon_days: Bars to project forward.
        detector: Pattern detector for the measured-move method.

    Returns:
        ForecastResult, or None with fewer than 20 closes.
    """
    closes = s.as_array(history.closes, "closes")
    if len(closes) < FORECAST_MIN_BARS or current_price <= 0:
        return None

    predictions: List[MethodPrediction] = [
        _regression(closes, horizon_days),
        _momentum(closes, horizon_days),
        _volatility(closes, horizon_days),
    ]
    for optional in (
        _support_resistance(history, current_price),
        _pattern(history, detector or PatternDetector()),
    ):
        if optional is not None:
            predictions.append(optional)

    prices = np.array([p.predicted_price for p in predictions], dtype=np.float64)
    weights = np.array([p.confidence for p in predictions], dtype=np.float64)
    if weights.sum() > 0:
        ensemble = float(np.average(prices, weights=weights))
    else:
        ensemble = float(np.mean(prices))

    spread = s.std_dev(prices) * INTERVAL_WIDTH
    change_percent = (ensemble - current_price) / current_price * 100

    logger.debug(
        f"Forecast from {len(predictions)} methods: {ensemble:.2f} "
        f"({change_percent:+.2f}%)"
    )

    return ForecastResult(
        current_price=current_price,
        predicted_price=ensemble,
        lower_bound=current_price - spread,
        upper_bound=current_price + spread,
        expected_change_percent=change_percent,
        confidence=int(round(s.clamp(float(np.mean(weights)), 0, 100))),
        methods_used=len(predictions),
        individual_predictions=predictions,
        outlook=outlook_for(change_percent),
        horizon_days=horizon_days,
    )
