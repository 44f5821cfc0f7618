"""
Composite Scorer Module.

Orchestrates the indicator library, pattern detector, level finder, volume
profile, regime classifier and anomaly detector into one 0-100 trade
attractiveness score for a symbol.

Process:
1. Start from a neutral 50.
2. Run each check; a check that fires names one rule from the RuleTable.
3. Sum the fired rules' deltas and confidence increments.
4. Clamp both to [0, 100] and map the score onto the six-tier ladder.

A check whose inputs are missing (no history, no highs/lows, too few bars)
does not vote.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np
from loguru import logger

from trade_scoring.analysis import series as s
from trade_scoring.analysis.anomaly import detect_anomalies
from trade_scoring.analysis.indicators import IndicatorSnapshot, compute_snapshot
from trade_scoring.analysis.levels import fibonacci_levels, find_levels
from trade_scoring.analysis.patterns import PatternDetector, PatternMatch
from trade_scoring.analysis.regime import classify_regime
from trade_scoring.analysis.volume_profile import volume_profile
from trade_scoring.domain.schemas import (
    Direction,
    PriceHistory,
    Quote,
    Recommendation,
    ScoreResult,
    Signal,
)
from trade_scoring.engine.rules import RuleTable

NEUTRAL_SCORE = 50

Fired = Tuple[str, Dict[str, Any]]

RECOMMENDATION_TIERS = (
    (85, Recommendation.STRONG_BUY, "Exceptional opportunity: multiple strong bullish signals aligned"),
    (75, Recommendation.BUY, "Strong buy setup: favorable technical indicators"),
    (65, Recommendation.MODERATE_BUY, "Good entry point: positive momentum building"),
    (55, Recommendation.HOLD, "Neutral: wait for clearer signals"),
    (45, Recommendation.WEAK_HOLD, "Caution: mixed signals present"),
    (0, Recommendation.AVOID, "Poor setup: better opportunities elsewhere"),
)


def recommend(score: float) -> Tuple[Recommendation, str]:
    """Map a clamped score onto the six-tier ladder."""
    for threshold, recommendation, reasoning in RECOMMENDATION_TIERS:
        if score >= threshold:
            return recommendation, reasoning
    return RECOMMENDATION_TIERS[-1][1], RECOMMENDATION_TIERS[-1][2]


@dataclass
class _Context:
    """Everything the checks read, computed once per call."""

    quote: Quote
    history: Optional[PriceHistory]
    market_change: Optional[float]
    snapshot: IndicatorSnapshot = field(default_factory=IndicatorSnapshot)
    patterns: List[PatternMatch] = field(default_factory=list)


class CompositeScorer:
    """Rule-table driven composite scorer."""

    # Thresholds (which rule fires); weights live in the RuleTable
    RSI_OVERSOLD = 30.0
    RSI_WEAK = 40.0
    RSI_OVERBOUGHT = 70.0
    RSI_MOMENTUM = 60.0
    MOMENTUM_CHANGE = 2.0
    MFI_OVERSOLD = 20.0
    MFI_OVERBOUGHT = 80.0
    MACD_STRONG_FRACTION = 0.3
    BB_LOWER = 0.2
    BB_UPPER = 0.8
    VOLUME_EXTREME = 3.0
    VOLUME_HIGH = 2.0
    VOLUME_ELEVATED = 1.5
    GAP_PERCENT = 2.0
    RS_STRONG = 3.0
    RS_POSITIVE = 1.0
    ADX_TRENDING = 25.0
    WILLIAMS_OVERSOLD = -80.0
    WILLIAMS_OVERBOUGHT = -20.0
    CCI_EXTREME = 200.0
    CCI_NORMAL = 100.0
    LEVEL_PROXIMITY = 0.02

    def __init__(
        self,
        rules: Optional[RuleTable] = None,
        detector: Optional[PatternDetector] = None,
    ):
        """
        Initialize the scorer.

        Args:
            rules: Rule weights (dependency injection). Defaults to the
                standard table.
            detector: Pattern detector. Defaults to standard thresholds.
        """
        self.rules = rules or RuleTable()
        self.detector = detector or PatternDetector()

    def score(
        self,
        quote: Quote,
        history: Optional[PriceHistory] = None,
        market_change: Optional[float] = None,
    ) -> ScoreResult:
        """
        Score one symbol.

        Args:
            quote: Current-session fields.
            history: Historical OHLCV arrays, oldest first. Optional.
            market_change: Average percent change of the market today, for
                the relative-strength check. Optional.

        Returns:
            ScoreResult: A fresh result; never None.
        """
        ctx = _Context(quote=quote, history=history, market_change=market_change)
        if history is not None and len(history) > 0:
            ctx.snapshot = compute_snapshot(
                history.closes, history.highs, history.lows, history.volumes
            )
            ctx.patterns = self.detector.detect_all(
                history.closes, history.highs, history.lows
            )

        score = float(NEUTRAL_SCORE)
        confidence = 0.0
        signals: List[Signal] = []
        warnings: List[Signal] = []
        extras: Dict[str, Any] = {}

        for key, params in self._fired(ctx, extras):
            rule = self.rules[key]
            score += rule.delta
            confidence += rule.confidence
            message = rule.render(**params)
            if rule.direction == Direction.BEARISH:
                warnings.append(message)
            else:
                signals.append(message)

        final_score = int(round(s.clamp(score, 0, 100)))
        final_confidence = int(round(s.clamp(confidence, 0, 100)))
        recommendation, reasoning = recommend(final_score)

        indicators = ctx.snapshot.as_dict()
        indicators.update(extras)

        logger.debug(
            f"Scored {quote.price:.2f}: {final_score} ({recommendation.value}), "
            f"{len(signals)} signals, {len(warnings)} warnings"
        )

        return ScoreResult(
            score=final_score,
            confidence=final_confidence,
            recommendation=recommendation,
            reasoning=reasoning,
            signals=signals,
            warnings=warnings,
            patterns=ctx.patterns,
            technical_indicators=indicators,
        )

    def _fired(self, ctx: _Context, extras: Dict[str, Any]) -> Iterator[Fired]:
        yield from self._check_rsi(ctx)
        yield from self._check_mfi(ctx)
        yield from self._check_macd(ctx)
        yield from self._check_bollinger(ctx)
        yield from self._check_volume(ctx)
        yield from self._check_momentum(ctx)
        yield from self._check_day_range(ctx)
        yield from self._check_gap(ctx)
        yield from self._check_stochastic(ctx)
        yield from self._check_relative_strength(ctx)
        yield from self._check_adx(ctx)
        yield from self._check_williams(ctx)
        yield from self._check_cci(ctx)
        yield from self._check_ichimoku(ctx)
        yield from self._check_parabolic_sar(ctx)
        yield from self._check_patterns(ctx)
        yield from self._check_levels(ctx, extras)
        yield from self._check_fibonacci(ctx, extras)
        yield from self._check_volume_profile(ctx, extras)
        yield from self._check_regime(ctx, extras)
        yield from self._check_anomalies(ctx, extras)

    # =========================================================================
    # INDICATOR CHECKS
    # =========================================================================

    def _check_rsi(self, ctx: _Context) -> Iterator[Fired]:
        value = ctx.snapshot.rsi
        if value is None:
            return
        if value < self.RSI_OVERSOLD:
            yield "rsi_oversold", {"rsi": value}
        elif value < self.RSI_WEAK:
            yield "rsi_weak", {"rsi": value}
        elif value > self.RSI_OVERBOUGHT:
            yield "rsi_overbought", {"rsi": value}
        elif value > self.RSI_MOMENTUM and ctx.quote.change_percent > self.MOMENTUM_CHANGE:
            yield "rsi_momentum", {"rsi": value}

    def _check_mfi(self, ctx: _Context) -> Iterator[Fired]:
        value = ctx.snapshot.mfi
        if value is None:
            return
        if value < self.MFI_OVERSOLD:
            yield "mfi_oversold", {"mfi": value}
        elif value > self.MFI_OVERBOUGHT:
            yield "mfi_overbought", {"mfi": value}

    def _check_macd(self, ctx: _Context) -> Iterator[Fired]:
        result = ctx.snapshot.macd
        if result is None:
            return
        params = {"histogram": result.histogram}
        if result.histogram > 0 and result.histogram > result.strength * self.MACD_STRONG_FRACTION:
            yield "macd_strong_bullish", params
        elif result.histogram > 0:
            yield "macd_bullish", params
        elif result.histogram < 0:
            yield "macd_bearish", params

    def _check_bollinger(self, ctx: _Context) -> Iterator[Fired]:
        bands = ctx.snapshot.bollinger
        if bands is None:
            return
        if bands.percent_b < self.BB_LOWER:
            yield "bollinger_lower", {"percent_b": bands.percent_b}
        elif bands.percent_b > self.BB_UPPER:
            yield "bollinger_upper", {"percent_b": bands.percent_b}
        # A collapsed band is not a squeeze
        if bands.squeeze and bands.width > 0:
            yield "bollinger_squeeze", {}

    def _check_stochastic(self, ctx: _Context) -> Iterator[Fired]:
        stoch = ctx.snapshot.stochastic
        if stoch is None:
            return
        if stoch.interpretation == "oversold":
            yield "stochastic_oversold", {"k": stoch.k}
        elif stoch.interpretation == "overbought":
            yield "stochastic_overbought", {"k": stoch.k}

    def _check_adx(self, ctx: _Context) -> Iterator[Fired]:
        result = ctx.snapshot.adx
        if result is None or result.adx <= self.ADX_TRENDING:
            return
        if result.plus_di > result.minus_di:
            yield "adx_bullish_trend", {"adx": result.adx}
        elif result.minus_di > result.plus_di:
            yield "adx_bearish_trend", {"adx": result.adx}

    def _check_williams(self, ctx: _Context) -> Iterator[Fired]:
        value = ctx.snapshot.williams_r
        if value is None:
            return
        if value < self.WILLIAMS_OVERSOLD:
            yield "williams_oversold", {"value": value}
        elif value > self.WILLIAMS_OVERBOUGHT:
            yield "williams_overbought", {"value": value}

    def _check_cci(self, ctx: _Context) -> Iterator[Fired]:
        value = ctx.snapshot.cci
        if value is None:
            return
        if value < -self.CCI_EXTREME:
            yield "cci_extreme_oversold", {"value": value}
        elif value < -self.CCI_NORMAL:
            yield "cci_oversold", {"value": value}
        elif value > self.CCI_EXTREME:
            yield "cci_extreme_overbought", {"value": value}
        elif value > self.CCI_NORMAL:
            yield "cci_overbought", {"value": value}

    def _check_ichimoku(self, ctx: _Context) -> Iterator[Fired]:
        cloud = ctx.snapshot.ichimoku
        if cloud is None:
            return
        key = {
            "strong_buy": "ichimoku_strong_bullish",
            "buy": "ichimoku_bullish",
            "sell": "ichimoku_bearish",
            "strong_sell": "ichimoku_strong_bearish",
        }.get(cloud.signal)
        if key:
            yield key, {}

    def _check_parabolic_sar(self, ctx: _Context) -> Iterator[Fired]:
        result = ctx.snapshot.parabolic_sar
        if result is None:
            return
        # A stop sitting on the price has no side yet
        price = ctx.quote.price
        if result.bullish and result.sar < price:
            yield "sar_bullish", {"sar": result.sar}
        elif not result.bullish and result.sar > price:
            yield "sar_bearish", {"sar": result.sar}

    # =========================================================================
    # SESSION CHECKS (quote only)
    # =========================================================================

    def _check_volume(self, ctx: _Context) -> Iterator[Fired]:
        history, quote = ctx.history, ctx.quote
        if history is None or not history.volumes or quote.volume <= 0:
            return
        avg_volume = float(np.mean(history.volumes))
        if avg_volume <= 0:
            return
        ratio = quote.volume / avg_volume
        change = quote.change_percent
        params = {"ratio": ratio}
        if ratio > self.VOLUME_EXTREME and change > 0:
            yield "volume_extreme", params
        elif ratio > self.VOLUME_HIGH and change > 0:
            yield "volume_high", params
        elif ratio > self.VOLUME_HIGH and change < 0:
            yield "volume_selling", params
        elif ratio > self.VOLUME_ELEVATED:
            yield "volume_elevated", params

    def _check_momentum(self, ctx: _Context) -> Iterator[Fired]:
        change = ctx.quote.change_percent
        if change > 5:
            yield "momentum_strong", {"change": change}
        elif change > 3:
            yield "momentum_good", {"change": change}
        elif change > 1:
            yield "momentum_positive", {"change": change}
        elif change < -5:
            yield "momentum_oversold_bounce", {"change": change}

    def _check_day_range(self, ctx: _Context) -> Iterator[Fired]:
        quote = ctx.quote
        day_range = quote.high - quote.low
        if day_range <= 0:
            return
        position = (quote.price - quote.low) / day_range
        if position > 0.8:
            yield "range_high", {"position": position}
        elif position < 0.2:
            yield "range_low", {"position": position}

    def _check_gap(self, ctx: _Context) -> Iterator[Fired]:
        quote = ctx.quote
        gap = (quote.open - quote.previous_close) / quote.previous_close * 100
        if abs(gap) <= self.GAP_PERCENT:
            return
        if gap > 0 and quote.price > quote.open:
            yield "gap_up_holding", {"gap": gap}
        elif gap < 0 and quote.price > quote.open:
            yield "gap_down_recovering", {"gap": gap}
        elif gap > 0 and quote.price < quote.open:
            yield "gap_fading", {"gap": gap}

    def _check_relative_strength(self, ctx: _Context) -> Iterator[Fired]:
        if ctx.market_change is None:
            return
        spread = ctx.quote.change_percent - ctx.market_change
        if spread > self.RS_STRONG:
            yield "relative_strength_strong", {"spread": spread}
        elif spread > self.RS_POSITIVE:
            yield "relative_strength_positive", {"spread": spread}
        elif spread < -self.RS_STRONG:
            yield "relative_strength_weak", {"spread": abs(spread)}

    # =========================================================================
    # STRUCTURAL CHECKS
    # =========================================================================

    def _check_patterns(self, ctx: _Context) -> Iterator[Fired]:
        # Rules fall back to their plain template when a price field is None
        for match in ctx.patterns:
            key = f"pattern_{match.type}"
            if key in self.rules:
                yield key, asdict(match)

    def _check_levels(self, ctx: _Context, extras: Dict[str, Any]) -> Iterator[Fired]:
        history = ctx.history
        if history is None or not history.has_range:
            return
        price = ctx.quote.price
        summary = find_levels(history.highs, history.lows, price)
        extras["levels"] = [asdict(level) for level in summary.levels]

        support = summary.nearest_support
        resistance = summary.nearest_resistance
        if support is not None and summary.distance_to(support) <= self.LEVEL_PROXIMITY:
            yield "near_support", {"price": support.price, "touches": support.touches}
        elif (
            resistance is not None
            and summary.distance_to(resistance) <= self.LEVEL_PROXIMITY
        ):
            yield "near_resistance", {
                "price": resistance.price,
                "touches": resistance.touches,
            }

    def _check_fibonacci(self, ctx: _Context, extras: Dict[str, Any]) -> Iterator[Fired]:
        history = ctx.history
        if history is None or not history.has_range:
            return
        price = ctx.quote.price
        fib = fibonacci_levels(history.highs, history.lows, price)
        if fib is None:
            return
        extras["fibonacci"] = asdict(fib)
        if not fib.at_key_level:
            return
        level_price = fib.retracements[fib.key_level]
        params = {"level": fib.key_level, "price": level_price}
        if price >= level_price:
            yield "fibonacci_support", params
        else:
            yield "fibonacci_resistance", params

    def _check_volume_profile(
        self, ctx: _Context, extras: Dict[str, Any]
    ) -> Iterator[Fired]:
        history = ctx.history
        if history is None or not history.has_volume:
            return
        profile = volume_profile(history.closes, history.volumes, ctx.quote.price)
        if profile is None:
            return
        extras["volume_profile"] = {
            "poc": profile.poc_price,
            "value_area_low": profile.value_area_low,
            "value_area_high": profile.value_area_high,
            "position": profile.position,
        }
        params = {"poc": profile.poc_price}
        if profile.position == "below_value_area":
            yield "below_value_area", params
        elif profile.position == "above_value_area":
            yield "above_value_area", params
        elif profile.at_poc:
            yield "at_poc", params

    def _check_regime(self, ctx: _Context, extras: Dict[str, Any]) -> Iterator[Fired]:
        if ctx.history is None:
            return
        result = classify_regime(ctx.history.closes)
        if result is None:
            return
        extras["regime"] = result.regime.value
        extras["volatile"] = result.volatile
        yield f"regime_{result.regime.value}", {}

    def _check_anomalies(
        self, ctx: _Context, extras: Dict[str, Any]
    ) -> Iterator[Fired]:
        history, quote = ctx.history, ctx.quote
        if history is None or not history.has_volume:
            return
        report = detect_anomalies(
            history.closes,
            history.volumes,
            current_volume=quote.volume,
            change_percent=quote.change_percent,
            session_open=quote.open,
            previous_close=quote.previous_close,
        )
        if report is None:
            return
        extras["anomaly_score"] = report.score
        if report.is_anomalous:
            yield "anomaly", {"score": report.score}


_DEFAULT_SCORER = CompositeScorer()


def score_symbol(
    quote: Quote,
    history: Optional[PriceHistory] = None,
    market_change: Optional[float] = None,
) -> ScoreResult:
    """Score one symbol with the default rule table."""
    return _DEFAULT_SCORER.score(quote, history, market_change)
