"""
Market Rating Module.

Rates overall market sentiment from a basket of broad-market index ETFs
(default SPY, QQQ, DIA, IWM; the first is the primary index).

Seven factors move the rating away from a neutral 50, each within its own
point budget (100 points in total):

| Factor                         | Max pts |
|--------------------------------|---------|
| Performance and breadth        | 25      |
| Small-cap vs large-cap         | 10      |
| Primary index technicals       | 25      |
| Realized volatility            | 10      |
| Volume confirmation            | 10      |
| Cross-index correlation        | 10      |
| Support/resistance proximity   | 10      |

Results are cached with a TTL that depends on whether the market is open.
When the upstream fetch fails the latest cached rating is served (marked
stale) regardless of age; with no cache at all an UNKNOWN rating is returned.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from trade_scoring.analysis import series as s
from trade_scoring.analysis.indicators import macd, rsi, simple_moving_average
from trade_scoring.analysis.levels import find_levels
from trade_scoring.analysis.regime import Regime, classify_regime
from trade_scoring.config import get_candle_provider, get_settings
from trade_scoring.domain.schemas import (
    ConfidenceLabel,
    MarketRating,
    MarketRecommendation,
    MarketSentiment,
    MarketStatus,
    PriceHistory,
    RatingFactor,
)
from trade_scoring.engine.cache import InMemoryStore, JsonFileStore, MarketRatingCache
from trade_scoring.market.data_provider import CandleProvider
from trade_scoring.market.exceptions import MarketDataError
from trade_scoring.market.hours import MarketHours
from trade_scoring.observability import timed

DEFAULT_SYMBOLS = ("SPY", "QQQ", "DIA", "IWM")
SMALL_CAP_SYMBOL = "IWM"
BASELINE = 50.0
SECONDS_PER_DAY = 86400

# (threshold, sentiment, recommendation, advice)
SENTIMENT_LADDER = (
    (85, MarketSentiment.VERY_BULLISH, MarketRecommendation.STRONG_BUY,
     "Broad strength across indices. Conditions favor adding to positions."),
    (75, MarketSentiment.BULLISH, MarketRecommendation.BUY,
     "Healthy uptrend. Favor long setups with normal position sizes."),
    (65, MarketSentiment.MODERATELY_BULLISH, MarketRecommendation.ACCUMULATE,
     "Constructive tape. Build positions gradually on pullbacks."),
    (55, MarketSentiment.SLIGHTLY_BULLISH, MarketRecommendation.LEAN_LONG,
     "Mild positive bias. Be selective and keep stops in place."),
    (45, MarketSentiment.NEUTRAL, MarketRecommendation.HOLD,
     "No clear direction. Hold existing positions and wait for confirmation."),
    (35, MarketSentiment.SLIGHTLY_BEARISH, MarketRecommendation.CAUTION,
     "Softening conditions. Tighten stops and avoid chasing breakouts."),
    (25, MarketSentiment.MODERATELY_BEARISH, MarketRecommendation.REDUCE,
     "Weak breadth and momentum. Reduce exposure to higher-risk names."),
    (15, MarketSentiment.BEARISH, MarketRecommendation.DEFENSIVE,
     "Downtrend in force. Favor cash and defensive positioning."),
    (0, MarketSentiment.VERY_BEARISH, MarketRecommendation.RISK_OFF,
     "Broad selling pressure. Preserve capital until conditions stabilize."),
)

UNKNOWN_ADVICE = "Market data unavailable. Treat conditions as unknown."


def sentiment_for(rating: float):
    """Map a clamped rating onto the nine-tier ladder."""
    for threshold, sentiment, recommendation, advice in SENTIMENT_LADDER:
        if rating >= threshold:
            return sentiment, recommendation, advice
    return SENTIMENT_LADDER[-1][1:]


def confidence_label(confidence: float) -> ConfidenceLabel:
    if confidence >= 80:
        return ConfidenceLabel.VERY_HIGH
    if confidence >= 65:
        return ConfidenceLabel.HIGH
    if confidence >= 50:
        return ConfidenceLabel.MODERATE
    return ConfidenceLabel.LOW


@dataclass
class _FactorOutcome:
    factor: RatingFactor
    signals: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _pct_change(closes: Sequence[float], bars_back: int) -> Optional[float]:
    if len(closes) <= bars_back or closes[-1 - bars_back] == 0:
        return None
    return (closes[-1] / closes[-1 - bars_back] - 1.0) * 100.0


class MarketRatingAggregator:
    """Computes and caches the market-wide rating."""

    # Factor budgets
    PERFORMANCE_POINTS = 25.0
    DIVERGENCE_POINTS = 10.0
    TECHNICAL_POINTS = 25.0
    VOLATILITY_POINTS = 10.0
    VOLUME_POINTS = 10.0
    CORRELATION_POINTS = 10.0
    LEVEL_POINTS = 10.0

    # Windows
    WEEK_BARS = 5
    MONTH_BARS = 21
    VOLATILITY_WINDOW = 20
    VOLUME_WINDOW = 20
    CORRELATION_WINDOW = 20
    LEVEL_PROXIMITY = 0.02

    def __init__(
        self,
        provider: CandleProvider,
        cache: Optional[MarketRatingCache] = None,
        symbols: Sequence[str] = DEFAULT_SYMBOLS,
        small_cap_symbol: str = SMALL_CAP_SYMBOL,
        lookback_days: int = 120,
    ):
        """
        Initialize the aggregator.

        Args:
            provider: Candle source (dependency injection).
            cache: Rating cache. Defaults to a fresh in-memory cache.
            symbols: Index basket; the first symbol is the primary index.
            small_cap_symbol: Basket member used as the small-cap proxy.
            lookback_days: Calendar days of daily candles to request.
        """
        if not symbols:
            raise ValueError("At least one index symbol is required")
        self.provider = provider
        self.cache = cache or MarketRatingCache()
        self.symbols = list(symbols)
        self.small_cap_symbol = small_cap_symbol
        self.lookback_days = lookback_days

    @property
    def clock(self) -> Callable[[], float]:
        return self.cache.clock

    def now(self) -> datetime:
        """Current time from the cache clock, as an aware UTC datetime."""
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_rating(self, force_refresh: bool = False) -> MarketRating:
        """
        Return the market rating, from cache when fresh.

        Process:
        1. Serve a cached rating younger than the current TTL.
        2. Otherwise fetch the basket and compute a new rating, then cache it.
        3. On fetch failure fall back to the latest cached rating (stale), or
           to an UNKNOWN rating when nothing was ever cached.
        """
        status = self.cache.market_status()

        if not force_refresh:
            fresh = self.cache.get_fresh()
            if fresh is not None:
                data, age = fresh
                logger.debug(f"Serving cached market rating ({age:.0f}s old)")
                return MarketRating.model_validate(data).model_copy(
                    update={"cached": True, "cache_age_seconds": age, "market_status": status}
                )

        try:
            histories = self.fetch_basket()
        except MarketDataError as e:
            logger.warning(f"Market data fetch failed: {e}")
            fallback = self.cache.get_any()
            if fallback is not None:
                data, age = fallback
                logger.info(f"Serving stale market rating ({age:.0f}s old)")
                return MarketRating.model_validate(data).model_copy(
                    update={
                        "cached": True,
                        "stale": True,
                        "cache_age_seconds": age,
                        "market_status": status,
                    }
                )
            return self.unknown_rating(status)

        rating = self.compute(histories).model_copy(update={"market_status": status})
        self.cache.set(rating.model_dump(mode="json"))
        logger.info(
            f"Market rating {rating.rating} ({rating.sentiment.value}), "
            f"confidence {rating.confidence}"
        )
        return rating

    @timed("fetch_basket", expected=(MarketDataError,))
    def fetch_basket(self) -> Dict[str, PriceHistory]:
        """
        Fetch daily history for every basket symbol.

        Secondary symbols that fail are skipped; a primary-index failure
        raises.

        Raises:
            MarketDataError: If the primary index cannot be fetched.
        """
        to_ts = int(self.clock())
        from_ts = to_ts - self.lookback_days * SECONDS_PER_DAY
        primary = self.symbols[0]

        histories: Dict[str, PriceHistory] = {}
        for symbol in self.symbols:
            try:
                histories[symbol] = self.provider.fetch_candles(symbol, "D", from_ts, to_ts)
            except MarketDataError as e:
                if symbol == primary:
                    raise
                logger.warning(f"Skipping {symbol}: {e}")
        return histories

    def unknown_rating(self, status: MarketStatus) -> MarketRating:
        return MarketRating(
            rating=50,
            confidence=0,
            confidence_label=ConfidenceLabel.LOW,
            sentiment=MarketSentiment.UNKNOWN,
            recommendation=MarketRecommendation.UNKNOWN,
            advice=UNKNOWN_ADVICE,
            warnings=["Market data unavailable and no cached rating exists"],
            market_status=status,
            computed_at=self.now(),
        )

    def compute(self, histories: Dict[str, PriceHistory]) -> MarketRating:
        """
        Rate the market from already-fetched histories (no I/O).

        Args:
            histories: Symbol -> history; the first basket symbol present is
                treated as primary.
        """
        present = [sym for sym in self.symbols if sym in histories] or list(histories)
        if not present:
            raise ValueError("No index histories supplied")
        primary = histories[present[0]]

        outcomes = [
            self._performance(histories, present),
            self._small_cap_divergence(histories, present),
            self._technicals(primary),
            self._volatility(primary),
            self._volume(primary),
            self._correlation(histories, present),
            self._levels(primary),
        ]
        fired = [o for o in outcomes if o is not None]

        rating = int(round(s.clamp(BASELINE + sum(o.factor.points for o in fired), 0, 100)))
        confidence = (
            int(round(float(np.mean([o.factor.confidence for o in fired])))) if fired else 0
        )
        sentiment, recommendation, advice = sentiment_for(rating)

        return MarketRating(
            rating=rating,
            confidence=confidence,
            confidence_label=confidence_label(confidence),
            sentiment=sentiment,
            recommendation=recommendation,
            advice=advice,
            factors=[o.factor for o in fired],
            signals=[text for o in fired for text in o.signals],
            warnings=[text for o in fired for text in o.warnings],
            market_status=self.cache.market_status(),
            computed_at=self.now(),
        )

    # =========================================================================
    # FACTORS
    # =========================================================================

    def _performance(
        self, histories: Dict[str, PriceHistory], present: List[str]
    ) -> Optional[_FactorOutcome]:
        daily = [_pct_change(histories[sym].closes, 1) for sym in present]
        daily = [d for d in daily if d is not None]
        if not daily:
            return None
        weekly = [_pct_change(histories[sym].closes, self.WEEK_BARS) for sym in present]
        weekly = [w for w in weekly if w is not None]
        monthly = [_pct_change(histories[sym].closes, self.MONTH_BARS) for sym in present]
        monthly = [m for m in monthly if m is not None]

        avg_daily = float(np.mean(daily))
        breadth = sum(1 for d in daily if d > 0) / len(daily)

        points = s.clamp(avg_daily * 2.0, -8, 8)
        points += (breadth - 0.5) * 12.0
        if weekly:
            points += s.clamp(float(np.mean(weekly)), -6, 6)
        if monthly:
            points += s.clamp(float(np.mean(monthly)) * 0.5, -5, 5)
        points = s.clamp(points, -self.PERFORMANCE_POINTS, self.PERFORMANCE_POINTS)

        outcome = _FactorOutcome(
            RatingFactor(
                name="performance",
                points=points,
                max_points=self.PERFORMANCE_POINTS,
                confidence=60.0 + 40.0 * abs(breadth - 0.5) * 2,
                detail=f"avg daily {avg_daily:+.2f}%, breadth {breadth:.0%}",
            )
        )
        up = sum(1 for d in daily if d > 0)
        if breadth == 1.0:
            outcome.signals.append(f"All {len(daily)} indices higher today ({avg_daily:+.2f}%)")
        elif breadth == 0.0:
            outcome.warnings.append(f"All {len(daily)} indices lower today ({avg_daily:+.2f}%)")
        elif breadth >= 0.5:
            outcome.signals.append(f"{up} of {len(daily)} indices higher today")
        else:
            outcome.warnings.append(f"Only {up} of {len(daily)} indices higher today")
        return outcome

    def _small_cap_divergence(
        self, histories: Dict[str, PriceHistory], present: List[str]
    ) -> Optional[_FactorOutcome]:
        if self.small_cap_symbol not in present:
            return None
        large = [sym for sym in present if sym != self.small_cap_symbol]
        small_daily = _pct_change(histories[self.small_cap_symbol].closes, 1)
        large_daily = [_pct_change(histories[sym].closes, 1) for sym in large]
        large_daily = [d for d in large_daily if d is not None]
        if small_daily is None or not large_daily:
            return None

        spread = small_daily - float(np.mean(large_daily))
        points = s.clamp(spread * 2.5, -5, 5)

        small_weekly = _pct_change(histories[self.small_cap_symbol].closes, self.WEEK_BARS)
        large_weekly = [_pct_change(histories[sym].closes, self.WEEK_BARS) for sym in large]
        large_weekly = [w for w in large_weekly if w is not None]
        if small_weekly is not None and large_weekly:
            points += s.clamp((small_weekly - float(np.mean(large_weekly))), -5, 5)

        outcome = _FactorOutcome(
            RatingFactor(
                name="small_cap_divergence",
                points=points,
                max_points=self.DIVERGENCE_POINTS,
                confidence=60.0,
                detail=f"small-cap spread {spread:+.2f}% today",
            )
        )
        if spread > 0.5:
            outcome.signals.append(f"Small caps leading by {spread:.2f}% (risk-on)")
        elif spread < -0.5:
            outcome.warnings.append(f"Small caps lagging by {abs(spread):.2f}% (risk-off)")
        return outcome

    def _technicals(self, primary: PriceHistory) -> Optional[_FactorOutcome]:
        closes = primary.closes
        rsi_value = rsi(closes)
        macd_value = macd(closes)
        sma20 = simple_moving_average(closes, 20)
        sma50 = simple_moving_average(closes, 50)
        regime = classify_regime(closes)
        if rsi_value is None and macd_value is None and sma20 is None and regime is None:
            return None

        price = closes[-1]
        components: List[float] = []
        signals: List[str] = []
        warnings: List[str] = []

        if rsi_value is not None:
            if rsi_value > 70:
                components.append(-4.0)
                warnings.append(f"Primary index overbought (RSI {rsi_value:.1f})")
            elif rsi_value > 55:
                components.append(6.0)
                signals.append(f"Primary index momentum positive (RSI {rsi_value:.1f})")
            elif rsi_value >= 45:
                components.append(0.0)
            elif rsi_value >= 30:
                components.append(-4.0)
                warnings.append(f"Primary index momentum weak (RSI {rsi_value:.1f})")
            else:
                components.append(3.0)
                signals.append(f"Primary index oversold (RSI {rsi_value:.1f})")

        if macd_value is not None:
            if macd_value.histogram > 0:
                components.append(6.0)
                signals.append("Primary index MACD above signal")
            elif macd_value.histogram < 0:
                components.append(-6.0)
                warnings.append("Primary index MACD below signal")

        if sma20 is not None and sma50 is not None:
            if price > sma20 > sma50:
                components.append(7.0)
                signals.append("Moving averages stacked bullish (price > 20 > 50)")
            elif price < sma20 < sma50:
                components.append(-7.0)
                warnings.append("Moving averages stacked bearish (price < 20 < 50)")
            elif price > sma50:
                components.append(3.0)
            else:
                components.append(-3.0)
        elif sma20 is not None:
            components.append(3.0 if price > sma20 else -3.0)

        if regime is not None:
            regime_points = {
                Regime.STRONG_UPTREND: 6.0,
                Regime.MODERATE_UPTREND: 3.0,
                Regime.RANGING: 0.0,
                Regime.CHOPPY: -2.0,
                Regime.MODERATE_DOWNTREND: -3.0,
                Regime.STRONG_DOWNTREND: -6.0,
            }[regime.regime]
            components.append(regime_points)
            if regime.volatile:
                warnings.append("Primary index regime is volatile")

        points = s.clamp(sum(components), -self.TECHNICAL_POINTS, self.TECHNICAL_POINTS)
        agreeing = sum(1 for c in components if c != 0 and (c > 0) == (points > 0))
        return _FactorOutcome(
            RatingFactor(
                name="technicals",
                points=points,
                max_points=self.TECHNICAL_POINTS,
                confidence=min(90.0, 50.0 + 10.0 * agreeing),
                detail=(
                    f"RSI {rsi_value:.1f}" if rsi_value is not None else "RSI n/a"
                )
                + (f", regime {regime.regime.value}" if regime is not None else ""),
            ),
            signals,
            warnings,
        )

    def _volatility(self, primary: PriceHistory) -> Optional[_FactorOutcome]:
        closes = s.as_array(primary.closes, "closes")
        if len(closes) < self.VOLATILITY_WINDOW + 1:
            return None
        returns = s.pct_returns(closes[-(self.VOLATILITY_WINDOW + 1) :])
        annualized = s.std_dev(returns) * np.sqrt(252) * 100.0

        if annualized < 12:
            points, text = 6.0, "Calm markets"
        elif annualized < 18:
            points, text = 3.0, "Normal volatility"
        elif annualized < 25:
            points, text = -3.0, "Elevated volatility"
        elif annualized < 35:
            points, text = -6.0, "High volatility"
        else:
            points, text = -10.0, "Extreme volatility"

        outcome = _FactorOutcome(
            RatingFactor(
                name="volatility",
                points=points,
                max_points=self.VOLATILITY_POINTS,
                confidence=75.0,
                detail=f"{annualized:.1f}% annualized",
            )
        )
        message = f"{text} ({annualized:.1f}% annualized)"
        (outcome.signals if points > 0 else outcome.warnings).append(message)
        return outcome

    def _volume(self, primary: PriceHistory) -> Optional[_FactorOutcome]:
        volumes = primary.volumes
        if volumes is None or len(volumes) < self.VOLUME_WINDOW + 1:
            return None
        change = _pct_change(primary.closes, 1)
        if change is None:
            return None
        average = float(np.mean(volumes[-(self.VOLUME_WINDOW + 1) : -1]))
        if average <= 0:
            return None
        ratio = volumes[-1] / average
        direction = 1.0 if change > 0 else -1.0 if change < 0 else 0.0

        if ratio >= 1.5:
            points = 10.0 * direction
        elif ratio >= 1.2:
            points = 6.0 * direction
        elif ratio < 0.8:
            # Light volume weakens the day's move
            points = -3.0 * direction
        else:
            points = 0.0

        outcome = _FactorOutcome(
            RatingFactor(
                name="volume",
                points=points,
                max_points=self.VOLUME_POINTS,
                confidence=65.0,
                detail=f"volume {ratio:.2f}x 20-day average",
            )
        )
        if points > 0:
            outcome.signals.append(f"Volume confirms the move ({ratio:.1f}x average)")
        elif points < 0:
            outcome.warnings.append(f"Volume does not support the move ({ratio:.1f}x average)")
        return outcome

    def _correlation(
        self, histories: Dict[str, PriceHistory], present: List[str]
    ) -> Optional[_FactorOutcome]:
        if len(present) < 2:
            return None
        window = self.CORRELATION_WINDOW + 1
        if any(len(histories[sym].closes) < window for sym in present):
            return None

        returns = pd.DataFrame(
            {
                sym: s.pct_returns(s.as_array(histories[sym].closes[-window:], sym))
                for sym in present
            }
        )
        matrix = returns.corr().to_numpy()
        pairs = matrix[np.triu_indices_from(matrix, k=1)]
        pairs = pairs[np.isfinite(pairs)]
        if len(pairs) == 0:
            return None
        average = float(np.mean(pairs))

        if average >= 0.7:
            points = 0.0
        elif average >= 0.5:
            points = -3.0
        elif average >= 0.3:
            points = -6.0
        else:
            points = -10.0

        outcome = _FactorOutcome(
            RatingFactor(
                name="correlation",
                points=points,
                max_points=self.CORRELATION_POINTS,
                confidence=60.0,
                detail=f"average pairwise correlation {average:.2f}",
            )
        )
        if points < 0:
            outcome.warnings.append(f"Indices diverging (correlation {average:.2f})")
        return outcome

    def _levels(self, primary: PriceHistory) -> Optional[_FactorOutcome]:
        if not primary.has_range:
            return None
        price = primary.closes[-1]
        summary = find_levels(primary.highs, primary.lows, price)

        support, resistance = summary.nearest_support, summary.nearest_resistance
        if support is not None and summary.distance_to(support) <= self.LEVEL_PROXIMITY:
            level, sign = support, 1.0
        elif (
            resistance is not None
            and summary.distance_to(resistance) <= self.LEVEL_PROXIMITY
        ):
            level, sign = resistance, -1.0
        else:
            return None

        outcome = _FactorOutcome(
            RatingFactor(
                name="levels",
                points=sign * (5.0 + 5.0 * level.strength),
                max_points=self.LEVEL_POINTS,
                confidence=55.0 + 30.0 * level.strength,
                detail=f"{level.type} at {level.price:.2f} ({level.touches} touches)",
            )
        )
        text = f"Primary index near {level.type} {level.price:.2f}"
        (outcome.signals if sign > 0 else outcome.warnings).append(text)
        return outcome


def get_market_rating(
    api_key: str | None = None,
    cache: Optional[MarketRatingCache] = None,
    symbols: Optional[Sequence[str]] = None,
    provider: Optional[CandleProvider] = None,
    force_refresh: bool = False,
) -> MarketRating:
    """
    Convenience entry point: build a Finnhub-backed aggregator from settings.

    Args:
        api_key: Finnhub token; falls back to FINNHUB_API_KEY.
        cache: Rating cache; defaults to the process-wide cache.
        symbols: Index basket; defaults to MARKET_INDEX_SYMBOLS.
        provider: Candle provider override (for testing).
        force_refresh: Skip the fresh-cache check.
    """
    settings = get_settings()
    aggregator = MarketRatingAggregator(
        provider=provider or get_candle_provider(api_key),
        cache=cache or default_cache(),
        symbols=symbols or settings.MARKET_INDEX_SYMBOLS,
        small_cap_symbol=settings.SMALL_CAP_SYMBOL,
        lookback_days=settings.MARKET_HISTORY_DAYS,
    )
    return aggregator.get_rating(force_refresh=force_refresh)


_DEFAULT_CACHE: Optional[MarketRatingCache] = None


def default_cache() -> MarketRatingCache:
    """Process-wide rating cache built from settings on first use."""
    global _DEFAULT_CACHE
    if _DEFAULT_CACHE is None:
        settings = get_settings()
        store = (
            JsonFileStore(settings.RATING_CACHE_PATH)
            if settings.RATING_CACHE_PATH
            else InMemoryStore()
        )
        _DEFAULT_CACHE = MarketRatingCache(
            store=store,
            hours=MarketHours(timezone=settings.MARKET_TIMEZONE),
            key=settings.RATING_CACHE_KEY,
            ttl_open_seconds=settings.RATING_CACHE_TTL_OPEN_SECONDS,
            ttl_closed_seconds=settings.RATING_CACHE_TTL_CLOSED_SECONDS,
        )
    return _DEFAULT_CACHE
