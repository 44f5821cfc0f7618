"""
Data Schemas for the Trade Scoring Engine.

This module defines the "Data Contract" between callers (the presentation
layer, the CLI) and the analysis engine. Inputs are validated on construction
so that malformed series are rejected with a clear error instead of producing
NaN-poisoned output. Results are frozen and created fresh per call.

Model Overview:
- Inputs: Bar, PriceHistory, Quote
- Per-symbol outputs: Signal, ScoreResult, MethodPrediction, ForecastResult
- Market-wide outputs: RatingFactor, MarketRating, CacheEntry
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, model_validator

from trade_scoring.analysis.patterns import PatternMatch

# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================


class Direction(str, Enum):
    """Directional bias of a signal."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Recommendation(str, Enum):
    """Six-tier per-symbol recommendation ladder."""

    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    MODERATE_BUY = "MODERATE BUY"
    HOLD = "HOLD"
    WEAK_HOLD = "WEAK HOLD"
    AVOID = "AVOID"


class ForecastOutlook(str, Enum):
    """Qualitative label for the expected 7-day move."""

    STRONG_UPSIDE = "strong_upside"
    MODERATE_UPSIDE = "moderate_upside"
    SIDEWAYS = "sideways"
    MODERATE_DOWNSIDE = "moderate_downside"
    STRONG_DOWNSIDE = "strong_downside"


class MarketSentiment(str, Enum):
    """Nine-tier market sentiment ladder plus the unknown state."""

    VERY_BULLISH = "VERY BULLISH"
    BULLISH = "BULLISH"
    MODERATELY_BULLISH = "MODERATELY BULLISH"
    SLIGHTLY_BULLISH = "SLIGHTLY BULLISH"
    NEUTRAL = "NEUTRAL"
    SLIGHTLY_BEARISH = "SLIGHTLY BEARISH"
    MODERATELY_BEARISH = "MODERATELY BEARISH"
    BEARISH = "BEARISH"
    VERY_BEARISH = "VERY BEARISH"
    UNKNOWN = "UNKNOWN"


class MarketRecommendation(str, Enum):
    """Position-sizing advice paired with each sentiment tier."""

    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    ACCUMULATE = "ACCUMULATE"
    LEAN_LONG = "LEAN LONG"
    HOLD = "HOLD"
    CAUTION = "CAUTION"
    REDUCE = "REDUCE"
    DEFENSIVE = "DEFENSIVE"
    RISK_OFF = "RISK OFF"
    UNKNOWN = "UNKNOWN"


class ConfidenceLabel(str, Enum):
    """Four-tier label for the market rating confidence."""

    VERY_HIGH = "VERY HIGH"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"


class MarketStatus(str, Enum):
    """Regular-session status of the equity market."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


# =============================================================================
# INPUTS
# =============================================================================


class Bar(BaseModel):
    """One OHLCV period."""

    model_config = ConfigDict(allow_inf_nan=False)

    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = Field(..., ge=0)


class PriceHistory(BaseModel):
    """
    Parallel OHLCV arrays for one instrument, oldest first.

    Only ``closes`` is required. Every other array is optional so that each
    analysis can check for the inputs it needs; when present, an array must be
    aligned with ``closes`` (same length, same indices).
    """

    model_config = ConfigDict(allow_inf_nan=False)

    closes: List[float]
    opens: Optional[List[float]] = None
    highs: Optional[List[float]] = None
    lows: Optional[List[float]] = None
    volumes: Optional[List[float]] = None
    timestamps: Optional[List[datetime]] = None

    @model_validator(mode="after")
    def check_alignment(self) -> "PriceHistory":
        """Reject arrays whose length differs from ``closes``."""
        expected = len(self.closes)
        for name in ("opens", "highs", "lows", "volumes", "timestamps"):
            values = getattr(self, name)
            if values is not None and len(values) != expected:
                raise ValueError(
                    f"{name} has {len(values)} values but closes has {expected}"
                )
        if self.volumes is not None and any(v < 0 for v in self.volumes):
            raise ValueError("volumes cannot be negative")
        return self

    def __len__(self) -> int:
        return len(self.closes)

    @property
    def has_range(self) -> bool:
        """True when both highs and lows are available."""
        return self.highs is not None and self.lows is not None

    @property
    def has_volume(self) -> bool:
        return self.volumes is not None

    def tail(self, n: int) -> "PriceHistory":
        """Return the trailing ``n`` bars as a new history."""
        if n >= len(self.closes):
            return self

        def _cut(values: Optional[Sequence[Any]]) -> Optional[List[Any]]:
            return list(values[-n:]) if values is not None else None

        return PriceHistory(
            closes=list(self.closes[-n:]),
            opens=_cut(self.opens),
            highs=_cut(self.highs),
            lows=_cut(self.lows),
            volumes=_cut(self.volumes),
            timestamps=_cut(self.timestamps),
        )

    @classmethod
    def from_bars(cls, bars: Sequence[Bar]) -> "PriceHistory":
        """
        Build a history from a chronological bar series.

        Raises:
            ValueError: If timestamps are out of order or duplicated.
        """
        for previous, current in zip(bars, bars[1:]):
            if current.time <= previous.time:
                raise ValueError(
                    f"Bars must be strictly chronological: {current.time} "
                    f"follows {previous.time}"
                )
        return cls(
            closes=[b.close for b in bars],
            opens=[b.open for b in bars],
            highs=[b.high for b in bars],
            lows=[b.low for b in bars],
            volumes=[float(b.volume) for b in bars],
            timestamps=[b.time for b in bars],
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "PriceHistory":
        """
        Build a history from an OHLCV DataFrame (lowercase column names).

        The index is used as timestamps when it is a DatetimeIndex.
        """
        if "close" not in df.columns:
            raise ValueError("DataFrame must contain a 'close' column")

        def _column(name: str) -> Optional[List[float]]:
            if name not in df.columns:
                return None
            return df[name].astype(float).tolist()

        timestamps = None
        if isinstance(df.index, pd.DatetimeIndex):
            timestamps = [ts.to_pydatetime() for ts in df.index]

        return cls(
            closes=df["close"].astype(float).tolist(),
            opens=_column("open"),
            highs=_column("high"),
            lows=_column("low"),
            volumes=_column("volume"),
            timestamps=timestamps,
        )


class Quote(BaseModel):
    """Current-session fields of the instrument being scored."""

    model_config = ConfigDict(allow_inf_nan=False)

    price: float = Field(..., gt=0, description="Last traded price")
    open: float = Field(..., gt=0, description="Session open")
    high: float = Field(..., gt=0, description="Session high")
    low: float = Field(..., gt=0, description="Session low")
    previous_close: float = Field(..., gt=0, description="Prior session close")
    change_percent: float = Field(
        default=0.0, description="Percent change versus the prior close"
    )
    volume: float = Field(default=0.0, ge=0, description="Session volume so far")

    @classmethod
    def from_history(cls, history: PriceHistory) -> "Quote":
        """Derive a quote from the last two bars of a history."""
        if len(history) < 2:
            raise ValueError("At least two bars are required to build a quote")
        price = history.closes[-1]
        previous_close = history.closes[-2]
        return cls(
            price=price,
            open=history.opens[-1] if history.opens else price,
            high=history.highs[-1] if history.highs else price,
            low=history.lows[-1] if history.lows else price,
            previous_close=previous_close,
            change_percent=(price - previous_close) / previous_close * 100,
            volume=history.volumes[-1] if history.volumes else 0.0,
        )


# =============================================================================
# PER-SYMBOL OUTPUTS
# =============================================================================


class Signal(BaseModel):
    """Human-readable explanation attached to a score or rating."""

    text: str
    direction: Direction
    source: str = Field(..., description="Indicator, pattern or factor name")


class ScoreResult(BaseModel):
    """Composite trade-attractiveness score for one symbol."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    confidence: int = Field(..., ge=0, le=100)
    recommendation: Recommendation
    reasoning: str
    signals: List[Signal] = Field(default_factory=list)
    warnings: List[Signal] = Field(default_factory=list)
    patterns: List[PatternMatch] = Field(default_factory=list)
    technical_indicators: Dict[str, Any] = Field(default_factory=dict)

    @property
    def signal_texts(self) -> List[str]:
        return [s.text for s in self.signals]

    @property
    def warning_texts(self) -> List[str]:
        return [w.text for w in self.warnings]


class MethodPrediction(BaseModel):
    """One candidate price from a single forecasting method."""

    method: str
    predicted_price: float
    confidence: float = Field(..., ge=0, le=100)


class ForecastResult(BaseModel):
    """Ensemble price forecast."""

    model_config = ConfigDict(frozen=True)

    current_price: float
    predicted_price: float
    lower_bound: float
    upper_bound: float
    expected_change_percent: float
    confidence: int = Field(..., ge=0, le=100)
    methods_used: int
    individual_predictions: List[MethodPrediction]
    outlook: ForecastOutlook
    horizon_days: int = 7


# =============================================================================
# MARKET-WIDE OUTPUTS
# =============================================================================


class RatingFactor(BaseModel):
    """Contribution of one factor to the market rating."""

    name: str
    points: float
    max_points: float
    confidence: float = Field(default=0.0, ge=0, le=100)
    detail: str = ""


class MarketRating(BaseModel):
    """Market-wide sentiment rating built from an index basket."""

    model_config = ConfigDict(frozen=True)

    rating: int = Field(..., ge=0, le=100)
    confidence: int = Field(..., ge=0, le=100)
    confidence_label: ConfidenceLabel
    sentiment: MarketSentiment
    recommendation: MarketRecommendation
    advice: str
    factors: List[RatingFactor] = Field(default_factory=list)
    signals: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    market_status: MarketStatus
    cached: bool = False
    stale: bool = False
    cache_age_seconds: Optional[float] = None
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CacheEntry(BaseModel):
    """JSON-serializable cache record: payload plus write time (epoch seconds)."""

    data: Dict[str, Any]
    timestamp: float
