"""
Scoring Rule Table.

Every adjustment the composite scorer can make lives here as data: a rule key
maps to a point delta, a confidence increment, a message template and a
direction. The scorer decides WHICH rules fire; this table decides HOW MUCH
each one moves the score, so weights can be retuned and tested without
touching control flow.
"""

from dataclasses import dataclass, replace
from string import Formatter
from typing import Any, Dict, Iterable, Mapping, Optional

from trade_scoring.domain.schemas import Direction, Signal


@dataclass(frozen=True)
class Rule:
    """One scoring adjustment.

    Attributes:
        key: Unique rule identifier, e.g. "rsi_oversold"
        source: Indicator, pattern or analysis that produced it
        delta: Points added to the score (negative for bearish rules)
        confidence: Points added to the confidence accumulator
        template: ``str.format`` template rendered with the check's params
        direction: Bearish rules are reported as warnings
        fallback: Template used when a field of ``template`` is missing or None
    """

    key: str
    source: str
    delta: float
    confidence: float
    template: str
    direction: Direction
    fallback: Optional[str] = None

    @property
    def fields(self) -> frozenset:
        """Names referenced by ``template``."""
        return frozenset(
            name for _, name, _, _ in Formatter().parse(self.template) if name
        )

    def render(self, **params: Any) -> Signal:
        template = self.template
        if self.fallback is not None and any(
            params.get(name) is None for name in self.fields
        ):
            template = self.fallback
        return Signal(
            text=template.format(**params),
            direction=self.direction,
            source=self.source,
        )


_B = Direction.BULLISH
_S = Direction.BEARISH
_N = Direction.NEUTRAL

# fmt: off
DEFAULT_RULES = (
    # Momentum oscillators
    Rule("rsi_oversold", "rsi", 15, 20, "RSI oversold at {rsi:.1f}", _B),
    Rule("rsi_weak", "rsi", 10, 15, "RSI weak at {rsi:.1f}, room to recover", _B),
    Rule("rsi_overbought", "rsi", -10, 15, "RSI overbought at {rsi:.1f}", _S),
    Rule("rsi_momentum", "rsi", 8, 10, "RSI {rsi:.1f} with strong daily momentum", _B),
    Rule("mfi_oversold", "mfi", 8, 10, "Money flow oversold (MFI {mfi:.1f})", _B),
    Rule("mfi_overbought", "mfi", -6, 10, "Money flow overbought (MFI {mfi:.1f})", _S),
    Rule("stochastic_oversold", "stochastic", 8, 10, "Stochastic oversold (%K {k:.1f})", _B),
    Rule("stochastic_overbought", "stochastic", -6, 10, "Stochastic overbought (%K {k:.1f})", _S),
    Rule("williams_oversold", "williams_r", 6, 8, "Williams %R oversold ({value:.1f})", _B),
    Rule("williams_overbought", "williams_r", -5, 8, "Williams %R overbought ({value:.1f})", _S),
    Rule("cci_extreme_oversold", "cci", 10, 12, "CCI extremely oversold ({value:.0f})", _B),
    Rule("cci_oversold", "cci", 6, 8, "CCI oversold ({value:.0f})", _B),
    Rule("cci_extreme_overbought", "cci", -10, 12, "CCI extremely overbought ({value:.0f})", _S),
    Rule("cci_overbought", "cci", -5, 8, "CCI overbought ({value:.0f})", _S),
    # Trend
    Rule("macd_strong_bullish", "macd", 12, 15, "Strong bullish MACD (histogram {histogram:.3f})", _B),
    Rule("macd_bullish", "macd", 6, 10, "MACD above signal line", _B),
    Rule("macd_bearish", "macd", -10, 10, "MACD below signal line (histogram {histogram:.3f})", _S),
    Rule("adx_bullish_trend", "adx", 10, 12, "Strong uptrend confirmed (ADX {adx:.1f}, +DI > -DI)", _B),
    Rule("adx_bearish_trend", "adx", -10, 12, "Strong downtrend confirmed (ADX {adx:.1f}, -DI > +DI)", _S),
    Rule("ichimoku_strong_bullish", "ichimoku", 12, 12, "Price above a bullish Ichimoku cloud", _B),
    Rule("ichimoku_bullish", "ichimoku", 8, 8, "Ichimoku bullish", _B),
    Rule("ichimoku_strong_bearish", "ichimoku", -12, 12, "Price below a bearish Ichimoku cloud", _S),
    Rule("ichimoku_bearish", "ichimoku", -8, 8, "Ichimoku bearish", _S),
    Rule("sar_bullish", "parabolic_sar", 5, 5, "Parabolic SAR trailing below at {sar:.2f}", _B),
    Rule("sar_bearish", "parabolic_sar", -5, 5, "Parabolic SAR overhead at {sar:.2f}", _S),
    # Volatility
    Rule("bollinger_lower", "bollinger", 10, 12, "Near lower Bollinger Band (%B {percent_b:.2f})", _B),
    Rule("bollinger_upper", "bollinger", -8, 10, "Near upper Bollinger Band (%B {percent_b:.2f})", _S),
    Rule("bollinger_squeeze", "bollinger", 5, 5, "Bollinger squeeze, breakout building", _N),
    # Session activity
    Rule("volume_extreme", "volume", 12, 15, "Volume surge {ratio:.1f}x average", _B),
    Rule("volume_high", "volume", 8, 10, "High volume {ratio:.1f}x average", _B),
    Rule("volume_elevated", "volume", 4, 5, "Volume {ratio:.1f}x average", _B),
    Rule("volume_selling", "volume", -6, 8, "Heavy selling on {ratio:.1f}x volume", _S),
    Rule("momentum_strong", "momentum", 15, 15, "Strong momentum +{change:.2f}%", _B),
    Rule("momentum_good", "momentum", 10, 10, "Good momentum +{change:.2f}%", _B),
    Rule("momentum_positive", "momentum", 5, 5, "Positive momentum +{change:.2f}%", _B),
    Rule("momentum_oversold_bounce", "momentum", 12, 10, "Sharp drop {change:.2f}%, oversold bounce candidate", _B),
    Rule("range_high", "range", 10, 8, "Trading near the day's high ({position:.0%} of range)", _B),
    Rule("range_low", "range", 8, 5, "Near the day's low ({position:.0%} of range), value entry", _B),
    Rule("gap_up_holding", "gap", 8, 8, "Gap up {gap:.2f}% holding", _B),
    Rule("gap_down_recovering", "gap", 6, 5, "Gap down {gap:.2f}% recovering", _B),
    Rule("gap_fading", "gap", -6, 5, "Gap up {gap:.2f}% fading", _S),
    Rule("relative_strength_strong", "relative_strength", 10, 10, "Outperforming market by {spread:.2f}%", _B),
    Rule("relative_strength_positive", "relative_strength", 6, 5, "Beating market by {spread:.2f}%", _B),
    Rule("relative_strength_weak", "relative_strength", -6, 5, "Lagging market by {spread:.2f}%", _S),
    # Patterns
    Rule("pattern_head_and_shoulders", "patterns", -12, 15, "Head & shoulders forming (confidence {confidence:.0f}%)", _S),
    Rule("pattern_double_top", "patterns", -10, 12, "Double top near {resistance:.2f}", _S, "Double top forming"),
    Rule("pattern_double_bottom", "patterns", 10, 12, "Double bottom near {support:.2f}", _B, "Double bottom forming"),
    Rule("pattern_bull_flag", "patterns", 10, 12, "Bull flag, measured target {target:.2f}", _B, "Bull flag forming"),
    Rule("pattern_bear_flag", "patterns", -10, 12, "Bear flag, measured target {target:.2f}", _S, "Bear flag forming"),
    Rule("pattern_ascending_triangle", "patterns", 8, 10, "Ascending triangle under {resistance:.2f}", _B, "Ascending triangle forming"),
    Rule("pattern_descending_triangle", "patterns", -8, 10, "Descending triangle above {support:.2f}", _S, "Descending triangle forming"),
    Rule("pattern_symmetrical_triangle", "patterns", 0, 5, "Symmetrical triangle, breakout direction unclear", _N),
    # Levels
    Rule("near_support", "levels", 8, 10, "Near support {price:.2f} ({touches} touches)", _B),
    Rule("near_resistance", "levels", -6, 8, "Near resistance {price:.2f} ({touches} touches)", _S),
    Rule("fibonacci_support", "fibonacci", 6, 8, "Holding Fibonacci {level} at {price:.2f}", _B),
    Rule("fibonacci_resistance", "fibonacci", -4, 6, "Testing Fibonacci {level} at {price:.2f} from below", _S),
    Rule("below_value_area", "volume_profile", 8, 8, "Below value area, volume support near POC {poc:.2f}", _B),
    Rule("above_value_area", "volume_profile", -6, 6, "Extended above value area (POC {poc:.2f})", _S),
    Rule("at_poc", "volume_profile", 0, 5, "Trading at point of control {poc:.2f}", _N),
    # Regime
    Rule("regime_strong_uptrend", "regime", 10, 10, "Strong uptrend regime", _B),
    Rule("regime_moderate_uptrend", "regime", 5, 5, "Moderate uptrend regime", _B),
    Rule("regime_strong_downtrend", "regime", -10, 10, "Strong downtrend regime", _S),
    Rule("regime_moderate_downtrend", "regime", -5, 5, "Moderate downtrend regime", _S),
    Rule("regime_choppy", "regime", -5, 5, "Choppy price action", _S),
    Rule("regime_ranging", "regime", 0, 3, "Range-bound price action", _N),
    # Unusual activity
    Rule("anomaly", "anomaly", 0, 5, "Unusual activity detected (anomaly score {score})", _S),
)
# fmt: on


class RuleTable:
    """Keyed collection of scoring rules."""

    def __init__(self, rules: Iterable[Rule] = DEFAULT_RULES):
        self._rules: Dict[str, Rule] = {}
        for rule in rules:
            if rule.key in self._rules:
                raise ValueError(f"Duplicate rule key: {rule.key}")
            self._rules[rule.key] = rule

    def __getitem__(self, key: str) -> Rule:
        return self._rules[key]

    def __contains__(self, key: str) -> bool:
        return key in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def keys(self):
        return self._rules.keys()

    def get(self, key: str) -> Optional[Rule]:
        return self._rules.get(key)

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> "RuleTable":
        """Return a copy with selected rule fields replaced.

        Example:
            >>> table = RuleTable().with_overrides({"rsi_oversold": {"delta": 20}})
        """
        rules = dict(self._rules)
        for key, changes in overrides.items():
            if key not in rules:
                raise KeyError(f"Unknown rule key: {key}")
            rules[key] = replace(rules[key], **changes)
        return RuleTable(rules.values())
