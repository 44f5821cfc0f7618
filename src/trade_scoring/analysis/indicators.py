"""Technical indicator library.

Every function takes aligned numeric sequences (oldest first) and a period,
and returns ``None`` when the input is too short for that period. Bounded
oscillators are clamped to their defined range before being returned.

Indicators:
- Momentum: RSI(14), Stochastic %K/%D(14), Williams %R(14), CCI(20), MFI(14)
- Trend: MACD(12, 26, 9), ADX/DI(14), Ichimoku(9, 26, 52), Parabolic SAR
- Volatility: Bollinger Bands(20, 2), ATR(14)
- Volume: OBV
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Literal, Optional, Sequence

import numpy as np

from trade_scoring.analysis import series as s

# RSI
RSI_PERIOD = 14
RSI_NEUTRAL = 50.0

# MACD
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
MACD_PROXY_FRACTION = 0.9

# Bollinger
BB_PERIOD = 20
BB_MULTIPLIER = 2.0
BB_SQUEEZE_BANDWIDTH = 0.10

# Oscillator windows
ATR_PERIOD = 14
MFI_PERIOD = 14
STOCH_PERIOD = 14
STOCH_SMOOTHING = 3
ADX_PERIOD = 14
WILLIAMS_PERIOD = 14
CCI_PERIOD = 20
CCI_CONSTANT = 0.015
CCI_LIMIT = 500.0

# Ichimoku
ICHIMOKU_CONVERSION = 9
ICHIMOKU_BASE = 26
ICHIMOKU_SPAN_B = 52

# Parabolic SAR
SAR_STEP = 0.02
SAR_MAX_STEP = 0.2
SAR_MIN_BARS = 5


@dataclass(frozen=True)
class MACDResult:
    """MACD line, signal line and histogram at the latest bar.

    Attributes:
        signal_method: "ema" when the signal line is a recursive EMA of the
            MACD line, "proxy" when it is the fixed-fraction approximation.
    """

    macd: float
    signal: float
    histogram: float
    signal_method: Literal["ema", "proxy"]

    @property
    def strength(self) -> float:
        return abs(self.macd)


@dataclass(frozen=True)
class BollingerResult:
    """Bollinger Bands at the latest bar. ``percent_b`` is not clamped."""

    upper: float
    middle: float
    lower: float
    percent_b: float
    bandwidth: float
    squeeze: bool

    @property
    def width(self) -> float:
        return self.upper - self.lower

    @property
    def interpretation(self) -> str:
        if self.percent_b > 0.8:
            return "overbought"
        if self.percent_b < 0.2:
            return "oversold"
        return "normal"


@dataclass(frozen=True)
class StochasticResult:
    k: float
    d: Optional[float] = None

    @property
    def interpretation(self) -> str:
        if self.k > 80:
            return "overbought"
        if self.k < 20:
            return "oversold"
        return "normal"


@dataclass(frozen=True)
class ADXResult:
    adx: float
    plus_di: float
    minus_di: float

    @property
    def trend_strength(self) -> str:
        if self.adx > 50:
            return "very_strong"
        if self.adx > 25:
            return "strong"
        if self.adx > 20:
            return "developing"
        return "weak"

    @property
    def trend_direction(self) -> str:
        return "bullish" if self.plus_di > self.minus_di else "bearish"


@dataclass(frozen=True)
class IchimokuResult:
    tenkan_sen: float
    kijun_sen: float
    senkou_span_a: float
    senkou_span_b: float
    chikou_span: float
    cloud_color: Literal["bullish", "bearish"]
    price_vs_cloud: Literal["above", "below", "inside"]
    signal: Literal["strong_buy", "buy", "neutral", "sell", "strong_sell"]


@dataclass(frozen=True)
class ParabolicSARResult:
    sar: float
    bullish: bool
    distance_percent: float


def rsi(closes: Sequence[float], period: int = RSI_PERIOD) -> Optional[float]:
    """Relative Strength Index with Wilder smoothing.

    The first average gain/loss is the simple mean of the first ``period``
    deltas; later deltas update it recursively. A series with no losses scores
    100, and a perfectly flat series (no gains and no losses) scores 50.
    """
    c = s.as_array(closes, "closes")
    if len(c) < period + 1:
        return None

    deltas = np.diff(c)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = s.wilder_smooth(gains, period)[-1]
    avg_loss = s.wilder_smooth(losses, period)[-1]

    if avg_loss == 0:
        return RSI_NEUTRAL if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return s.clamp(100.0 - 100.0 / (1.0 + rs), 0.0, 100.0)


def macd(
    closes: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
    signal_mode: Literal["ema", "proxy"] = "ema",
) -> Optional[MACDResult]:
    """Moving Average Convergence Divergence.

    The signal line is an EMA of the MACD line series once ``signal`` MACD
    values exist (``slow + signal - 1`` bars). Shorter inputs, or
    ``signal_mode="proxy"``, use ``0.9 * macd`` instead.
    """
    c = s.as_array(closes, "closes")
    if len(c) < slow:
        return None

    fast_ema = s.ema_series(c, fast)
    slow_ema = s.ema_series(c, slow)
    macd_series = fast_ema[slow - fast :] - slow_ema
    macd_line = float(macd_series[-1])

    if signal_mode == "ema" and len(macd_series) >= signal:
        signal_line = float(s.ema_series(macd_series, signal)[-1])
        method: Literal["ema", "proxy"] = "ema"
    else:
        signal_line = macd_line * MACD_PROXY_FRACTION
        method = "proxy"

    return MACDResult(
        macd=macd_line,
        signal=signal_line,
        histogram=macd_line - signal_line,
        signal_method=method,
    )


def bollinger_bands(
    closes: Sequence[float],
    period: int = BB_PERIOD,
    multiplier: float = BB_MULTIPLIER,
) -> Optional[BollingerResult]:
    """Bollinger Bands over the last ``period`` closes (population std-dev)."""
    c = s.as_array(closes, "closes")
    if len(c) < period:
        return None

    window = c[-period:]
    middle = float(np.mean(window))
    deviation = s.std_dev(window)
    upper = middle + deviation * multiplier
    lower = middle - deviation * multiplier
    width = upper - lower
    price = float(c[-1])

    percent_b = (price - lower) / width if width > 0 else 0.5
    bandwidth = width / middle if middle != 0 else 0.0

    return BollingerResult(
        upper=upper,
        middle=middle,
        lower=lower,
        percent_b=percent_b,
        bandwidth=bandwidth,
        squeeze=middle != 0 and bandwidth < BB_SQUEEZE_BANDWIDTH,
    )


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = ATR_PERIOD,
) -> Optional[float]:
    """Average True Range with Wilder smoothing."""
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    if len(c) < period + 1:
        return None
    return float(s.wilder_smooth(s.true_range(h, l, c), period)[-1])


def mfi(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    volumes: Sequence[float],
    period: int = MFI_PERIOD,
) -> Optional[float]:
    """Money Flow Index over the trailing ``period`` typical-price changes."""
    h, l, c, v = s.aligned(highs=highs, lows=lows, closes=closes, volumes=volumes)
    if len(c) < period + 1:
        return None

    typical = (h + l + c) / 3.0
    flow = typical * v
    tp = typical[-(period + 1) :]
    mf = flow[-period:]
    change = np.diff(tp)

    positive = float(np.sum(mf[change > 0]))
    negative = float(np.sum(mf[change < 0]))

    if negative == 0:
        return 50.0 if positive == 0 else 100.0
    ratio = positive / negative
    return s.clamp(100.0 - 100.0 / (1.0 + ratio), 0.0, 100.0)


def _stochastic_k(h: np.ndarray, l: np.ndarray, close: float) -> float:
    highest = float(np.max(h))
    lowest = float(np.min(l))
    if highest == lowest:
        return 50.0
    return s.clamp((close - lowest) / (highest - lowest) * 100.0, 0.0, 100.0)


def stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = STOCH_PERIOD,
    smoothing: int = STOCH_SMOOTHING,
) -> Optional[StochasticResult]:
    """Stochastic %K and, when enough bars exist, %D = SMA(smoothing) of %K."""
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    n = len(c)
    if n < period:
        return None

    k = _stochastic_k(h[-period:], l[-period:], float(c[-1]))

    d = None
    if n >= period + smoothing - 1:
        ks = [
            _stochastic_k(h[end - period : end], l[end - period : end], float(c[end - 1]))
            for end in range(n - smoothing + 1, n + 1)
        ]
        d = float(np.mean(ks))

    return StochasticResult(k=k, d=d)


def obv(closes: Sequence[float], volumes: Sequence[float]) -> Optional[float]:
    """On-Balance Volume, starting from the first bar's volume."""
    c, v = s.aligned(closes=closes, volumes=volumes)
    if len(c) < 2:
        return None
    direction = np.sign(np.diff(c))
    return float(v[0] + np.sum(direction * v[1:]))


def adx(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = ADX_PERIOD,
) -> Optional[ADXResult]:
    """Average Directional Index with +DI / -DI.

    TR, +DM and -DM use Wilder's running-sum smoothing; ADX is the mean of the
    first ``period`` DX values followed by Wilder's average. Requires
    ``2 * period`` bars.
    """
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    if len(c) < 2 * period:
        return None

    tr = s.true_range(h, l, c)
    up_move = h[1:] - h[:-1]
    down_move = l[:-1] - l[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smooth_tr = s.wilder_running_sum(tr, period)
    smooth_plus = s.wilder_running_sum(plus_dm, period)
    smooth_minus = s.wilder_running_sum(minus_dm, period)

    plus_di = np.divide(
        smooth_plus * 100.0, smooth_tr, out=np.zeros_like(smooth_tr), where=smooth_tr > 0
    )
    minus_di = np.divide(
        smooth_minus * 100.0, smooth_tr, out=np.zeros_like(smooth_tr), where=smooth_tr > 0
    )
    di_sum = plus_di + minus_di
    dx = np.divide(
        np.abs(plus_di - minus_di) * 100.0, di_sum, out=np.zeros_like(di_sum), where=di_sum > 0
    )

    adx_value = float(s.wilder_smooth(dx, period)[-1])
    return ADXResult(
        adx=s.clamp(adx_value, 0.0, 100.0),
        plus_di=float(plus_di[-1]),
        minus_di=float(minus_di[-1]),
    )


def williams_r(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = WILLIAMS_PERIOD,
) -> Optional[float]:
    """Williams %R in [-100, 0]; -50 when the window has no range."""
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    if len(c) < period:
        return None
    highest = float(np.max(h[-period:]))
    lowest = float(np.min(l[-period:]))
    if highest == lowest:
        return -50.0
    return s.clamp((highest - float(c[-1])) / (highest - lowest) * -100.0, -100.0, 0.0)


def cci(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = CCI_PERIOD,
) -> Optional[float]:
    """Commodity Channel Index, clamped to +/-500."""
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    if len(c) < period:
        return None
    typical = ((h + l + c) / 3.0)[-period:]
    mean_tp = float(np.mean(typical))
    mean_dev = float(np.mean(np.abs(typical - mean_tp)))
    if mean_dev == 0:
        return 0.0
    value = (float(typical[-1]) - mean_tp) / (CCI_CONSTANT * mean_dev)
    return s.clamp(value, -CCI_LIMIT, CCI_LIMIT)


def _midpoint(h: np.ndarray, l: np.ndarray, length: int) -> float:
    return (float(np.max(h[-length:])) + float(np.min(l[-length:]))) / 2.0


def ichimoku(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    conversion: int = ICHIMOKU_CONVERSION,
    base: int = ICHIMOKU_BASE,
    span_b: int = ICHIMOKU_SPAN_B,
) -> Optional[IchimokuResult]:
    """Ichimoku Kinko Hyo components at the latest bar (needs ``span_b`` bars)."""
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    if len(c) < span_b:
        return None

    tenkan = _midpoint(h, l, conversion)
    kijun = _midpoint(h, l, base)
    span_a = (tenkan + kijun) / 2.0
    span_b_value = _midpoint(h, l, span_b)
    price = float(c[-1])

    cloud_top = max(span_a, span_b_value)
    cloud_bottom = min(span_a, span_b_value)
    cloud_color: Literal["bullish", "bearish"] = (
        "bullish" if span_a > span_b_value else "bearish"
    )
    if price > cloud_top:
        position: Literal["above", "below", "inside"] = "above"
    elif price < cloud_bottom:
        position = "below"
    else:
        position = "inside"

    if position == "above" and cloud_color == "bullish":
        signal = "strong_buy" if price > kijun else "buy"
    elif position == "below" and cloud_color == "bearish":
        signal = "strong_sell" if price < kijun else "sell"
    else:
        signal = "neutral"

    return IchimokuResult(
        tenkan_sen=tenkan,
        kijun_sen=kijun,
        senkou_span_a=span_a,
        senkou_span_b=span_b_value,
        chikou_span=price,
        cloud_color=cloud_color,
        price_vs_cloud=position,
        signal=signal,
    )


def parabolic_sar(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    step: float = SAR_STEP,
    max_step: float = SAR_MAX_STEP,
) -> Optional[ParabolicSARResult]:
    """Parabolic Stop-And-Reverse at the latest bar."""
    h, l, c = s.aligned(highs=highs, lows=lows, closes=closes)
    n = len(c)
    if n < SAR_MIN_BARS:
        return None

    uptrend = c[1] >= c[0]
    af = step
    ep = float(h[0]) if uptrend else float(l[0])
    sar = float(l[0]) if uptrend else float(h[0])

    for i in range(1, n):
        sar = sar + af * (ep - sar)
        if uptrend:
            sar = min(sar, float(l[i - 1]), float(l[max(i - 2, 0)]))
            if l[i] < sar:
                uptrend, sar, ep, af = False, ep, float(l[i]), step
            elif h[i] > ep:
                ep, af = float(h[i]), min(af + step, max_step)
        else:
            sar = max(sar, float(h[i - 1]), float(h[max(i - 2, 0)]))
            if h[i] > sar:
                uptrend, sar, ep, af = True, ep, float(h[i]), step
            elif l[i] < ep:
                ep, af = float(l[i]), min(af + step, max_step)

    price = float(c[-1])
    distance = abs(price - sar) / price * 100.0 if price else 0.0
    return ParabolicSARResult(sar=sar, bullish=bool(uptrend), distance_percent=distance)


def simple_moving_average(closes: Sequence[float], period: int) -> Optional[float]:
    return s.sma(s.as_array(closes, "closes"), period)


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Every indicator computable from one history; absent inputs stay None."""

    rsi: Optional[float] = None
    macd: Optional[MACDResult] = None
    bollinger: Optional[BollingerResult] = None
    atr: Optional[float] = None
    mfi: Optional[float] = None
    stochastic: Optional[StochasticResult] = None
    obv: Optional[float] = None
    adx: Optional[ADXResult] = None
    williams_r: Optional[float] = None
    cci: Optional[float] = None
    ichimoku: Optional[IchimokuResult] = None
    parabolic_sar: Optional[ParabolicSARResult] = None

    def as_dict(self) -> Dict[str, Any]:
        """Plain-dict view (nested records become dicts)."""
        return asdict(self)


def compute_snapshot(
    closes: Sequence[float],
    highs: Optional[Sequence[float]] = None,
    lows: Optional[Sequence[float]] = None,
    volumes: Optional[Sequence[float]] = None,
    macd_signal_mode: Literal["ema", "proxy"] = "ema",
) -> IndicatorSnapshot:
    """Compute every indicator whose inputs are present."""
    values: Dict[str, Any] = {
        "rsi": rsi(closes),
        "macd": macd(closes, signal_mode=macd_signal_mode),
        "bollinger": bollinger_bands(closes),
    }
    if volumes is not None:
        values["obv"] = obv(closes, volumes)
    if highs is not None and lows is not None:
        values.update(
            atr=atr(highs, lows, closes),
            stochastic=stochastic(highs, lows, closes),
            adx=adx(highs, lows, closes),
            williams_r=williams_r(highs, lows, closes),
            cci=cci(highs, lows, closes),
            ichimoku=ichimoku(highs, lows, closes),
            parabolic_sar=parabolic_sar(highs, lows, closes),
        )
        if volumes is not None:
            values["mfi"] = mfi(highs, lows, closes, volumes)
    return IndicatorSnapshot(**values)
