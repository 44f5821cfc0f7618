"""Unit tests for the indicators module."""

import math

import numpy as np
import pytest

from trade_scoring.analysis import indicators as ind


@pytest.fixture
def random_walk():
    rng = np.random.default_rng(42)
    closes = 100 + np.cumsum(rng.normal(0, 1.5, 120))
    highs = closes + rng.uniform(0.1, 2.0, 120)
    lows = closes - rng.uniform(0.1, 2.0, 120)
    volumes = rng.integers(1_000, 50_000, 120).astype(float)
    return closes, highs, lows, volumes


class TestRSI:
    def test_all_gains_is_100(self):
        assert ind.rsi(list(range(1, 31))) == 100.0

    def test_flat_series_is_neutral_50(self):
        assert ind.rsi([42.0] * 30) == 50.0

    def test_insufficient_data_returns_none(self):
        assert ind.rsi([1.0] * 14) is None
        assert ind.rsi([1.0] * 15) is not None

    def test_wilder_recursion_pinned(self):
        """
        period=2, deltas [+1, -1, +1, +1]:
        seed gain/loss 0.5/0.5 -> 0.75/0.25 -> 0.875/0.125, RS=7, RSI=87.5
        """
        assert ind.rsi([1, 2, 1, 2, 3], period=2) == pytest.approx(87.5)

    def test_bounded(self, random_walk):
        closes = random_walk[0]
        for end in range(15, len(closes)):
            value = ind.rsi(closes[:end])
            assert 0.0 <= value <= 100.0

    def test_rejects_non_finite(self):
        with pytest.raises(ValueError):
            ind.rsi([1.0] * 10 + [math.nan] + [1.0] * 10)


class TestMACD:
    def test_short_series_uses_proxy_signal(self):
        result = ind.macd(list(range(100, 130)))
        assert result.signal_method == "proxy"
        assert result.signal == pytest.approx(result.macd * 0.9)
        assert result.histogram > 0

    def test_long_series_uses_ema_signal(self):
        result = ind.macd(list(range(100, 160)))
        assert result.signal_method == "ema"
        # A linear series has a constant MACD line, so its EMA equals it
        assert result.histogram == pytest.approx(0.0, abs=1e-9)

    def test_proxy_and_ema_signal_differ(self):
        """The fixed-fraction proxy and the true EMA give different histograms."""
        closes = list(range(100, 160))
        ema = ind.macd(closes, signal_mode="ema")
        proxy = ind.macd(closes, signal_mode="proxy")
        assert ema.macd == pytest.approx(proxy.macd)
        assert proxy.histogram == pytest.approx(0.7)
        assert abs(proxy.histogram - ema.histogram) > 0.5

    def test_linear_macd_value(self):
        """Slope 1: EMA lag is (p-1)/2, so MACD = 12.5 - 5.5 = 7."""
        assert ind.macd(list(range(100, 160))).macd == pytest.approx(7.0)

    def test_insufficient_data(self):
        assert ind.macd(list(range(25))) is None


class TestBollinger:
    def test_flat_series_collapses(self):
        bands = ind.bollinger_bands([50.0] * 30)
        assert bands.upper == bands.middle == bands.lower == 50.0
        assert bands.squeeze is True
        assert bands.percent_b == 0.5

    def test_band_ordering(self, random_walk):
        closes = random_walk[0]
        for end in range(20, len(closes), 5):
            bands = ind.bollinger_bands(closes[:end])
            assert bands.lower <= bands.middle <= bands.upper

    def test_percent_b_not_clamped(self):
        above = ind.bollinger_bands([100.0] * 19 + [130.0])
        below = ind.bollinger_bands([100.0] * 19 + [70.0])
        assert above.percent_b > 1.0
        assert below.percent_b < 0.0
        assert above.interpretation == "overbought"

    def test_insufficient_data(self):
        assert ind.bollinger_bands([1.0] * 19) is None


class TestATR:
    def test_wilder_smoothing_pinned(self):
        """TRs [3, 2, 3]; seed mean(3, 2) = 2.5; then (2.5 + 3) / 2 = 2.75."""
        closes = [10, 12, 11, 13]
        highs = [11, 13, 12, 14]
        lows = [9, 10, 10, 11]
        assert ind.atr(highs, lows, closes, period=2) == pytest.approx(2.75)

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="lengths differ"):
            ind.atr([1, 2, 3], [1, 2], [1, 2, 3], period=1)


class TestADX:
    def test_running_sum_pinned(self):
        """
        TR [3, 2, 4], +DM [2, 0, 3], -DM [0, 0, 0] with period 2:
        running sums TR 5 -> 6.5, +DM 2 -> 4, so +DI = 4 / 6.5 * 100.
        """
        highs = [10, 12, 11, 14]
        lows = [8, 9, 9, 11]
        closes = [9, 11, 10, 13]
        result = ind.adx(highs, lows, closes, period=2)
        assert result.plus_di == pytest.approx(400 / 6.5)
        assert result.minus_di == 0.0
        assert result.adx == pytest.approx(100.0)
        assert result.trend_direction == "bullish"

    def test_zero_range_is_zero(self):
        flat = [10.0] * 30
        result = ind.adx(flat, flat, flat)
        assert result.adx == 0.0
        assert result.plus_di == result.minus_di == 0.0

    def test_requires_two_periods(self):
        flat = [10.0] * 27
        assert ind.adx(flat, flat, flat) is None


class TestOscillators:
    def test_stochastic_flat_is_50(self):
        flat = [5.0] * 20
        result = ind.stochastic(flat, flat, flat)
        assert result.k == 50.0
        assert result.d == 50.0

    def test_stochastic_close_at_high(self):
        closes = list(range(1, 21))
        highs = [c + 0.0 for c in closes]
        lows = [c - 1.0 for c in closes]
        assert ind.stochastic(highs, lows, closes).k == 100.0

    def test_stochastic_d_needs_smoothing_bars(self):
        flat = [5.0] * 15
        assert ind.stochastic(flat, flat, flat).d is None

    def test_williams_r_range(self, random_walk):
        closes, highs, lows, _ = random_walk
        value = ind.williams_r(highs, lows, closes)
        assert -100.0 <= value <= 0.0
        flat = [3.0] * 14
        assert ind.williams_r(flat, flat, flat) == -50.0

    def test_cci_flat_is_zero(self):
        flat = [3.0] * 20
        assert ind.cci(flat, flat, flat) == 0.0

    def test_cci_clamped(self):
        values = [100.0] * 19 + [200.0]
        assert ind.cci(values, values, values) == 500.0

    def test_mfi(self):
        flat = [10.0] * 20
        volumes = [100.0] * 20
        assert ind.mfi(flat, flat, flat, volumes) == 50.0
        rising = list(range(1, 21))
        assert ind.mfi(rising, rising, rising, volumes) == 100.0

    def test_obv_starts_from_first_volume(self):
        closes = [10, 11, 10, 10, 12]
        volumes = [100, 200, 300, 400, 500]
        assert ind.obv(closes, volumes) == 500.0


class TestTrendSystems:
    def test_ichimoku_uptrend(self):
        closes = [float(c) for c in range(100, 160)]
        highs = [c + 1 for c in closes]
        lows = [c - 1 for c in closes]
        cloud = ind.ichimoku(highs, lows, closes)
        assert cloud.tenkan_sen == pytest.approx(155.0)
        assert cloud.kijun_sen == pytest.approx(146.5)
        assert cloud.senkou_span_b == pytest.approx(133.5)
        assert cloud.cloud_color == "bullish"
        assert cloud.price_vs_cloud == "above"
        assert cloud.signal == "strong_buy"

    def test_ichimoku_needs_52_bars(self):
        flat = [1.0] * 51
        assert ind.ichimoku(flat, flat, flat) is None

    def test_parabolic_sar_follows_trend(self):
        closes = [float(c) for c in range(100, 130)]
        highs = [c + 1 for c in closes]
        lows = [c - 1 for c in closes]
        up = ind.parabolic_sar(highs, lows, closes)
        assert up.bullish is True
        assert up.sar < closes[-1]

        down = ind.parabolic_sar(highs[::-1], lows[::-1], closes[::-1])
        assert down.bullish is False
        assert down.sar > closes[0]
        assert down.distance_percent > 0

    def test_parabolic_sar_min_bars(self):
        assert ind.parabolic_sar([1, 2, 3, 4], [0, 1, 2, 3], [1, 2, 3, 4]) is None


class TestSnapshot:
    def test_closes_only_skips_range_indicators(self):
        snapshot = ind.compute_snapshot(list(range(100, 160)))
        assert snapshot.rsi == 100.0
        assert snapshot.macd is not None
        assert snapshot.atr is None
        assert snapshot.mfi is None
        assert snapshot.obv is None

    def test_full_snapshot_is_idempotent(self, random_walk):
        closes, highs, lows, volumes = random_walk
        first = ind.compute_snapshot(closes, highs, lows, volumes)
        second = ind.compute_snapshot(closes, highs, lows, volumes)
        assert first == second
        assert first.ichimoku is not None
        assert set(first.as_dict()) >= {"rsi", "macd", "bollinger", "adx"}
