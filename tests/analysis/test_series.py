"""Unit tests for the shared numeric helpers."""

import numpy as np
import pytest

from trade_scoring.analysis import series as s


def test_as_array_rejects_infinity():
    with pytest.raises(ValueError, match="closes contains non-finite values"):
        s.as_array([1.0, np.inf], "closes")


def test_as_array_rejects_2d():
    with pytest.raises(ValueError, match="one-dimensional"):
        s.as_array([[1.0, 2.0]], "closes")


def test_aligned_reports_lengths():
    with pytest.raises(ValueError, match="highs=3, lows=2"):
        s.aligned(highs=[1, 2, 3], lows=[1, 2])


def test_sma_and_rolling_sum():
    values = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
    assert s.sma(values, 2) == 4.5
    assert s.sma(values, 6) is None
    np.testing.assert_allclose(s.rolling_sum(values, 3), [6.0, 9.0, 12.0])
    np.testing.assert_allclose(s.sma_series(values, 3), [2.0, 3.0, 4.0])


def test_ema_is_seeded_with_sma():
    values = np.array([2.0, 4.0, 6.0, 8.0])
    # seed mean(2, 4, 6) = 4; multiplier 0.5 -> (8 - 4) * 0.5 + 4 = 6
    np.testing.assert_allclose(s.ema_series(values, 3), [4.0, 6.0])


def test_wilder_forms():
    values = np.array([2.0, 4.0, 6.0])
    np.testing.assert_allclose(s.wilder_smooth(values, 2), [3.0, 4.5])
    np.testing.assert_allclose(s.wilder_running_sum(values, 2), [6.0, 9.0])


def test_short_input_gives_empty_series():
    values = np.array([1.0])
    assert len(s.ema_series(values, 3)) == 0
    assert len(s.wilder_smooth(values, 3)) == 0
    assert len(s.pct_returns(values)) == 0


def test_std_dev_is_population():
    assert s.std_dev(np.array([1.0, 3.0])) == 1.0
    assert s.std_dev(np.array([])) == 0.0


def test_true_range_uses_previous_close():
    highs = np.array([10.0, 11.0])
    lows = np.array([9.0, 10.5])
    closes = np.array([13.0, 10.8])
    np.testing.assert_allclose(s.true_range(highs, lows, closes), [2.5])


class TestLinearRegression:
    def test_perfect_line(self):
        slope, intercept, r2 = s.linear_regression(np.array([5.0, 7.0, 9.0, 11.0]))
        assert slope == pytest.approx(2.0)
        assert intercept == pytest.approx(5.0)
        assert r2 == pytest.approx(1.0)

    def test_constant_series_has_zero_r2(self):
        slope, intercept, r2 = s.linear_regression(np.array([4.0, 4.0, 4.0]))
        assert slope == 0.0
        assert intercept == 4.0
        assert r2 == 0.0

    def test_single_point(self):
        assert s.linear_regression(np.array([7.0])) == (0.0, 7.0, 0.0)


def test_pct_returns_skips_zero_base():
    np.testing.assert_allclose(
        s.pct_returns(np.array([0.0, 2.0, 3.0])), [0.0, 0.5]
    )


def test_clamp():
    assert s.clamp(120.0, 0.0, 100.0) == 100.0
    assert s.clamp(-5.0, 0.0, 100.0) == 0.0
    assert s.clamp(42.0, 0.0, 100.0) == 42.0
