"""Unit tests for chart pattern detection."""

import pytest

from trade_scoring.analysis.patterns import PatternDetector, detect_patterns


@pytest.fixture
def detector():
    return PatternDetector()


def _flat(value=100.0, n=30):
    return [value] * n


class TestReversalPatterns:
    def test_double_top(self, detector):
        """Equal peaks at 5 and 25 with a dip in between."""
        highs = _flat()
        highs[5] = 110.0
        highs[25] = 110.0
        highs[15] = 95.0

        match = detector.detect_double_top(highs)

        assert match is not None
        assert match.type == "double_top"
        assert match.bullish is False
        assert match.resistance == pytest.approx(110.0)
        assert match.neckline == pytest.approx(95.0)
        assert match.target == pytest.approx(80.0)
        assert match.confidence == pytest.approx(80.0)

    def test_double_top_rejects_uneven_peaks(self, detector):
        highs = _flat()
        highs[5] = 110.0
        highs[25] = 115.0
        assert detector.detect_double_top(highs) is None

    def test_double_top_uses_lows_for_neckline(self, detector):
        highs = _flat()
        highs[5] = 110.0
        highs[25] = 109.0
        lows = [h - 2.0 for h in highs]
        lows[12] = 90.0

        match = detector.detect_double_top(highs, lows)

        assert match.neckline == 90.0
        assert match.resistance == pytest.approx(109.5)
        assert match.confidence == pytest.approx(80.0 - (1 / 110) * 2000)

    def test_double_bottom(self, detector):
        lows = _flat()
        lows[8] = 90.0
        lows[22] = 90.5

        match = detector.detect_double_bottom(lows)

        assert match.type == "double_bottom"
        assert match.bullish is True
        assert match.support == pytest.approx(90.25)
        assert match.neckline == 100.0
        assert match.target == pytest.approx(100.0 + 9.75)

    def test_head_and_shoulders(self, detector):
        highs = _flat()
        highs[5] = 110.0
        highs[15] = 120.0
        highs[25] = 110.5
        lows = [h - 2.0 for h in highs]
        lows[10] = 90.0
        lows[20] = 92.0

        match = detector.detect_head_and_shoulders(highs, lows)

        assert match.type == "head_and_shoulders"
        assert match.neckline == 90.0
        assert match.height == pytest.approx(30.0)
        assert match.target == pytest.approx(60.0)
        assert match.confidence == pytest.approx(85.0 - (0.5 / 110.0) * 1000)
        assert match.breakout_direction == "down"

    def test_head_and_shoulders_needs_highest_head(self, detector):
        highs = _flat()
        highs[5] = 120.0
        highs[15] = 110.0
        highs[25] = 120.0
        assert detector.detect_head_and_shoulders(highs) is None

    def test_head_and_shoulders_rejects_lopsided_shoulders(self, detector):
        highs = _flat()
        highs[5] = 110.0
        highs[15] = 120.0
        highs[25] = 115.0
        assert detector.detect_head_and_shoulders(highs) is None

    def test_only_trailing_window_is_scanned(self, detector):
        """Peaks older than the 30-bar window are ignored."""
        highs = _flat(n=60)
        highs[5] = 110.0
        highs[15] = 110.0
        assert detector.detect_double_top(highs) is None


class TestContinuationPatterns:
    def test_bull_flag(self, detector):
        closes = [float(c) for c in range(100, 110)] + [110.0, 110.5] * 5

        match = detector.detect_flag(closes)

        assert match.type == "bull_flag"
        assert match.bullish is True
        assert match.height == pytest.approx(9.0)
        assert match.target == pytest.approx(119.5)
        assert match.resistance == 110.5
        assert match.support == 110.0

    def test_bear_flag(self, detector):
        closes = [float(c) for c in range(110, 100, -1)] + [100.0, 100.5] * 5

        match = detector.detect_flag(closes)

        assert match.type == "bear_flag"
        assert match.bullish is False
        assert match.target == pytest.approx(91.5)

    def test_flag_needs_tight_consolidation(self, detector):
        closes = [float(c) for c in range(100, 110)] + [110.0, 115.0] * 5
        assert detector.detect_flag(closes) is None

    def test_flag_needs_a_pole(self, detector):
        assert detector.detect_flag([100.0] * 20) is None

    def test_ascending_triangle(self, detector):
        highs = [110.0] * 20
        lows = [100.0 + 0.5 * i for i in range(20)]

        match = detector.detect_triangle(highs, lows)

        assert match.type == "ascending_triangle"
        assert match.resistance == 110.0
        assert match.support == 100.0
        assert match.target == pytest.approx(120.0)

    def test_descending_triangle(self, detector):
        highs = [110.0 - 0.5 * i for i in range(20)]
        lows = [100.0] * 20

        match = detector.detect_triangle(highs, lows)

        assert match.type == "descending_triangle"
        assert match.bullish is False
        assert match.target == pytest.approx(90.0)

    def test_symmetrical_triangle_has_no_direction(self, detector):
        highs = [110.0 - 0.5 * i for i in range(20)]
        lows = [90.0 + 0.5 * i for i in range(20)]

        match = detector.detect_triangle(highs, lows)

        assert match.type == "symmetrical_triangle"
        assert match.bullish is None
        assert match.target is None

    def test_parallel_channel_is_not_a_triangle(self, detector):
        highs = [110.0 + i for i in range(20)]
        lows = [100.0 + i for i in range(20)]
        assert detector.detect_triangle(highs, lows) is None


def test_steady_trend_detects_nothing(rising_history):
    assert (
        detect_patterns(rising_history.closes, rising_history.highs, rising_history.lows)
        == []
    )


def test_short_input_detects_nothing():
    assert detect_patterns([100.0, 101.0, 102.0]) == []
