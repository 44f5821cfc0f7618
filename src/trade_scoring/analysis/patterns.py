"""Pattern analysis module for detecting chart formations.

Each detector inspects a trailing window and returns a ``PatternMatch`` when
its geometric test passes, or ``None`` otherwise. No pattern is ever forced.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from trade_scoring.analysis import series as s
from trade_scoring.analysis.structural import find_peaks, find_troughs


@dataclass(frozen=True)
class PatternMatch:
    """A detected chart pattern.

    Attributes:
        type: Pattern name, e.g. "head_and_shoulders" or "bull_flag"
        detected: Always True for returned matches
        confidence: 0-100
        bullish: True/False, or None when the breakout direction is unknown
        neckline: Reversal line for head & shoulders and double tops/bottoms
        target: Measured-move price objective
        resistance: Upper boundary of the formation
        support: Lower boundary of the formation
        breakout_direction: "up", "down" or None
        height: Formation height used for the measured move
    """

    type: str
    detected: bool = True
    confidence: float = 0.0
    bullish: Optional[bool] = None
    neckline: Optional[float] = None
    target: Optional[float] = None
    resistance: Optional[float] = None
    support: Optional[float] = None
    breakout_direction: Optional[str] = None
    height: Optional[float] = None


class PatternDetector:
    """Geometric tests for reversal and continuation formations."""

    # Windows
    REVERSAL_WINDOW = 30
    CONTINUATION_WINDOW = 20

    # Head & shoulders
    SHOULDER_TOLERANCE = 0.03
    HS_BASE_CONFIDENCE = 85.0
    HS_PENALTY = 1000.0

    # Double top / bottom
    DOUBLE_TOLERANCE = 0.02
    DOUBLE_BASE_CONFIDENCE = 80.0
    DOUBLE_PENALTY = 2000.0

    # Flag
    POLE_MIN_CHANGE = 0.05
    FLAG_MAX_RANGE = 0.03
    FLAG_CONFIDENCE = 75.0

    # Triangle (slope per bar, normalised by mean price)
    FLAT_SLOPE = 0.001
    ASCENDING_CONFIDENCE = 70.0
    DESCENDING_CONFIDENCE = 70.0
    SYMMETRICAL_CONFIDENCE = 65.0

    def detect_head_and_shoulders(
        self, highs: Sequence[float], lows: Optional[Sequence[float]] = None
    ) -> Optional[PatternMatch]:
        """Last three peaks: head above both shoulders, shoulders within 3%."""
        h, floor = self._reversal_window(highs, lows)
        peaks = find_peaks(h)
        if len(peaks) < 3:
            return None

        left, head, right = peaks[-3:]
        if not (head.price > left.price and head.price > right.price):
            return None
        diff_ratio = abs(left.price - right.price) / left.price
        if diff_ratio >= self.SHOULDER_TOLERANCE:
            return None

        neckline = float(np.min(floor[left.index : right.index + 1]))
        height = head.price - neckline
        return PatternMatch(
            type="head_and_shoulders",
            confidence=s.clamp(self.HS_BASE_CONFIDENCE - diff_ratio * self.HS_PENALTY, 0, 100),
            bullish=False,
            neckline=neckline,
            target=neckline - height,
            resistance=head.price,
            breakout_direction="down",
            height=height,
        )

    def detect_double_top(
        self, highs: Sequence[float], lows: Optional[Sequence[float]] = None
    ) -> Optional[PatternMatch]:
        """Two most recent peaks within 2% of each other."""
        h, floor = self._reversal_window(highs, lows)
        peaks = find_peaks(h)
        if len(peaks) < 2:
            return None

        first, second = peaks[-2:]
        diff_ratio = abs(first.price - second.price) / first.price
        if diff_ratio >= self.DOUBLE_TOLERANCE:
            return None

        resistance = (first.price + second.price) / 2.0
        neckline = float(np.min(floor[first.index : second.index + 1]))
        height = resistance - neckline
        return PatternMatch(
            type="double_top",
            confidence=s.clamp(
                self.DOUBLE_BASE_CONFIDENCE - diff_ratio * self.DOUBLE_PENALTY, 0, 100
            ),
            bullish=False,
            neckline=neckline,
            target=neckline - height,
            resistance=resistance,
            breakout_direction="down",
            height=height,
        )

    def detect_double_bottom(
        self, lows: Sequence[float], highs: Optional[Sequence[float]] = None
    ) -> Optional[PatternMatch]:
        """Two most recent troughs within 2% of each other."""
        l, ceiling = self._reversal_window(lows, highs)
        troughs = find_troughs(l)
        if len(troughs) < 2:
            return None

        first, second = troughs[-2:]
        diff_ratio = abs(first.price - second.price) / first.price
        if diff_ratio >= self.DOUBLE_TOLERANCE:
            return None

        support = (first.price + second.price) / 2.0
        neckline = float(np.max(ceiling[first.index : second.index + 1]))
        height = neckline - support
        return PatternMatch(
            type="double_bottom",
            confidence=s.clamp(
                self.DOUBLE_BASE_CONFIDENCE - diff_ratio * self.DOUBLE_PENALTY, 0, 100
            ),
            bullish=True,
            neckline=neckline,
            target=neckline + height,
            support=support,
            breakout_direction="up",
            height=height,
        )

    def detect_flag(self, closes: Sequence[float]) -> Optional[PatternMatch]:
        """Sharp pole in the first half, tight consolidation in the second."""
        c = s.as_array(closes, "closes")
        if len(c) < self.CONTINUATION_WINDOW:
            return None

        window = c[-self.CONTINUATION_WINDOW :]
        half = len(window) // 2
        pole, flag = window[:half], window[half:]
        if pole[0] == 0:
            return None

        pole_change = (pole[-1] - pole[0]) / pole[0]
        if abs(pole_change) <= self.POLE_MIN_CHANGE:
            return None

        price = float(window[-1])
        flag_range = (float(np.max(flag)) - float(np.min(flag))) / price
        if flag_range >= self.FLAG_MAX_RANGE:
            return None

        bullish = pole_change > 0
        height = float(abs(pole[-1] - pole[0]))
        return PatternMatch(
            type="bull_flag" if bullish else "bear_flag",
            confidence=self.FLAG_CONFIDENCE,
            bullish=bullish,
            target=price + height if bullish else price - height,
            resistance=float(np.max(flag)),
            support=float(np.min(flag)),
            breakout_direction="up" if bullish else "down",
            height=height,
        )

    def detect_triangle(
        self, highs: Sequence[float], lows: Sequence[float]
    ) -> Optional[PatternMatch]:
        """Compare regression slopes of the high and low sequences."""
        h, l = s.aligned(highs=highs, lows=lows)
        if len(h) < self.CONTINUATION_WINDOW:
            return None

        h = h[-self.CONTINUATION_WINDOW :]
        l = l[-self.CONTINUATION_WINDOW :]
        mean_price = float(np.mean((h + l) / 2.0))
        if mean_price <= 0:
            return None

        high_slope = s.linear_regression(h)[0] / mean_price
        low_slope = s.linear_regression(l)[0] / mean_price
        highs_flat = abs(high_slope) < self.FLAT_SLOPE
        lows_flat = abs(low_slope) < self.FLAT_SLOPE

        resistance = float(np.max(h))
        support = float(np.min(l))
        height = resistance - support

        if highs_flat and low_slope >= self.FLAT_SLOPE:
            return PatternMatch(
                type="ascending_triangle",
                confidence=self.ASCENDING_CONFIDENCE,
                bullish=True,
                target=resistance + height,
                resistance=resistance,
                support=support,
                breakout_direction="up",
                height=height,
            )
        if lows_flat and high_slope <= -self.FLAT_SLOPE:
            return PatternMatch(
                type="descending_triangle",
                confidence=self.DESCENDING_CONFIDENCE,
                bullish=False,
                target=support - height,
                resistance=resistance,
                support=support,
                breakout_direction="down",
                height=height,
            )
        if high_slope <= -self.FLAT_SLOPE and low_slope >= self.FLAT_SLOPE:
            return PatternMatch(
                type="symmetrical_triangle",
                confidence=self.SYMMETRICAL_CONFIDENCE,
                bullish=None,
                resistance=resistance,
                support=support,
                height=height,
            )
        return None

    def detect_all(
        self,
        closes: Sequence[float],
        highs: Optional[Sequence[float]] = None,
        lows: Optional[Sequence[float]] = None,
    ) -> List[PatternMatch]:
        """Run every detector whose inputs are present."""
        upper = highs if highs is not None else closes
        lower = lows if lows is not None else closes

        candidates = [
            self.detect_head_and_shoulders(upper, lower),
            self.detect_double_top(upper, lower),
            self.detect_double_bottom(lower, upper),
            self.detect_flag(closes),
        ]
        if highs is not None and lows is not None:
            candidates.append(self.detect_triangle(highs, lows))
        return [match for match in candidates if match is not None]

    def _reversal_window(
        self, primary: Sequence[float], secondary: Optional[Sequence[float]]
    ):
        """Trailing window of the pivot series and its neckline companion."""
        if secondary is None:
            p = s.as_array(primary, "values")
            other = p
        else:
            p, other = s.aligned(primary=primary, secondary=secondary)
        return p[-self.REVERSAL_WINDOW :], other[-self.REVERSAL_WINDOW :]


_DEFAULT_DETECTOR = PatternDetector()


def detect_patterns(
    closes: Sequence[float],
    highs: Optional[Sequence[float]] = None,
    lows: Optional[Sequence[float]] = None,
) -> List[PatternMatch]:
    """Detect every supported pattern with the default thresholds."""
    return _DEFAULT_DETECTOR.detect_all(closes, highs, lows)
