"""Unusual-activity detection for the current session."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from trade_scoring.analysis import series as s

ANOMALY_MIN_BARS = 20
EXTREME_VOLUME_RATIO = 3.0
HIGH_VOLUME_RATIO = 2.0
MOVE_MULTIPLIER = 2.0
LARGE_GAP_PERCENT = 3.0
ANOMALOUS_SCORE = 40


@dataclass(frozen=True)
class Anomaly:
    kind: str
    value: float
    baseline: Optional[float] = None


@dataclass(frozen=True)
class AnomalyReport:
    score: int
    anomalies: List[Anomaly] = field(default_factory=list)

    @property
    def is_anomalous(self) -> bool:
        return self.score > ANOMALOUS_SCORE


def detect_anomalies(
    closes: Sequence[float],
    volumes: Sequence[float],
    current_volume: float,
    change_percent: float,
    session_open: float,
    previous_close: float,
) -> Optional[AnomalyReport]:
    """Score 0-100 for how unusual the current session looks.

    Volume is compared with the full-history average, the absolute move with
    the mean absolute daily move of the last 20 closes, and the opening gap
    with a fixed 3% threshold.
    """
    c, v = s.aligned(closes=closes, volumes=volumes)
    if len(v) < ANOMALY_MIN_BARS:
        return None

    score = 0
    found: List[Anomaly] = []

    avg_volume = float(np.mean(v))
    if avg_volume > 0:
        ratio = current_volume / avg_volume
        if ratio > EXTREME_VOLUME_RATIO:
            score += 30
            found.append(Anomaly("extreme_volume", ratio, avg_volume))
        elif ratio > HIGH_VOLUME_RATIO:
            score += 20
            found.append(Anomaly("high_volume", ratio, avg_volume))

    avg_move = float(np.mean(np.abs(s.pct_returns(c[-ANOMALY_MIN_BARS:])))) * 100.0
    move = abs(change_percent)
    if move > avg_move * MOVE_MULTIPLIER:
        score += 25
        found.append(Anomaly("unusual_move", move, avg_move))

    if previous_close > 0:
        gap = abs(session_open - previous_close) / previous_close * 100.0
        if gap > LARGE_GAP_PERCENT:
            score += 20
            found.append(Anomaly("large_gap", gap))

    return AnomalyReport(score=min(100, score), anomalies=found)
