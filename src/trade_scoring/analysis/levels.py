"""Support/resistance clustering and Fibonacci levels.

Support/resistance levels come from clustering a pool of recent highs and
lows; a cluster only counts as a level once it has been touched at least
three times. Fibonacci retracements (and the 127.2%/161.8% extensions) are
measured down from the window's swing high.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence

import numpy as np

from trade_scoring.analysis import series as s
from trade_scoring.analysis.structural import cluster_labels, sorted_sweep_labels

LEVEL_WINDOW = 50
LEVEL_TOLERANCE_FRACTION = 0.02
MIN_TOUCHES = 3
MAX_LEVELS = 5
STRENGTH_FULL_TOUCHES = 10

FIB_WINDOW = 50
FIB_MIN_BARS = 20
FIB_RETRACEMENTS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
FIB_EXTENSIONS = (1.272, 1.618)
FIB_KEY_RATIOS = (0.382, 0.5, 0.618)
FIB_KEY_TOLERANCE = 0.01


@dataclass(frozen=True)
class Level:
    price: float
    touches: int
    type: Literal["support", "resistance"]
    strength: float


@dataclass(frozen=True)
class LevelSummary:
    """Levels sorted by proximity to the current price.

    Attributes:
        levels: Up to five levels, nearest first
        nearest_support: Closest level below the current price
        nearest_resistance: Closest level at or above the current price
        tolerance: Clustering tolerance in price units
    """

    current_price: float
    levels: List[Level] = field(default_factory=list)
    nearest_support: Optional[Level] = None
    nearest_resistance: Optional[Level] = None
    tolerance: float = 0.0

    def distance_to(self, level: Level) -> float:
        """Fractional distance from the current price to ``level``."""
        if self.current_price == 0:
            return float("inf")
        return abs(self.current_price - level.price) / self.current_price


@dataclass(frozen=True)
class FibonacciLevels:
    swing_high: float
    swing_low: float
    retracements: Dict[str, float]
    extensions: Dict[str, float]
    nearest_level: str
    nearest_price: float
    at_key_level: bool
    key_level: Optional[str] = None


def find_levels(
    highs: Sequence[float],
    lows: Sequence[float],
    current_price: float,
    window: int = LEVEL_WINDOW,
    method: Literal["scan", "sorted"] = "scan",
) -> LevelSummary:
    """Cluster recent highs and lows into support/resistance levels.

    The pool is the trailing ``window`` highs followed by the trailing
    ``window`` lows. With ``method="scan"`` the first unvisited point seeds
    each cluster, so membership depends on pool order; ``method="sorted"``
    gives an order-independent grouping.
    """
    h, l = s.aligned(highs=highs, lows=lows)
    pool = np.concatenate((h[-window:], l[-window:]))
    if len(pool) == 0:
        return LevelSummary(current_price=current_price)

    total_range = float(np.max(pool) - np.min(pool))
    tolerance = total_range * LEVEL_TOLERANCE_FRACTION
    if total_range == 0:
        return LevelSummary(current_price=current_price, tolerance=0.0)

    if method == "sorted":
        labels = sorted_sweep_labels(pool, tolerance)
    else:
        labels = cluster_labels(pool, tolerance)

    candidates: List[Level] = []
    for label in np.unique(labels):
        members = pool[labels == label]
        if len(members) < MIN_TOUCHES:
            continue
        price = float(np.mean(members))
        candidates.append(
            Level(
                price=price,
                touches=int(len(members)),
                type="support" if price < current_price else "resistance",
                strength=min(1.0, len(members) / STRENGTH_FULL_TOUCHES),
            )
        )

    candidates.sort(key=lambda lvl: abs(lvl.price - current_price))
    supports = [lvl for lvl in candidates if lvl.type == "support"]
    resistances = [lvl for lvl in candidates if lvl.type == "resistance"]

    return LevelSummary(
        current_price=current_price,
        levels=candidates[:MAX_LEVELS],
        nearest_support=supports[0] if supports else None,
        nearest_resistance=resistances[0] if resistances else None,
        tolerance=tolerance,
    )


def _ratio_label(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def fibonacci_levels(
    highs: Sequence[float],
    lows: Sequence[float],
    current_price: float,
    window: int = FIB_WINDOW,
) -> Optional[FibonacciLevels]:
    """Retracement and extension levels over the trailing ``window`` bars."""
    h, l = s.aligned(highs=highs, lows=lows)
    if len(h) < FIB_MIN_BARS:
        return None

    swing_high = float(np.max(h[-window:]))
    swing_low = float(np.min(l[-window:]))
    span = swing_high - swing_low
    if span <= 0:
        return None

    retracements = {_ratio_label(r): swing_high - span * r for r in FIB_RETRACEMENTS}
    extensions = {_ratio_label(r): swing_high - span * r for r in FIB_EXTENSIONS}

    nearest_label, nearest_price = min(
        retracements.items(), key=lambda item: abs(item[1] - current_price)
    )

    key_level = None
    for ratio in FIB_KEY_RATIOS:
        label = _ratio_label(ratio)
        if abs(retracements[label] - current_price) / current_price <= FIB_KEY_TOLERANCE:
            key_level = label
            break

    return FibonacciLevels(
        swing_high=swing_high,
        swing_low=swing_low,
        retracements=retracements,
        extensions=extensions,
        nearest_level=nearest_label,
        nearest_price=nearest_price,
        at_key_level=key_level is not None,
        key_level=key_level,
    )
