"""Volume profile: traded volume bucketed by closing price."""

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

import numpy as np

from trade_scoring.analysis import series as s

PROFILE_WINDOW = 50
PROFILE_MIN_BARS = 20
PROFILE_BINS = 10
VALUE_AREA_FRACTION = 0.70
HIGH_VOLUME_MULTIPLIER = 1.5
POC_PROXIMITY = 0.02


@dataclass(frozen=True)
class VolumeBin:
    low: float
    high: float
    volume: float

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2.0


@dataclass(frozen=True)
class VolumeProfile:
    """Histogram summary for the trailing window.

    Attributes:
        poc_price: Midpoint of the bin with the most volume (point of control)
        value_area_low / value_area_high: Price span of the bins holding 70%
            of the volume
        high_volume_nodes: Bins with more than 1.5x the mean bin volume
        position: Where the current price sits relative to the value area
        at_poc: Current price within 2% of the point of control
    """

    bins: List[VolumeBin]
    poc_price: float
    poc_volume: float
    value_area_low: float
    value_area_high: float
    high_volume_nodes: List[VolumeBin] = field(default_factory=list)
    position: Literal["above_value_area", "below_value_area", "in_value_area"] = (
        "in_value_area"
    )
    at_poc: bool = False


def volume_profile(
    closes: Sequence[float],
    volumes: Sequence[float],
    current_price: Optional[float] = None,
    window: int = PROFILE_WINDOW,
    bins: int = PROFILE_BINS,
) -> Optional[VolumeProfile]:
    """Bucket each bar's volume into the equal-width bin holding its close.

    Returns None when fewer than 20 bars exist or the closes have no range.
    """
    c, v = s.aligned(closes=closes, volumes=volumes)
    if len(c) < PROFILE_MIN_BARS:
        return None

    c = c[-window:]
    v = v[-window:]
    low, high = float(np.min(c)), float(np.max(c))
    if high == low:
        return None

    width = (high - low) / bins
    idx = np.minimum(((c - low) / width).astype(np.int64), bins - 1)
    totals = np.bincount(idx, weights=v, minlength=bins)
    profile = [
        VolumeBin(low=low + i * width, high=low + (i + 1) * width, volume=float(totals[i]))
        for i in range(bins)
    ]

    poc_index = int(np.argmax(totals))
    poc = profile[poc_index]

    total_volume = float(np.sum(totals))
    ranked = np.argsort(-totals, kind="stable")
    area: List[int] = []
    covered = 0.0
    for i in ranked:
        area.append(int(i))
        covered += float(totals[i])
        if total_volume == 0 or covered >= total_volume * VALUE_AREA_FRACTION:
            break
    value_area_low = min(profile[i].low for i in area)
    value_area_high = max(profile[i].high for i in area)

    mean_volume = total_volume / bins
    nodes = [b for b in profile if b.volume > mean_volume * HIGH_VOLUME_MULTIPLIER]

    price = float(c[-1]) if current_price is None else float(current_price)
    if price > value_area_high:
        position = "above_value_area"
    elif price < value_area_low:
        position = "below_value_area"
    else:
        position = "in_value_area"

    return VolumeProfile(
        bins=profile,
        poc_price=poc.midpoint,
        poc_volume=poc.volume,
        value_area_low=value_area_low,
        value_area_high=value_area_high,
        high_volume_nodes=nodes,
        position=position,
        at_poc=price > 0 and abs(price - poc.midpoint) / price <= POC_PROXIMITY,
    )
