"""Structural analysis module for pivot extraction and price clustering.

This module implements the compiled inner loops that the pattern detector and
the level finder build on.

Key Algorithms:
- Local extrema: a bar is a peak when it is strictly greater than ``order``
  neighbours on each side (troughs mirrored)
- Seed-scan clustering: single-link grouping of a price pool around seeds
  taken in pool order
"""

from dataclasses import dataclass
from typing import List, Literal

import numpy as np
from numba import njit

# Neighbours checked on each side of a candidate pivot
PIVOT_ORDER = 2


def warmup_jit() -> None:
    """Pre-compile Numba JIT functions to avoid first-call latency.

    Call this once at startup (the CLI does) so the first scoring request does
    not pay for compilation.

    Example:
        >>> from trade_scoring.analysis.structural import warmup_jit
        >>> warmup_jit()
    """
    dummy = np.array([100.0, 103.0, 99.0, 106.0, 101.0, 104.0, 98.0], dtype=np.float64)
    _local_extrema_core(dummy, PIVOT_ORDER, True)
    _local_extrema_core(dummy, PIVOT_ORDER, False)
    _seed_scan_labels(dummy, 1.0)


@dataclass
class Pivot:
    """A local extremum in a price sequence.

    Attributes:
        index: Position in the analysed window
        price: Value at the pivot
        pivot_type: Either "PEAK" or "VALLEY"
    """

    index: int
    price: float
    pivot_type: Literal["PEAK", "VALLEY"]


@njit(cache=True)
def _local_extrema_core(values: np.ndarray, order: int, peaks: bool) -> np.ndarray:
    """Return indices strictly above (or below) ``order`` neighbours per side."""
    n = len(values)
    out = np.empty(n, dtype=np.int64)
    count = 0
    for i in range(order, n - order):
        is_pivot = True
        for j in range(1, order + 1):
            if peaks:
                if not (values[i] > values[i - j] and values[i] > values[i + j]):
                    is_pivot = False
                    break
            else:
                if not (values[i] < values[i - j] and values[i] < values[i + j]):
                    is_pivot = False
                    break
        if is_pivot:
            out[count] = i
            count += 1
    return out[:count]


@njit(cache=True)
def _seed_scan_labels(pool: np.ndarray, tolerance: float) -> np.ndarray:
    """Assign a cluster label to every pool value.

    The first unvisited value seeds a cluster; every unvisited value within
    ``tolerance`` of that seed joins it. Labels are numbered in seed order.
    """
    n = len(pool)
    labels = np.full(n, -1, dtype=np.int64)
    cluster = 0
    for i in range(n):
        if labels[i] != -1:
            continue
        labels[i] = cluster
        for j in range(i + 1, n):
            if labels[j] == -1 and abs(pool[j] - pool[i]) <= tolerance:
                labels[j] = cluster
        cluster += 1
    return labels


def find_peaks(values: np.ndarray, order: int = PIVOT_ORDER) -> List[Pivot]:
    """Local maxima of ``values`` (strict on both sides)."""
    arr = np.ascontiguousarray(values, dtype=np.float64)
    return [
        Pivot(index=int(i), price=float(arr[i]), pivot_type="PEAK")
        for i in _local_extrema_core(arr, order, True)
    ]


def find_troughs(values: np.ndarray, order: int = PIVOT_ORDER) -> List[Pivot]:
    """Local minima of ``values`` (strict on both sides)."""
    arr = np.ascontiguousarray(values, dtype=np.float64)
    return [
        Pivot(index=int(i), price=float(arr[i]), pivot_type="VALLEY")
        for i in _local_extrema_core(arr, order, False)
    ]


def cluster_labels(pool: np.ndarray, tolerance: float) -> np.ndarray:
    """Seed-scan cluster labels for ``pool`` in its given order."""
    arr = np.ascontiguousarray(pool, dtype=np.float64)
    return _seed_scan_labels(arr, float(tolerance))


def sorted_sweep_labels(pool: np.ndarray, tolerance: float) -> np.ndarray:
    """Order-independent clustering: sort, then break wherever a gap exceeds
    ``tolerance`` from the current cluster's first member."""
    arr = np.asarray(pool, dtype=np.float64)
    labels = np.empty(len(arr), dtype=np.int64)
    if len(arr) == 0:
        return labels
    order = np.argsort(arr, kind="stable")
    cluster = 0
    anchor = arr[order[0]]
    for idx in order:
        if arr[idx] - anchor > tolerance:
            cluster += 1
            anchor = arr[idx]
        labels[idx] = cluster
    return labels
