"""Unit tests for pivot extraction and price clustering."""

import numpy as np

from trade_scoring.analysis.structural import (
    Pivot,
    cluster_labels,
    find_peaks,
    find_troughs,
    sorted_sweep_labels,
    warmup_jit,
)


def test_warmup_jit_compiles():
    """Warmup should not raise and should leave the kernels callable."""
    warmup_jit()
    assert find_peaks(np.array([0.0, 1.0, 5.0, 1.0, 0.0]))[0].index == 2


class TestLocalExtrema:
    def test_peaks_are_strict_on_both_sides(self):
        values = np.array([0.0, 1.0, 5.0, 1.0, 0.0, 2.0, 7.0, 2.0, 0.0])
        peaks = find_peaks(values)
        assert peaks == [
            Pivot(index=2, price=5.0, pivot_type="PEAK"),
            Pivot(index=6, price=7.0, pivot_type="PEAK"),
        ]

    def test_plateau_is_not_a_peak(self):
        assert find_peaks(np.array([0.0, 1.0, 5.0, 5.0, 1.0, 0.0])) == []

    def test_edges_are_never_pivots(self):
        assert find_peaks(np.array([9.0, 1.0, 0.0, 1.0, 9.0])) == []

    def test_troughs(self):
        values = np.array([5.0, 4.0, 1.0, 4.0, 5.0, 3.0, 2.0])
        troughs = find_troughs(values)
        assert [t.index for t in troughs] == [2]
        assert troughs[0].pivot_type == "VALLEY"

    def test_order_widens_neighbourhood(self):
        values = np.array([0.0, 3.0, 2.0, 4.0, 2.0, 3.0, 0.0])
        assert [p.index for p in find_peaks(values, order=1)] == [1, 3, 5]
        assert [p.index for p in find_peaks(values, order=2)] == [3]


class TestClustering:
    def test_seed_scan_groups_within_tolerance(self):
        pool = np.array([10.0, 10.5, 20.0, 10.2, 20.4])
        assert list(cluster_labels(pool, 0.6)) == [0, 0, 1, 0, 1]

    def test_seed_scan_depends_on_pool_order(self):
        assert list(cluster_labels(np.array([10.0, 10.5, 11.0]), 0.6)) == [0, 0, 1]
        assert list(cluster_labels(np.array([10.5, 10.0, 11.0]), 0.6)) == [0, 0, 0]

    def test_sorted_sweep_is_order_independent(self):
        first = sorted_sweep_labels(np.array([10.0, 10.5, 11.0]), 0.6)
        second = sorted_sweep_labels(np.array([10.5, 10.0, 11.0]), 0.6)
        assert list(first) == [0, 0, 1]
        assert list(second) == [0, 0, 1]

    def test_sorted_sweep_empty_pool(self):
        assert len(sorted_sweep_labels(np.array([]), 1.0)) == 0
