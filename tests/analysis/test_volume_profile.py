"""Unit tests for the volume profile."""

import pytest

from trade_scoring.analysis.volume_profile import volume_profile


@pytest.fixture
def concentrated():
    """Closes 100..119 (bin width 1.9) with heavy volume at 110 and 111."""
    closes = [100.0 + i for i in range(20)]
    volumes = [100.0 if c in (110.0, 111.0) else 1.0 for c in closes]
    return closes, volumes


def test_point_of_control(concentrated):
    profile = volume_profile(*concentrated)

    assert len(profile.bins) == 10
    assert profile.poc_volume == pytest.approx(200.0)
    assert profile.poc_price == pytest.approx(110.45)
    assert sum(b.volume for b in profile.bins) == pytest.approx(218.0)


def test_value_area_and_nodes(concentrated):
    profile = volume_profile(*concentrated)

    assert profile.value_area_low == pytest.approx(109.5)
    assert profile.value_area_high == pytest.approx(111.4)
    assert len(profile.high_volume_nodes) == 1
    assert profile.high_volume_nodes[0].midpoint == pytest.approx(110.45)


def test_position_defaults_to_last_close(concentrated):
    profile = volume_profile(*concentrated)
    assert profile.position == "above_value_area"
    assert profile.at_poc is False


def test_explicit_price_at_poc(concentrated):
    profile = volume_profile(*concentrated, current_price=110.0)
    assert profile.position == "in_value_area"
    assert profile.at_poc is True

    below = volume_profile(*concentrated, current_price=101.0)
    assert below.position == "below_value_area"


def test_highest_close_lands_in_last_bin(concentrated):
    closes, _ = concentrated
    profile = volume_profile(closes, [1.0] * 20)
    assert profile.bins[-1].volume == pytest.approx(2.0)


def test_degenerate_inputs():
    assert volume_profile([100.0] * 19, [1.0] * 19) is None
    assert volume_profile([100.0] * 30, [1.0] * 30) is None
