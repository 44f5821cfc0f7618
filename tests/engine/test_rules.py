"""Tests for the scoring rule table."""

import pytest

from trade_scoring.analysis.regime import Regime
from trade_scoring.domain.schemas import Direction
from trade_scoring.engine.rules import DEFAULT_RULES, Rule, RuleTable


class TestRuleTable:
    def test_default_table_is_complete(self):
        table = RuleTable()
        assert len(table) == len(DEFAULT_RULES)
        for regime in Regime:
            assert f"regime_{regime.value}" in table

    @pytest.mark.parametrize(
        "pattern",
        [
            "head_and_shoulders",
            "double_top",
            "double_bottom",
            "bull_flag",
            "bear_flag",
            "ascending_triangle",
            "descending_triangle",
            "symmetrical_triangle",
        ],
    )
    def test_every_pattern_has_a_rule(self, pattern):
        assert f"pattern_{pattern}" in RuleTable()

    def test_bearish_rules_subtract(self):
        """A bearish rule never adds points, a bullish one never subtracts."""
        for rule in DEFAULT_RULES:
            if rule.direction == Direction.BEARISH:
                assert rule.delta <= 0, rule.key
            elif rule.direction == Direction.BULLISH:
                assert rule.delta >= 0, rule.key
            assert rule.confidence >= 0

    def test_duplicate_key_rejected(self):
        rule = Rule("x", "test", 1, 1, "x", Direction.NEUTRAL)
        with pytest.raises(ValueError, match="Duplicate rule key: x"):
            RuleTable([rule, rule])

    def test_with_overrides_returns_copy(self):
        base = RuleTable()
        tuned = base.with_overrides({"rsi_oversold": {"delta": 25, "confidence": 30}})

        assert tuned["rsi_oversold"].delta == 25
        assert tuned["rsi_oversold"].confidence == 30
        assert base["rsi_oversold"].delta == 15
        assert len(tuned) == len(base)

    def test_with_overrides_unknown_key(self):
        with pytest.raises(KeyError, match="no_such_rule"):
            RuleTable().with_overrides({"no_such_rule": {"delta": 1}})

    def test_get_missing(self):
        assert RuleTable().get("missing") is None


def test_render_formats_template():
    signal = RuleTable()["rsi_oversold"].render(rsi=24.567)
    assert signal.text == "RSI oversold at 24.6"
    assert signal.direction == Direction.BULLISH
    assert signal.source == "rsi"


def test_render_ignores_extra_params():
    signal = RuleTable()["pattern_double_top"].render(resistance=110.0, confidence=80.0)
    assert signal.text == "Double top near 110.00"


@pytest.mark.parametrize(
    "key, params, text",
    [
        ("pattern_double_top", {"resistance": None}, "Double top forming"),
        ("pattern_double_bottom", {"support": None}, "Double bottom forming"),
        ("pattern_bull_flag", {"target": None}, "Bull flag forming"),
        ("pattern_bear_flag", {}, "Bear flag forming"),
        ("pattern_ascending_triangle", {"resistance": None}, "Ascending triangle forming"),
        ("pattern_descending_triangle", {"support": None}, "Descending triangle forming"),
    ],
)
def test_render_falls_back_when_price_missing(key, params, text):
    assert RuleTable()[key].render(**params).text == text


def test_render_without_fallback_needs_params():
    with pytest.raises(KeyError):
        RuleTable()["rsi_oversold"].render()


def test_template_fields():
    assert RuleTable()["near_support"].fields == {"price", "touches"}
    assert RuleTable()["ichimoku_bullish"].fields == frozenset()


def test_parabolic_sar_rules():
    table = RuleTable()
    assert table["sar_bullish"].render(sar=48.0).text == "Parabolic SAR trailing below at 48.00"
    assert table["sar_bearish"].direction == Direction.BEARISH
