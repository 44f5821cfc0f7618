"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pandas as pd
import pytest
from typer.testing import CliRunner

from trade_scoring.cli import app
from trade_scoring.domain.schemas import (
    ConfidenceLabel,
    MarketRating,
    MarketRecommendation,
    MarketSentiment,
    MarketStatus,
)

runner = CliRunner()


def _write_csv(path, n):
    closes = [100.0 + i for i in range(n)]
    df = pd.DataFrame(
        {
            "Open": closes,
            "High": [c + 1 for c in closes],
            "Low": [c - 1 for c in closes],
            "Close": closes,
            "Volume": [1_000_000] * n,
        },
        index=pd.date_range("2024-01-01", periods=n, name="date"),
    )
    df.to_csv(path)
    return path


@pytest.fixture
def bars_csv(tmp_path):
    return _write_csv(tmp_path / "bars.csv", 40)


def test_score_from_csv_json(bars_csv):
    result = runner.invoke(
        app, ["--log-level", "ERROR", "score", "TEST", "--csv", str(bars_csv), "--json"]
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert 0 <= payload["score"] <= 100
    assert payload["technical_indicators"]["rsi"] == 100


def test_score_table_output(bars_csv):
    result = runner.invoke(app, ["--log-level", "ERROR", "score", "TEST", "--csv", str(bars_csv)])

    assert result.exit_code == 0, result.output
    assert "TEST" in result.stdout
    assert "Signals" in result.stdout


def test_missing_csv_exits_with_error(tmp_path):
    result = runner.invoke(
        app, ["--log-level", "ERROR", "score", "TEST", "--csv", str(tmp_path / "nope.csv")]
    )

    assert result.exit_code == 1
    assert "Could not load data" in result.stdout


def test_forecast_from_csv_json(bars_csv):
    result = runner.invoke(
        app,
        ["--log-level", "ERROR", "forecast", "TEST", "--csv", str(bars_csv), "--json"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["current_price"] == 139.0
    assert payload["horizon_days"] == 7
    assert payload["outlook"] == "strong_upside"


def test_forecast_needs_twenty_bars(tmp_path):
    short_csv = _write_csv(tmp_path / "short.csv", 10)

    result = runner.invoke(
        app, ["--log-level", "ERROR", "forecast", "TEST", "--csv", str(short_csv)]
    )

    assert result.exit_code == 1
    assert "At least 20 bars" in result.stdout


def test_market_rating_json():
    rating = MarketRating(
        rating=55,
        confidence=60,
        confidence_label=ConfidenceLabel.HIGH,
        sentiment=MarketSentiment.SLIGHTLY_BULLISH,
        recommendation=MarketRecommendation.LEAN_LONG,
        advice="Mild positive bias.",
        market_status=MarketStatus.CLOSED,
        cached=True,
        cache_age_seconds=42.0,
    )

    with patch("trade_scoring.cli.get_market_rating", return_value=rating) as mock_get:
        result = runner.invoke(app, ["--log-level", "ERROR", "market-rating", "--json"])

    assert result.exit_code == 0, result.output
    mock_get.assert_called_once_with(api_key=None, force_refresh=False)
    payload = json.loads(result.stdout)
    assert payload["rating"] == 55
    assert payload["cached"] is True


def test_market_rating_error_exits():
    with patch(
        "trade_scoring.cli.get_market_rating",
        side_effect=ValueError("Finnhub API key is required"),
    ):
        result = runner.invoke(app, ["--log-level", "ERROR", "market-rating"])

    assert result.exit_code == 1
