"""Tests for the Finnhub candle provider."""

from unittest.mock import Mock

import pytest
import requests

from trade_scoring.market.data_provider import FinnhubCandleProvider, candles_to_history
from trade_scoring.market.exceptions import MarketDataError

PAYLOAD = {
    "s": "ok",
    "t": [1704412800, 1704240000, 1704326400, 1704326400],
    "o": [12.0, 10.0, 11.0, 11.5],
    "h": [12.5, 10.5, 11.5, 12.0],
    "l": [11.5, 9.5, 10.5, 11.0],
    "c": [12.2, 10.2, 11.2, 11.7],
    "v": [300, 100, 200, 250],
}


def _response(payload=None, error=None):
    response = Mock()
    response.json.return_value = payload if payload is not None else PAYLOAD
    if error is not None:
        response.raise_for_status.side_effect = error
    return response


def _http_error(status):
    return requests.HTTPError(f"{status} error", response=Mock(status_code=status))


@pytest.fixture
def session():
    """Mock HTTP session."""
    mock = Mock(spec=requests.Session)
    mock.get.return_value = _response()
    return mock


@pytest.fixture
def provider(session):
    return FinnhubCandleProvider(
        api_key="test_key", base_url="https://finnhub.test/api/v1/", session=session
    )


def test_init_requires_key():
    """An empty API key is rejected up front."""
    with pytest.raises(ValueError, match="API key is required"):
        FinnhubCandleProvider(api_key="")


def test_fetch_candles_success(provider, session):
    """Request carries the token and the payload becomes a sorted history."""
    history = provider.fetch_candles("SPY", "D", 1704240000, 1704412800)

    session.get.assert_called_once()
    url = session.get.call_args.args[0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://finnhub.test/api/v1/stock/candle"
    assert params["symbol"] == "SPY"
    assert params["resolution"] == "D"
    assert params["token"] == "test_key"

    assert history.closes == [10.2, 11.7, 12.2]
    assert history.timestamps == sorted(history.timestamps)


def test_duplicate_timestamp_keeps_last(provider):
    """The later row for a repeated timestamp wins."""
    history = provider.fetch_candles("SPY", "D", 0, 1)
    assert history.opens == [10.0, 11.5, 12.0]
    assert history.volumes == [100.0, 250.0, 300.0]


def test_no_data_status(provider, session):
    session.get.return_value = _response({"s": "no_data"})
    with pytest.raises(MarketDataError, match="No candle data for SPY"):
        provider.fetch_candles("SPY", "D", 0, 1)


def test_malformed_payload(provider, session):
    payload = {k: v for k, v in PAYLOAD.items() if k != "c"}
    session.get.return_value = _response(payload)
    with pytest.raises(MarketDataError, match="Malformed candle payload"):
        provider.fetch_candles("SPY", "D", 0, 1)


def test_rate_limit_is_retried(provider, session):
    """A 429 is transient: the call is retried and then succeeds."""
    session.get.side_effect = [_response(error=_http_error(429)), _response()]

    history = provider.fetch_candles("SPY", "D", 0, 1)

    assert session.get.call_count == 2
    assert len(history) == 3


def test_client_error_is_not_retried(provider, session):
    session.get.return_value = _response(error=_http_error(403))

    with pytest.raises(MarketDataError, match="Candle request for SPY failed"):
        provider.fetch_candles("SPY", "D", 0, 1)

    assert session.get.call_count == 1


def test_persistent_connection_error(provider, session):
    """Connection errors exhaust the test-mode retry budget of 3 attempts."""
    session.get.side_effect = requests.ConnectionError("refused")

    with pytest.raises(MarketDataError):
        provider.fetch_candles("SPY", "D", 0, 1)

    assert session.get.call_count == 3


def test_fetch_daily_window(provider):
    provider.fetch_candles = Mock(return_value="history")

    assert provider.fetch_daily("QQQ", lookback_days=30) == "history"

    symbol, resolution, from_ts, to_ts = provider.fetch_candles.call_args.args
    assert (symbol, resolution) == ("QQQ", "D")
    assert to_ts - from_ts == pytest.approx(30 * 86400, abs=1)


def test_candles_to_history_rejects_empty():
    empty = {"s": "ok", "t": [], "o": [], "h": [], "l": [], "c": [], "v": []}
    with pytest.raises(ValueError, match="empty candle arrays"):
        candles_to_history(empty)
