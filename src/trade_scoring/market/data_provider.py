"""
Market Data Provider.

This module isolates the one network boundary of the engine: fetching daily
candles for the index basket that feeds the market rating. The analysis core
depends only on the ``CandleProvider`` protocol, so it stays testable offline.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import pandas as pd
import requests
from loguru import logger
from pydantic import ValidationError

from trade_scoring.domain.schemas import PriceHistory
from trade_scoring.market.exceptions import MarketDataError
from trade_scoring.utils.retries import retry_market_data

DEFAULT_BASE_URL = "https://finnhub.io/api/v1"


class CandleProvider(Protocol):
    """Anything that can return OHLCV history for a symbol."""

    def fetch_candles(
        self, symbol: str, resolution: str, from_ts: int, to_ts: int
    ) -> PriceHistory:
        """
        Raises:
            MarketDataError: On network, rate-limit or payload failures.
        """
        ...


class FinnhubCandleProvider:
    """
    Candle provider backed by the Finnhub ``/stock/candle`` endpoint.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize with credentials.

        Args:
            api_key: Finnhub API token
            base_url: API root, without trailing slash
            timeout: Per-request timeout in seconds
            session: Optional shared HTTP session
        """
        if not api_key:
            raise ValueError("A Finnhub API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @retry_market_data
    def _get(self, path: str, params: dict) -> dict:
        response = self.session.get(
            f"{self.base_url}{path}",
            params={**params, "token": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def fetch_candles(
        self, symbol: str, resolution: str, from_ts: int, to_ts: int
    ) -> PriceHistory:
        """
        Fetch candles for a symbol.

        Args:
            symbol: Ticker symbol (e.g. "SPY")
            resolution: Finnhub resolution ("D", "60", ...)
            from_ts: Range start, Unix seconds
            to_ts: Range end, Unix seconds

        Returns:
            PriceHistory: Aligned OHLCV arrays, oldest first

        Raises:
            MarketDataError: If the request fails or returns no data
        """
        try:
            payload = self._get(
                "/stock/candle",
                {"symbol": symbol, "resolution": resolution, "from": from_ts, "to": to_ts},
            )
        except (requests.RequestException, ValueError) as e:
            raise MarketDataError(f"Candle request for {symbol} failed: {e}") from e

        if payload.get("s") != "ok":
            raise MarketDataError(
                f"No candle data for {symbol} (status={payload.get('s')!r})"
            )

        try:
            return candles_to_history(payload)
        except (KeyError, ValueError, ValidationError) as e:
            raise MarketDataError(f"Malformed candle payload for {symbol}: {e}") from e

    def fetch_daily(self, symbol: str, lookback_days: int = 120) -> PriceHistory:
        """Convenience wrapper: daily candles for the trailing window."""
        end_dt = datetime.now(timezone.utc)
        start_dt = end_dt - timedelta(days=lookback_days)
        logger.debug(f"Fetching {lookback_days}d of daily candles for {symbol}")
        return self.fetch_candles(
            symbol, "D", int(start_dt.timestamp()), int(end_dt.timestamp())
        )


def candles_to_history(payload: dict) -> PriceHistory:
    """
    Convert a Finnhub candle payload (``o/h/l/c/v/t`` arrays) to a history.

    Rows are sorted by timestamp and duplicate timestamps are dropped, keeping
    the last occurrence.
    """
    df = pd.DataFrame(
        {
            "open": payload["o"],
            "high": payload["h"],
            "low": payload["l"],
            "close": payload["c"],
            "volume": payload["v"],
        },
        index=pd.to_datetime(payload["t"], unit="s", utc=True),
    )
    df = df[~df.index.duplicated(keep="last")].sort_index()
    if df.empty:
        raise ValueError("empty candle arrays")
    return PriceHistory.from_frame(df)
