"""Market Data Exceptions."""


class MarketDataError(Exception):
    """Raised when candle fetching or validation fails."""
