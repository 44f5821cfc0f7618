"""Shared builders for price series and time in tests."""

from datetime import datetime, timedelta, timezone

from trade_scoring.domain.schemas import PriceHistory


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# Wednesday 2024-01-10 11:00 New York (16:00 UTC): regular session open
SESSION_OPEN_TS = datetime(2024, 1, 10, 16, 0, tzinfo=timezone.utc).timestamp()
# Saturday 2024-01-13 12:00 UTC: closed
WEEKEND_TS = datetime(2024, 1, 13, 12, 0, tzinfo=timezone.utc).timestamp()


def make_history(
    closes,
    spread: float = 1.0,
    volume: float = 1_000_000.0,
    start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
) -> PriceHistory:
    """Daily history with highs/lows ``spread`` around each close."""
    closes = [float(c) for c in closes]
    return PriceHistory(
        closes=closes,
        opens=list(closes),
        highs=[c + spread for c in closes],
        lows=[c - spread for c in closes],
        volumes=[volume] * len(closes),
        timestamps=[start + timedelta(days=i) for i in range(len(closes))],
    )
