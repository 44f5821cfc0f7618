"""
Market Hours Module - US equity regular-session calendar.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

import pytz

from trade_scoring.domain.schemas import MarketStatus


class MarketHours:
    """
    Regular-session hours for US equities (09:30-16:00 America/New_York,
    Monday to Friday), with an optional set of exchange holidays.
    """

    def __init__(
        self,
        timezone: str = "America/New_York",
        regular_open: time = time(9, 30),
        regular_close: time = time(16, 0),
        holidays: Optional[Iterable[date]] = None,
    ):
        """
        Args:
            timezone: IANA name of the exchange timezone.
            regular_open: Session open, exchange local time.
            regular_close: Session close (exclusive), exchange local time.
            holidays: Dates on which the exchange is closed.
        """
        self.timezone = pytz.timezone(timezone)
        self.regular_open = regular_open
        self.regular_close = regular_close
        # Weekend days (0 = Monday, 6 = Sunday)
        self.weekend_days = (5, 6)
        self.holidays = frozenset(holidays or ())

    def _localize(self, check_time: Optional[datetime]) -> datetime:
        if check_time is None:
            return datetime.now(self.timezone)
        if check_time.tzinfo is None:
            return self.timezone.localize(check_time)
        return check_time.astimezone(self.timezone)

    def is_trading_day(self, day: date) -> bool:
        return day.weekday() not in self.weekend_days and day not in self.holidays

    def is_market_open(self, check_time: Optional[datetime] = None) -> bool:
        """
        Check if the regular session is open.

        Args:
            check_time: Time to check. Naive values are read as exchange local
                time; defaults to now.
        """
        local = self._localize(check_time)
        if not self.is_trading_day(local.date()):
            return False
        return self.regular_open <= local.time() < self.regular_close

    def status(self, check_time: Optional[datetime] = None) -> MarketStatus:
        return MarketStatus.OPEN if self.is_market_open(check_time) else MarketStatus.CLOSED

    def status_at(self, epoch_seconds: float) -> MarketStatus:
        """Status at a Unix timestamp."""
        return self.status(datetime.fromtimestamp(epoch_seconds, tz=pytz.utc))

    def next_open(self, from_time: Optional[datetime] = None) -> datetime:
        """Next regular-session open at or after ``from_time``."""
        local = self._localize(from_time)
        day = local.date()
        if local.time() >= self.regular_open:
            day += timedelta(days=1)
        while not self.is_trading_day(day):
            day += timedelta(days=1)
        return self.timezone.localize(datetime.combine(day, self.regular_open))
