import json
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Tuple

from loguru import logger
from pydantic import ValidationError

from trade_scoring.domain.schemas import CacheEntry, MarketStatus
from trade_scoring.market.hours import MarketHours

DEFAULT_CACHE_KEY = "market_rating_v1"
TTL_OPEN_SECONDS = 300
TTL_CLOSED_SECONDS = 1800


class CacheStore(Protocol):
    """Keyed storage for JSON-serializable cache entries."""

    def read(self, key: str) -> Optional[CacheEntry]: ...

    def write(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local dict store."""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def read(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def write(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class JsonFileStore:
    """One JSON document holding every key; last writer wins."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.path}: {e}")
            return {}

    def read(self, key: str) -> Optional[CacheEntry]:
        raw = self._load().get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed cache entry {key!r}: {e}")
            return None

    def write(self, key: str, entry: CacheEntry) -> None:
        document = self._load()
        document[key] = entry.model_dump(mode="json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(document), encoding="utf-8")

    def delete(self, key: str) -> None:
        document = self._load()
        if document.pop(key, None) is not None:
            self.path.write_text(json.dumps(document), encoding="utf-8")


class MarketRatingCache:
    """Single-slot cache whose TTL depends on whether the market is open."""

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
        hours: Optional[MarketHours] = None,
        key: str = DEFAULT_CACHE_KEY,
        ttl_open_seconds: int = TTL_OPEN_SECONDS,
        ttl_closed_seconds: int = TTL_CLOSED_SECONDS,
    ):
        """
        Initialize the cache.

        Args:
            store: Backing store. Defaults to an in-memory dict.
            clock: Returns the current time in epoch seconds.
            hours: Session calendar used to choose the TTL.
            key: Version key the entry is stored under.
            ttl_open_seconds: Time-to-live while the session is open.
            ttl_closed_seconds: Time-to-live while the session is closed.
        """
        self.store = store if store is not None else InMemoryStore()
        self.clock = clock
        self.hours = hours or MarketHours()
        self.key = key
        self.ttl_open_seconds = ttl_open_seconds
        self.ttl_closed_seconds = ttl_closed_seconds

    def market_status(self) -> MarketStatus:
        return self.hours.status_at(self.clock())

    def current_ttl(self) -> int:
        if self.market_status() == MarketStatus.OPEN:
            return self.ttl_open_seconds
        return self.ttl_closed_seconds

    def get_fresh(self) -> Optional[Tuple[dict, float]]:
        """
        Return (data, age_seconds) if an entry exists and is within the TTL.
        """
        entry = self.store.read(self.key)
        if entry is None:
            return None
        age = max(0.0, self.clock() - entry.timestamp)
        if age < self.current_ttl():
            return entry.data, age
        return None

    def get_any(self) -> Optional[Tuple[dict, float]]:
        """
        Return the latest entry regardless of age, for upstream-failure fallback.
        """
        entry = self.store.read(self.key)
        if entry is None:
            return None
        return entry.data, max(0.0, self.clock() - entry.timestamp)

    def set(self, data: dict) -> None:
        self.store.write(self.key, CacheEntry(data=data, timestamp=self.clock()))

    def invalidate(self) -> None:
        self.store.delete(self.key)
