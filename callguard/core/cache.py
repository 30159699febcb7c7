import threading
from collections import OrderedDict
from typing import Any, Hashable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .clock import Clock, MonotonicClock
from .exceptions import CacheUnavailableError


class CacheConfig(BaseModel):
    """Result cache configuration."""
    max_entries: int = Field(
        default=1000,
        ge=1,
        description="Entries kept before least-recently-used eviction"
    )
    default_ttl: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds an entry stays fresh unless overridden on put"
    )

    model_config = ConfigDict(from_attributes=True, frozen=True)


class CacheEntry(BaseModel):
    """A cached value and its freshness bookkeeping."""
    key: Any
    value: Any
    inserted_at: float
    ttl: float

    model_config = ConfigDict(frozen=True)

    @property
    def expires_at(self) -> float:
        return self.inserted_at + self.ttl

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResultCache:
    """
    Bounded key/value cache with per-entry TTL and LRU eviction.

    Expired entries are dropped lazily when looked up; there is no background
    sweeper. When the cache is full, the least recently used entry makes room
    for the new one.
    """

    def __init__(self, config: Optional[CacheConfig] = None, clock: Optional[Clock] = None):
        self.config = config or CacheConfig()
        self.clock = clock or MonotonicClock()
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self.get_entry(key)
        if entry is None:
            return default
        return entry.value

    def get_entry(self, key: Hashable) -> Optional[CacheEntry]:
        """Return the live entry for key, refreshing its recency, or None."""
        with self._lock:
            try:
                entry = self._entries.get(key)
            except TypeError as e:
                raise CacheUnavailableError(f"unhashable key {key!r}") from e
            if entry is None:
                return None
            if entry.is_expired(self.clock.now()):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry

    def put(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> CacheEntry:
        if ttl is None:
            ttl = self.config.default_ttl
        elif ttl <= 0:
            raise ValueError("ttl must be positive")
        with self._lock:
            entry = CacheEntry(key=key, value=value, inserted_at=self.clock.now(), ttl=ttl)
            try:
                if key in self._entries:
                    self._entries.move_to_end(key)
                elif len(self._entries) >= self.config.max_entries:
                    self._entries.popitem(last=False)
                self._entries[key] = entry
            except TypeError as e:
                raise CacheUnavailableError(f"unhashable key {key!r}") from e
            return entry

    def invalidate(self, key: Hashable) -> bool:
        """Drop key from the cache. Returns True if an entry was removed."""
        with self._lock:
            try:
                return self._entries.pop(key, None) is not None
            except TypeError as e:
                raise CacheUnavailableError(f"unhashable key {key!r}") from e

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            try:
                entry = self._entries.get(key)
            except TypeError:
                return False
            return entry is not None and not entry.is_expired(self.clock.now())
