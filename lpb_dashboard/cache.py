"""
Local dataset cache: the last good record set per source identity.

One DatasetCache is created per session and passed to DatasetService;
tests build a fresh one each. Entries are immutable. A refresh stores a
new entry that fully replaces the previous one for the same key.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from .config import CACHE_TTL_SECONDS
from .records import MeterRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedEntry:
    records: tuple[MeterRecord, ...]
    timestamp: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.timestamp < ttl


class DatasetCache:
    """In-memory cache keyed by source identity (endpoint URL + table)."""

    def __init__(
        self,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, CachedEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CachedEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(
        self,
        key: str,
        records: Iterable[MeterRecord],
        timestamp: float | None = None,
    ) -> CachedEntry:
        entry = CachedEntry(
            records=tuple(records),
            timestamp=self.clock() if timestamp is None else timestamp,
        )
        with self._lock:
            self._entries[key] = entry
        logger.info("Cached %d records for %s", len(entry.records), key)
        return entry

    def is_fresh(self, entry: CachedEntry) -> bool:
        return entry.is_fresh(self.clock(), self.ttl)

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %d cache entries", count)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
