"""In-memory TTL cache of built calendar events."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime

from . import config
from .models import CacheEntry, Filters


def make_cache_key(
    start: datetime,
    end: datetime,
    filters: Filters,
    page: int,
    limit: int,
) -> str:
    """Key covering the date range, every filter dimension and the page."""
    return "|".join(
        (
            start.isoformat(),
            end.isoformat(),
            f"status={filters.status}",
            f"role={filters.role}",
            f"type={filters.event_type}",
            f"job={filters.job_id}",
            f"page={page}",
            f"limit={limit}",
        )
    )


class EventCache:
    """Entries keyed by :func:`make_cache_key`.

    Freshness is the caller's decision (:meth:`is_fresh`); stale entries stay
    available for emergency fallback.  Once ``max_entries`` is reached the
    oldest stored entry is dropped; ``max_entries=None`` keeps everything for
    the lifetime of the cache.
    """

    def __init__(
        self,
        *,
        ttl: float = config.CACHE_TTL_SECONDS,
        max_entries: int | None = config.CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive or None")
        self.ttl = ttl
        self.max_entries = max_entries
        self.clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        # A newer entry supersedes the old one and moves to the back.
        self._entries.pop(key, None)
        self._entries[key] = entry
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def is_fresh(self, entry: CacheEntry, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        return now - entry.timestamp < self.ttl

    def latest(self, prefer_key: str | None = None) -> CacheEntry | None:
        """Entry for *prefer_key* if present, else the most recently stored
        entry of any key, regardless of age."""
        if prefer_key is not None and prefer_key in self._entries:
            return self._entries[prefer_key]
        if not self._entries:
            return None
        return max(self._entries.values(), key=lambda e: e.timestamp)

    def clear(self) -> None:
        self._entries.clear()
