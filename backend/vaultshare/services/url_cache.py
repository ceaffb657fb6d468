from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from vaultshare.core.config import settings

logger = logging.getLogger("vaultshare.cache")


@dataclass
class CachedUrlEntry:
    storage_path: str
    content_class: str
    url: str
    issued_at: float
    ttl_seconds: int

    def fresh_until(self, safety_margin: float) -> float:
        return self.issued_at + self.ttl_seconds - safety_margin


class UrlCache:
    """Signed URLs keyed by ``(storage_path, content_class)``.

    Stale entries are never handed out but stay in memory until ``sweep``
    runs or LRU eviction pushes them out (``max_entries`` of 0 means unbounded).
    """

    def __init__(
        self,
        safety_margin: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.safety_margin = settings.URL_CACHE_SAFETY_MARGIN_SECONDS if safety_margin is None else safety_margin
        self.max_entries = settings.URL_CACHE_MAX_ENTRIES if max_entries is None else max_entries
        self.clock = clock
        self._entries: OrderedDict[tuple[str, str], CachedUrlEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, storage_path: str, content_class: str) -> str | None:
        entry = self.get_entry(storage_path, content_class)
        return entry.url if entry else None

    def get_entry(self, storage_path: str, content_class: str) -> CachedUrlEntry | None:
        key = (storage_path, content_class)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() >= entry.fresh_until(self.safety_margin):
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, storage_path: str, content_class: str, url: str, ttl_seconds: int) -> CachedUrlEntry:
        key = (storage_path, content_class)
        entry = CachedUrlEntry(
            storage_path=storage_path,
            content_class=content_class,
            url=url,
            issued_at=self.clock(),
            ttl_seconds=int(ttl_seconds),
        )
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self.max_entries and len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("url cache full, evicted %s", evicted)
        return entry

    def sweep(self) -> int:
        now = self.clock()
        stale = [key for key, entry in self._entries.items() if now >= entry.fresh_until(self.safety_margin)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


url_cache = UrlCache()
