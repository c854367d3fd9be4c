"""Bounded caches: query-result LRU cache and the recent-action list."""
from __future__ import annotations

from collections import OrderedDict, deque
from typing import Deque, Hashable, Iterator, Tuple

from .config import DEFAULT_RECENT_ACTIONS_SIZE, DEFAULT_SEARCH_CACHE_SIZE, SearchConfig
from .models import CachedSearch, RecentEntry

SYSTEM_VERSION = "0.3.0"

CacheKey = Tuple[str, bool, bool, int, str]


def normalize_query_key(query: str) -> str:
    return (query or "").strip()


def cache_key_for(query: str, config: SearchConfig, mode: str = "all") -> CacheKey:
    """Key on the trimmed query plus every config value that affects ranking."""
    return (
        normalize_query_key(query),
        config.enable_app_results,
        config.enable_bookmark_results,
        config.max_results,
        mode,
    )


class SearchCache:
    """LRU cache of ranked result sets. Not thread-safe; AppState owns the lock."""

    def __init__(self, capacity: int = DEFAULT_SEARCH_CACHE_SIZE) -> None:
        self.capacity = max(1, capacity)
        self._data: OrderedDict[Hashable, CachedSearch] = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def keys(self):
        return list(self._data.keys())

    def _evict_if_needed(self) -> None:
        while len(self._data) > self.capacity:
            self._data.popitem(last=False)

    def get(self, key: Hashable) -> CachedSearch | None:
        value = self._data.get(key)
        if value is None:
            return None
        self._data.move_to_end(key)
        return value

    def insert(self, key: Hashable, value: CachedSearch) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = value
        self._evict_if_needed()

    def clear(self) -> None:
        self._data.clear()


class RecentActions:
    """Most-recently-used list of executed results, deduplicated by result id."""

    def __init__(self, capacity: int = DEFAULT_RECENT_ACTIONS_SIZE) -> None:
        self.capacity = max(1, capacity)
        self._items: Deque[RecentEntry] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def insert(self, entry: RecentEntry) -> None:
        self.remove(entry.result.id)
        self._items.appendleft(entry)
        while len(self._items) > self.capacity:
            self._items.pop()

    def remove(self, result_id: str) -> bool:
        before = len(self._items)
        self._items = deque(item for item in self._items if item.result.id != result_id)
        return len(self._items) != before

    def items(self) -> Iterator[RecentEntry]:
        return iter(list(self._items))

    def clear(self) -> None:
        self._items.clear()
