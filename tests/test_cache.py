"""Tests for the result LRU cache and the recent-action list."""

from __future__ import annotations

from dataclasses import replace

from launcher.cache import RecentActions, SearchCache, cache_key_for
from launcher.config import SearchConfig
from launcher.models import CachedSearch, OpenUrl, RecentEntry, SearchResult


def cached(tag: str) -> CachedSearch:
    return CachedSearch(results=[], pending_actions={"tag": OpenUrl(tag)})


def recent(result_id: str) -> RecentEntry:
    result = SearchResult(id=result_id, title=result_id, subtitle="", score=0, action_id="url")
    return RecentEntry(result=result, action=OpenUrl(result_id))


def test_search_cache_evicts_least_recently_used() -> None:
    cache = SearchCache(2)
    cache.insert("a", cached("a"))
    cache.insert("b", cached("b"))
    assert cache.get("a") is not None
    cache.insert("c", cached("c"))
    assert "b" not in cache
    assert cache.keys() == ["a", "c"]


def test_search_cache_get_then_two_inserts() -> None:
    """A just-read key outlives older untouched keys."""
    cache = SearchCache(3)
    for key in ("a", "b", "c"):
        cache.insert(key, cached(key))
    assert cache.get("a") is not None
    cache.insert("d", cached("d"))
    cache.insert("e", cached("e"))
    assert "a" in cache
    assert "b" not in cache
    assert "c" not in cache
    assert cache.keys() == ["a", "d", "e"]


def test_search_cache_insert_refreshes_existing_key() -> None:
    cache = SearchCache(2)
    cache.insert("a", cached("old"))
    cache.insert("b", cached("b"))
    cache.insert("a", cached("new"))
    cache.insert("c", cached("c"))
    assert cache.keys() == ["a", "c"]
    assert cache.get("a") == cached("new")


def test_search_cache_miss_and_clear() -> None:
    cache = SearchCache()
    assert cache.get("missing") is None
    cache.insert("a", cached("a"))
    cache.clear()
    assert len(cache) == 0


def test_cache_key_covers_ranking_inputs() -> None:
    config = SearchConfig()
    assert cache_key_for("  code ", config) == cache_key_for("code", config)
    assert cache_key_for("code", config) != cache_key_for("code", replace(config, max_results=20))
    assert cache_key_for("code", config) != cache_key_for("code", replace(config, enable_app_results=False))
    assert cache_key_for("code", config, "app") != cache_key_for("code", config, "all")


def test_recent_actions_are_most_recent_first_and_unique() -> None:
    actions = RecentActions(12)
    actions.insert(recent("A"))
    actions.insert(recent("B"))
    actions.insert(recent("A"))
    assert [item.result.id for item in actions.items()] == ["A", "B"]


def test_recent_actions_evict_from_the_back() -> None:
    actions = RecentActions(2)
    for result_id in ("A", "B", "C"):
        actions.insert(recent(result_id))
    assert [item.result.id for item in actions.items()] == ["C", "B"]


def test_recent_actions_remove() -> None:
    actions = RecentActions()
    actions.insert(recent("A"))
    actions.insert(recent("B"))
    assert actions.remove("A")
    assert not actions.remove("missing")
    assert [item.result.id for item in actions.items()] == ["B"]
