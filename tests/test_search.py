"""Tests for the ranking engine."""

from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import make_app

from launcher.models import LaunchApplication, OpenUrl, WebSearch
from launcher.search import (
    URL_RESULT_SCORE,
    WEB_SEARCH_SCORE,
    QueryMode,
    fuzzy_score,
    is_url_like,
    search,
    web_search_url,
)


def ids(results) -> list[str]:
    return [result.id for result in results]


def test_empty_query_returns_nothing(sample_apps, sample_bookmarks, search_config) -> None:
    assert search("", None, sample_apps, sample_bookmarks, search_config) == ([], {})
    assert search("   ", None, sample_apps, sample_bookmarks, search_config) == ([], {})


def test_search_is_deterministic(sample_apps, sample_bookmarks, search_config) -> None:
    first = search("c", None, sample_apps, sample_bookmarks, search_config)
    second = search("c", None, sample_apps, sample_bookmarks, search_config)
    assert first == second


def test_every_token_must_match(sample_apps, sample_bookmarks, search_config) -> None:
    results, _ = search("vis code", None, sample_apps, sample_bookmarks, search_config)
    assert ids(results) == ["app-id-Visual Studio Code", "search:vis code"]

    results, actions = search("vis xyz", None, sample_apps, sample_bookmarks, search_config)
    assert ids(results) == ["search:vis xyz"]
    assert isinstance(actions["search:vis xyz"], WebSearch)


def test_pinyin_initials_match_han_names(sample_apps, sample_bookmarks, search_config) -> None:
    results, actions = search("wx", None, sample_apps, sample_bookmarks, search_config)
    assert results[0].title == "微信"
    assert isinstance(actions[results[0].id], LaunchApplication)

    results, _ = search("weixin", None, sample_apps, sample_bookmarks, search_config)
    assert results[0].title == "微信"


def test_exact_name_outranks_partial_match(search_config) -> None:
    apps = [make_app("Notepad Plus Plus"), make_app("Notepad")]
    results, _ = search("notepad", None, apps, [], search_config)
    assert [r.title for r in results[:2]] == ["Notepad", "Notepad Plus Plus"]


def test_url_result_always_comes_first(sample_apps, sample_bookmarks, search_config) -> None:
    results, actions = search("github.com", None, sample_apps, sample_bookmarks, search_config)
    assert results[0].id == "url:github.com"
    assert results[0].score == URL_RESULT_SCORE
    assert actions["url:github.com"] == OpenUrl("github.com")
    assert "bookmark-bm-GitHub" in ids(results)
    assert results[-1].score == WEB_SEARCH_SCORE


def test_is_url_like() -> None:
    assert is_url_like("https://example.com/a b")
    assert is_url_like("example.org")
    assert not is_url_like("read me.txt")
    assert not is_url_like("notepad")


def test_truncation_reserves_slot_for_web_search(search_config) -> None:
    apps = [make_app(f"Tool {n:02d}") for n in range(1, 16)]
    results, actions = search("tool", None, apps, [], search_config)
    assert len(results) == 10
    assert results[-1].id == "search:tool"
    assert sum(1 for r in results if r.action_id == "app") == 9
    assert set(actions) == set(ids(results))


def test_truncation_without_web_fallback_keeps_limit(search_config) -> None:
    apps = [make_app(f"Tool {n:02d}") for n in range(1, 16)]
    results, _ = search("tool", "app", apps, [], search_config)
    assert len(results) == 10
    assert all(r.action_id == "app" for r in results)


def test_short_result_list_is_not_truncated(sample_apps, sample_bookmarks, search_config) -> None:
    results, _ = search("code", None, sample_apps, sample_bookmarks, search_config)
    assert ids(results) == ["app-id-Visual Studio Code", "search:code"]


def test_max_results_is_clamped(search_config) -> None:
    apps = [make_app(f"Tool {n:02d}") for n in range(1, 16)]
    results, _ = search("tool", "app", apps, [], replace(search_config, max_results=3))
    assert len(results) == 10


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, QueryMode.ALL),
        ("all", QueryMode.ALL),
        ("b", QueryMode.BOOKMARK),
        (" Bookmarks ", QueryMode.BOOKMARK),
        ("r", QueryMode.APPLICATION),
        ("app", QueryMode.APPLICATION),
        ("S", QueryMode.SEARCH),
        ("unknown", QueryMode.ALL),
    ],
)
def test_query_mode_parse(raw, expected) -> None:
    assert QueryMode.parse(raw) is expected


def test_bookmark_mode_skips_apps_and_web(sample_apps, sample_bookmarks, search_config) -> None:
    results, _ = search("git", "bookmark", sample_apps, sample_bookmarks, search_config)
    assert ids(results) == ["bookmark-bm-GitHub"]


def test_search_mode_only_offers_web_search(sample_apps, sample_bookmarks, search_config) -> None:
    results, actions = search("notepad", "search", sample_apps, sample_bookmarks, search_config)
    assert ids(results) == ["search:notepad"]
    assert actions["search:notepad"].url == web_search_url("notepad")


def test_disabled_sources_are_not_ranked(sample_apps, sample_bookmarks, search_config) -> None:
    config = replace(search_config, enable_app_results=False)
    results, _ = search("code", None, sample_apps, sample_bookmarks, config)
    assert ids(results) == ["search:code"]

    config = replace(search_config, enable_bookmark_results=False)
    results, _ = search("git", None, sample_apps, sample_bookmarks, config)
    assert "bookmark-bm-GitHub" not in ids(results)


def test_web_search_url_is_encoded() -> None:
    assert web_search_url("a b&c") == "https://google.com/search?q=a%20b%26c"


def test_fuzzy_score_requires_subsequence() -> None:
    assert fuzzy_score("visual studio code", "vsc") is not None
    assert fuzzy_score("notepad", "xyz") is None
    assert fuzzy_score("ab", "abc") is None
