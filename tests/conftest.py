"""Shared fixtures: a small application/bookmark index and a state over it."""

from __future__ import annotations

from pathlib import Path

import pytest

from launcher.config import AppConfig, SearchConfig
from launcher.context import AppState
from launcher.models import ApplicationEntry, BookmarkEntry
from launcher.text_utils import build_phonetic_index


def make_app(name: str, path: str | None = None, **kwargs) -> ApplicationEntry:
    return ApplicationEntry(
        id=kwargs.pop("id", f"id-{name}"),
        name=name,
        path=path or f"C:/Apps/{name}.exe",
        phonetic_index=build_phonetic_index([name]),
        **kwargs,
    )


def make_bookmark(title: str, url: str, folder_path: str | None = None, **kwargs) -> BookmarkEntry:
    return BookmarkEntry(
        id=kwargs.pop("id", f"bm-{title}"),
        title=title,
        url=url,
        folder_path=folder_path,
        phonetic_index=build_phonetic_index([title, folder_path]),
        **kwargs,
    )


@pytest.fixture
def sample_apps() -> list[ApplicationEntry]:
    return [
        make_app("Calculator"),
        make_app("Chrome"),
        make_app("Notepad"),
        make_app("Visual Studio Code"),
        make_app("微信"),
    ]


@pytest.fixture
def sample_bookmarks() -> list[BookmarkEntry]:
    return [
        make_bookmark("GitHub", "https://github.com"),
        make_bookmark("Python Docs", "https://docs.python.org"),
    ]


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(max_results=10)


@pytest.fixture
def app_config(tmp_path: Path, search_config: SearchConfig) -> AppConfig:
    return AppConfig(
        project_root=tmp_path,
        cache_dir=tmp_path / "cache",
        config_path=tmp_path / "config.json",
        app_dirs=[],
        bookmark_roots=[],
        search=search_config,
        search_cache_size=8,
        recent_actions_size=12,
        refresh_delay_sec=3600,
        refresh_interval_sec=0,
    )


@pytest.fixture
def state(app_config: AppConfig, sample_apps, sample_bookmarks) -> AppState:
    app_state = AppState.from_config(app_config)
    app_state.app_index = list(sample_apps)
    app_state.bookmark_index = list(sample_bookmarks)
    return app_state
