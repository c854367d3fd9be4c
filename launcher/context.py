import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from .cache import RecentActions, SearchCache, cache_key_for
from .config import AppConfig, SearchConfig, save_config
from .hotkey import HotkeyCaptureSession, HotkeyRegistry
from .index_ops import CandidateSource, build_from_sources, save_app_index
from .models import (
    ApplicationEntry,
    BookmarkEntry,
    CachedSearch,
    LaunchApplication,
    PendingAction,
    RecentEntry,
    SearchResult,
)
from .search import QueryMode, search
from . import sources
from .utils import log_debug, log_info, log_notice

SYSTEM_VERSION = "0.3.0"

CACHE_LOCK_TIMEOUT_SEC = 0.05


@dataclass
class AppState:
    """Shared search state.

    Every field has its own lock. Ranking always runs on copies taken by
    ``snapshot()`` so no lock is held while scoring.
    """

    cache_dir: Path
    config_path: Path | None = None
    config: SearchConfig = field(default_factory=SearchConfig)
    app_index: List[ApplicationEntry] = field(default_factory=list)
    bookmark_index: List[BookmarkEntry] = field(default_factory=list)
    search_cache: SearchCache = field(default_factory=SearchCache)
    recent_actions: RecentActions = field(default_factory=RecentActions)
    pending_actions: Dict[str, PendingAction] = field(default_factory=dict)
    pending_results: Dict[str, SearchResult] = field(default_factory=dict)
    config_lock: threading.Lock = field(default_factory=threading.Lock)
    app_index_lock: threading.Lock = field(default_factory=threading.Lock)
    bookmark_index_lock: threading.Lock = field(default_factory=threading.Lock)
    search_cache_lock: threading.Lock = field(default_factory=threading.Lock)
    recent_actions_lock: threading.Lock = field(default_factory=threading.Lock)
    pending_actions_lock: threading.Lock = field(default_factory=threading.Lock)
    refresh_lock: threading.Lock = field(default_factory=threading.Lock)
    # bumped whenever the indexes or exclusions change
    index_generation: int = 0
    generation_lock: threading.Lock = field(default_factory=threading.Lock)
    ready: bool = False

    @classmethod
    def from_config(cls, app_config: AppConfig) -> "AppState":
        return cls(
            cache_dir=app_config.cache_dir,
            config_path=app_config.config_path,
            config=app_config.search,
            search_cache=SearchCache(app_config.search_cache_size),
            recent_actions=RecentActions(app_config.recent_actions_size),
        )

    # --- スナップショット ---
    def get_config(self) -> SearchConfig:
        with self.config_lock:
            return self.config

    def current_generation(self) -> int:
        with self.generation_lock:
            return self.index_generation

    def _bump_generation(self) -> None:
        with self.generation_lock:
            self.index_generation += 1

    def snapshot(self) -> Tuple[List[ApplicationEntry], List[BookmarkEntry], SearchConfig, int]:
        """Copy the indexes and config along with the generation they belong to."""
        generation = self.current_generation()
        with self.app_index_lock:
            apps = list(self.app_index)
        with self.bookmark_index_lock:
            bookmarks = list(self.bookmark_index)
        return apps, bookmarks, self.get_config(), generation

    def recent_items(self) -> List[RecentEntry]:
        with self.recent_actions_lock:
            return list(self.recent_actions.items())

    # --- 検索 ---
    def _cache_get(self, key) -> CachedSearch | None:
        if not self.search_cache_lock.acquire(timeout=CACHE_LOCK_TIMEOUT_SEC):
            log_debug("検索キャッシュのロック取得に失敗したためキャッシュを使わずに検索します")
            return None
        try:
            return self.search_cache.get(key)
        finally:
            self.search_cache_lock.release()

    def _cache_insert(self, key, value: CachedSearch, generation: int) -> bool:
        """Store ``value`` unless the indexes changed after it was ranked."""
        if not self.search_cache_lock.acquire(timeout=CACHE_LOCK_TIMEOUT_SEC):
            log_debug("検索キャッシュのロック取得に失敗したため結果を保存しません")
            return False
        try:
            # checked under the cache lock; a later change clears the cache after bumping
            if self.current_generation() != generation:
                log_debug("検索中にインデックスが更新されたため結果を保存しません")
                return False
            self.search_cache.insert(key, value)
            return True
        finally:
            self.search_cache_lock.release()

    def clear_search_cache(self) -> None:
        with self.search_cache_lock:
            self.search_cache.clear()

    def _remember_actions(self, results: Sequence[SearchResult], actions: Dict[str, PendingAction]) -> None:
        # pending_results shares pending_actions_lock
        with self.pending_actions_lock:
            self.pending_actions = dict(actions)
            self.pending_results = {result.id: result for result in results}

    def run_search(self, query: str, mode: "str | QueryMode | None" = None) -> Tuple[List[SearchResult], bool]:
        """Answer one query; returns (results, served_from_cache).

        An empty query answers with the recent-action list.
        """
        query_mode = QueryMode.parse(mode)
        if not (query or "").strip():
            recent = self.recent_items()
            self._remember_actions(
                [item.result for item in recent],
                {item.result.id: item.action for item in recent},
            )
            return [item.result for item in recent], False

        apps, bookmarks, config, generation = self.snapshot()
        key = cache_key_for(query, config, query_mode.value)
        cached = self._cache_get(key)
        if cached is not None:
            self._remember_actions(cached.results, cached.pending_actions)
            return list(cached.results), True

        results, actions = search(query, query_mode, apps, bookmarks, config)
        self._cache_insert(
            key,
            CachedSearch(results=list(results), pending_actions=dict(actions)),
            generation,
        )
        self._remember_actions(results, actions)
        return results, False

    def pending_action(self, result_id: str) -> Tuple[SearchResult | None, PendingAction | None]:
        """Resolve a result id from the last answer, falling back to the recent list."""
        with self.pending_actions_lock:
            action = self.pending_actions.get(result_id)
            result = self.pending_results.get(result_id)
        if action is not None and result is not None:
            return result, action
        for item in self.recent_items():
            if item.result.id == result_id:
                return item.result, item.action
        return None, None

    def record_execution(self, result: SearchResult, action: PendingAction) -> None:
        with self.recent_actions_lock:
            self.recent_actions.insert(RecentEntry(result=result, action=action))

    # --- インデックス更新 ---
    def replace_app_index(self, entries: Sequence[ApplicationEntry], persist: bool = True) -> bool:
        """Swap the app index if and only if it differs; clears the result cache."""
        entries = list(entries)
        if not entries:
            log_notice("アプリ一覧の再構築結果が空のため既存のインデックスを維持します")
            return False
        with self.app_index_lock:
            if self.app_index == entries:
                return False
            self.app_index = entries
            self._bump_generation()
        if persist:
            save_app_index(self.cache_dir, entries)
        self.clear_search_cache()
        log_info(f"アプリインデックス更新: apps={len(entries)}")
        return True

    def replace_bookmark_index(self, entries: Sequence[BookmarkEntry]) -> bool:
        entries = list(entries)
        if not entries:
            log_notice("ブックマークの再構築結果が空のため既存のインデックスを維持します")
            return False
        with self.bookmark_index_lock:
            if self.bookmark_index == entries:
                return False
            self.bookmark_index = entries
            self._bump_generation()
        self.clear_search_cache()
        log_info(f"ブックマークインデックス更新: bookmarks={len(entries)}")
        return True

    def refresh_indexes(
        self,
        app_sources: Sequence[CandidateSource],
        bookmark_sources: Sequence[CandidateSource],
    ) -> bool:
        """Rebuild both indexes from their sources; runs on a worker thread."""
        with self.refresh_lock:
            exclusions = list(self.get_config().system_tool_exclusions)
            apps = build_from_sources(app_sources, exclusions)
            bookmarks = build_from_sources(bookmark_sources)
            changed = self.replace_app_index(apps)
            changed = self.replace_bookmark_index(bookmarks) or changed
            self.ready = True
        log_debug(f"インデックス再構築完了: apps={len(apps)} bookmarks={len(bookmarks)} changed={changed}")
        return changed

    # --- 設定 ---
    def update_config(self, config: SearchConfig, persist: bool = True) -> SearchConfig:
        with self.config_lock:
            self.config = config
        if persist and self.config_path is not None:
            save_config(self.config_path, config)
        # exclusions are not part of the cache key
        self._bump_generation()
        self.clear_search_cache()
        return config

    def exclude_entry(self, result_id: str) -> str:
        """Blacklist the application behind ``result_id``.

        Returns the added exclusion path. Raises LookupError for an unknown
        result and ValueError when the result cannot be excluded.
        """
        _, action = self.pending_action(result_id)
        if action is None:
            raise LookupError(f"結果が見つかりません: {result_id}")
        if not isinstance(action, LaunchApplication):
            raise ValueError("除外できるのはアプリのみです")
        pattern = action.entry.effective_path.strip()
        if not pattern:
            raise ValueError("選択したアプリにパスがありません")

        with self.config_lock:
            current = self.config
            if any(item.casefold() == pattern.casefold() for item in current.system_tool_exclusions):
                raise ValueError(f"既に除外済みです: {action.entry.name}")
            updated = current.with_exclusion(pattern)
            self.config = updated
        if self.config_path is not None:
            try:
                save_config(self.config_path, updated)
            except OSError:
                with self.config_lock:
                    if self.config is updated:
                        self.config = current
                raise

        with self.app_index_lock:
            self.app_index = [
                app for app in self.app_index if app.effective_path.casefold() != pattern.casefold()
            ]
            self._bump_generation()
        with self.recent_actions_lock:
            self.recent_actions.remove(result_id)
        with self.pending_actions_lock:
            self.pending_actions.pop(result_id, None)
            self.pending_results.pop(result_id, None)
        self.clear_search_cache()
        log_notice(f"除外リストに追加しました: {action.entry.name} ({pattern})")
        return pattern

    def describe(self) -> Dict:
        with self.app_index_lock:
            apps = len(self.app_index)
        with self.bookmark_index_lock:
            bookmarks = len(self.bookmark_index)
        return {"ready": self.ready, "apps": apps, "bookmarks": bookmarks}


@dataclass
class AppContext:
    config: AppConfig
    state: AppState
    app_sources: List[CandidateSource] = field(default_factory=list)
    bookmark_sources: List[CandidateSource] = field(default_factory=list)
    hotkeys: HotkeyRegistry = field(default_factory=HotkeyRegistry)
    capture_sessions: Dict[str, HotkeyCaptureSession] = field(default_factory=dict)
    refresh_in_progress: bool = False

    @classmethod
    def from_config(cls, app_config: AppConfig) -> "AppContext":
        return cls(
            config=app_config,
            state=AppState.from_config(app_config),
            app_sources=sources.app_sources(app_config.app_dirs),
            bookmark_sources=sources.bookmark_sources(app_config.bookmark_roots),
            hotkeys=HotkeyRegistry(app_config.search.global_hotkey),
        )
