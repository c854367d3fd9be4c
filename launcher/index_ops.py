"""Index operations: canonical index building, exclusion rules, and the index cache file."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

from .config import INDEX_CACHE_FILENAME
from .models import ApplicationEntry, CandidateEntry
from .utils import log_debug, log_info, log_warn

SYSTEM_VERSION = "0.3.0"

CandidateSource = Callable[[], List[CandidateEntry]]


def _source_name(source: CandidateSource) -> str:
    return getattr(source, "__name__", None) or type(source).__name__


def collect_batches(sources: Sequence[CandidateSource]) -> List[List[CandidateEntry]]:
    """Call every candidate source in precedence order.

    A source that fails contributes an empty batch; the failure is logged.
    """
    batches: List[List[CandidateEntry]] = []
    for source in sources:
        name = _source_name(source)
        try:
            batch = list(source() or [])
        except Exception as exc:
            log_warn(f"候補ソースの列挙に失敗しました: {name} ({exc})")
            batch = []
        log_debug(f"候補ソース: {name} entries={len(batch)}")
        batches.append(batch)
    return batches


def _looks_like_package_id(pattern: str) -> bool:
    return pattern.startswith("{")


def is_excluded(entry: CandidateEntry, exclusions: Iterable[str]) -> bool:
    """Check the entry's effective path against the configured exclusions."""
    path_lower = (entry.effective_path or "").casefold()
    if not path_lower:
        return False
    for raw in exclusions:
        pattern = (raw or "").strip()
        if not pattern:
            continue
        pattern_lower = pattern.casefold()
        if path_lower.startswith(pattern_lower):
            return True
        if _looks_like_package_id(pattern) and pattern_lower in path_lower:
            return True
    return False


def dedupe_by_id(entries: Iterable[CandidateEntry]) -> List[CandidateEntry]:
    seen: set[str] = set()
    unique: List[CandidateEntry] = []
    for entry in entries:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        unique.append(entry)
    return unique


def build_index(
    raw_batches: Sequence[Sequence[CandidateEntry]],
    exclusions: Sequence[str] = (),
) -> List[CandidateEntry]:
    """Turn raw candidate batches into the canonical, sorted index.

    Order matters: concatenate (earlier batches win), dedupe by id keeping
    the first occurrence, stable sort by case-insensitive display name, then
    drop excluded entries.
    """
    merged: List[CandidateEntry] = []
    for batch in raw_batches:
        merged.extend(batch or [])
    unique = dedupe_by_id(merged)
    unique.sort(key=lambda entry: entry.display_name.casefold())
    kept = [entry for entry in unique if not is_excluded(entry, exclusions)]
    dropped = len(unique) - len(kept)
    if dropped:
        log_debug(f"除外ルールで {dropped} 件を除外しました")
    return kept


def build_from_sources(
    sources: Sequence[CandidateSource],
    exclusions: Sequence[str] = (),
) -> List[CandidateEntry]:
    return build_index(collect_batches(sources), exclusions)


# --- インデックスキャッシュファイル ---
def index_cache_path(cache_dir: Path) -> Path:
    return cache_dir / INDEX_CACHE_FILENAME


def load_app_index(cache_dir: Path) -> List[ApplicationEntry] | None:
    """Load the persisted application index; malformed elements are skipped."""
    cache_path = index_cache_path(cache_dir)
    if not cache_path.exists():
        return None
    try:
        with open(cache_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log_warn(f"アプリキャッシュ読み込みエラー: {cache_path} ({e})")
        return None
    if not isinstance(data, list):
        log_warn(f"アプリキャッシュ形式が不正です: {cache_path}")
        return None
    apps: List[ApplicationEntry] = []
    for position, item in enumerate(data):
        try:
            apps.append(ApplicationEntry.from_dict(item))
        except ValueError as e:
            log_warn(f"アプリキャッシュ読み込み警告: {position} 番目の要素をスキップします ({e})")
            continue
    return apps


def save_app_index(cache_dir: Path, apps: Sequence[ApplicationEntry]) -> bool:
    """Persist the application index (atomic replace)."""
    cache_path = index_cache_path(cache_dir)
    temp_path = cache_path.with_suffix(".json.tmp")
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        payload: List[Dict] = [app.to_dict() for app in apps]
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.replace(temp_path, cache_path)
    except OSError as e:
        log_warn(f"アプリキャッシュ保存失敗: {cache_path} ({e})")
        try:
            if temp_path.exists():
                temp_path.unlink()
        except OSError:
            pass
        return False
    log_info(f"アプリキャッシュ保存: {cache_path} apps={len(apps)}")
    return True
