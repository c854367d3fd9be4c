import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List

from .utils import env_bool, env_int, env_list, log_notice, log_warn

from dotenv import load_dotenv, find_dotenv

SYSTEM_VERSION = "0.3.0"

PROJECT_ROOT = Path(__file__).resolve().parents[1]
BASE_DIR = PROJECT_ROOT

# --- 結果件数の制限 ---
MIN_RESULT_LIMIT = 10
MAX_RESULT_LIMIT = 60
DEFAULT_MAX_RESULTS = 40

# --- キャッシュデフォルト定数 ---
DEFAULT_SEARCH_CACHE_SIZE = 8
DEFAULT_RECENT_ACTIONS_SIZE = 12
INDEX_CACHE_FILENAME = "index.json"

# --- バックグラウンド再構築 ---
DEFAULT_REFRESH_DELAY_SEC = 2
DEFAULT_REFRESH_INTERVAL_SEC = 0

DEFAULT_GLOBAL_HOTKEY = "Alt+Space"
SEARCH_ENGINE_URL = "https://google.com/search?q={query}"

CONFIG_KEYS = (
    "enable_app_results",
    "enable_bookmark_results",
    "max_results",
    "system_tool_exclusions",
    "global_hotkey",
    "launch_on_startup",
)


def clamp_max_results(value: int) -> int:
    """Clamp the result limit into the supported range; zero maps to the minimum."""
    if value <= 0:
        return MIN_RESULT_LIMIT
    return max(MIN_RESULT_LIMIT, min(MAX_RESULT_LIMIT, value))


@dataclass(frozen=True)
class SearchConfig:
    enable_app_results: bool = True
    enable_bookmark_results: bool = True
    max_results: int = DEFAULT_MAX_RESULTS
    system_tool_exclusions: List[str] = field(default_factory=list)
    # presentation only, never read by the search core
    global_hotkey: str = DEFAULT_GLOBAL_HOTKEY
    launch_on_startup: bool = False

    @property
    def result_limit(self) -> int:
        return clamp_max_results(self.max_results)

    def with_exclusion(self, pattern: str) -> "SearchConfig":
        return replace(self, system_tool_exclusions=[*self.system_tool_exclusions, pattern])

    def to_dict(self) -> Dict:
        return {
            "enable_app_results": self.enable_app_results,
            "enable_bookmark_results": self.enable_bookmark_results,
            "max_results": self.max_results,
            "system_tool_exclusions": list(self.system_tool_exclusions),
            "global_hotkey": self.global_hotkey,
            "launch_on_startup": self.launch_on_startup,
        }


@dataclass
class AppConfig:
    project_root: Path
    cache_dir: Path
    config_path: Path
    app_dirs: List[Path]
    bookmark_roots: List[Path]
    search: SearchConfig
    search_cache_size: int
    recent_actions_size: int
    refresh_delay_sec: int
    refresh_interval_sec: int


def load_env() -> None:
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path)


def _resolve_config_path() -> Path:
    raw = os.getenv("CONFIG_PATH", "").strip() or "config.json"
    path = Path(raw)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def _resolve_cache_dir() -> Path:
    raw = os.getenv("CACHE_DIR", "").strip()
    if raw:
        return Path(os.path.expanduser(raw))
    local_app_data = os.getenv("LOCALAPPDATA", "").strip()
    if local_app_data:
        return Path(local_app_data) / "egg" / "cache"
    return Path(os.path.expanduser("~/.cache/egg"))


def _stringify_config_value(value: object) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (list, tuple)):
        return ";".join(str(v) for v in value if v is not None)
    return str(value)


def _set_env_if_missing(name: str, value: object | None) -> None:
    if value is None or name in os.environ:
        return
    os.environ[name] = _stringify_config_value(value)


def _apply_config_env(config: dict) -> None:
    if not isinstance(config, dict):
        return

    search = config.get("search")
    if isinstance(search, dict):
        search_map = {
            "enable_app_results": "ENABLE_APP_RESULTS",
            "enable_bookmark_results": "ENABLE_BOOKMARK_RESULTS",
            "max_results": "MAX_RESULTS",
            "system_tool_exclusions": "SYSTEM_TOOL_EXCLUSIONS",
            "global_hotkey": "GLOBAL_HOTKEY",
            "launch_on_startup": "LAUNCH_ON_STARTUP",
        }
        for key, env_name in search_map.items():
            if key in search:
                _set_env_if_missing(env_name, search.get(key))

    sources = config.get("sources")
    if isinstance(sources, dict):
        _set_env_if_missing("APP_DIRS", sources.get("app_dirs"))
        _set_env_if_missing("BOOKMARK_ROOTS", sources.get("bookmark_roots"))

    cache = config.get("cache")
    if isinstance(cache, dict):
        _set_env_if_missing("SEARCH_CACHE_SIZE", cache.get("search_cache_size"))
        _set_env_if_missing("RECENT_ACTIONS_SIZE", cache.get("recent_actions_size"))
        _set_env_if_missing("CACHE_DIR", cache.get("dir"))

    refresh = config.get("refresh")
    if isinstance(refresh, dict):
        _set_env_if_missing("REFRESH_DELAY_SEC", refresh.get("delay_sec"))
        _set_env_if_missing("REFRESH_INTERVAL_SEC", refresh.get("interval_sec"))


def _load_json_config(config_path: Path) -> dict:
    if not config_path.exists():
        log_notice(f"config.json が見つからないため既定値で起動します: {config_path}")
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as file:
            data = json.load(file)
            return data if isinstance(data, dict) else {}
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"config.json の解析に失敗しました: {exc}") from exc


def parse_search_config() -> SearchConfig:
    return SearchConfig(
        enable_app_results=env_bool("ENABLE_APP_RESULTS", True),
        enable_bookmark_results=env_bool("ENABLE_BOOKMARK_RESULTS", True),
        max_results=clamp_max_results(env_int("MAX_RESULTS", DEFAULT_MAX_RESULTS)),
        system_tool_exclusions=env_list("SYSTEM_TOOL_EXCLUSIONS"),
        global_hotkey=os.getenv("GLOBAL_HOTKEY", "").strip() or DEFAULT_GLOBAL_HOTKEY,
        launch_on_startup=env_bool("LAUNCH_ON_STARTUP", False),
    )


def parse_path_list(name: str) -> List[Path]:
    return [Path(os.path.abspath(os.path.expanduser(p.strip('"').strip("'")))) for p in env_list(name)]


def load_config() -> AppConfig:
    load_env()
    config_path = _resolve_config_path()
    config_data = _load_json_config(config_path)
    _apply_config_env(config_data)
    cache_dir = _resolve_cache_dir()
    return AppConfig(
        project_root=PROJECT_ROOT,
        cache_dir=cache_dir,
        config_path=config_path,
        app_dirs=parse_path_list("APP_DIRS"),
        bookmark_roots=parse_path_list("BOOKMARK_ROOTS"),
        search=parse_search_config(),
        search_cache_size=max(1, env_int("SEARCH_CACHE_SIZE", DEFAULT_SEARCH_CACHE_SIZE)),
        recent_actions_size=max(1, env_int("RECENT_ACTIONS_SIZE", DEFAULT_RECENT_ACTIONS_SIZE)),
        refresh_delay_sec=env_int("REFRESH_DELAY_SEC", DEFAULT_REFRESH_DELAY_SEC),
        refresh_interval_sec=env_int("REFRESH_INTERVAL_SEC", DEFAULT_REFRESH_INTERVAL_SEC),
    )


def save_config(config_path: Path, search: SearchConfig) -> None:
    """Write the search section back to config.json, keeping other sections."""
    data: dict = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as file:
                loaded = json.load(file)
            if isinstance(loaded, dict):
                data = loaded
        except (OSError, json.JSONDecodeError) as exc:
            log_warn(f"config.json の読み込みに失敗したため上書きします: {exc}")
    data["search"] = search.to_dict()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = config_path.with_suffix(".json.tmp")
    with open(temp_path, "w", encoding="utf-8") as file:
        json.dump(data, file, ensure_ascii=False, indent=2)
    os.replace(temp_path, config_path)
