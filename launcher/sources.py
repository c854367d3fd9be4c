"""Candidate sources: Chromium bookmark files and application directories."""
from __future__ import annotations

import configparser
import json
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from .index_ops import CandidateSource
from .models import APP_TYPE_NATIVE, ApplicationEntry, BookmarkEntry
from .text_utils import build_phonetic_index
from .utils import log_debug, log_warn, stable_id

SYSTEM_VERSION = "0.3.0"

BOOKMARKS_FILENAME = "Bookmarks"
FOLDER_SEPARATOR = " / "
SUPPORTED_URL_PREFIXES = ("http://", "https://")

ROOT_LABELS = {
    "bookmark_bar": "Bookmarks bar",
    "other": "Other bookmarks",
    "synced": "Mobile bookmarks",
}

SHORTCUT_EXTS = {".lnk", ".url", ".exe", ".appref-ms"}
DESKTOP_EXT = ".desktop"
UNINSTALLER_PATTERN = re.compile(r"(^|[\s_\-])(uninstall|uninst|卸载|アンインストール)", re.IGNORECASE)
# freedesktop Exec field codes (%f, %U, ...)
EXEC_FIELD_CODE_PATTERN = re.compile(r"\s*%[a-zA-Z%]")


# --- ブックマーク ---
def default_bookmark_roots() -> List[Tuple[str, Path]]:
    roots: List[Tuple[str, Path]] = []
    local_app_data = os.getenv("LOCALAPPDATA", "").strip()
    if local_app_data:
        roots.append(("Chrome", Path(local_app_data) / "Google" / "Chrome" / "User Data"))
        roots.append(("Edge", Path(local_app_data) / "Microsoft" / "Edge" / "User Data"))
    config_home = Path(os.getenv("XDG_CONFIG_HOME", "").strip() or os.path.expanduser("~/.config"))
    roots.append(("Chrome", config_home / "google-chrome"))
    roots.append(("Chromium", config_home / "chromium"))
    roots.append(("Edge", config_home / "microsoft-edge"))
    return roots


def browser_label_for(root: Path) -> str:
    lowered = str(root).casefold()
    if "edge" in lowered:
        return "Edge"
    if "chromium" in lowered:
        return "Chromium"
    return "Chrome"


def bookmark_profile_dirs(roots: Sequence[Tuple[str, Path]]) -> List[Tuple[str, Path]]:
    """Return (profile label, profile dir) for every profile holding a Bookmarks file."""
    profiles: List[Tuple[str, Path]] = []
    for browser_label, root in roots:
        if not root.is_dir():
            continue
        try:
            children = sorted(root.iterdir())
        except OSError as e:
            log_warn(f"ブックマークフォルダを列挙できません: {root} ({e})")
            continue
        for child in children:
            if child.is_dir() and (child / BOOKMARKS_FILENAME).is_file():
                profiles.append((f"{browser_label} {child.name}", child))
    profiles.sort(key=lambda item: (item[0], str(item[1])))
    unique: List[Tuple[str, Path]] = []
    for item in profiles:
        if item not in unique:
            unique.append(item)
    return unique


def derive_bookmark_id(profile_label: str, node: Dict, url: str) -> str:
    guid = node.get("guid")
    if isinstance(guid, str) and guid:
        return f"{profile_label}:{guid}"
    node_id = node.get("id")
    if isinstance(node_id, str) and node_id:
        return f"{profile_label}:{node_id}"
    return f"{profile_label}:{stable_id(profile_label, url)}"


def bookmark_keywords(title: str, url: str, folder_path: str | None, profile_label: str) -> List[str]:
    keywords = [title, url, profile_label]
    if folder_path:
        keywords.append(folder_path)
        keywords.extend(segment.strip() for segment in folder_path.split("/"))
    return sorted({k for k in keywords if k and k.strip()})


def _collect_node(node: Dict, profile_label: str, path_stack: List[str], acc: List[BookmarkEntry]) -> None:
    node_type = node.get("type")
    if node_type == "folder":
        name = str(node.get("name") or "").strip()
        if name:
            path_stack.append(name)
        for child in node.get("children") or []:
            if isinstance(child, dict):
                _collect_node(child, profile_label, path_stack, acc)
        if name:
            path_stack.pop()
        return
    if node_type != "url":
        return

    title = str(node.get("name") or "").strip()
    url = str(node.get("url") or "").strip()
    if not title or not url or not url.startswith(SUPPORTED_URL_PREFIXES):
        return
    folder_path = FOLDER_SEPARATOR.join(path_stack) if path_stack else None
    acc.append(
        BookmarkEntry(
            id=derive_bookmark_id(profile_label, node, url),
            title=title,
            url=url,
            folder_path=folder_path,
            keywords=bookmark_keywords(title, url, folder_path, profile_label),
            phonetic_index=build_phonetic_index([title, folder_path, profile_label]),
        )
    )


def parse_bookmarks(data: Dict, profile_label: str) -> List[BookmarkEntry]:
    """Flatten one Chromium ``Bookmarks`` document into entries."""
    entries: List[BookmarkEntry] = []
    roots = data.get("roots") if isinstance(data, dict) else None
    if not isinstance(roots, dict):
        return entries
    for key, node in roots.items():
        if not isinstance(node, dict):
            continue
        path_stack = [profile_label]
        label = ROOT_LABELS.get(key)
        if label:
            path_stack.append(label)
        children = node.get("children")
        if isinstance(children, list):
            for child in children:
                if isinstance(child, dict):
                    _collect_node(child, profile_label, path_stack, entries)
        else:
            _collect_node(node, profile_label, path_stack, entries)
    return entries


def load_bookmark_file(path: Path, profile_label: str) -> List[BookmarkEntry]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log_warn(f"ブックマーク読み込み失敗: {path} ({e})")
        return []
    return parse_bookmarks(data, profile_label)


def load_chromium_bookmarks(roots: Sequence[Tuple[str, Path]]) -> List[BookmarkEntry]:
    entries: List[BookmarkEntry] = []
    for profile_label, profile_dir in bookmark_profile_dirs(roots):
        entries.extend(load_bookmark_file(profile_dir / BOOKMARKS_FILENAME, profile_label))
    log_debug(f"ブックマーク読み込み: entries={len(entries)}")
    return entries


# --- アプリケーション ---
def default_app_dirs() -> List[Path]:
    dirs: List[Path] = []
    app_data = os.getenv("APPDATA", "").strip()
    if app_data:
        dirs.append(Path(app_data) / "Microsoft" / "Windows" / "Start Menu" / "Programs")
    program_data = os.getenv("ProgramData", "").strip()
    if program_data:
        dirs.append(Path(program_data) / "Microsoft" / "Windows" / "Start Menu" / "Programs")
    data_home = Path(os.getenv("XDG_DATA_HOME", "").strip() or os.path.expanduser("~/.local/share"))
    dirs.append(data_home / "applications")
    dirs.append(Path("/usr/share/applications"))
    dirs.append(Path("/usr/local/share/applications"))
    return dirs


def looks_like_uninstaller(name: str) -> bool:
    return bool(UNINSTALLER_PATTERN.search(name))


def scan_app_files(folder: Path) -> List[Path]:
    files: List[Path] = []
    try:
        for f in folder.rglob("*"):
            try:
                if f.is_file() and f.suffix.lower() in SHORTCUT_EXTS | {DESKTOP_EXT}:
                    files.append(f)
            except OSError:
                continue
    except OSError as e:
        log_warn(f"scan_app_files: partial scan due to {type(e).__name__}: {e}")
    return sorted(files)


def app_keywords(name: str, path: Path, extra: Iterable[str] = ()) -> List[str]:
    keywords = [name, path.stem, *extra]
    return sorted({k.strip() for k in keywords if k and k.strip()})


def desktop_file_id(path: Path) -> str:
    """XDG desktop-file id: one basename across several data dirs names one application."""
    return stable_id("desktop", path.name.casefold())


def shortcut_id(path: Path) -> str:
    # user and all-users Start Menu copies of one shortcut share a name
    return stable_id("shortcut", path.name.casefold())


def parse_desktop_entry(path: Path) -> ApplicationEntry | None:
    """Read one freedesktop ``.desktop`` file; None for hidden or non-application entries."""
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    parser.optionxform = str
    try:
        with open(path, "r", encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, UnicodeDecodeError, configparser.Error) as e:
        log_warn(f"desktopエントリ読み込み失敗: {path} ({e})")
        return None
    if not parser.has_section("Desktop Entry"):
        return None
    section = parser["Desktop Entry"]
    if section.get("Type", "Application") != "Application":
        return None
    if section.get("NoDisplay", "false").lower() == "true" or section.get("Hidden", "false").lower() == "true":
        return None
    name = (section.get("Name") or "").strip()
    command = EXEC_FIELD_CODE_PATTERN.sub("", section.get("Exec") or "").strip()
    if not name or not command:
        return None
    if looks_like_uninstaller(name):
        return None
    extra = [k for k in (section.get("Keywords") or "").split(";") if k.strip()]
    generic = (section.get("GenericName") or "").strip()
    if generic:
        extra.append(generic)
    return ApplicationEntry(
        id=desktop_file_id(path),
        name=name,
        path=command,
        source_path=str(path),
        app_type=APP_TYPE_NATIVE,
        description=(section.get("Comment") or "").strip() or None,
        keywords=app_keywords(name, path, extra),
        phonetic_index=build_phonetic_index([name]),
        working_directory=(section.get("Path") or "").strip() or None,
    )


def shortcut_entry(path: Path) -> ApplicationEntry | None:
    name = path.stem.strip()
    if not name or looks_like_uninstaller(name):
        return None
    return ApplicationEntry(
        id=shortcut_id(path),
        name=name,
        path=str(path),
        app_type=APP_TYPE_NATIVE,
        keywords=app_keywords(name, path),
        phonetic_index=build_phonetic_index([name]),
    )


def scan_applications(folders: Sequence[Path]) -> List[ApplicationEntry]:
    apps: List[ApplicationEntry] = []
    for folder in folders:
        if not folder.is_dir():
            continue
        for path in scan_app_files(folder):
            if path.suffix.lower() == DESKTOP_EXT:
                entry = parse_desktop_entry(path)
            else:
                entry = shortcut_entry(path)
            if entry is not None:
                apps.append(entry)
    log_debug(f"アプリ走査: entries={len(apps)}")
    return apps


# --- ソース生成 ---
def app_sources(app_dirs: Sequence[Path]) -> List[CandidateSource]:
    """Configured directories win over the platform defaults on duplicate ids."""
    configured = list(app_dirs)

    def configured_apps() -> List[ApplicationEntry]:
        return scan_applications(configured)

    def default_apps() -> List[ApplicationEntry]:
        return scan_applications([d for d in default_app_dirs() if d not in configured])

    return [configured_apps, default_apps]


def bookmark_sources(bookmark_roots: Sequence[Path]) -> List[CandidateSource]:
    if bookmark_roots:
        roots = [(browser_label_for(root), root) for root in bookmark_roots]
    else:
        roots = default_bookmark_roots()

    def chromium_bookmarks() -> List[BookmarkEntry]:
        return load_chromium_bookmarks(roots)

    return [chromium_bookmarks]
