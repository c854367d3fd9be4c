"""Tests for the bookmark reader and the application directory scanner."""

from __future__ import annotations

import json

from launcher.index_ops import build_from_sources
from launcher.sources import (
    app_sources,
    bookmark_profile_dirs,
    load_chromium_bookmarks,
    parse_bookmarks,
    parse_desktop_entry,
    scan_applications,
)

BOOKMARKS = {
    "roots": {
        "bookmark_bar": {
            "type": "folder",
            "name": "Bookmarks bar",
            "children": [
                {"type": "url", "name": "GitHub", "url": "https://github.com", "guid": "g-1"},
                {
                    "type": "folder",
                    "name": "开发",
                    "children": [
                        {"type": "url", "name": "Python 文档", "url": "https://docs.python.org", "id": "5"},
                    ],
                },
            ],
        },
        "other": {
            "type": "folder",
            "children": [
                {"type": "url", "name": "FTP", "url": "ftp://files.example.com"},
                {"type": "url", "name": "  ", "url": "https://untitled.example.com"},
            ],
        },
        "synced": {"type": "folder", "children": []},
    }
}


def test_parse_bookmarks_flattens_folders() -> None:
    entries = parse_bookmarks(BOOKMARKS, "Chrome Default")
    assert [entry.title for entry in entries] == ["GitHub", "Python 文档"]

    github, docs = entries
    assert github.id == "Chrome Default:g-1"
    assert github.folder_path == "Chrome Default / Bookmarks bar"
    assert docs.id == "Chrome Default:5"
    assert docs.folder_path == "Chrome Default / Bookmarks bar / 开发"
    assert "开发" in docs.keywords
    assert "https://docs.python.org" in docs.keywords
    assert "kaifa|kf" in docs.phonetic_index.split()
    assert "wendang|wd" in docs.phonetic_index.split()


def test_bookmark_without_guid_or_id_gets_stable_hash() -> None:
    data = {"roots": {"other": {"children": [{"type": "url", "name": "Site", "url": "https://site.example"}]}}}
    first = parse_bookmarks(data, "Edge Default")
    second = parse_bookmarks(data, "Edge Default")
    assert first[0].id == second[0].id
    assert first[0].id.startswith("Edge Default:")


def test_parse_bookmarks_tolerates_missing_roots() -> None:
    assert parse_bookmarks({}, "Chrome Default") == []
    assert parse_bookmarks({"roots": []}, "Chrome Default") == []


def test_load_chromium_bookmarks_from_profiles(tmp_path) -> None:
    root = tmp_path / "User Data"
    (root / "Default").mkdir(parents=True)
    (root / "Default" / "Bookmarks").write_text(json.dumps(BOOKMARKS), encoding="utf-8")
    (root / "Profile 1").mkdir()
    (root / "Profile 1" / "Bookmarks").write_text("{broken", encoding="utf-8")
    (root / "System Profile").mkdir()

    profiles = bookmark_profile_dirs([("Chrome", root)])
    assert [label for label, _ in profiles] == ["Chrome Default", "Chrome Profile 1"]

    entries = load_chromium_bookmarks([("Chrome", root)])
    assert [entry.title for entry in entries] == ["GitHub", "Python 文档"]


def test_parse_desktop_entry(tmp_path) -> None:
    path = tmp_path / "firefox.desktop"
    path.write_text(
        "[Desktop Entry]\n"
        "Type=Application\n"
        "Name=Firefox\n"
        "Comment=Browse the web\n"
        "Exec=firefox %u\n"
        "Keywords=web;browser;\n",
        encoding="utf-8",
    )
    entry = parse_desktop_entry(path)
    assert entry is not None
    assert entry.name == "Firefox"
    assert entry.path == "firefox"
    assert entry.source_path == str(path)
    assert entry.description == "Browse the web"
    assert {"web", "browser", "Firefox"} <= set(entry.keywords)


def test_hidden_desktop_entry_is_skipped(tmp_path) -> None:
    path = tmp_path / "hidden.desktop"
    path.write_text("[Desktop Entry]\nType=Application\nName=Hidden\nExec=hidden\nNoDisplay=true\n", encoding="utf-8")
    assert parse_desktop_entry(path) is None


def test_scan_applications_skips_uninstallers_and_other_files(tmp_path) -> None:
    folder = tmp_path / "Programs"
    (folder / "Tools").mkdir(parents=True)
    (folder / "Notepad.lnk").write_bytes(b"")
    (folder / "Tools" / "Uninstall Foo.lnk").write_bytes(b"")
    (folder / "readme.txt").write_text("x", encoding="utf-8")

    apps = scan_applications([folder, tmp_path / "missing"])
    assert [app.name for app in apps] == ["Notepad"]
    assert apps[0].path == str(folder / "Notepad.lnk")


def test_app_sources_put_configured_dirs_first(tmp_path) -> None:
    folder = tmp_path / "Programs"
    folder.mkdir()
    (folder / "Editor.lnk").write_bytes(b"")
    configured, defaults = app_sources([folder])
    assert [app.name for app in configured()] == ["Editor"]
    assert callable(defaults)


def write_desktop_entry(folder, name: str, exec_line: str) -> None:
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "firefox.desktop").write_text(
        f"[Desktop Entry]\nType=Application\nName={name}\nExec={exec_line}\n",
        encoding="utf-8",
    )


def test_same_desktop_file_in_two_dirs_is_indexed_once(tmp_path) -> None:
    """The first data dir's copy of a desktop file wins."""
    user = tmp_path / "user" / "applications"
    system = tmp_path / "system" / "applications"
    write_desktop_entry(user, "Firefox", "firefox --private %u")
    write_desktop_entry(system, "Firefox", "firefox %u")

    configured, _ = app_sources([user, system])
    entries = build_from_sources([configured])

    assert [(app.name, app.source_path) for app in entries] == [("Firefox", str(user / "firefox.desktop"))]
    assert entries[0].path == "firefox --private"


def test_configured_dirs_win_over_later_sources(tmp_path) -> None:
    configured_dir = tmp_path / "Programs"
    common_dir = tmp_path / "Common"
    for folder in (configured_dir, common_dir):
        folder.mkdir()
        (folder / "Editor.lnk").write_bytes(b"")

    entries = build_from_sources([
        lambda: scan_applications([configured_dir]),
        lambda: scan_applications([common_dir]),
    ])

    assert [app.path for app in entries] == [str(configured_dir / "Editor.lnk")]
