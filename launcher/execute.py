"""Action executor: open URLs and launch applications for a selected result."""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import sys
import webbrowser
from pathlib import Path
from typing import List

from .models import (
    APP_TYPE_PACKAGED,
    ApplicationEntry,
    LaunchApplication,
    OpenBookmark,
    OpenUrl,
    PendingAction,
    WebSearch,
)
from .utils import log_debug, log_warn

SYSTEM_VERSION = "0.3.0"

IS_WINDOWS = sys.platform.startswith("win")


def normalize_url(target: str) -> str:
    target = target.strip()
    if "://" in target:
        return target
    return f"https://{target}"


def open_url(target: str) -> str | None:
    url = normalize_url(target)
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        return f"ブラウザを起動できません: {e}"
    if not opened:
        return "ブラウザを起動できません"
    log_debug(f"URLを開きました: {url}")
    return None


def _spawn(cmd: List[str], working_directory: str | None = None) -> str | None:
    cwd = working_directory if working_directory and os.path.isdir(working_directory) else None
    try:
        subprocess.Popen(
            cmd,
            cwd=cwd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            start_new_session=not IS_WINDOWS,
        )
    except (OSError, subprocess.SubprocessError) as e:
        return f"プログラムを起動できません: {e}"
    log_debug(f"プロセス起動: {cmd}")
    return None


def _start_file(target: str, run_as_admin: bool, arguments: str | None = None,
                working_directory: str | None = None) -> str | None:
    if IS_WINDOWS:
        operation = "runas" if run_as_admin else "open"
        try:
            os.startfile(target, operation, arguments or "", working_directory or None)
        except OSError as e:
            return f"プログラムを起動できません: {e}"
        return None
    cmd = [target]
    if arguments and arguments.strip():
        cmd.extend(shlex.split(arguments))
    if not os.access(target, os.X_OK):
        opener = shutil.which("xdg-open") or shutil.which("open")
        if opener is None:
            return "ファイルを開くコマンドが見つかりません"
        cmd = [opener, target]
    return _spawn(cmd, working_directory)


def _run_command(command: str, working_directory: str | None) -> str | None:
    try:
        cmd = shlex.split(command)
    except ValueError as e:
        return f"起動コマンドを解析できません: {e}"
    if not cmd or shutil.which(cmd[0]) is None:
        return "対象プログラムが存在しないか移動されています"
    return _spawn(cmd, working_directory)


def launch_primary(app: ApplicationEntry, run_as_admin: bool) -> str | None:
    path = app.path.strip().strip('"')
    if Path(path).exists():
        return _start_file(path, run_as_admin, app.arguments, app.working_directory)
    if IS_WINDOWS:
        return "対象プログラムが存在しないか移動されています"
    return _run_command(path, app.working_directory)


def launch_from_source(app: ApplicationEntry, run_as_admin: bool) -> str | None:
    source = (app.source_path or "").strip().strip("\"'")
    if not source:
        return "代替パスが無効です"
    if "://" in source and not Path(source).exists():
        return open_url(source)
    if source.lower().endswith(".desktop") and not IS_WINDOWS:
        launcher = shutil.which("gio")
        if launcher is None:
            return "desktopエントリを起動するコマンドが見つかりません"
        return _spawn([launcher, "launch", source], app.working_directory)
    return _start_file(source, run_as_admin, app.arguments, app.working_directory)


def launch_packaged_app(app_id: str) -> str | None:
    if not IS_WINDOWS:
        return "パッケージアプリはこの環境では起動できません"
    return _spawn(["explorer.exe", f"shell:AppsFolder\\{app_id}"])


def launch_application(app: ApplicationEntry, run_as_admin: bool = False) -> str | None:
    """Launch the primary path; on failure retry through the source path."""
    if app.app_type == APP_TYPE_PACKAGED:
        return launch_packaged_app(app.path)
    primary_error = launch_primary(app, run_as_admin)
    if primary_error is None:
        return None
    if not app.source_path:
        return primary_error
    if launch_from_source(app, run_as_admin) is None:
        return None
    return primary_error


def execute_action(action: PendingAction, run_as_admin: bool = False) -> str | None:
    """Run a pending action. Returns None on success, else a readable reason."""
    if isinstance(action, LaunchApplication):
        error = launch_application(action.entry, run_as_admin)
    elif isinstance(action, OpenBookmark):
        error = open_url(action.entry.url)
    elif isinstance(action, (OpenUrl, WebSearch)):
        error = open_url(action.url)
    else:
        raise TypeError(f"unknown action: {action!r}")
    if error:
        log_warn(f"実行失敗: {action.kind} ({error})")
    return error
