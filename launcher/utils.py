"""Utility functions for logging, environment variables, and identity hashing."""
from __future__ import annotations

import hashlib
import os
import time
from typing import List

from colorama import Fore, Style, init as colorama_init

SYSTEM_VERSION = "0.3.0"

colorama_init()


def _timestamp() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S")


def log_info(message: str):
    print(f"[{_timestamp()}] {message}")


def log_warn(message: str):
    print(f"{Fore.RED}[{_timestamp()}] {message}{Style.RESET_ALL}")


def log_notice(message: str):
    """Yellow notification log for moderate importance warnings."""
    print(f"{Fore.YELLOW}[{_timestamp()}] {message}{Style.RESET_ALL}")


def log_success(message: str):
    print(f"{Fore.GREEN}[{_timestamp()}] {message}{Style.RESET_ALL}")


def log_debug(message: str):
    if debug_enabled():
        log_info(f"[debug] {message}")


def debug_enabled() -> bool:
    return env_bool("SEARCH_DEBUG", False)


def colorize_url(url: str) -> str:
    return f"{Fore.CYAN}{url}{Style.RESET_ALL}"


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if raw.isdigit():
        return int(raw)
    return default


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if raw in {"1", "true", "yes"}:
        return True
    if raw in {"0", "false", "no"}:
        return False
    return default


def env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    normalized = raw.replace("\n", ";").replace("|", ";")
    return [part.strip() for part in normalized.split(";") if part.strip()]


def stable_id(*parts: str) -> str:
    """Hash stable source attributes into a short identity string."""
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update((part or "").encode("utf-8"))
        hasher.update(b"\x00")
    # 16 hex chars = 64 bits, ample for a few thousand entries
    return hasher.hexdigest()[:16]
