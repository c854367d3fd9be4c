"""Hotkey strings and the interactive capture session."""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Tuple

from .utils import log_info, log_notice

SYSTEM_VERSION = "0.3.0"

MOD_CTRL = 0b0001
MOD_SHIFT = 0b0010
MOD_ALT = 0b0100
MOD_SUPER = 0b1000

# (mask, shortcut literal, display literal), in display order
MODIFIERS = (
    (MOD_SHIFT, "shift", "Shift"),
    (MOD_CTRL, "control", "Ctrl"),
    (MOD_ALT, "alt", "Alt"),
    (MOD_SUPER, "super", "Win"),
)
MODIFIER_ALIASES = {
    "shift": MOD_SHIFT,
    "ctrl": MOD_CTRL,
    "control": MOD_CTRL,
    "alt": MOD_ALT,
    "option": MOD_ALT,
    "super": MOD_SUPER,
    "win": MOD_SUPER,
    "meta": MOD_SUPER,
    "cmd": MOD_SUPER,
}
ESCAPE_LITERAL = "escape"


@dataclass(frozen=True)
class KeyEntry:
    literal: str
    display: str
    allow_plain: bool = False


def _key_entries() -> List[KeyEntry]:
    entries = [KeyEntry(f"Key{c}", c) for c in "ABCDEFGHIJKLMNOPQRSTUVWXYZ"]
    entries += [KeyEntry(f"Digit{d}", str(d)) for d in range(10)]
    entries += [
        KeyEntry("Minus", "-"),
        KeyEntry("Equal", "="),
        KeyEntry("BracketLeft", "["),
        KeyEntry("BracketRight", "]"),
        KeyEntry("Backslash", "\\"),
        KeyEntry("Semicolon", ";"),
        KeyEntry("Quote", "'"),
        KeyEntry("Comma", ","),
        KeyEntry("Period", "."),
        KeyEntry("Slash", "/"),
        KeyEntry("Backquote", "`"),
        KeyEntry("Space", "Space"),
        KeyEntry("Tab", "Tab"),
        KeyEntry("Enter", "Enter"),
        KeyEntry("Backspace", "Backspace"),
        KeyEntry("Delete", "Delete"),
        KeyEntry("Insert", "Insert"),
        KeyEntry("Home", "Home"),
        KeyEntry("End", "End"),
        KeyEntry("PageUp", "PageUp"),
        KeyEntry("PageDown", "PageDown"),
        KeyEntry("ArrowUp", "Up"),
        KeyEntry("ArrowDown", "Down"),
        KeyEntry("ArrowLeft", "Left"),
        KeyEntry("ArrowRight", "Right"),
        KeyEntry("Escape", "Esc"),
    ]
    entries += [KeyEntry(f"F{n}", f"F{n}", allow_plain=True) for n in range(1, 25)]
    return entries


KEY_ENTRIES = _key_entries()


def modifier_literals(mask: int) -> Tuple[str, str]:
    shortcut_parts = [literal for bit, literal, _ in MODIFIERS if mask & bit]
    display_parts = [display for bit, _, display in MODIFIERS if mask & bit]
    return "+".join(shortcut_parts), "+".join(display_parts)


def build_shortcut_catalog() -> Tuple[List[str], Dict[str, str]]:
    """Every capturable shortcut literal and its lowercase-literal -> display map.

    Plain keys are only capturable for function keys; a plain Escape cancels.
    """
    shortcuts = ["Escape"]
    display_map: Dict[str, str] = {}
    for entry in KEY_ENTRIES:
        if entry.allow_plain:
            shortcuts.append(entry.literal)
            display_map[entry.literal.lower()] = entry.display
        for mask in range(1, 16):
            modifier_literal, display_literal = modifier_literals(mask)
            shortcut_literal = f"{modifier_literal}+{entry.literal}"
            display_map[shortcut_literal.lower()] = f"{display_literal}+{entry.display}"
            shortcuts.append(shortcut_literal)
    return shortcuts, display_map


# --- ホットキー文字列 ---
@dataclass(frozen=True)
class HotkeySpec:
    modifiers: FrozenSet[str]
    key: str


def _lookup_key(token: str) -> str | None:
    lowered = token.lower()
    for entry in KEY_ENTRIES:
        if lowered in (entry.literal.lower(), entry.display.lower()):
            return entry.display
    aliases = {"esc": "Esc", "return": "Enter", "up": "Up", "down": "Down", "left": "Left", "right": "Right"}
    return aliases.get(lowered)


def parse_hotkey(text: str) -> HotkeySpec | None:
    """Parse a ``Ctrl+Alt+K``-style string; None when malformed."""
    mask = 0
    key = None
    for token in (text or "").split("+"):
        token = token.strip()
        if not token:
            continue
        bit = MODIFIER_ALIASES.get(token.lower())
        if bit is not None:
            mask |= bit
            continue
        if key is not None:
            return None
        key = _lookup_key(token)
        if key is None:
            return None
    if key is None:
        return None
    modifiers = frozenset(display for bit, _, display in MODIFIERS if mask & bit)
    return HotkeySpec(modifiers=modifiers, key=key)


def format_hotkey(hotkey: HotkeySpec) -> str:
    parts = [display for _, _, display in MODIFIERS if display in hotkey.modifiers]
    parts.append(hotkey.key)
    return "+".join(parts)


def normalize_hotkey(text: str) -> str | None:
    parsed = parse_hotkey(text)
    return format_hotkey(parsed) if parsed else None


# --- キャプチャ ---
class CaptureEvent(Enum):
    RESULT = "result"
    CANCELLED = "cancelled"
    INVALID = "invalid"


class HotkeyRegistry:
    """Tracks the registered global hotkey and whether capture suspends it."""

    def __init__(self, hotkey: str | None = None) -> None:
        self._lock = threading.Lock()
        self.hotkey = hotkey
        self.suspended = False

    def register(self, hotkey: str | None) -> None:
        with self._lock:
            self.hotkey = hotkey

    def suspend(self) -> str | None:
        with self._lock:
            if self.suspended:
                raise RuntimeError("既にホットキーのキャプチャが進行中です")
            self.suspended = True
            previous, self.hotkey = self.hotkey, None
            return previous

    def resume(self, previous: str | None) -> None:
        with self._lock:
            if self.hotkey is None:
                self.hotkey = previous
            self.suspended = False


@dataclass
class HotkeyCaptureSession:
    registry: HotkeyRegistry
    previous_hotkey: str | None
    display_map: Dict[str, str]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    result: str | None = None
    active: bool = True

    def feed(self, literal: str) -> CaptureEvent:
        """Handle one pressed shortcut literal (e.g. ``control+alt+KeyK``)."""
        if not self.active:
            raise RuntimeError("キャプチャは終了しています")
        normalized = (literal or "").strip().lower()
        if normalized == ESCAPE_LITERAL:
            stop_capture(self)
            return CaptureEvent.CANCELLED
        display = self.display_map.get(normalized)
        if display is None:
            return CaptureEvent.INVALID
        self.result = display
        stop_capture(self)
        return CaptureEvent.RESULT


def start_capture(registry: HotkeyRegistry) -> HotkeyCaptureSession:
    """Suspend the registered hotkey and return a capture session handle."""
    previous = registry.suspend()
    _, display_map = build_shortcut_catalog()
    log_info(f"ホットキーのキャプチャを開始しました (現在: {previous or 'なし'})")
    return HotkeyCaptureSession(registry=registry, previous_hotkey=previous, display_map=display_map)


def stop_capture(session: HotkeyCaptureSession) -> None:
    """End the session and restore the previously registered hotkey. Idempotent."""
    if not session.active:
        return
    session.active = False
    session.registry.resume(session.previous_hotkey)
    if session.result is None:
        log_notice("ホットキーのキャプチャを終了しました")
    else:
        log_info(f"ホットキーを取得しました: {session.result}")
