"""Candidate entries, search results, and the actions bound to them."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Union

SYSTEM_VERSION = "0.3.0"

APP_TYPE_NATIVE = "native"
APP_TYPE_PACKAGED = "packaged"
APP_TYPES = {APP_TYPE_NATIVE, APP_TYPE_PACKAGED}


@dataclass
class ApplicationEntry:
    id: str
    name: str
    path: str
    source_path: str | None = None
    app_type: str = APP_TYPE_NATIVE
    description: str | None = None
    keywords: List[str] = field(default_factory=list)
    phonetic_index: str | None = None
    working_directory: str | None = None
    arguments: str | None = None

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def effective_path(self) -> str:
        return self.source_path or self.path

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "source_path": self.source_path,
            "app_type": self.app_type,
            "description": self.description,
            "keywords": list(self.keywords),
            "phonetic_index": self.phonetic_index,
            "working_directory": self.working_directory,
            "arguments": self.arguments,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ApplicationEntry":
        """Build an entry from persisted JSON; raises ValueError on malformed data."""
        if not isinstance(data, dict):
            raise ValueError("entry is not an object")
        for key in ("id", "name", "path"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise ValueError(f"missing '{key}'")
        app_type = data.get("app_type") or APP_TYPE_NATIVE
        if app_type not in APP_TYPES:
            raise ValueError(f"unknown app_type '{app_type}'")
        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            raise ValueError("keywords is not a list")
        return cls(
            id=data["id"],
            name=data["name"],
            path=data["path"],
            source_path=data.get("source_path"),
            app_type=app_type,
            description=data.get("description"),
            keywords=[str(k) for k in keywords],
            phonetic_index=data.get("phonetic_index"),
            working_directory=data.get("working_directory"),
            arguments=data.get("arguments"),
        )


@dataclass
class BookmarkEntry:
    id: str
    title: str
    url: str
    folder_path: str | None = None
    keywords: List[str] = field(default_factory=list)
    phonetic_index: str | None = None

    @property
    def display_name(self) -> str:
        return self.title

    @property
    def effective_path(self) -> str:
        return self.url


CandidateEntry = Union[ApplicationEntry, BookmarkEntry]


@dataclass
class SearchResult:
    id: str
    title: str
    subtitle: str
    score: int
    action_id: str

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "score": self.score,
            "action_id": self.action_id,
        }


# --- PendingAction: 閉じた直和型 ---
@dataclass(frozen=True)
class LaunchApplication:
    entry: ApplicationEntry
    kind = "application"


@dataclass(frozen=True)
class OpenBookmark:
    entry: BookmarkEntry
    kind = "bookmark"


@dataclass(frozen=True)
class OpenUrl:
    url: str
    kind = "url"


@dataclass(frozen=True)
class WebSearch:
    url: str
    kind = "search"


PendingAction = Union[LaunchApplication, OpenBookmark, OpenUrl, WebSearch]


def action_target(action: PendingAction) -> str:
    """Return the path or URL the action points at."""
    if isinstance(action, LaunchApplication):
        return action.entry.path
    if isinstance(action, OpenBookmark):
        return action.entry.url
    if isinstance(action, (OpenUrl, WebSearch)):
        return action.url
    raise TypeError(f"unknown action: {action!r}")


@dataclass
class CachedSearch:
    results: List[SearchResult]
    pending_actions: Dict[str, PendingAction]


@dataclass
class RecentEntry:
    result: SearchResult
    action: PendingAction
