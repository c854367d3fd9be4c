"""Ranking engine: multi-field fuzzy scoring over the canonical index."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple
from urllib.parse import quote

from rapidfuzz import fuzz
from rapidfuzz.distance import LCSseq

from .config import SEARCH_ENGINE_URL, SearchConfig
from .models import (
    APP_TYPE_PACKAGED,
    ApplicationEntry,
    BookmarkEntry,
    LaunchApplication,
    OpenBookmark,
    OpenUrl,
    PendingAction,
    SearchResult,
    WebSearch,
)
from .text_utils import normalize_text, parse_phonetic_index, split_query_terms

SYSTEM_VERSION = "0.3.0"

# --- フィールド重み ---
PRIMARY_WEIGHT = 100
INITIALS_WEIGHT = 80
SYLLABLES_WEIGHT = 70
KEYWORD_WEIGHT = 50
FOLDER_WEIGHT = 40
URL_WEIGHT = 30

# --- トークン単位のボーナス ---
TOKEN_EXACT_BONUS = 60
TOKEN_PREFIX_BONUS = 40
TOKEN_CONTAINS_BONUS = 20
LENGTH_PENALTY_CAP = 20

# --- クエリ全体のボーナス ---
QUERY_EXACT_BONUS = 100
QUERY_PREFIX_BONUS = 50
QUERY_CONTAINS_BONUS = 25

URL_RESULT_SCORE = 200
WEB_SEARCH_SCORE = -(2**63)

SearchOutput = Tuple[List[SearchResult], Dict[str, PendingAction]]


class QueryMode(Enum):
    ALL = "all"
    BOOKMARK = "bookmark"
    APPLICATION = "application"
    SEARCH = "search"

    @classmethod
    def parse(cls, value: "str | QueryMode | None") -> "QueryMode":
        if isinstance(value, QueryMode):
            return value
        normalized = (value or "").strip().lower()
        if normalized in {"bookmark", "bookmarks", "b"}:
            return cls.BOOKMARK
        if normalized in {"app", "apps", "application", "r"}:
            return cls.APPLICATION
        if normalized in {"search", "s"}:
            return cls.SEARCH
        return cls.ALL

    @property
    def allows_bookmarks(self) -> bool:
        return self in (QueryMode.ALL, QueryMode.BOOKMARK)

    @property
    def allows_applications(self) -> bool:
        return self in (QueryMode.ALL, QueryMode.APPLICATION)

    @property
    def allows_web_search(self) -> bool:
        return self in (QueryMode.ALL, QueryMode.SEARCH)


@dataclass(frozen=True)
class MatchField:
    text: str
    weight: int
    primary: bool = False


def is_url_like(text: str) -> bool:
    if text.startswith("http://") or text.startswith("https://"):
        return True
    return "." in text and len(text.split()) == 1


def fuzzy_score(text: str, token: str) -> int | None:
    """Subsequence-alignment score (0-100) of token against text.

    None when the token is not a subsequence of the text.
    """
    if not text or not token or len(token) > len(text):
        return None
    if LCSseq.similarity(token, text) < len(token):
        return None
    return int(round(fuzz.partial_ratio(token, text)))


def score_token(field: MatchField, token: str) -> int | None:
    base = fuzzy_score(field.text, token)
    if base is None:
        return None
    if field.text == token:
        bonus = TOKEN_EXACT_BONUS
    elif field.text.startswith(token):
        bonus = TOKEN_PREFIX_BONUS
    elif token in field.text:
        bonus = TOKEN_CONTAINS_BONUS
    else:
        bonus = 0
    penalty = min(max(len(field.text) - len(token), 0), LENGTH_PENALTY_CAP)
    return base + field.weight + bonus - penalty


def query_bonus(fields: Sequence[MatchField], query: str) -> int:
    best = 0
    for field in fields:
        if not field.primary or not field.text:
            continue
        if field.text == query:
            candidate = field.weight + QUERY_EXACT_BONUS
        elif field.text.startswith(query):
            candidate = field.weight + QUERY_PREFIX_BONUS
        elif query in field.text:
            candidate = field.weight + QUERY_CONTAINS_BONUS
        else:
            continue
        best = max(best, candidate)
    return best


def score_fields(fields: Sequence[MatchField], tokens: Sequence[str], query: str) -> int | None:
    """Sum each token's best field score; None if any token finds no field."""
    if not tokens:
        return None
    total = 0
    for token in tokens:
        best = None
        for field in fields:
            score = score_token(field, token)
            if score is not None and (best is None or score > best):
                best = score
        if best is None:
            return None
        total += best
    return total + query_bonus(fields, query)


def _phonetic_fields(packed: str | None) -> List[MatchField]:
    fields: List[MatchField] = []
    for syllables, initials in parse_phonetic_index(packed):
        if syllables:
            fields.append(MatchField(syllables, SYLLABLES_WEIGHT))
        if initials:
            fields.append(MatchField(initials, INITIALS_WEIGHT))
    return fields


def _keyword_fields(keywords: Sequence[str]) -> List[MatchField]:
    return [MatchField(normalize_text(k), KEYWORD_WEIGHT) for k in keywords if k and k.strip()]


def application_fields(app: ApplicationEntry) -> List[MatchField]:
    fields = [MatchField(normalize_text(app.name), PRIMARY_WEIGHT, primary=True)]
    fields.extend(_phonetic_fields(app.phonetic_index))
    fields.extend(_keyword_fields(app.keywords))
    return fields


def bookmark_fields(bookmark: BookmarkEntry) -> List[MatchField]:
    fields = [MatchField(normalize_text(bookmark.title), PRIMARY_WEIGHT, primary=True)]
    fields.extend(_phonetic_fields(bookmark.phonetic_index))
    fields.extend(_keyword_fields(bookmark.keywords))
    if bookmark.folder_path:
        fields.append(MatchField(normalize_text(bookmark.folder_path), FOLDER_WEIGHT))
    fields.append(MatchField(normalize_text(bookmark.url), URL_WEIGHT))
    return fields


def application_subtitle(app: ApplicationEntry) -> str:
    if app.description:
        return app.description
    return app.source_path or app.path


def bookmark_subtitle(bookmark: BookmarkEntry) -> str:
    if bookmark.folder_path:
        return f"Bookmarks · {bookmark.folder_path} · {bookmark.url}"
    return f"Bookmarks · {bookmark.url}"


def web_search_url(query: str) -> str:
    return SEARCH_ENGINE_URL.format(query=quote(query, safe=""))


def search(
    query: str,
    mode: "str | QueryMode | None",
    app_index: Sequence[ApplicationEntry],
    bookmark_index: Sequence[BookmarkEntry],
    config: SearchConfig,
) -> SearchOutput:
    """Rank the index against a query.

    Returns the ordered results and the action bound to each result id.
    """
    trimmed = (query or "").strip()
    if not trimmed:
        return [], {}
    query_mode = QueryMode.parse(mode)
    tokens = [normalize_text(term) for term in split_query_terms(trimmed)]
    tokens = [token for token in tokens if token]
    if not tokens:
        return [], {}
    query_norm = normalize_text(trimmed)

    actions: Dict[str, PendingAction] = {}
    leading: List[SearchResult] = []
    if is_url_like(trimmed):
        result_id = f"url:{trimmed}"
        actions[result_id] = OpenUrl(trimmed)
        leading.append(
            SearchResult(
                id=result_id,
                title=f"Open URL: {trimmed}",
                subtitle=trimmed,
                score=URL_RESULT_SCORE,
                action_id="url",
            )
        )

    ranked: List[SearchResult] = []
    if query_mode.allows_applications and config.enable_app_results:
        for app in app_index:
            score = score_fields(application_fields(app), tokens, query_norm)
            if score is None:
                continue
            result_id = f"app-{app.id}"
            actions[result_id] = LaunchApplication(app)
            ranked.append(
                SearchResult(
                    id=result_id,
                    title=app.name,
                    subtitle=application_subtitle(app),
                    score=score,
                    action_id="uwp" if app.app_type == APP_TYPE_PACKAGED else "app",
                )
            )

    if query_mode.allows_bookmarks and config.enable_bookmark_results:
        for bookmark in bookmark_index:
            score = score_fields(bookmark_fields(bookmark), tokens, query_norm)
            if score is None:
                continue
            result_id = f"bookmark-{bookmark.id}"
            actions[result_id] = OpenBookmark(bookmark)
            ranked.append(
                SearchResult(
                    id=result_id,
                    title=bookmark.title,
                    subtitle=bookmark_subtitle(bookmark),
                    score=score,
                    action_id="bookmark",
                )
            )

    # stable: equal scores keep index order
    ranked.sort(key=lambda result: result.score, reverse=True)
    results = leading + ranked

    limit = config.result_limit
    if query_mode.allows_web_search and limit > 1 and len(results) >= limit:
        results = results[: limit - 1]
    else:
        results = results[:limit]

    if query_mode.allows_web_search:
        result_id = f"search:{trimmed}"
        actions[result_id] = WebSearch(web_search_url(trimmed))
        results.append(
            SearchResult(
                id=result_id,
                title=f"Search Google for: {trimmed}",
                subtitle="Google Search",
                score=WEB_SEARCH_SCORE,
                action_id="search",
            )
        )

    kept_actions = {result.id: actions[result.id] for result in results}
    return results, kept_actions
