"""Text normalization and phonetic (pinyin) sidecar utilities."""
from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Tuple

from pypinyin import Style, lazy_pinyin

SYSTEM_VERSION = "0.3.0"

INVISIBLE_SEPARATORS_PATTERN = re.compile(r"[\u200b\u200c\u200d\u2060\ufeff\u00a0\u202f]")
PHONETIC_UNIT_SEPARATOR = "|"


def normalize_invisible_separators(text: str) -> str:
    if not text:
        return ""
    return INVISIBLE_SEPARATORS_PATTERN.sub(" ", text)


def normalize_text(text: str) -> str:
    """NFKC + casefold normalization used for every match comparison."""
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text)
    text = normalize_invisible_separators(text)
    text = text.casefold()
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def split_query_terms(query: str) -> List[str]:
    return [term for term in (query or "").split() if term]


def _readings(fragment: str) -> List[str]:
    # errors="ignore" drops every character without a reading
    readings = lazy_pinyin(fragment, style=Style.NORMAL, errors="ignore")
    syllables: List[str] = []
    for reading in readings:
        syllable = "".join(ch for ch in reading.lower() if "a" <= ch <= "z")
        if syllable:
            syllables.append(syllable)
    return syllables


def normalize_phonetic(fragment: str) -> Tuple[str, str | None] | None:
    """Convert a text fragment to (syllables, initials).

    Returns None when no character has a phonetic reading. ``initials`` is
    None when it would equal ``syllables`` (single-letter readings only).
    """
    if not fragment:
        return None
    syllables = _readings(fragment)
    if not syllables:
        return None
    joined = "".join(syllables)
    initials = "".join(s[0] for s in syllables)
    if initials == joined:
        return joined, None
    return joined, initials


def pack_phonetic_unit(syllables: str, initials: str | None) -> str:
    if initials:
        return f"{syllables}{PHONETIC_UNIT_SEPARATOR}{initials}"
    return syllables


def build_phonetic_index(fragments: Iterable[str | None]) -> str | None:
    """Normalize each fragment independently and pack the results.

    Units are joined by a single space, each written as ``syllables`` or
    ``syllables|initials``.
    """
    parts: List[str] = []
    for fragment in fragments:
        if not fragment:
            continue
        normalized = normalize_phonetic(fragment)
        if normalized is None:
            continue
        parts.append(pack_phonetic_unit(*normalized))
    if not parts:
        return None
    return " ".join(parts)


def parse_phonetic_index(packed: str | None) -> List[Tuple[str | None, str | None]]:
    """Split a packed phonetic index back into (syllables, initials) pairs."""
    units: List[Tuple[str | None, str | None]] = []
    if not packed:
        return units
    for unit in packed.split():
        if PHONETIC_UNIT_SEPARATOR in unit:
            full, initials = unit.split(PHONETIC_UNIT_SEPARATOR, 1)
            units.append((full or None, initials or None))
        else:
            units.append((unit, None))
    return units
