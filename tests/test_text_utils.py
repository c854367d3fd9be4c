"""Tests for text normalization and the pinyin sidecar."""

from __future__ import annotations

from launcher.text_utils import (
    build_phonetic_index,
    normalize_phonetic,
    normalize_text,
    parse_phonetic_index,
    split_query_terms,
)


def test_normalize_text_folds_width_case_and_separators() -> None:
    assert normalize_text("  Ｖｉｓｕａｌ\u200bCode ") == "visual code"
    assert normalize_text("") == ""


def test_split_query_terms() -> None:
    assert split_query_terms("  vis   code ") == ["vis", "code"]
    assert split_query_terms("   ") == []


def test_normalize_phonetic_han() -> None:
    assert normalize_phonetic("微信") == ("weixin", "wx")


def test_normalize_phonetic_mixed_keeps_only_readings() -> None:
    assert normalize_phonetic("QQ音乐") == ("yinyue", "yy")


def test_normalize_phonetic_without_readings_is_none() -> None:
    """ASCII-only input never produces an empty string."""
    assert normalize_phonetic("Notepad") is None
    assert normalize_phonetic("") is None
    assert normalize_phonetic("123 !?") is None


def test_normalize_phonetic_drops_initials_equal_to_syllables() -> None:
    assert normalize_phonetic("呃") == ("e", None)


def test_build_phonetic_index_packs_each_fragment() -> None:
    assert build_phonetic_index(["微信", "Notepad", None]) == "weixin|wx"
    assert build_phonetic_index(["Notepad"]) is None
    packed = build_phonetic_index(["微信", "音乐"])
    assert packed == "weixin|wx yinyue|yy"


def test_parse_phonetic_index() -> None:
    assert parse_phonetic_index("weixin|wx e") == [("weixin", "wx"), ("e", None)]
    assert parse_phonetic_index(None) == []
