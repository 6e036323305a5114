"""
Text Normalizer Module
======================

Cleans and standardizes set and product names so that the same release
reported by different sources compares equal.
"""

from __future__ import annotations

import html
import re
import unicodedata

# Game-name prefixes dropped from set names; longest first so that
# "pokemon tcg" wins over "pokemon".
GAME_PREFIXES: tuple[str, ...] = (
    "pokemon trading card game",
    "pokemon tcg",
    "pokemon",
    "magic the gathering",
    "magic",
    "mtg",
    "yu gi oh",
    "yugioh",
    "one piece card game",
    "one piece tcg",
    "disney lorcana",
    "lorcana",
    "digimon card game",
)

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
# Separators that split words rather than join them
_SEPARATOR_RE = re.compile(r"[\-‐-―/&+:|]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_PARENTHESIZED_RE = re.compile(r"^(.*?)\s*\((.+?)\)\s*$")
_DASH_SPLIT_RE = re.compile(r"\s*[—–]\s*|\s+-\s+")


def clean_html_text(value: str | None) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not value:
        return ""
    text = _TAG_RE.sub(" ", value)
    text = html.unescape(text).replace("\xa0", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def fold_accents(value: str) -> str:
    """Remove diacritics (é -> e)."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_match(value: str | None) -> str:
    """
    Normalize a name for comparison.

    Folds accents, lowercases, turns separators into spaces, strips the
    remaining punctuation and collapses whitespace.
    """
    if not value:
        return ""
    text = fold_accents(value).lower()
    text = _SEPARATOR_RE.sub(" ", text)
    text = _PUNCTUATION_RE.sub("", text)
    text = text.replace("_", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def drop_game_prefix(normalized: str) -> str:
    """Remove one leading game-name prefix from an already normalized name."""
    for prefix in GAME_PREFIXES:
        if normalized == prefix:
            return ""
        if normalized.startswith(prefix + " "):
            return normalized[len(prefix) + 1 :].strip()
    return normalized


def split_set_name(name: str) -> list[str]:
    """
    Split a set name into its components.

    "A (B)" and "B—A" (em dash, en dash or spaced hyphen) both yield two
    components; anything else yields one.
    """
    match = _PARENTHESIZED_RE.match(name)
    if match and match.group(1).strip():
        return [match.group(1), match.group(2)]

    parts = _DASH_SPLIT_RE.split(name, maxsplit=1)
    if len(parts) == 2 and parts[0].strip() and parts[1].strip():
        return parts
    return [name]


def canonical_set_key(name: str | None) -> str:
    """
    Build the grouping key for a set name.

    Component order and game prefixes do not matter, so
    "Ascended Heroes (Mega Evolution)" and "Mega Evolution—Ascended Heroes"
    share a key.
    """
    if not name:
        return ""
    text = html.unescape(name)

    components = []
    for part in split_set_name(text):
        normalized = drop_game_prefix(normalize_for_match(part))
        if normalized:
            components.append(normalized)

    if not components:
        # Name was nothing but a game prefix
        return normalize_for_match(text)
    return " ".join(sorted(components))
