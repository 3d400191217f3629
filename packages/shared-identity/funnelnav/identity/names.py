"""String utilities for meeting participant names.

All helpers are pure and tolerate ``None``. They provide the normalized keys
that every other identity component compares on.

Examples:
    >>> normalize_name("  Lori   SMITH ")
    'lori smith'
    >>> tokenize("Chris Lipper: Functional Coach")
    ['chris', 'lipper', 'functional', 'coach']
    >>> strip_device_suffix("Lori's iPhone")
    'lori'
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_HAS_LETTER = re.compile(r"[a-z]")

# "Lori's iPhone", "Lori’s Galaxy"
DEVICE_SUFFIX_PATTERN = re.compile(
    r"['’]s\s*(iphone|ipad|android|galaxy|phone|pc|macbook)$", re.IGNORECASE
)
# "Lori (iPhone)"
DEVICE_PAREN_PATTERN = re.compile(r"\s*\((iphone|ipad|android|galaxy|phone)\)$", re.IGNORECASE)
DEVICE_NAME_PATTERN = re.compile(r"iphone|ipad|android|galaxy", re.IGNORECASE)


def normalize_name(value: str | None) -> str:
    """Lower-case, trim and collapse internal whitespace.

    Args:
        value: Raw name.

    Returns:
        Normalized name, or empty string for ``None``.
    """
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value).lower().strip())


def normalize_for_tokens(value: str | None) -> str:
    """Normalize a name and replace punctuation with spaces."""
    cleaned = _NON_ALNUM.sub(" ", normalize_name(value))
    return _WHITESPACE.sub(" ", cleaned).strip()


def tokenize(value: str | None) -> list[str]:
    """Split a name into lowercase alphanumeric tokens."""
    return [token for token in normalize_for_tokens(value).split(" ") if token]


def has_letter(token: str) -> bool:
    """Return True if the token contains at least one ASCII letter."""
    return bool(_HAS_LETTER.search(token))


def to_display_token(token: str) -> str:
    """Title-case a token; tokens without letters are upper-cased.

    Examples:
        >>> to_display_token("bakiyev")
        'Bakiyev'
        >>> to_display_token("3d")
        '3d'
        >>> to_display_token("42")
        '42'
    """
    if not has_letter(token.lower()):
        return token.upper()
    return token[:1].upper() + token[1:].lower()


def strip_device_suffix(value: str | None) -> str:
    """Normalize a name and drop a trailing device marker.

    Examples:
        >>> strip_device_suffix("Ken (iPhone)")
        'ken'
        >>> strip_device_suffix("Emil Bakiyev")
        'emil bakiyev'
    """
    name = normalize_name(value)
    name = DEVICE_SUFFIX_PATTERN.sub("", name)
    name = DEVICE_PAREN_PATTERN.sub("", name)
    return name.strip()


def is_device_name(value: str | None, pattern: re.Pattern[str] = DEVICE_NAME_PATTERN) -> bool:
    """Return True if the name looks like a phone or tablet label."""
    return bool(pattern.search(normalize_name(value)))


def contains_bot_keyword(value: str | None, keywords: Iterable[str]) -> bool:
    """Return True if the normalized name contains any bot/notetaker keyword."""
    name = normalize_name(value)
    return bool(name) and any(keyword in name for keyword in keywords)


def match_key(value: str | None) -> str:
    """Build the comparison key used to match attendees across data sources.

    Device suffixes are removed, punctuation becomes whitespace and
    whitespace is collapsed.

    Examples:
        >>> match_key("Lori’s iPhone")
        'lori'
        >>> match_key("O'Brien,  Pat")
        'o brien pat'
    """
    return normalize_for_tokens(strip_device_suffix(value))
