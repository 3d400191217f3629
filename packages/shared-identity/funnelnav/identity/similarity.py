"""Similarity scoring between a sighting and existing canonical identities.

Scores are integers on a 0-100 scale. The base score is RapidFuzz's
``token_sort_ratio`` over punctuation-free names, so word order does not
matter ("Smith Lori" vs "Lori Smith"). Structured boosts cover the common
roster patterns that edit distance underrates:

- a shared provider user id scores 100;
- the same first name plus a last initial matching the other last name
  ("Keith K" vs "Keith Knick") scores 92 as a name match;
- the same email local part on a different domain scores 90 as an email match.

Example:
    >>> name_similarity("Jon Smith", "John Smith") >= 90
    True
    >>> first_name_last_initial_match("Keith K", "Keith Knick")
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from rapidfuzz import fuzz

from funnelnav.identity.names import normalize_for_tokens, tokenize

if TYPE_CHECKING:
    from funnelnav.identity.records import CanonicalIdentity

EXTERNAL_ID_SCORE = 100
NAME_INITIAL_SCORE = 92
EMAIL_LOCAL_PART_SCORE = 90


class MatchKind(str, Enum):
    """Which signal produced a similarity score."""

    EXTERNAL_ID = "external_id"
    EMAIL = "email"
    NAME = "name"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class MatchScore:
    """Best similarity between a sighting and one identity."""

    canonical_id: str
    score: int
    kind: MatchKind
    reason: str


def name_similarity(a: str | None, b: str | None) -> int:
    """Return the order-insensitive fuzzy similarity of two names (0-100)."""
    left = normalize_for_tokens(a)
    right = normalize_for_tokens(b)
    if not left or not right:
        return 0
    return int(round(fuzz.token_sort_ratio(left, right)))


def first_name_last_initial_match(a: str | None, b: str | None) -> bool:
    """Return True for ``"First L"`` vs ``"First Last"`` style pairs.

    Both names need exactly two tokens with the same first token (two or
    more characters). One last token must be a single letter equal to the
    first letter of the other last token, which must be longer.
    """
    left = tokenize(a)
    right = tokenize(b)
    if len(left) != 2 or len(right) != 2:
        return False
    if left[0] != right[0] or len(left[0]) < 2:
        return False

    short, long_ = sorted((left[1], right[1]), key=len)
    return len(short) == 1 and len(long_) > 1 and long_.startswith(short)


def split_email(email: str | None) -> tuple[str, str]:
    """Split an email into ``(local_part, domain)``, lowercased."""
    value = str(email or "").strip().lower()
    if "@" not in value:
        return "", ""
    local, _, domain = value.rpartition("@")
    return local, domain


def email_local_part_match(a: str | None, b: str | None) -> bool:
    """Return True if two emails share a local part but differ in domain."""
    local_a, domain_a = split_email(a)
    local_b, domain_b = split_email(b)
    return bool(local_a) and local_a == local_b and domain_a != domain_b


def score_identity(
    identity: CanonicalIdentity,
    name: str,
    email: str | None = None,
    external_user_id: str | None = None,
) -> MatchScore:
    """Score a sighting against every alias of one identity.

    Args:
        identity: Existing canonical identity.
        name: Canonical name of the sighting.
        email: Sighting email, if known.
        external_user_id: Provider user id, if known.

    Returns:
        The highest scoring signal for this identity.
    """
    if external_user_id and external_user_id in identity.external_user_ids:
        return MatchScore(
            identity.canonical_id, EXTERNAL_ID_SCORE, MatchKind.EXTERNAL_ID, "shared external user id"
        )

    best = MatchScore(identity.canonical_id, 0, MatchKind.FUZZY, "no similarity")
    for alias in identity.name_aliases:
        if first_name_last_initial_match(name, alias):
            candidate = MatchScore(
                identity.canonical_id,
                NAME_INITIAL_SCORE,
                MatchKind.NAME,
                f"first name and last initial match alias {alias!r}",
            )
        else:
            score = name_similarity(name, alias)
            candidate = MatchScore(
                identity.canonical_id, score, MatchKind.FUZZY, f"fuzzy {score} vs alias {alias!r}"
            )
        if candidate.score > best.score:
            best = candidate

    if identity.email and email_local_part_match(email, identity.email):
        if EMAIL_LOCAL_PART_SCORE > best.score:
            best = MatchScore(
                identity.canonical_id,
                EMAIL_LOCAL_PART_SCORE,
                MatchKind.EMAIL,
                "email local part matches on a different domain",
            )

    return best
