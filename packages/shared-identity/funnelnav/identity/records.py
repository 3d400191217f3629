"""Identity records for cross-session attendee resolution.

This module provides the data structures maintained by the
``IdentityResolutionEngine``: canonical identities, pending review cases, the
append-only merge log, blocklist entries and per-session attendance records.

Examples:
    Creating an identity and recording a new alias:
        >>> identity = CanonicalIdentity(canonical_id="c1", canonical_name="Lori Smith")
        >>> identity.add_alias("Lori S")
        True
        >>> identity.add_alias("lori s")
        False
        >>> sorted(identity.name_aliases)
        ['Lori S', 'Lori Smith']

    Blocklist matching:
        >>> BlocklistEntry(name_pattern="^admin$", added_by="ops").matches("Admin")
        True
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from funnelnav.identity.names import normalize_name


class ReviewStatus(str, Enum):
    """Lifecycle of a pending review case."""

    PENDING = "pending"
    MERGED = "merged"
    KEPT_SEPARATE = "kept_separate"
    MARKED_NOTETAKER = "marked_notetaker"

    @property
    def is_terminal(self) -> bool:
        return self is not ReviewStatus.PENDING


class ReviewDecision(str, Enum):
    """Operator decision for a pending review case."""

    MERGE = "merge"
    KEEP_SEPARATE = "keep_separate"
    MARK_NOTETAKER = "mark_notetaker"


class MergeAction(str, Enum):
    """Action recorded in the merge log."""

    NEW_RECORD = "new_record"
    AUTO_MERGE_FUZZY = "auto_merge_fuzzy"
    AUTO_MERGE_NAME = "auto_merge_name"
    AUTO_MERGE_EMAIL = "auto_merge_email"
    ALIAS_ADDED = "alias_added"
    NOTE_TAKER_REMOVED = "note_taker_removed"
    MANUAL_MERGE = "manual_merge"
    NAME_OVERRIDE = "name_override"


class SightingAction(str, Enum):
    """How the engine handled one incoming sighting."""

    DISCARDED_BLOCKLIST = "discarded_blocklist"
    IGNORED_NOTE_TAKER = "ignored_note_taker"
    MATCHED = "matched"
    AUTO_MERGED = "auto_merged"
    PENDING_REVIEW = "pending_review"
    CREATED = "created"


class MutationKind(str, Enum):
    """Side effect the identity store collaborator must persist."""

    UPSERT_IDENTITY = "upsert_identity"
    DELETE_IDENTITY = "delete_identity"
    APPEND_LOG = "append_log"
    UPSERT_REVIEW_CASE = "upsert_review_case"
    UPSERT_ATTENDANCE = "upsert_attendance"
    REMAP_ATTENDANCE = "remap_attendance"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class CanonicalIdentity:
    """The single deduplicated record representing one real person.

    ``name_aliases`` holds every display name ever observed for the person and
    only grows. Membership checks compare normalized names.

    Attributes:
        canonical_id: Stable unique identifier
        canonical_name: Display name shown in reports
        name_aliases: Observed display names (includes the canonical name)
        external_user_ids: Provider user ids seen for this person
        email: Primary email, set once known
        total_appearances: Number of sessions attended
        first_seen_date: ``YYYY-MM-DD`` of the first attended session
        is_note_taker: Excluded from all attendance counts when True
        merged_from: Canonical ids absorbed into this identity
    """

    canonical_id: str
    canonical_name: str
    name_aliases: set[str] = field(default_factory=set)
    external_user_ids: set[str] = field(default_factory=set)
    email: str | None = None
    total_appearances: int = 0
    first_seen_date: str | None = None
    is_note_taker: bool = False
    merged_from: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.canonical_name:
            self.add_alias(self.canonical_name)

    @property
    def alias_keys(self) -> set[str]:
        """Normalized forms of every alias."""
        return {normalize_name(alias) for alias in self.name_aliases}

    def has_alias(self, name: str) -> bool:
        return normalize_name(name) in self.alias_keys

    def add_alias(self, name: str) -> bool:
        """Add a display name to the alias set.

        Returns:
            True if the alias was new.
        """
        trimmed = str(name or "").strip()
        if not trimmed or self.has_alias(trimmed):
            return False
        self.name_aliases.add(trimmed)
        return True

    def observe_date(self, date_key: str | None) -> None:
        """Move ``first_seen_date`` earlier if ``date_key`` precedes it."""
        if date_key and (self.first_seen_date is None or date_key < self.first_seen_date):
            self.first_seen_date = date_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for the identity store."""
        return {
            "canonical_id": self.canonical_id,
            "canonical_name": self.canonical_name,
            "name_aliases": sorted(self.name_aliases),
            "external_user_ids": sorted(self.external_user_ids),
            "email": self.email,
            "total_appearances": self.total_appearances,
            "first_seen_date": self.first_seen_date,
            "is_note_taker": self.is_note_taker,
            "merged_from": list(self.merged_from),
        }


@dataclass
class PendingReviewCase:
    """A possible duplicate awaiting a human decision.

    ``candidate_a`` is the pre-existing identity, ``candidate_b`` the identity
    created for the ambiguous sighting. Terminal cases are never reopened.
    """

    case_id: str
    candidate_a: str
    candidate_b: str
    confidence: int
    reason: str
    status: ReviewStatus = ReviewStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    resolved_at: datetime | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be between 0 and 100, got {self.confidence}")

    @property
    def is_pending(self) -> bool:
        return self.status == ReviewStatus.PENDING

    def involves(self, canonical_id: str) -> bool:
        return canonical_id in (self.candidate_a, self.candidate_b)

    def pair(self) -> frozenset[str]:
        return frozenset((self.candidate_a, self.candidate_b))

    def to_dict(self) -> dict[str, Any]:
        return {
            "case_id": self.case_id,
            "candidate_a": self.candidate_a,
            "candidate_b": self.candidate_b,
            "confidence": self.confidence,
            "reason": self.reason,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class MergeLogEntry:
    """Append-only audit record of an identity decision."""

    action: MergeAction
    source_name: str
    target_canonical_id: str
    target_canonical_name: str
    confidence: int
    reason: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "source_name": self.source_name,
            "target_canonical_id": self.target_canonical_id,
            "target_canonical_name": self.target_canonical_name,
            "confidence": self.confidence,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class BlocklistEntry:
    """A name pattern or provider user id that is never counted as a person.

    ``name_pattern`` is a case-insensitive regular expression searched in the
    normalized name; an invalid expression is matched literally.
    """

    name_pattern: str | None = None
    external_user_id: str | None = None
    added_by: str = "system"
    _compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name_pattern and not self.external_user_id:
            raise ValueError("BlocklistEntry needs a name_pattern or an external_user_id")
        if self.name_pattern:
            try:
                self._compiled = re.compile(self.name_pattern, re.IGNORECASE)
            except re.error:
                self._compiled = re.compile(re.escape(self.name_pattern), re.IGNORECASE)

    def matches(self, name: str | None, external_user_id: str | None = None) -> bool:
        if self.external_user_id and external_user_id and self.external_user_id == external_user_id:
            return True
        if self._compiled is not None and name:
            return bool(self._compiled.search(normalize_name(name)))
        return False


@dataclass(frozen=True)
class Sighting:
    """One attendee observed in one session, after session dedupe."""

    session_id: str
    name: str
    date_key: str | None = None
    external_user_id: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class AttendanceRecord:
    """A canonical identity attending a session."""

    session_id: str
    date_key: str | None
    canonical_id: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.session_id, self.canonical_id)


@dataclass(frozen=True)
class IdentityMutation:
    """Side-effect description emitted for the identity store collaborator."""

    kind: MutationKind
    payload: dict[str, Any]


@dataclass
class ResolutionOutcome:
    """Result of processing one sighting."""

    sighting: Sighting
    action: SightingAction
    identity: CanonicalIdentity | None = None
    confidence: int = 0
    pending_case: PendingReviewCase | None = None
    mutations: list[IdentityMutation] = field(default_factory=list)

    @property
    def counted(self) -> bool:
        """Return True if the sighting produced an attendance record."""
        return self.action not in (
            SightingAction.DISCARDED_BLOCKLIST,
            SightingAction.IGNORED_NOTE_TAKER,
        )
