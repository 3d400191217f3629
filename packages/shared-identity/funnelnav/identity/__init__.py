"""
FunnelNav Identity - attendee identity resolution for recurring meetings.

Provides:
- Name normalization, canonicalization and alias-chain resolution
- Session-level participant deduplication
- Cross-session canonical identities with auto-merge, pending review,
  blocklist handling and an append-only merge log
- Tuesday/Thursday attendance roll-ups (new vs returning attendees)

Usage:
    from funnelnav.identity import (
        IdentityResolutionEngine,
        SessionDeduper,
        build_alias_map,
    )

    alias_map = build_alias_map(alias_rows)
    attendees = SessionDeduper().dedupe_attendees(participants, alias_map)

    engine = IdentityResolutionEngine()
    outcomes = engine.process_session("session-1", "2025-01-07", attendees)
"""

from funnelnav.identity.aliases import AliasEdge, build_alias_map, merge_alias_edges
from funnelnav.identity.attendance import (
    FirstSeen,
    NetNewDay,
    NetNewSummary,
    ProcessedSession,
    SessionAttendance,
    SessionRecord,
    build_net_new,
    group_for_session,
    select_session_instances,
)
from funnelnav.identity.canonical import Canonicalizer, canonicalize, resolve_alias_chain
from funnelnav.identity.config import DayType, IdentityConfig
from funnelnav.identity.dedupe import DedupedAttendee, RawParticipant, SessionDeduper
from funnelnav.identity.exceptions import (
    AliasError,
    ConfigurationError,
    IdentityError,
    IdentityNotFoundError,
    InvalidMergeError,
    ReviewCaseError,
)
from funnelnav.identity.names import match_key, normalize_name, strip_device_suffix
from funnelnav.identity.records import (
    AttendanceRecord,
    BlocklistEntry,
    CanonicalIdentity,
    IdentityMutation,
    MergeAction,
    MergeLogEntry,
    MutationKind,
    PendingReviewCase,
    ResolutionOutcome,
    ReviewDecision,
    ReviewStatus,
    Sighting,
    SightingAction,
)
from funnelnav.identity.repository import IdentityRepository, InMemoryIdentityRepository
from funnelnav.identity.resolver import IdentityResolutionEngine
from funnelnav.identity.similarity import MatchKind, MatchScore, name_similarity

__all__ = [
    # Names
    "normalize_name",
    "strip_device_suffix",
    "match_key",
    "Canonicalizer",
    "canonicalize",
    "resolve_alias_chain",
    # Aliases
    "AliasEdge",
    "build_alias_map",
    "merge_alias_edges",
    # Dedupe
    "RawParticipant",
    "DedupedAttendee",
    "SessionDeduper",
    # Records
    "CanonicalIdentity",
    "PendingReviewCase",
    "MergeLogEntry",
    "BlocklistEntry",
    "Sighting",
    "AttendanceRecord",
    "IdentityMutation",
    "ResolutionOutcome",
    "ReviewStatus",
    "ReviewDecision",
    "MergeAction",
    "MutationKind",
    "SightingAction",
    # Resolution
    "IdentityRepository",
    "InMemoryIdentityRepository",
    "IdentityResolutionEngine",
    "MatchKind",
    "MatchScore",
    "name_similarity",
    # Attendance
    "DayType",
    "SessionRecord",
    "ProcessedSession",
    "SessionAttendance",
    "NetNewDay",
    "NetNewSummary",
    "FirstSeen",
    "group_for_session",
    "select_session_instances",
    "build_net_new",
    # Config / errors
    "IdentityConfig",
    "IdentityError",
    "ConfigurationError",
    "IdentityNotFoundError",
    "InvalidMergeError",
    "ReviewCaseError",
    "AliasError",
]
