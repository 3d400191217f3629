"""Cross-session identity resolution.

``IdentityResolutionEngine`` turns deduplicated session attendees into
sightings and evaluates each one against the canonical identities held by an
``IdentityRepository``:

1. Blocklisted names or provider ids are discarded.
2. A direct match (shared provider id, same email, exact alias, or a unique
   whole-word containment of an alias) updates that identity.
3. A single candidate scoring at or above ``auto_merge_threshold`` is merged
   automatically; the sighting becomes an alias of that identity.
4. A candidate in the review band, several strong candidates, or an ambiguous
   containment creates a new identity plus a ``PendingReviewCase``.
5. Anything else creates a new identity.

Every decision appends a ``MergeLogEntry`` and is mirrored as an
``IdentityMutation`` so a durable store can replay it.

Example:
    >>> engine = IdentityResolutionEngine()
    >>> outcome = engine.process_sighting(Sighting("s1", "Lori Smith", "2025-01-07"))
    >>> outcome.action
    <SightingAction.CREATED: 'created'>
    >>> engine.process_sighting(Sighting("s2", "lori smith", "2025-01-09")).action
    <SightingAction.MATCHED: 'matched'>
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from funnelnav.identity.config import IdentityConfig
from funnelnav.identity.dedupe import DedupedAttendee
from funnelnav.identity.exceptions import IdentityError, InvalidMergeError, ReviewCaseError
from funnelnav.identity.names import normalize_name
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
from funnelnav.identity.similarity import MatchKind, MatchScore, score_identity

logger = logging.getLogger(__name__)

AMBIGUOUS_CONTAINMENT_CONFIDENCE = 80

# Shared external user ids are resolved as direct matches before scoring.
_AUTO_MERGE_ACTIONS = {
    MatchKind.EMAIL: MergeAction.AUTO_MERGE_EMAIL,
    MatchKind.NAME: MergeAction.AUTO_MERGE_NAME,
    MatchKind.FUZZY: MergeAction.AUTO_MERGE_FUZZY,
}


def _contains_words(haystack: str, needle: str) -> bool:
    return bool(needle) and f" {needle} " in f" {haystack} "


class IdentityResolutionEngine:
    """Maintain canonical attendee identities across sessions.

    Note:
        This class is NOT thread-safe. Each operator action and each sighting
        runs inside one repository transaction.
    """

    def __init__(
        self,
        repository: IdentityRepository | None = None,
        config: IdentityConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            repository: Identity store. Defaults to an empty in-memory store.
            config: Thresholds. Defaults to ``IdentityConfig()``.
            clock: Returns the current time for log entries and cases.
            id_factory: Returns new canonical and case ids.
        """
        self.repository = repository or InMemoryIdentityRepository()
        self.config = config or IdentityConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._journal: list[IdentityMutation] = []

    # Mutation journal

    def _emit(self, kind: MutationKind, payload: dict[str, Any]) -> None:
        self._journal.append(IdentityMutation(kind=kind, payload=payload))

    def drain_mutations(self) -> list[IdentityMutation]:
        """Return and clear the side effects recorded since the last drain."""
        mutations, self._journal = self._journal, []
        return mutations

    def _save(self, identity: CanonicalIdentity) -> None:
        self.repository.upsert(identity)
        self._emit(MutationKind.UPSERT_IDENTITY, identity.to_dict())

    def _log(
        self,
        action: MergeAction,
        source_name: str,
        target: CanonicalIdentity,
        confidence: int,
        reason: str,
    ) -> MergeLogEntry:
        entry = MergeLogEntry(
            action=action,
            source_name=source_name,
            target_canonical_id=target.canonical_id,
            target_canonical_name=target.canonical_name,
            confidence=confidence,
            reason=reason,
            timestamp=self._clock(),
        )
        self.repository.append_log(entry)
        self._emit(MutationKind.APPEND_LOG, entry.to_dict())
        return entry

    def _save_case(self, case: PendingReviewCase) -> None:
        self.repository.upsert_case(case)
        self._emit(MutationKind.UPSERT_REVIEW_CASE, case.to_dict())

    # Blocklist

    def add_blocklist_entry(self, entry: BlocklistEntry) -> None:
        """Register a name pattern or provider id that is never counted."""
        self.repository.add_blocklist_entry(entry)
        logger.info(
            f"Blocklist entry added by {entry.added_by}: "
            f"pattern={entry.name_pattern!r} user_id={entry.external_user_id!r}"
        )

    def is_blocked(self, sighting: Sighting) -> bool:
        return any(
            entry.matches(sighting.name, sighting.external_user_id)
            for entry in self.repository.list_blocklist()
        )

    # Sightings

    def _direct_matches(self, sighting: Sighting) -> tuple[list[CanonicalIdentity], str]:
        by_external_id = self.repository.find_by_external_id(sighting.external_user_id)
        if by_external_id is not None:
            return [by_external_id], "shared external user id"

        by_email = self.repository.find_by_email(sighting.email)
        if by_email is not None:
            return [by_email], "email match"

        by_alias = self.repository.list_by_alias(sighting.name)
        if by_alias:
            return by_alias, "exact alias match"

        key = normalize_name(sighting.name)
        contained = [
            identity
            for identity in self.repository.list_identities()
            if any(
                _contains_words(alias, key) or _contains_words(key, alias)
                for alias in identity.alias_keys
            )
        ]
        return contained, "name contained in alias"

    def _record_attendance(self, identity: CanonicalIdentity, sighting: Sighting) -> None:
        record = AttendanceRecord(sighting.session_id, sighting.date_key, identity.canonical_id)
        if self.repository.upsert_attendance(record):
            identity.total_appearances += 1
            identity.observe_date(sighting.date_key)
            self._emit(
                MutationKind.UPSERT_ATTENDANCE,
                {
                    "session_id": record.session_id,
                    "date_key": record.date_key,
                    "canonical_id": record.canonical_id,
                },
            )

    def _absorb_sighting(
        self,
        identity: CanonicalIdentity,
        sighting: Sighting,
        log_alias: bool = True,
    ) -> CanonicalIdentity:
        identity = self.repository.require(identity.canonical_id)
        alias_added = identity.add_alias(sighting.name)
        if sighting.email and not identity.email:
            identity.email = sighting.email.strip().lower()
        if sighting.external_user_id:
            identity.external_user_ids.add(sighting.external_user_id)
        self._record_attendance(identity, sighting)
        self._save(identity)
        if alias_added and log_alias:
            self._log(MergeAction.ALIAS_ADDED, sighting.name, identity, 100, "new alias observed")
        return identity

    def _create_identity(self, sighting: Sighting, confidence: int, reason: str) -> CanonicalIdentity:
        identity = CanonicalIdentity(
            canonical_id=self._new_id(),
            canonical_name=sighting.name.strip(),
            email=sighting.email.strip().lower() if sighting.email else None,
        )
        if sighting.external_user_id:
            identity.external_user_ids.add(sighting.external_user_id)
        self._record_attendance(identity, sighting)
        self._save(identity)
        self._log(MergeAction.NEW_RECORD, sighting.name, identity, confidence, reason)
        return identity

    def _open_case(
        self,
        existing: CanonicalIdentity,
        candidate: CanonicalIdentity,
        confidence: int,
        reason: str,
    ) -> PendingReviewCase | None:
        pair = frozenset((existing.canonical_id, candidate.canonical_id))
        for case in self.repository.list_cases(ReviewStatus.PENDING):
            if case.pair() == pair:
                return None

        case = PendingReviewCase(
            case_id=self._new_id(),
            candidate_a=existing.canonical_id,
            candidate_b=candidate.canonical_id,
            confidence=max(0, min(100, confidence)),
            reason=reason,
            created_at=self._clock(),
        )
        self._save_case(case)
        logger.info(
            f"Pending review: {candidate.canonical_name!r} vs {existing.canonical_name!r} "
            f"({confidence}, {reason})"
        )
        return case

    def _ignored(self, sighting: Sighting, identity: CanonicalIdentity) -> ResolutionOutcome:
        logger.debug(f"Ignoring note-taker sighting {sighting.name!r}")
        return ResolutionOutcome(sighting, SightingAction.IGNORED_NOTE_TAKER, identity=identity)

    def _resolve(self, sighting: Sighting) -> ResolutionOutcome:
        if self.is_blocked(sighting):
            logger.debug(f"Discarding blocklisted sighting {sighting.name!r}")
            return ResolutionOutcome(sighting, SightingAction.DISCARDED_BLOCKLIST)

        direct, reason = self._direct_matches(sighting)
        if len(direct) == 1:
            identity = direct[0]
            if identity.is_note_taker:
                return self._ignored(sighting, identity)
            identity = self._absorb_sighting(identity, sighting)
            return ResolutionOutcome(sighting, SightingAction.MATCHED, identity=identity, confidence=100)

        if len(direct) > 1:
            existing = max(direct, key=lambda identity: identity.total_appearances)
            identity = self._create_identity(
                sighting, AMBIGUOUS_CONTAINMENT_CONFIDENCE, f"ambiguous: {reason}"
            )
            case = self._open_case(
                existing,
                identity,
                AMBIGUOUS_CONTAINMENT_CONFIDENCE,
                f"{reason} for {len(direct)} identities",
            )
            return ResolutionOutcome(
                sighting,
                SightingAction.PENDING_REVIEW,
                identity=identity,
                confidence=AMBIGUOUS_CONTAINMENT_CONFIDENCE,
                pending_case=case,
            )

        scores: list[MatchScore] = []
        identities = {identity.canonical_id: identity for identity in self.repository.list_identities()}
        for identity in identities.values():
            match = score_identity(identity, sighting.name, sighting.email, sighting.external_user_id)
            if match.score >= self.config.review_threshold:
                scores.append(match)
        scores.sort(key=lambda match: match.score, reverse=True)
        strong = [match for match in scores if match.score >= self.config.auto_merge_threshold]

        if len(strong) == 1:
            match = strong[0]
            identity = identities[match.canonical_id]
            if identity.is_note_taker:
                return self._ignored(sighting, identity)
            identity = self._absorb_sighting(identity, sighting, log_alias=False)
            self._log(_AUTO_MERGE_ACTIONS[match.kind], sighting.name, identity, match.score, match.reason)
            logger.debug(f"Auto-merged {sighting.name!r} into {identity.canonical_name!r} ({match.score})")
            return ResolutionOutcome(
                sighting, SightingAction.AUTO_MERGED, identity=identity, confidence=match.score
            )

        if scores:
            best = scores[0]
            reason = best.reason if len(strong) < 2 else f"{len(strong)} strong candidates"
            identity = self._create_identity(sighting, best.score, f"possible duplicate: {reason}")
            case = self._open_case(identities[best.canonical_id], identity, best.score, reason)
            return ResolutionOutcome(
                sighting,
                SightingAction.PENDING_REVIEW,
                identity=identity,
                confidence=best.score,
                pending_case=case,
            )

        identity = self._create_identity(sighting, 100, "no similar identity")
        return ResolutionOutcome(sighting, SightingAction.CREATED, identity=identity, confidence=100)

    def process_sighting(self, sighting: Sighting) -> ResolutionOutcome:
        """Resolve one sighting against the identity store.

        Args:
            sighting: Attendee observed in one session.

        Returns:
            The decision taken, with the side effects it produced.
        """
        start = len(self._journal)
        if not normalize_name(sighting.name):
            logger.debug(f"Skipping blank sighting in session {sighting.session_id}")
            return ResolutionOutcome(sighting, SightingAction.DISCARDED_BLOCKLIST)

        try:
            with self.repository.transaction():
                outcome = self._resolve(sighting)
        except Exception:
            del self._journal[start:]
            raise
        outcome.mutations = list(self._journal[start:])
        return outcome

    def process_session(
        self,
        session_id: str,
        date_key: str | None,
        attendees: Iterable[DedupedAttendee | str],
    ) -> list[ResolutionOutcome]:
        """Resolve every deduplicated attendee of one session.

        Args:
            session_id: Meeting instance id.
            date_key: ``YYYY-MM-DD`` date of the session.
            attendees: Output of ``SessionDeduper.dedupe_attendees`` or plain names.

        Returns:
            One outcome per attendee, in input order.
        """
        outcomes = []
        for attendee in attendees:
            if isinstance(attendee, str):
                sighting = Sighting(session_id, attendee, date_key)
            else:
                sighting = Sighting(
                    session_id,
                    attendee.name,
                    date_key,
                    external_user_id=attendee.external_user_id,
                    email=attendee.email,
                )
            outcomes.append(self.process_sighting(sighting))

        counts: dict[SightingAction, int] = defaultdict(int)
        for outcome in outcomes:
            counts[outcome.action] += 1
        summary = ", ".join(f"{action.value}={count}" for action, count in counts.items())
        logger.info(f"Processed session {session_id} ({date_key}): {summary or 'no attendees'}")
        return outcomes

    # Operator actions

    def _merge(self, target: CanonicalIdentity, source: CanonicalIdentity, reason: str) -> None:
        target.total_appearances += source.total_appearances
        for alias in source.name_aliases:
            target.add_alias(alias)
        target.external_user_ids |= source.external_user_ids
        if not target.email and source.email:
            target.email = source.email
        target.observe_date(source.first_seen_date)
        target.merged_from.extend([source.canonical_id, *source.merged_from])

        moved = self.repository.remap_attendance(source.canonical_id, target.canonical_id)
        self._emit(
            MutationKind.REMAP_ATTENDANCE,
            {"from_id": source.canonical_id, "to_id": target.canonical_id, "moved": moved},
        )
        self._save(target)
        self.repository.delete(source.canonical_id)
        self._emit(MutationKind.DELETE_IDENTITY, {"canonical_id": source.canonical_id})

        now = self._clock()
        for case in self.repository.list_cases(ReviewStatus.PENDING):
            if not case.involves(source.canonical_id):
                continue
            if case.candidate_a == source.canonical_id:
                case.candidate_a = target.canonical_id
            if case.candidate_b == source.canonical_id:
                case.candidate_b = target.canonical_id
            if case.candidate_a == case.candidate_b:
                case.status = ReviewStatus.MERGED
                case.resolved_at = now
            self._save_case(case)

        self._log(MergeAction.MANUAL_MERGE, source.canonical_name, target, 100, reason)
        logger.info(
            f"Merged {source.canonical_name!r} ({source.canonical_id}) into "
            f"{target.canonical_name!r} ({target.canonical_id}); {moved} attendance records moved"
        )

    def merge_identities(
        self,
        target_id: str,
        source_id: str,
        reason: str = "operator merge",
    ) -> CanonicalIdentity:
        """Merge ``source_id`` into ``target_id``.

        Appearances are summed, aliases and provider ids are unioned,
        attendance is remapped, the source identity is deleted and a
        ``manual_merge`` entry is logged, all in one transaction.

        Raises:
            InvalidMergeError: If both ids are the same.
            IdentityNotFoundError: If either identity does not exist.
        """
        if target_id == source_id:
            raise InvalidMergeError(f"Cannot merge identity {target_id} into itself")
        with self.repository.transaction():
            target = self.repository.require(target_id)
            source = self.repository.require(source_id)
            self._merge(target, source, reason)
        return target

    def resolve_case(self, case_id: str, decision: ReviewDecision | str) -> PendingReviewCase:
        """Apply an operator decision to a pending review case.

        Args:
            case_id: Case to resolve.
            decision: ``merge`` (absorb candidate B into A), ``keep_separate``
                or ``mark_notetaker`` (flag candidate B).

        Returns:
            The updated case.

        Raises:
            ReviewCaseError: If the case is missing, already resolved, or the
                decision is unknown.
        """
        try:
            decision = ReviewDecision(decision)
        except ValueError as e:
            raise ReviewCaseError(f"Unknown review decision: {decision!r}") from e

        with self.repository.transaction():
            case = self.repository.get_case(case_id)
            if case is None:
                raise ReviewCaseError(f"Review case not found: {case_id}")
            if not case.is_pending:
                raise ReviewCaseError(f"Review case {case_id} is already {case.status.value}")

            if decision == ReviewDecision.MERGE:
                target = self.repository.require(case.candidate_a)
                source = self.repository.require(case.candidate_b)
                self._merge(target, source, f"review case {case_id}: {case.reason}")
                case.status = ReviewStatus.MERGED
            elif decision == ReviewDecision.MARK_NOTETAKER:
                self._mark_note_taker(self.repository.require(case.candidate_b), f"review case {case_id}")
                case.status = ReviewStatus.MARKED_NOTETAKER
            else:
                case.status = ReviewStatus.KEPT_SEPARATE

            case.resolved_at = self._clock()
            self._save_case(case)

        logger.info(f"Review case {case_id} resolved as {case.status.value}")
        return case

    def _mark_note_taker(self, identity: CanonicalIdentity, reason: str) -> None:
        identity.is_note_taker = True
        self._save(identity)
        self._log(MergeAction.NOTE_TAKER_REMOVED, identity.canonical_name, identity, 100, reason)

    def mark_note_taker(self, canonical_id: str, reason: str = "operator flagged note-taker") -> CanonicalIdentity:
        """Exclude an identity from all attendance counts.

        Raises:
            IdentityNotFoundError: If the identity does not exist.
        """
        with self.repository.transaction():
            identity = self.repository.require(canonical_id)
            self._mark_note_taker(identity, reason)
        return identity

    def override_name(self, canonical_id: str, new_name: str) -> CanonicalIdentity:
        """Rename an identity's display name. Aliases are left untouched.

        Raises:
            IdentityError: If ``new_name`` is blank.
            IdentityNotFoundError: If the identity does not exist.
        """
        name = str(new_name or "").strip()
        if not name:
            raise IdentityError("new_name is required")

        with self.repository.transaction():
            identity = self.repository.require(canonical_id)
            previous = identity.canonical_name
            identity.canonical_name = name
            self._save(identity)
            self._log(MergeAction.NAME_OVERRIDE, previous, identity, 100, f"renamed from {previous!r}")
        return identity

    # Read models

    def daily_attendance_counts(self) -> list[dict[str, Any]]:
        """Count distinct new and returning attendees per date.

        A person is new on the date of their first attendance record.
        Note-taker identities are excluded.

        Returns:
            Rows ``{date, new, returning, total}`` sorted by date.
        """
        excluded = {
            identity.canonical_id
            for identity in self.repository.list_identities()
            if identity.is_note_taker
        }
        people_by_date: dict[str, set[str]] = defaultdict(set)
        first_date: dict[str, str] = {}
        for record in self.repository.list_attendance():
            if not record.date_key or record.canonical_id in excluded:
                continue
            people_by_date[record.date_key].add(record.canonical_id)
            current = first_date.get(record.canonical_id)
            if current is None or record.date_key < current:
                first_date[record.canonical_id] = record.date_key

        rows = []
        for date_key in sorted(people_by_date):
            people = people_by_date[date_key]
            new = sum(1 for canonical_id in people if first_date[canonical_id] == date_key)
            rows.append(
                {"date": date_key, "new": new, "returning": len(people) - new, "total": len(people)}
            )
        return rows

    def first_seen_index(self, include_aliases: bool = True) -> dict[str, str]:
        """Map normalized names to the first date each person was seen.

        Args:
            include_aliases: Also index every alias, not just the canonical name.

        Returns:
            Normalized name -> ``YYYY-MM-DD``. Note-takers are excluded; on
            alias collisions the earliest date wins.
        """
        index: dict[str, str] = {}
        for identity in self.repository.list_identities():
            if identity.is_note_taker or not identity.first_seen_date:
                continue
            names = identity.alias_keys if include_aliases else set()
            names.add(normalize_name(identity.canonical_name))
            for key in names:
                if key and (key not in index or identity.first_seen_date < index[key]):
                    index[key] = identity.first_seen_date
        return index
