"""Identity store interface and an in-memory implementation.

The resolution engine never touches ambient state: it reads and writes
through an ``IdentityRepository`` injected at construction time. Durable
stores (database tables for identities, attendance, review cases and the
merge log) implement the same interface outside this package.

Example:
    >>> repo = InMemoryIdentityRepository()
    >>> with repo.transaction():
    ...     repo.upsert(CanonicalIdentity(canonical_id="c1", canonical_name="Lori Smith"))
    >>> [identity.canonical_id for identity in repo.list_by_alias("lori smith")]
    ['c1']
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from funnelnav.identity.exceptions import IdentityNotFoundError
from funnelnav.identity.names import normalize_name
from funnelnav.identity.records import (
    AttendanceRecord,
    BlocklistEntry,
    CanonicalIdentity,
    MergeLogEntry,
    PendingReviewCase,
    ReviewStatus,
)

logger = logging.getLogger(__name__)

_MISSING = object()


class IdentityRepository(ABC):
    """Storage interface for canonical identities and their audit data.

    Callers mutate an identity only after fetching it with ``get`` (or
    ``require``) inside a transaction; listing and lookup methods are reads.
    """

    @abstractmethod
    def get(self, canonical_id: str) -> CanonicalIdentity | None:
        """Return an identity by id, or None."""
        pass

    @abstractmethod
    def upsert(self, identity: CanonicalIdentity) -> None:
        """Insert or replace an identity."""
        pass

    @abstractmethod
    def delete(self, canonical_id: str) -> None:
        """Delete an identity. Deleting a missing id is a no-op."""
        pass

    @abstractmethod
    def list_identities(self) -> list[CanonicalIdentity]:
        """Return every identity."""
        pass

    @abstractmethod
    def list_by_alias(self, name: str) -> list[CanonicalIdentity]:
        """Return identities with an alias equal to ``name`` after normalization."""
        pass

    @abstractmethod
    def append_log(self, entry: MergeLogEntry) -> None:
        """Append an entry to the merge log."""
        pass

    @abstractmethod
    def list_log(self) -> list[MergeLogEntry]:
        """Return the merge log in append order."""
        pass

    @abstractmethod
    def upsert_case(self, case: PendingReviewCase) -> None:
        pass

    @abstractmethod
    def get_case(self, case_id: str) -> PendingReviewCase | None:
        pass

    @abstractmethod
    def list_cases(self, status: ReviewStatus | None = None) -> list[PendingReviewCase]:
        pass

    @abstractmethod
    def upsert_attendance(self, record: AttendanceRecord) -> bool:
        """Upsert attendance by ``(session_id, canonical_id)``.

        Returns:
            True if the record did not exist before.
        """
        pass

    @abstractmethod
    def list_attendance(self, canonical_id: str | None = None) -> list[AttendanceRecord]:
        pass

    @abstractmethod
    def remap_attendance(self, from_id: str, to_id: str) -> int:
        """Point every attendance record of ``from_id`` at ``to_id``.

        Records that would duplicate an existing ``(session_id, to_id)`` are
        dropped.

        Returns:
            Number of records moved.
        """
        pass

    @abstractmethod
    def add_blocklist_entry(self, entry: BlocklistEntry) -> None:
        pass

    @abstractmethod
    def list_blocklist(self) -> list[BlocklistEntry]:
        pass

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[IdentityRepository]:
        """Apply the enclosed mutations atomically.

        Any exception raised inside the block restores the state that existed
        when the block was entered and is re-raised.
        """
        pass

    def require(self, canonical_id: str) -> CanonicalIdentity:
        """Return an identity by id.

        Raises:
            IdentityNotFoundError: If no identity has that id.
        """
        identity = self.get(canonical_id)
        if identity is None:
            raise IdentityNotFoundError(f"Canonical identity not found: {canonical_id}")
        return identity

    def find_by_email(self, email: str | None) -> CanonicalIdentity | None:
        """Return the identity whose primary email equals ``email``."""
        value = str(email or "").strip().lower()
        if not value:
            return None
        for identity in self.list_identities():
            if identity.email and identity.email.lower() == value:
                return identity
        return None

    def find_by_external_id(self, external_user_id: str | None) -> CanonicalIdentity | None:
        """Return the identity that has seen ``external_user_id``."""
        if not external_user_id:
            return None
        for identity in self.list_identities():
            if external_user_id in identity.external_user_ids:
                return identity
        return None


class InMemoryIdentityRepository(IdentityRepository):
    """Dictionary-backed repository used by tests and batch runs.

    Transactions keep an undo journal instead of copying the store. An
    identity is copied the first time ``get`` returns it or it is replaced
    inside the transaction; review cases likewise on ``get_case`` and
    ``list_cases``. Attendance keys are recorded on first write, and the
    append-only log and blocklist are truncated on rollback.

    Note:
        This class is NOT thread-safe. Objects returned inside a transaction
        that rolls back are stale; fetch them again with ``get``.
    """

    def __init__(
        self,
        identities: list[CanonicalIdentity] | None = None,
        blocklist: list[BlocklistEntry] | None = None,
    ) -> None:
        """Initialize the repository from an optional identity store snapshot.

        Args:
            identities: Existing canonical identities.
            blocklist: Existing blocklist entries.
        """
        self._identities: dict[str, CanonicalIdentity] = {
            identity.canonical_id: identity for identity in identities or []
        }
        self._blocklist: list[BlocklistEntry] = list(blocklist or [])
        self._cases: dict[str, PendingReviewCase] = {}
        self._attendance: dict[tuple[str, str], AttendanceRecord] = {}
        self._log: list[MergeLogEntry] = []
        self._depth = 0
        self._journal: dict[str, dict[Any, Any]] | None = None

    def _remember(self, store: str, key: Any) -> None:
        if self._journal is None:
            return
        entries = self._journal[store]
        if key not in entries:
            current = getattr(self, store).get(key, _MISSING)
            entries[key] = current if current is _MISSING else copy.deepcopy(current)

    def get(self, canonical_id: str) -> CanonicalIdentity | None:
        identity = self._identities.get(canonical_id)
        if identity is not None:
            self._remember("_identities", canonical_id)
        return identity

    def upsert(self, identity: CanonicalIdentity) -> None:
        self._remember("_identities", identity.canonical_id)
        self._identities[identity.canonical_id] = identity

    def delete(self, canonical_id: str) -> None:
        self._remember("_identities", canonical_id)
        self._identities.pop(canonical_id, None)

    def list_identities(self) -> list[CanonicalIdentity]:
        return list(self._identities.values())

    def list_by_alias(self, name: str) -> list[CanonicalIdentity]:
        key = normalize_name(name)
        if not key:
            return []
        return [identity for identity in self._identities.values() if key in identity.alias_keys]

    def append_log(self, entry: MergeLogEntry) -> None:
        self._log.append(entry)

    def list_log(self) -> list[MergeLogEntry]:
        return list(self._log)

    def upsert_case(self, case: PendingReviewCase) -> None:
        self._remember("_cases", case.case_id)
        self._cases[case.case_id] = case

    def get_case(self, case_id: str) -> PendingReviewCase | None:
        case = self._cases.get(case_id)
        if case is not None:
            self._remember("_cases", case_id)
        return case

    def list_cases(self, status: ReviewStatus | None = None) -> list[PendingReviewCase]:
        cases = sorted(self._cases.values(), key=lambda case: case.created_at)
        if status is not None:
            cases = [case for case in cases if case.status == status]
        for case in cases:
            self._remember("_cases", case.case_id)
        return cases

    def upsert_attendance(self, record: AttendanceRecord) -> bool:
        is_new = record.key not in self._attendance
        self._remember("_attendance", record.key)
        self._attendance[record.key] = record
        return is_new

    def list_attendance(self, canonical_id: str | None = None) -> list[AttendanceRecord]:
        records = list(self._attendance.values())
        if canonical_id is None:
            return records
        return [record for record in records if record.canonical_id == canonical_id]

    def remap_attendance(self, from_id: str, to_id: str) -> int:
        moved = 0
        for key, record in list(self._attendance.items()):
            if record.canonical_id != from_id:
                continue
            self._remember("_attendance", key)
            del self._attendance[key]
            remapped = AttendanceRecord(record.session_id, record.date_key, to_id)
            if remapped.key in self._attendance:
                continue
            self._remember("_attendance", remapped.key)
            self._attendance[remapped.key] = remapped
            moved += 1
        return moved

    def add_blocklist_entry(self, entry: BlocklistEntry) -> None:
        self._blocklist.append(entry)

    def list_blocklist(self) -> list[BlocklistEntry]:
        return list(self._blocklist)

    def _rollback(self, log_length: int, blocklist_length: int) -> None:
        for store, entries in (self._journal or {}).items():
            values = getattr(self, store)
            for key, original in entries.items():
                if original is _MISSING:
                    values.pop(key, None)
                else:
                    values[key] = original
        del self._log[log_length:]
        del self._blocklist[blocklist_length:]

    @contextmanager
    def transaction(self) -> Iterator[InMemoryIdentityRepository]:
        # Nested blocks join the outermost transaction.
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        log_length, blocklist_length = len(self._log), len(self._blocklist)
        self._journal = {"_identities": {}, "_cases": {}, "_attendance": {}}
        self._depth = 1
        try:
            yield self
        except Exception:
            self._rollback(log_length, blocklist_length)
            logger.warning("Identity transaction rolled back")
            raise
        finally:
            self._depth = 0
            self._journal = None
