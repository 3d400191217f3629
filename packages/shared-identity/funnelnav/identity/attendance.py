"""Attendance roll-ups for the recurring Tuesday/Thursday sessions.

The pipeline mirrors how rosters arrive from the meeting provider:

1. Every meeting instance becomes a ``SessionRecord`` labelled with a group
   (explicit series id, else weekday).
2. ``select_session_instances`` deduplicates each roster and keeps, per
   ``date|group``, the instance with the most attendees (at least
   ``min_session_attendees``).
3. ``build_net_new`` walks the selected sessions in date order and splits
   each roster into people seen for the first time and returning people.

Example:
    >>> from datetime import datetime, UTC
    >>> sessions = [
    ...     SessionRecord("a", datetime(2025, 1, 7, 17, tzinfo=UTC), attendees=("Lori Smith", "Emil")),
    ...     SessionRecord("b", datetime(2025, 1, 9, 17, tzinfo=UTC), attendees=("Lori Smith", "Ken Ray")),
    ... ]
    >>> summary = build_net_new(sessions)
    >>> [(day.date, day.total) for day in summary.daily]
    [('2025-01-07', 2), ('2025-01-09', 1)]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pandas as pd

from funnelnav.identity.canonical import Canonicalizer
from funnelnav.identity.config import DayType, IdentityConfig
from funnelnav.identity.dedupe import RawParticipant, SessionDeduper
from funnelnav.identity.names import normalize_name

logger = logging.getLogger(__name__)

_WEEKDAY_GROUPS = {1: DayType.TUESDAY, 3: DayType.THURSDAY}


def group_for_session(
    meeting_id: str | int | None,
    start_time: datetime,
    series_groups: Mapping[str, str] | None = None,
) -> DayType:
    """Label a meeting instance as Tuesday, Thursday or Other.

    Args:
        meeting_id: Recurring meeting (series) id.
        start_time: Instance start time.
        series_groups: Explicit series id -> group label map.

    Returns:
        The explicit series group when known, otherwise the weekday group.
    """
    groups = IdentityConfig().series_groups if series_groups is None else series_groups
    if meeting_id is not None and str(meeting_id) in groups:
        label = groups[str(meeting_id)]
        try:
            return DayType(label)
        except ValueError:
            logger.warning(f"Unknown group label {label!r} for meeting {meeting_id}; using weekday")
    return _WEEKDAY_GROUPS.get(start_time.weekday(), DayType.OTHER)


def parse_start_time(value: Any) -> datetime | None:
    """Parse a provider timestamp into an aware UTC datetime, or None."""
    if value is None or value == "":
        return None
    parsed = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


@dataclass(frozen=True)
class SessionRecord:
    """One ingested meeting instance. Immutable after creation.

    ``raw_participants`` holds provider roster entries that still need
    session dedupe; ``attendees`` holds names that were already deduplicated
    upstream. ``excluded_names`` (note-takers, blocklisted names) are removed
    before counting.
    """

    session_id: str
    start_time: datetime
    raw_participants: tuple[RawParticipant, ...] = ()
    attendees: tuple[str, ...] = ()
    meeting_id: str | None = None
    group_label: DayType | None = None
    excluded_names: frozenset[str] = frozenset()

    @property
    def date_key(self) -> str:
        return self.start_time.date().isoformat()

    def group(self, series_groups: Mapping[str, str] | None = None) -> DayType:
        if self.group_label is not None:
            return DayType(self.group_label)
        return group_for_session(self.meeting_id, self.start_time, series_groups)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionRecord | None:
        """Create a session from a roster row.

        Accepts ``session_id``/``uuid``, ``start_time``, ``meeting_id``,
        ``group_name`` and either ``participants`` (provider dicts) or
        ``attendees`` (names). Returns None when the id or start time is
        missing or unparseable.
        """
        session_id = data.get("session_id") or data.get("uuid")
        start_time = parse_start_time(data.get("start_time"))
        if not session_id or start_time is None:
            return None

        group_name = data.get("group_name") or data.get("group_label")
        meeting_id = data.get("meeting_id")
        return cls(
            session_id=str(session_id),
            start_time=start_time,
            raw_participants=tuple(
                RawParticipant.from_dict(p) for p in data.get("participants") or []
            ),
            attendees=tuple(str(name) for name in data.get("attendees") or []),
            meeting_id=str(meeting_id) if meeting_id is not None else None,
            group_label=DayType(group_name) if group_name in {d.value for d in DayType} else None,
            excluded_names=frozenset(normalize_name(n) for n in data.get("excluded_names") or []),
        )


@dataclass
class ProcessedSession:
    """A session with its deduplicated attendee names."""

    record: SessionRecord
    day_type: DayType
    attendees: list[str]

    @property
    def date_key(self) -> str:
        return self.record.date_key


def _session_attendees(
    session: SessionRecord,
    deduper: SessionDeduper,
    alias_map: Mapping[str, str] | None,
) -> list[str]:
    if session.raw_participants:
        names = deduper.dedupe(session.raw_participants, alias_map)
    else:
        # Pre-deduplicated rosters only need canonical names collapsed.
        seen: dict[str, str] = {}
        for raw in session.attendees:
            canonical = deduper.canonicalizer.canonicalize(raw, alias_map) or str(raw).strip()
            key = normalize_name(canonical)
            if key and key not in seen:
                seen[key] = canonical
        names = list(seen.values())
    return [name for name in names if normalize_name(name) not in session.excluded_names]


def select_session_instances(
    sessions: Iterable[SessionRecord],
    alias_map: Mapping[str, str] | None = None,
    config: IdentityConfig | None = None,
) -> list[ProcessedSession]:
    """Pick one instance per ``date|group`` and deduplicate its roster.

    The instance with the most attendees wins; ties keep the first seen.
    Winners with fewer than ``min_session_attendees`` are dropped.

    Returns:
        Selected sessions sorted by start time.
    """
    config = config or IdentityConfig()
    deduper = SessionDeduper(Canonicalizer.from_config(config), config)

    by_key: dict[str, list[ProcessedSession]] = {}
    for session in sessions:
        processed = ProcessedSession(
            record=session,
            day_type=session.group(config.series_groups),
            attendees=_session_attendees(session, deduper, alias_map),
        )
        by_key.setdefault(f"{processed.date_key}|{processed.day_type.value}", []).append(processed)

    selected = []
    for key, candidates in by_key.items():
        winner = max(candidates, key=lambda candidate: len(candidate.attendees))
        if len(winner.attendees) < config.min_session_attendees:
            logger.debug(f"Dropping {key}: only {len(winner.attendees)} attendees")
            continue
        selected.append(winner)

    selected.sort(key=lambda processed: processed.record.start_time)
    logger.info(f"Selected {len(selected)} of {len(by_key)} session slots")
    return selected


@dataclass
class NetNewDay:
    """New attendees per date, split by day type."""

    date: str
    tuesday: int = 0
    thursday: int = 0
    total: int = 0
    tuesday_sessions: int = 0
    thursday_sessions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "tuesday": self.tuesday,
            "thursday": self.thursday,
            "total": self.total,
            "tuesday_sessions": self.tuesday_sessions,
            "thursday_sessions": self.thursday_sessions,
        }


@dataclass
class SessionAttendance:
    """Per-session detail of new vs returning attendees."""

    date_key: str
    day_type: DayType
    attendees: list[str]
    new_names: list[str]
    returning_names: list[str]

    @property
    def net_new_count(self) -> int:
        return len(self.new_names)

    @property
    def total_count(self) -> int:
        return len(self.attendees)


@dataclass(frozen=True)
class FirstSeen:
    """The first session a person attended."""

    name: str
    date_key: str
    day_type: DayType


@dataclass
class NetNewSummary:
    """Result of ``build_net_new``."""

    daily: list[NetNewDay] = field(default_factory=list)
    sessions: list[SessionAttendance] = field(default_factory=list)
    first_seen: dict[str, FirstSeen] = field(default_factory=dict)

    @property
    def tuesday_total(self) -> int:
        return sum(day.tuesday for day in self.daily)

    @property
    def thursday_total(self) -> int:
        return sum(day.thursday for day in self.daily)

    @property
    def tuesday_sessions(self) -> int:
        return sum(day.tuesday_sessions for day in self.daily)

    @property
    def thursday_sessions(self) -> int:
        return sum(day.thursday_sessions for day in self.daily)

    def first_seen_dates(self) -> dict[str, str]:
        """Normalized name -> first-seen ``YYYY-MM-DD``."""
        return {key: seen.date_key for key, seen in self.first_seen.items()}


def build_net_new(
    sessions: Iterable[SessionRecord | ProcessedSession],
    alias_map: Mapping[str, str] | None = None,
    config: IdentityConfig | None = None,
) -> NetNewSummary:
    """Split Tuesday/Thursday session rosters into new and returning people.

    A person (normalized canonical name) is new the first time they appear in
    any counted session, globally across both day types. Sessions labelled
    ``Other`` are ignored.

    Args:
        sessions: Raw session records or already selected sessions.
        alias_map: Normalized alias lookup map.
        config: Identity configuration.

    Returns:
        Daily counts, per-session detail and the first-seen index.
    """
    config = config or IdentityConfig()
    deduper = SessionDeduper(Canonicalizer.from_config(config), config)

    processed: list[ProcessedSession] = []
    for session in sessions:
        if isinstance(session, ProcessedSession):
            processed.append(session)
        else:
            processed.append(
                ProcessedSession(
                    record=session,
                    day_type=session.group(config.series_groups),
                    attendees=_session_attendees(session, deduper, alias_map),
                )
            )

    counted = [p for p in processed if p.day_type in (DayType.TUESDAY, DayType.THURSDAY)]
    counted.sort(key=lambda p: p.date_key)

    summary = NetNewSummary()
    daily: dict[str, NetNewDay] = {}
    seen: set[str] = set()

    for session in counted:
        new_names: list[str] = []
        returning_names: list[str] = []
        for name in session.attendees:
            key = normalize_name(name)
            if not key:
                continue
            if key in seen:
                returning_names.append(name)
                continue
            seen.add(key)
            new_names.append(name)
            summary.first_seen[key] = FirstSeen(name, session.date_key, session.day_type)

        day = daily.setdefault(session.date_key, NetNewDay(date=session.date_key))
        if session.day_type == DayType.TUESDAY:
            day.tuesday += len(new_names)
            day.tuesday_sessions += 1
        else:
            day.thursday += len(new_names)
            day.thursday_sessions += 1
        day.total += len(new_names)

        summary.sessions.append(
            SessionAttendance(
                date_key=session.date_key,
                day_type=session.day_type,
                attendees=list(session.attendees),
                new_names=new_names,
                returning_names=returning_names,
            )
        )

    summary.daily = [daily[key] for key in sorted(daily)]
    logger.info(
        f"Net-new roll-up: {len(counted)} sessions, {len(summary.first_seen)} unique attendees"
    )
    return summary
