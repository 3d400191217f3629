"""Session-level participant deduplication.

One meeting instance often lists the same person several times: a phone
connection ("Lori's iPhone"), a short display name ("Emil"), a rejoin with an
email, and so on. ``SessionDeduper`` collapses those records into one
attendee per person.

The matching is greedy and order-sensitive. Candidates are sorted by quality
score (email-bearing names first, device names last) and then by name length,
so the richest variant of a person is accepted first and absorbs the weaker
variants that follow.

Example:
    >>> deduper = SessionDeduper()
    >>> deduper.dedupe([
    ...     RawParticipant("Emil"),
    ...     RawParticipant("Emil Bakiyev", email="e@x.com"),
    ...     RawParticipant("Lori's iPhone", device_flag=True),
    ...     RawParticipant("Lori Smith", email="l@x.com"),
    ... ])
    ['Emil Bakiyev', 'Lori Smith']
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from funnelnav.identity.canonical import Canonicalizer
from funnelnav.identity.config import IdentityConfig
from funnelnav.identity.names import (
    contains_bot_keyword,
    is_device_name,
    normalize_name,
    strip_device_suffix,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawParticipant:
    """One roster entry as reported by the meeting provider."""

    display_name: str
    email: str | None = None
    device_flag: bool = False
    external_user_id: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawParticipant:
        """Create a participant from a provider row.

        Accepts ``name``/``display_name`` and ``user_email``/``email`` keys.
        """
        email = data.get("user_email") or data.get("email") or None
        user_id = data.get("user_id") or data.get("external_user_id") or None
        return cls(
            display_name=str(data.get("name") or data.get("display_name") or "").strip(),
            email=str(email).strip().lower() if email else None,
            device_flag=bool(data.get("device_flag", False)),
            external_user_id=str(user_id) if user_id else None,
        )


@dataclass(frozen=True)
class DedupedAttendee:
    """Winning record for one person in a session."""

    name: str
    email: str | None = None
    external_user_id: str | None = None
    score: int = 0


@dataclass
class _Candidate:
    raw_name: str
    name: str
    lower_name: str
    clean_name: str
    email: str | None
    external_user_id: str | None
    is_device: bool
    score: int

    def is_redundant_with(self, accepted: _Candidate) -> bool:
        """Return True if an already accepted candidate covers this one."""
        if self.email and accepted.email == self.email:
            return True
        if self.lower_name in accepted.lower_name:
            return True
        if self.is_device and self.clean_name and self.clean_name in accepted.lower_name:
            return True
        return accepted.lower_name.startswith(self.lower_name)


class SessionDeduper:
    """Collapse one session's raw participant list into unique attendees."""

    def __init__(
        self,
        canonicalizer: Canonicalizer | None = None,
        config: IdentityConfig | None = None,
    ) -> None:
        """Initialize the deduper.

        Args:
            canonicalizer: Name canonicalizer applied before matching.
            config: Identity configuration (bot keywords, rules).
        """
        self.config = config or IdentityConfig()
        self.canonicalizer = canonicalizer or Canonicalizer.from_config(self.config)
        self._device_pattern = re.compile(self.config.device_pattern, re.IGNORECASE)

    def _candidates(
        self,
        participants: Iterable[RawParticipant | Mapping[str, Any]],
        alias_map: Mapping[str, str] | None,
    ) -> list[_Candidate]:
        candidates: list[_Candidate] = []
        dropped_bots = 0

        for participant in participants:
            if not isinstance(participant, RawParticipant):
                participant = RawParticipant.from_dict(participant)

            raw_name = participant.display_name.strip()
            if not normalize_name(raw_name):
                continue
            if contains_bot_keyword(raw_name, self.config.bot_keywords):
                dropped_bots += 1
                continue

            name = self.canonicalizer.canonicalize(raw_name, alias_map)
            lower_name = normalize_name(name)
            if not lower_name:
                continue

            email = (participant.email or "").strip().lower() or None
            is_device = is_device_name(name, self._device_pattern)
            candidates.append(
                _Candidate(
                    raw_name=raw_name,
                    name=name,
                    lower_name=lower_name,
                    clean_name=strip_device_suffix(name),
                    email=email,
                    external_user_id=participant.external_user_id,
                    is_device=is_device,
                    score=(2 if email else 0) + (0 if is_device else 1),
                )
            )

        if dropped_bots:
            logger.debug(f"Dropped {dropped_bots} bot/notetaker participants")
        return candidates

    def dedupe_attendees(
        self,
        participants: Iterable[RawParticipant | Mapping[str, Any]],
        alias_map: Mapping[str, str] | None = None,
    ) -> list[DedupedAttendee]:
        """Deduplicate participants, keeping the winning record per person.

        Args:
            participants: Raw roster entries (objects or provider dicts).
            alias_map: Normalized alias lookup map.

        Returns:
            Attendees in acceptance order (highest quality first).
        """
        candidates = self._candidates(participants, alias_map)
        # Stable sort keeps roster order among equal keys.
        candidates.sort(key=lambda c: (-c.score, -len(c.raw_name)))

        accepted: list[_Candidate] = []
        for candidate in candidates:
            if any(candidate.is_redundant_with(existing) for existing in accepted):
                logger.debug(f"Duplicate participant {candidate.raw_name!r} absorbed")
                continue
            accepted.append(candidate)

        return [
            DedupedAttendee(
                name=c.name,
                email=c.email,
                external_user_id=c.external_user_id,
                score=c.score,
            )
            for c in accepted
        ]

    def dedupe(
        self,
        participants: Iterable[RawParticipant | Mapping[str, Any]],
        alias_map: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Return one canonical name per person in the session."""
        return [attendee.name for attendee in self.dedupe_attendees(participants, alias_map)]
