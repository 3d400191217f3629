"""Match CRM leads to the first session each person attended.

The index is built from the first-seen dates produced by the identity side
(``build_net_new`` or ``IdentityResolutionEngine.first_seen_index``). A lead
counts as a show-up when the person's first session falls 0 to
``window_days`` days after the lead was created.

Example:
    >>> index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-09"})
    >>> index.match("Lori Smith", "2025-01-02").date_key
    '2025-01-09'
    >>> index.match("Lori Smith", "2025-01-10") is None
    True
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from funnelnav.attribution.dates import days_between
from funnelnav.identity.names import match_key


@dataclass(frozen=True)
class ShowUpEntry:
    """First-seen record for one person."""

    key: str
    name: str
    date_key: str
    day_type: str | None = None


class ShowUpIndex:
    """Lookup of first-seen dates by name key."""

    def __init__(
        self,
        entries: Iterable[ShowUpEntry] = (),
        window_days: int = 30,
        min_key_length: int = 8,
    ) -> None:
        """Initialize the index.

        Args:
            entries: First-seen records. Later entries for a key are ignored.
            window_days: Max days from lead creation to first show-up.
            min_key_length: Shortest key allowed in a containment match.
        """
        self.window_days = window_days
        self.min_key_length = min_key_length
        self._by_key: dict[str, ShowUpEntry] = {}
        for entry in entries:
            if entry.key and entry.key not in self._by_key:
                self._by_key[entry.key] = entry

    def __len__(self) -> int:
        return len(self._by_key)

    @classmethod
    def from_first_seen(
        cls,
        first_seen: Mapping[str, Any],
        window_days: int = 30,
        min_key_length: int = 8,
    ) -> ShowUpIndex:
        """Build from ``name -> date_key`` or ``name -> FirstSeen``-like values.

        Args:
            first_seen: Mapping keyed by (normalized) name.
            window_days: Max days from lead creation to first show-up.
            min_key_length: Shortest key allowed in a containment match.
        """
        entries = []
        for name, value in first_seen.items():
            if isinstance(value, str):
                display, date_key, day_type = name, value, None
            else:
                display = getattr(value, "name", name)
                date_key = getattr(value, "date_key", None)
                day_type = getattr(getattr(value, "day_type", None), "value", None)
            if not date_key:
                continue
            entries.append(ShowUpEntry(match_key(display), display, date_key, day_type))
        return cls(entries, window_days, min_key_length)

    @classmethod
    def from_net_new(cls, summary: Any, window_days: int = 30, min_key_length: int = 8) -> ShowUpIndex:
        """Build from a ``NetNewSummary``."""
        return cls.from_first_seen(summary.first_seen, window_days, min_key_length)

    def _in_window(self, created_date_key: str, entry: ShowUpEntry) -> bool:
        diff = days_between(created_date_key, entry.date_key)
        return 0 <= diff <= self.window_days

    def match(self, lead_name: str | None, created_date_key: str) -> ShowUpEntry | None:
        """Find the first session a lead attended.

        A direct key match is tried first. Otherwise the first entry whose key
        contains, or is contained in, the lead key (both at least
        ``min_key_length`` characters) is used. Either way the show-up must be
        within the match window.

        Returns:
            The matching entry, or None.
        """
        key = match_key(lead_name)
        if not key or not created_date_key:
            return None

        direct = self._by_key.get(key)
        if direct is not None and self._in_window(created_date_key, direct):
            return direct

        for candidate in self._by_key.values():
            if min(len(candidate.key), len(key)) < self.min_key_length:
                continue
            if key not in candidate.key and candidate.key not in key:
                continue
            if self._in_window(created_date_key, candidate):
                return candidate
        return None
