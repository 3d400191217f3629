"""
Normalized records for attribution analytics.

Every external row shape (ad spend, CRM lead, registration, show-up day) is
converted once, at the boundary, into one of these records. Analytics code
never inspects raw provider fields.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from funnelnav.attribution.dates import parse_date_key
from funnelnav.attribution.metrics import safe_divide, to_number

logger = logging.getLogger(__name__)


class Funnel(str, Enum):
    """Lead-acquisition path used to bucket spend and outcomes."""

    FREE = "free"
    PHOENIX = "phoenix"

    @classmethod
    def parse(cls, value: Any) -> Funnel | None:
        """Return the funnel named by ``value`` (case-insensitive), or None."""
        text = str(value or "").strip().lower()
        for funnel in cls:
            if funnel.value == text:
                return funnel
        return None


class LeadTier(str, Enum):
    """Lead-quality classification derived from annual revenue."""

    STANDARD = "standard"
    QUALIFIED = "qualified"
    GREAT = "great"
    UNKNOWN = "unknown"

    @property
    def counts_as_standard(self) -> bool:
        return self in (LeadTier.STANDARD, LeadTier.UNKNOWN)


def classify_tier(
    revenue: float | None,
    qualified_min: float = 250_000,
    great_min: float = 1_000_000,
) -> LeadTier:
    """Classify a lead by annual revenue.

    Revenue strictly above ``great_min`` is great; revenue in
    ``[qualified_min, great_min]`` is qualified; anything lower is standard.
    Missing revenue is unknown, which counts as standard.

    Examples:
        >>> classify_tier(1_000_001).value
        'great'
        >>> classify_tier(1_000_000).value
        'qualified'
        >>> classify_tier(249_999).value
        'standard'
        >>> classify_tier(None).value
        'unknown'
    """
    if revenue is None:
        return LeadTier.UNKNOWN
    try:
        number = float(revenue)
    except (TypeError, ValueError):
        return LeadTier.UNKNOWN
    if not math.isfinite(number):
        return LeadTier.UNKNOWN
    if number > great_min:
        return LeadTier.GREAT
    if qualified_min <= number <= great_min:
        return LeadTier.QUALIFIED
    return LeadTier.STANDARD


@dataclass
class AdRow:
    """One ad's delivery on one date."""

    date_key: str
    ad_id: str
    ad_name: str = "Unknown Ad"
    adset_name: str = "Unknown Ad Set"
    campaign_name: str = "Unknown Campaign"
    funnel: Funnel = Funnel.FREE
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    leads: float = 0.0

    @property
    def bucket_key(self) -> str:
        return f"{self.date_key}|{self.funnel.value}"


@dataclass
class LeadRecord:
    """A paid-social CRM lead."""

    created_date_key: str
    funnel: Funnel = Funnel.FREE
    tier: LeadTier = LeadTier.UNKNOWN
    is_registration_proxy: bool = False
    matched_show_up: bool = False
    matched_show_up_date_key: str | None = None
    lead_name: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    membership: str = ""
    campaign: str = ""
    source_data_1: str = ""
    source_data_2: str = ""
    revenue: float | None = None

    @property
    def bucket_key(self) -> str:
        return f"{self.created_date_key}|{self.funnel.value}"


@dataclass
class RegistrationRecord:
    """An approved event registration from the richer registration source."""

    date_key: str
    event_id: str
    guest_id: str
    guest_name: str = ""
    guest_email: str = ""
    funnel: Funnel = Funnel.FREE
    tier: LeadTier = LeadTier.STANDARD
    matched_meeting: bool = False
    matched_meeting_net_new: bool = False
    matched_crm: bool = False

    @property
    def dedupe_key(self) -> str:
        return f"{self.event_id}|{self.guest_id}"

    @property
    def bucket_key(self) -> str:
        return f"{self.date_key}|{self.funnel.value}"


def _field(value: Any, name: str, default: Any = None) -> Any:
    if isinstance(value, Mapping):
        return value.get(name, default)
    return getattr(value, name, default)


@dataclass
class ShowUpDay:
    """Net-new show-ups on one date, split by session day."""

    date: str
    tuesday: int = 0
    thursday: int = 0
    total: int = 0
    tuesday_sessions: int = 0
    thursday_sessions: int = 0

    @classmethod
    def coerce(cls, value: ShowUpDay | Mapping[str, Any] | Any) -> ShowUpDay:
        """Build from a dict or any object with the same attribute names."""
        if isinstance(value, ShowUpDay):
            return value

        def count(name: str) -> int:
            return int(to_number(_field(value, name, 0)))

        return cls(
            date=parse_date_key(_field(value, "date")) or "",
            tuesday=count("tuesday"),
            thursday=count("thursday"),
            total=count("total"),
            tuesday_sessions=count("tuesday_sessions"),
            thursday_sessions=count("thursday_sessions"),
        )

    @classmethod
    def coerce_all(cls, values: Iterable[ShowUpDay | Mapping[str, Any] | Any]) -> list[ShowUpDay]:
        """Coerce many rows, skipping any without a parseable date."""
        days = []
        for value in values:
            day = cls.coerce(value)
            if not day.date:
                logger.debug(f"Skipping show-up row without a date: {value!r}")
                continue
            days.append(day)
        return days


@dataclass
class ShowUpSession:
    """Net-new attendee names of one session, for drill-downs."""

    date_key: str
    day_type: str
    new_names: list[str]

    @classmethod
    def coerce(cls, value: ShowUpSession | Mapping[str, Any] | Any) -> ShowUpSession:
        if isinstance(value, ShowUpSession):
            return value
        day_type = _field(value, "day_type", "")
        return cls(
            date_key=str(_field(value, "date_key", "")),
            day_type=str(getattr(day_type, "value", day_type) or ""),
            new_names=list(_field(value, "new_names", []) or []),
        )


@dataclass
class ShowUpTotals:
    """Net-new totals and per-session averages by day type."""

    tuesday_total: int = 0
    thursday_total: int = 0
    tuesday_sessions: int = 0
    thursday_sessions: int = 0

    @classmethod
    def from_days(cls, days: list[ShowUpDay]) -> ShowUpTotals:
        return cls(
            tuesday_total=sum(day.tuesday for day in days),
            thursday_total=sum(day.thursday for day in days),
            tuesday_sessions=sum(day.tuesday_sessions for day in days),
            thursday_sessions=sum(day.thursday_sessions for day in days),
        )

    @property
    def average_tuesday(self) -> float:
        return safe_divide(self.tuesday_total, self.tuesday_sessions)

    @property
    def average_thursday(self) -> float:
        return safe_divide(self.thursday_total, self.thursday_sessions)


@dataclass
class AdPerformance:
    """Totals for one ad across a window plus its attributed outcomes.

    Attributed values are fractional: they are shares of date x funnel
    outcome buckets allocated by ``funnelnav.attribution.allocation``.
    """

    ad_id: str
    ad_name: str
    adset_name: str
    campaign_name: str
    funnel: Funnel
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    meta_leads: float = 0.0
    attributed_leads: float = 0.0
    attributed_registrations: float = 0.0
    attributed_show_ups: float = 0.0
    attributed_qualified_leads: float = 0.0
    attributed_great_leads: float = 0.0

    @classmethod
    def from_row(cls, row: AdRow) -> AdPerformance:
        return cls(
            ad_id=row.ad_id,
            ad_name=row.ad_name,
            adset_name=row.adset_name,
            campaign_name=row.campaign_name,
            funnel=row.funnel,
        )

    def add_delivery(self, row: AdRow) -> None:
        self.spend += row.spend
        self.impressions += row.impressions
        self.clicks += row.clicks
        self.meta_leads += row.leads

    @property
    def attributed_base_leads(self) -> float:
        """Attributed leads when any were allocated, else platform-reported leads."""
        return self.attributed_leads if self.attributed_leads > 0 else self.meta_leads

    @property
    def cpl(self) -> float:
        return safe_divide(self.spend, self.meta_leads)

    @property
    def cpql(self) -> float:
        return safe_divide(self.spend, self.attributed_qualified_leads)

    @property
    def cpgl(self) -> float:
        return safe_divide(self.spend, self.attributed_great_leads)

    @property
    def cost_per_show_up(self) -> float:
        return safe_divide(self.spend, self.attributed_show_ups)

    @property
    def ctr(self) -> float:
        return safe_divide(self.clicks, self.impressions)

    @property
    def click_to_lead_rate(self) -> float:
        return safe_divide(self.meta_leads, self.clicks)

    @property
    def show_up_rate(self) -> float:
        return safe_divide(self.attributed_show_ups, self.attributed_base_leads)

    @property
    def quality_score(self) -> float:
        """Qualified share x 100 plus great share x 200."""
        base = self.attributed_base_leads
        return (
            safe_divide(self.attributed_qualified_leads, base) * 100
            + safe_divide(self.attributed_great_leads, base) * 200
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary including derived cost metrics."""
        return {
            "ad_id": self.ad_id,
            "ad_name": self.ad_name,
            "adset_name": self.adset_name,
            "campaign_name": self.campaign_name,
            "funnel": self.funnel.value,
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "meta_leads": self.meta_leads,
            "attributed_leads": self.attributed_leads,
            "attributed_registrations": self.attributed_registrations,
            "attributed_show_ups": self.attributed_show_ups,
            "attributed_qualified_leads": self.attributed_qualified_leads,
            "attributed_great_leads": self.attributed_great_leads,
            "cpl": self.cpl,
            "cpql": self.cpql,
            "cpgl": self.cpgl,
            "cost_per_show_up": self.cost_per_show_up,
            "ctr": self.ctr,
            "click_to_lead_rate": self.click_to_lead_rate,
            "show_up_rate": self.show_up_rate,
            "quality_score": self.quality_score,
        }
