"""
Proportional allocation of outcome buckets onto ad rows.

Leads, registrations and show-ups carry no ad identifier, so outcomes are
bucketed by ``date|funnel`` and spread across the ad rows that delivered on
that date:

- Candidates are the ad rows for the same ``date|funnel``; if there are none,
  every ad row on that date regardless of funnel.
- Weights follow an explicit policy chosen from the candidates: lead-weighted
  when any candidate reported leads, else spend-weighted when any candidate
  spent, else uniform.

This is an estimate, not ground truth. Weights always sum to 1, so each
bucket's value is conserved across its candidates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from funnelnav.attribution.schema import (
    AdPerformance,
    AdRow,
    Funnel,
    LeadRecord,
    LeadTier,
    RegistrationRecord,
)

logger = logging.getLogger(__name__)


class AllocationPolicy(str, Enum):
    """How a bucket is split across candidate ad rows."""

    LEAD_WEIGHTED = "lead_weighted"
    SPEND_WEIGHTED = "spend_weighted"
    UNIFORM = "uniform"


def choose_policy(candidates: Sequence[AdRow]) -> AllocationPolicy:
    """Pick the weighting policy for a set of candidate ad rows."""
    if sum(row.leads for row in candidates) > 0:
        return AllocationPolicy.LEAD_WEIGHTED
    if sum(row.spend for row in candidates) > 0:
        return AllocationPolicy.SPEND_WEIGHTED
    return AllocationPolicy.UNIFORM


def allocation_weights(
    candidates: Sequence[AdRow],
    policy: AllocationPolicy | None = None,
) -> list[float]:
    """Return one weight per candidate, summing to 1.

    Args:
        candidates: Candidate ad rows for one bucket.
        policy: Weighting policy; chosen with ``choose_policy`` when omitted.

    Returns:
        Weights in candidate order (empty for no candidates).

    Example:
        >>> rows = [AdRow("2025-01-07", "a", leads=3), AdRow("2025-01-07", "b", leads=1)]
        >>> allocation_weights(rows)
        [0.75, 0.25]
    """
    if not candidates:
        return []
    policy = policy or choose_policy(candidates)

    if policy == AllocationPolicy.LEAD_WEIGHTED:
        total = sum(row.leads for row in candidates)
        if total > 0:
            return [row.leads / total for row in candidates]
    elif policy == AllocationPolicy.SPEND_WEIGHTED:
        total = sum(row.spend for row in candidates)
        if total > 0:
            return [row.spend / total for row in candidates]

    return [1 / len(candidates)] * len(candidates)


@dataclass
class OutcomeBucket:
    """Outcome counts for one ``date|funnel`` (or one date when funnel is None)."""

    date_key: str
    funnel: Funnel | None = None
    leads: int = 0
    registrations: int = 0
    matched_show_ups: int = 0
    qualified_leads: int = 0
    great_leads: int = 0

    @property
    def key(self) -> str:
        if self.funnel is None:
            return self.date_key
        return f"{self.date_key}|{self.funnel.value}"

    def add_lead(self, lead: LeadRecord) -> None:
        self.leads += 1
        if lead.is_registration_proxy:
            self.registrations += 1
        if lead.tier == LeadTier.QUALIFIED:
            self.qualified_leads += 1
        if lead.tier == LeadTier.GREAT:
            self.great_leads += 1
        if lead.matched_show_up:
            self.matched_show_ups += 1


def _bucket(buckets: dict[str, OutcomeBucket], date_key: str, funnel: Funnel | None) -> OutcomeBucket:
    key = date_key if funnel is None else f"{date_key}|{funnel.value}"
    if key not in buckets:
        buckets[key] = OutcomeBucket(date_key=date_key, funnel=funnel)
    return buckets[key]


def _override_registrations(
    buckets: dict[str, OutcomeBucket],
    registrations: Iterable[RegistrationRecord],
    by_funnel: bool,
) -> None:
    counts: dict[str, tuple[int, int]] = {}
    for registration in registrations:
        bucket = _bucket(buckets, registration.date_key, registration.funnel if by_funnel else None)
        total, matched = counts.get(bucket.key, (0, 0))
        counts[bucket.key] = (total + 1, matched + int(registration.matched_meeting_net_new))

    for key, (total, matched) in counts.items():
        buckets[key].registrations = total
        buckets[key].matched_show_ups = matched


def build_buckets(
    leads: Iterable[LeadRecord],
    registrations: Iterable[RegistrationRecord] = (),
) -> dict[str, OutcomeBucket]:
    """Bucket lead outcomes by ``date|funnel``.

    When direct registrations are supplied they replace each bucket's proxy
    registration count and matched show-ups (net-new meeting matches).
    """
    buckets: dict[str, OutcomeBucket] = {}
    for lead in leads:
        _bucket(buckets, lead.created_date_key, lead.funnel).add_lead(lead)
    registrations = list(registrations)
    if registrations:
        _override_registrations(buckets, registrations, by_funnel=True)
    return buckets


def build_daily_totals(
    leads: Iterable[LeadRecord],
    registrations: Iterable[RegistrationRecord] = (),
) -> dict[str, OutcomeBucket]:
    """Bucket lead outcomes by date only, for trend rows."""
    buckets: dict[str, OutcomeBucket] = {}
    for lead in leads:
        _bucket(buckets, lead.created_date_key, None).add_lead(lead)
    registrations = list(registrations)
    if registrations:
        _override_registrations(buckets, registrations, by_funnel=False)
    return buckets


@dataclass
class AllocationResult:
    """Summary of one allocation pass."""

    attributed_leads_total: int = 0
    attributed_show_ups_total: int = 0
    unallocated_buckets: int = 0
    policies: dict[str, AllocationPolicy] = field(default_factory=dict)


def allocate(
    ad_rows: Iterable[AdRow],
    buckets: Mapping[str, OutcomeBucket],
    performances: Mapping[str, AdPerformance],
) -> AllocationResult:
    """Add each bucket's outcomes to the attributed totals of its candidate ads.

    Args:
        ad_rows: Daily ad rows (the candidates).
        buckets: Output of ``build_buckets``.
        performances: Per-ad accumulators keyed by ad id; mutated in place.

    Returns:
        Totals of leads and show-ups that found at least one candidate.
    """
    by_bucket: dict[str, list[AdRow]] = {}
    by_date: dict[str, list[AdRow]] = {}
    for row in ad_rows:
        by_bucket.setdefault(row.bucket_key, []).append(row)
        by_date.setdefault(row.date_key, []).append(row)

    result = AllocationResult()
    for key, bucket in buckets.items():
        candidates = by_bucket.get(key) or by_date.get(bucket.date_key) or []
        if not candidates:
            result.unallocated_buckets += 1
            continue

        policy = choose_policy(candidates)
        result.policies[key] = policy
        for row, weight in zip(candidates, allocation_weights(candidates, policy)):
            ad = performances.get(row.ad_id)
            if ad is None:
                continue
            ad.attributed_leads += bucket.leads * weight
            ad.attributed_registrations += bucket.registrations * weight
            ad.attributed_show_ups += bucket.matched_show_ups * weight
            ad.attributed_qualified_leads += bucket.qualified_leads * weight
            ad.attributed_great_leads += bucket.great_leads * weight

        result.attributed_leads_total += bucket.leads
        result.attributed_show_ups_total += bucket.matched_show_ups

    if result.unallocated_buckets:
        logger.debug(f"{result.unallocated_buckets} outcome buckets had no ad rows on their date")
    return result
