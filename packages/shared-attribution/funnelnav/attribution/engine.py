"""
Attribution engine - windowed funnel snapshots and per-ad attribution.

``compute_snapshot`` aggregates one ``[start_key, end_key]`` window:

    impressions -> clicks -> leads -> registrations -> show-ups -> qualified -> great

Registrations come from the richer registration source when one is
available; otherwise the CRM membership proxy is used and the snapshot is
flagged as ``fallback_mode``.

Usage:
    engine = AttributionEngine()
    snapshot = engine.compute_snapshot(ad_rows, leads, show_up_days, registrations,
                                       "2025-01-01", "2025-01-30")
    ads, allocation = engine.attribute(ad_rows, leads, registrations)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from funnelnav.attribution.allocation import AllocationResult, allocate, build_buckets
from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.dates import date_in_range
from funnelnav.attribution.schema import (
    AdPerformance,
    AdRow,
    LeadRecord,
    LeadTier,
    RegistrationRecord,
    ShowUpDay,
)
from funnelnav.attribution.metrics import safe_divide

logger = logging.getLogger(__name__)


@dataclass
class CostMetrics:
    """Spend divided by each outcome count."""

    cpl: float = 0.0
    cpql: float = 0.0
    cpgl: float = 0.0
    cost_per_show_up: float = 0.0
    cost_per_registration: float = 0.0


@dataclass
class ConversionMetrics:
    """Conversion ratios between adjacent funnel stages."""

    impression_to_click: float = 0.0
    click_to_lead: float = 0.0
    lead_to_registration: float = 0.0
    registration_to_show_up: float = 0.0
    show_up_to_qualified: float = 0.0
    show_up_to_great: float = 0.0


@dataclass
class WindowSnapshot:
    """Aggregated totals and ratios for one date range.

    Attributes:
        leads: CRM leads in range, or platform-reported leads when there are none
        registrations: Direct registrations, or the CRM proxy count in fallback mode
        show_ups: Net-new show-ups
        registration_show_ups: Registrations matched to net-new show-ups
            (equals ``show_ups`` in fallback mode)
        direct_registrations: Direct registration rows in range
        fallback_mode: True when registrations come from the CRM proxy
    """

    start_key: str
    end_key: str
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    meta_leads: float = 0.0
    leads: float = 0
    registrations: int = 0
    show_ups: int = 0
    registration_show_ups: int = 0
    tuesday_show_ups: int = 0
    thursday_show_ups: int = 0
    qualified_leads: int = 0
    great_leads: int = 0
    standard_leads: float = 0
    direct_registrations: int = 0
    direct_registration_meeting_matches: int = 0
    direct_registration_net_new_matches: int = 0
    direct_registration_crm_matches: int = 0
    fallback_mode: bool = False
    spend_by_funnel: dict[str, float] = field(default_factory=dict)
    leads_by_funnel: dict[str, int] = field(default_factory=dict)
    costs: CostMetrics = field(default_factory=CostMetrics)
    conversions: ConversionMetrics = field(default_factory=ConversionMetrics)


class AttributionEngine:
    """Compute window snapshots and allocate outcomes onto ads."""

    def __init__(self, config: AnalyticsConfig | None = None):
        """
        Initialize the engine.

        Args:
            config: Analytics configuration
        """
        self.config = config or AnalyticsConfig()

    def compute_snapshot(
        self,
        ad_rows: Sequence[AdRow],
        lead_rows: Sequence[LeadRecord],
        show_up_days: Iterable[ShowUpDay | Any],
        registration_rows: Sequence[RegistrationRecord],
        start_key: str,
        end_key: str,
        has_direct_registrations: bool | None = None,
    ) -> WindowSnapshot:
        """
        Aggregate one inclusive date range.

        Args:
            ad_rows: Normalized daily ad rows
            lead_rows: Normalized paid-social leads
            show_up_days: Daily net-new show-up rows
            registration_rows: Normalized direct registrations
            start_key: First date key (inclusive)
            end_key: Last date key (inclusive)
            has_direct_registrations: Whether the richer registration source is
                available at all; defaults to ``bool(registration_rows)``

        Returns:
            WindowSnapshot for the range
        """
        if has_direct_registrations is None:
            has_direct_registrations = len(registration_rows) > 0

        ads = [row for row in ad_rows if date_in_range(row.date_key, start_key, end_key)]
        leads = [row for row in lead_rows if date_in_range(row.created_date_key, start_key, end_key)]
        days = [
            day
            for day in ShowUpDay.coerce_all(show_up_days)
            if date_in_range(day.date, start_key, end_key)
        ]
        registrations = [
            row for row in registration_rows if date_in_range(row.date_key, start_key, end_key)
        ]

        snapshot = WindowSnapshot(start_key=start_key, end_key=end_key)
        for row in ads:
            snapshot.spend += row.spend
            snapshot.impressions += row.impressions
            snapshot.clicks += row.clicks
            snapshot.meta_leads += row.leads
            funnel = row.funnel.value
            snapshot.spend_by_funnel[funnel] = snapshot.spend_by_funnel.get(funnel, 0.0) + row.spend

        for lead in leads:
            funnel = lead.funnel.value
            snapshot.leads_by_funnel[funnel] = snapshot.leads_by_funnel.get(funnel, 0) + 1

        snapshot.leads = len(leads) if leads else snapshot.meta_leads
        snapshot.qualified_leads = sum(1 for lead in leads if lead.tier == LeadTier.QUALIFIED)
        snapshot.great_leads = sum(1 for lead in leads if lead.tier == LeadTier.GREAT)
        snapshot.standard_leads = max(
            snapshot.leads - snapshot.qualified_leads - snapshot.great_leads, 0
        )

        snapshot.show_ups = sum(day.total for day in days)
        snapshot.tuesday_show_ups = sum(day.tuesday for day in days)
        snapshot.thursday_show_ups = sum(day.thursday for day in days)

        snapshot.direct_registrations = len(registrations)
        snapshot.direct_registration_meeting_matches = sum(r.matched_meeting for r in registrations)
        snapshot.direct_registration_net_new_matches = sum(
            r.matched_meeting_net_new for r in registrations
        )
        snapshot.direct_registration_crm_matches = sum(r.matched_crm for r in registrations)

        if has_direct_registrations:
            snapshot.registrations = snapshot.direct_registrations
            snapshot.registration_show_ups = snapshot.direct_registration_net_new_matches
        else:
            snapshot.fallback_mode = True
            snapshot.registrations = sum(1 for lead in leads if lead.is_registration_proxy)
            snapshot.registration_show_ups = snapshot.show_ups

        spend = snapshot.spend
        snapshot.costs = CostMetrics(
            cpl=safe_divide(spend, snapshot.leads),
            cpql=safe_divide(spend, snapshot.qualified_leads),
            cpgl=safe_divide(spend, snapshot.great_leads),
            cost_per_show_up=safe_divide(spend, snapshot.show_ups),
            cost_per_registration=safe_divide(spend, snapshot.registrations),
        )
        snapshot.conversions = ConversionMetrics(
            impression_to_click=safe_divide(snapshot.clicks, snapshot.impressions),
            click_to_lead=safe_divide(snapshot.leads, snapshot.clicks),
            lead_to_registration=safe_divide(snapshot.registrations, snapshot.leads),
            registration_to_show_up=safe_divide(
                snapshot.registration_show_ups, snapshot.registrations
            ),
            show_up_to_qualified=safe_divide(snapshot.qualified_leads, snapshot.show_ups),
            show_up_to_great=safe_divide(snapshot.great_leads, snapshot.show_ups),
        )

        logger.debug(
            f"Snapshot {start_key}..{end_key}: spend={spend:.2f} leads={snapshot.leads} "
            f"show_ups={snapshot.show_ups} fallback={snapshot.fallback_mode}"
        )
        return snapshot

    def aggregate_ads(self, ad_rows: Iterable[AdRow]) -> dict[str, AdPerformance]:
        """Sum daily rows into one accumulator per ad id (first-seen order)."""
        performances: dict[str, AdPerformance] = {}
        for row in ad_rows:
            if row.ad_id not in performances:
                performances[row.ad_id] = AdPerformance.from_row(row)
            performances[row.ad_id].add_delivery(row)
        return performances

    def attribute(
        self,
        ad_rows: Sequence[AdRow],
        lead_rows: Sequence[LeadRecord],
        registration_rows: Sequence[RegistrationRecord] = (),
    ) -> tuple[list[AdPerformance], AllocationResult]:
        """
        Allocate lead, registration and show-up outcomes onto ads.

        Args:
            ad_rows: Normalized daily ad rows
            lead_rows: Normalized paid-social leads
            registration_rows: Direct registrations; when present they replace
                the proxy registration and show-up counts per bucket

        Returns:
            Per-ad performance sorted by spend (descending) and the allocation summary
        """
        performances = self.aggregate_ads(ad_rows)
        buckets = build_buckets(lead_rows, registration_rows)
        result = allocate(ad_rows, buckets, performances)
        ads = sorted(performances.values(), key=lambda ad: ad.spend, reverse=True)
        logger.info(
            f"Attributed {result.attributed_leads_total} leads across {len(ads)} ads "
            f"({len(buckets)} buckets)"
        )
        return ads, result
