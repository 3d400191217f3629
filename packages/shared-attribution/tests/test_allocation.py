"""Tests for proportional allocation of outcomes onto ads."""

import pytest
from funnelnav.attribution.allocation import (
    AllocationPolicy,
    allocate,
    allocation_weights,
    build_buckets,
    build_daily_totals,
    choose_policy,
)
from funnelnav.attribution.engine import AttributionEngine
from funnelnav.attribution.schema import (
    AdRow,
    Funnel,
    LeadRecord,
    LeadTier,
    RegistrationRecord,
)

DAY = "2025-01-07"


class TestAllocationWeights:
    """Test policy selection and weights."""

    def test_lead_weighted(self):
        """Reported leads decide the split when any candidate has leads."""
        rows = [AdRow(DAY, "a", leads=3, spend=1), AdRow(DAY, "b", leads=1, spend=99)]
        assert choose_policy(rows) == AllocationPolicy.LEAD_WEIGHTED
        assert allocation_weights(rows) == [0.75, 0.25]

    def test_spend_weighted(self):
        """Spend decides the split when no candidate reported leads."""
        rows = [AdRow(DAY, "a", spend=30), AdRow(DAY, "b", spend=10)]
        assert choose_policy(rows) == AllocationPolicy.SPEND_WEIGHTED
        assert allocation_weights(rows) == [0.75, 0.25]

    def test_uniform(self):
        """Without leads or spend every candidate gets an equal share."""
        rows = [AdRow(DAY, "a"), AdRow(DAY, "b")]
        assert choose_policy(rows) == AllocationPolicy.UNIFORM
        assert allocation_weights(rows) == [0.5, 0.5]

    def test_no_candidates(self):
        """No candidates means no weights."""
        assert allocation_weights([]) == []


class TestBuildBuckets:
    """Test bucketing of outcomes."""

    def test_counts_by_date_and_funnel(self):
        """Leads are counted per date and funnel with tier and proxy counts."""
        leads = [
            LeadRecord(DAY, tier=LeadTier.GREAT, is_registration_proxy=True),
            LeadRecord(DAY, tier=LeadTier.QUALIFIED, matched_show_up=True),
            LeadRecord(DAY, funnel=Funnel.PHOENIX),
        ]

        buckets = build_buckets(leads)

        free = buckets[f"{DAY}|free"]
        assert (free.leads, free.registrations, free.matched_show_ups) == (2, 1, 1)
        assert (free.qualified_leads, free.great_leads) == (1, 1)
        assert buckets[f"{DAY}|phoenix"].leads == 1

    def test_direct_registrations_override(self):
        """Direct registrations replace proxy registrations and show-ups."""
        leads = [LeadRecord(DAY, is_registration_proxy=True, matched_show_up=True)]
        registrations = [
            RegistrationRecord(DAY, "e1", "g1", matched_meeting_net_new=True),
            RegistrationRecord(DAY, "e1", "g2"),
            RegistrationRecord("2025-01-08", "e2", "g3"),
        ]

        buckets = build_buckets(leads, registrations)

        assert buckets[f"{DAY}|free"].registrations == 2
        assert buckets[f"{DAY}|free"].matched_show_ups == 1
        assert buckets["2025-01-08|free"].leads == 0
        assert buckets["2025-01-08|free"].registrations == 1

    def test_daily_totals_ignore_funnel(self):
        """Daily totals merge funnels."""
        leads = [LeadRecord(DAY), LeadRecord(DAY, funnel=Funnel.PHOENIX)]
        assert build_daily_totals(leads)[DAY].leads == 2


class TestAllocate:
    """Test allocate."""

    def test_conservation(self):
        """Allocated shares add back up to each bucket's counts."""
        ad_rows = [AdRow(DAY, "a", leads=3), AdRow(DAY, "b", leads=1)]
        leads = [
            LeadRecord(DAY, tier=LeadTier.GREAT),
            LeadRecord(DAY, tier=LeadTier.QUALIFIED),
            LeadRecord(DAY, matched_show_up=True),
            LeadRecord(DAY),
        ]
        engine = AttributionEngine()
        performances = engine.aggregate_ads(ad_rows)

        result = allocate(ad_rows, build_buckets(leads), performances)

        a, b = performances["a"], performances["b"]
        assert a.attributed_leads == pytest.approx(3.0)
        assert b.attributed_leads == pytest.approx(1.0)
        assert a.attributed_great_leads + b.attributed_great_leads == pytest.approx(1.0)
        assert a.attributed_show_ups == pytest.approx(0.75)
        assert result.attributed_leads_total == 4
        assert result.attributed_show_ups_total == 1
        assert result.policies[f"{DAY}|free"] == AllocationPolicy.LEAD_WEIGHTED

    def test_falls_back_to_any_funnel_on_date(self):
        """Without same-funnel ads, every ad on the date is a candidate."""
        ad_rows = [AdRow(DAY, "a", spend=10), AdRow(DAY, "b", spend=30)]
        performances = AttributionEngine().aggregate_ads(ad_rows)

        allocate(ad_rows, build_buckets([LeadRecord(DAY, funnel=Funnel.PHOENIX)]), performances)

        assert performances["a"].attributed_leads == pytest.approx(0.25)
        assert performances["b"].attributed_leads == pytest.approx(0.75)

    def test_unallocated_buckets(self):
        """Buckets on dates without ads are counted but not attributed."""
        ad_rows = [AdRow(DAY, "a", leads=1)]
        performances = AttributionEngine().aggregate_ads(ad_rows)

        result = allocate(ad_rows, build_buckets([LeadRecord("2025-01-08")]), performances)

        assert result.unallocated_buckets == 1
        assert result.attributed_leads_total == 0
        assert performances["a"].attributed_leads == 0
