"""Tests for ad, CRM lead and registration normalizers."""

import pandas as pd
from funnelnav.attribution.normalizer import (
    AdSpendNormalizer,
    CRMLeadNormalizer,
    RegistrationNormalizer,
    dedupe_by_key,
)
from funnelnav.attribution.schema import Funnel, LeadTier
from funnelnav.attribution.showups import ShowUpIndex


class TestAdSpendNormalizer:
    """Test AdSpendNormalizer."""

    def test_normalize_basic_row(self):
        """Numeric fields are coerced and names defaulted."""
        rows = AdSpendNormalizer().normalize([
            {
                "date_day": "2025-01-07",
                "ad_id": "111",
                "ad_name": "Hook A",
                "campaign_name": "Free Workshop",
                "spend": "120.5",
                "impressions": 3000,
                "clicks": 45,
                "leads": 6,
            }
        ])

        assert len(rows) == 1
        row = rows[0]
        assert row.date_key == "2025-01-07"
        assert row.ad_id == "111"
        assert row.adset_name == "Unknown Ad Set"
        assert row.spend == 120.5
        assert row.leads == 6
        assert row.funnel == Funnel.FREE

    def test_missing_ad_id_gets_synthetic_id(self):
        """Rows without an ad id get a slug id and are never deduplicated."""
        row = {
            "date_day": "2025-01-07",
            "campaign_name": "Spring Promo!",
            "adset_name": "Broad / US",
            "spend": 10,
        }

        rows = AdSpendNormalizer().normalize([row, dict(row)])

        assert [r.ad_id for r in rows] == [
            "unknown-spring-promo-broad-us-2025-01-07",
            "unknown-spring-promo-broad-us-2025-01-07",
        ]

    def test_duplicate_ad_date_dropped(self):
        """The first row per ad id and date wins."""
        rows = AdSpendNormalizer().normalize(
            pd.DataFrame([
                {"date_day": "2025-01-07", "ad_id": "111", "spend": 10},
                {"date_day": "2025-01-07", "ad_id": "111", "spend": 99},
                {"date_day": "2025-01-08", "ad_id": "111", "spend": 20},
            ])
        )

        assert [(r.date_key, r.spend) for r in rows] == [("2025-01-07", 10), ("2025-01-08", 20)]

    def test_unparseable_date_skipped(self):
        """Rows without a usable date are skipped."""
        rows = AdSpendNormalizer().normalize([
            {"date_day": "bogus", "ad_id": "1"},
            {"date_day": None, "ad_id": "2"},
            {"date_day": "2025-01-07", "ad_id": "3"},
        ])
        assert [r.ad_id for r in rows] == ["3"]

    def test_funnel_classification(self):
        """Phoenix keywords or account ids select the phoenix funnel."""
        normalizer = AdSpendNormalizer()

        assert normalizer.classify_funnel({"campaign_name": "Phoenix Retargeting"}) == Funnel.PHOENIX
        assert normalizer.classify_funnel({"ad_account_id": "1034775818463907"}) == Funnel.PHOENIX
        assert normalizer.classify_funnel({"campaign_name": "Workshop"}) == Funnel.FREE

    def test_explicit_funnel_key_wins(self):
        """An explicit funnel key overrides keyword inference."""
        normalizer = AdSpendNormalizer()
        row = {"funnel_key": "free", "campaign_name": "Phoenix Retargeting"}
        assert normalizer.classify_funnel(row) == Funnel.FREE

    def test_empty_input(self):
        """Empty input yields no rows."""
        assert AdSpendNormalizer().normalize([]) == []


class TestCRMLeadNormalizer:
    """Test CRMLeadNormalizer."""

    def test_only_paid_social_kept(self):
        """Contacts from other sources are ignored."""
        leads = CRMLeadNormalizer().normalize([
            {"createdate": "2025-01-07", "hs_analytics_source": "PAID_SOCIAL", "firstname": "Lori"},
            {"createdate": "2025-01-07", "hs_analytics_source": "ORGANIC_SEARCH", "firstname": "Ana"},
            {"createdate": "2025-01-07", "hs_analytics_source": None, "firstname": "Bo"},
        ])

        assert [lead.lead_name for lead in leads] == ["Lori"]

    def test_revenue_resolution(self):
        """The official revenue field wins; the fallback fills gaps."""
        leads = CRMLeadNormalizer().normalize(
            pd.DataFrame([
                {
                    "createdate": "2025-01-07",
                    "hs_analytics_source": "PAID_SOCIAL",
                    "email": "great@x.com",
                    "annual_revenue_in_dollars__official_": 2_000_000,
                    "annual_revenue_in_dollars": 10,
                },
                {
                    "createdate": "2025-01-08",
                    "hs_analytics_source": "PAID_SOCIAL",
                    "email": "qualified@x.com",
                    "annual_revenue_in_dollars__official_": None,
                    "annual_revenue_in_dollars": "300000",
                },
                {
                    "createdate": "2025-01-09",
                    "hs_analytics_source": "PAID_SOCIAL",
                    "email": "unknown@x.com",
                },
            ])
        )

        assert [lead.tier for lead in leads] == [LeadTier.GREAT, LeadTier.QUALIFIED, LeadTier.UNKNOWN]
        assert leads[0].revenue == 2_000_000
        assert leads[1].revenue == 300_000
        assert leads[2].revenue is None

    def test_lead_name_falls_back_to_email(self):
        """Without a name, the email local part is used."""
        assert CRMLeadNormalizer.lead_name({"email": "jane.doe-smith@x.com"}) == "jane doe smith"
        assert CRMLeadNormalizer.lead_name({"firstname": "Jane", "lastname": "Doe"}) == "Jane Doe"

    def test_funnel_and_registration_proxy(self):
        """Phoenix and registration membership markers are detected."""
        leads = CRMLeadNormalizer().normalize([
            {
                "createdate": "2025-01-07",
                "hs_analytics_source": "PAID_SOCIAL",
                "membership_s": "Luma Registered; Phoenix",
            }
        ])

        assert leads[0].funnel == Funnel.PHOENIX
        assert leads[0].is_registration_proxy

    def test_sorted_and_skips_bad_dates(self):
        """Leads come back ordered by creation date."""
        leads = CRMLeadNormalizer().normalize([
            {"createdate": "2025-01-09", "hs_analytics_source": "PAID_SOCIAL", "firstname": "B"},
            {"createdate": "nope", "hs_analytics_source": "PAID_SOCIAL", "firstname": "X"},
            {"createdate": "2025-01-07", "hs_analytics_source": "PAID_SOCIAL", "firstname": "A"},
        ])

        assert [lead.lead_name for lead in leads] == ["A", "B"]

    def test_show_up_matching(self):
        """Leads are matched to first-seen sessions within the window."""
        index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-09"})

        leads = CRMLeadNormalizer(show_up_index=index).normalize([
            {
                "createdate": "2025-01-06",
                "hs_analytics_source": "PAID_SOCIAL",
                "firstname": "Lori",
                "lastname": "Smith",
            }
        ])

        assert leads[0].matched_show_up
        assert leads[0].matched_show_up_date_key == "2025-01-09"

    def test_attribution_columns_detected(self):
        """Advanced attribution columns are detected on the input."""
        normalizer = CRMLeadNormalizer()
        normalizer.normalize([{"createdate": "2025-01-07", "hs_latest_source": "PAID_SOCIAL"}])
        assert normalizer.has_attribution_columns

        normalizer.normalize([{"createdate": "2025-01-07"}])
        assert not normalizer.has_attribution_columns


class TestRegistrationNormalizer:
    """Test RegistrationNormalizer."""

    def test_dedupe_and_approval(self):
        """One record per event and guest; only approved guests kept."""
        records = RegistrationNormalizer().normalize([
            {"event_api_id": "e1", "guest_api_id": "g1", "event_date": "2025-01-09"},
            {"event_api_id": "e1", "guest_api_id": "g1", "event_date": "2025-01-09"},
            {"event_api_id": "e1", "guest_api_id": "g2", "event_date": "2025-01-09",
             "approval_status": "declined"},
            {"event_api_id": "e1", "guest_api_id": "g3", "event_date": "2025-01-09",
             "approval_status": "Approved"},
        ])

        assert [r.dedupe_key for r in records] == ["e1|g1", "e1|g3"]

    def test_first_valid_copy_wins(self):
        """An unapproved or undated first copy does not hide a later valid one."""
        records = RegistrationNormalizer().normalize([
            {"event_api_id": "e1", "guest_api_id": "g1", "event_date": "2025-01-09",
             "approval_status": "pending_approval"},
            {"event_api_id": "e1", "guest_api_id": "g1", "event_date": "2025-01-09",
             "guest_name": "Ken Ray"},
            {"event_api_id": "e1", "guest_api_id": "g1", "event_date": "2025-01-09",
             "guest_name": "Ken R"},
            {"event_api_id": "e2", "guest_api_id": "g2", "event_date": "not a date"},
            {"event_api_id": "e2", "guest_api_id": "g2", "event_date": "2025-01-16"},
        ])

        assert [(r.dedupe_key, r.guest_name) for r in records] == [
            ("e1|g1", "Ken Ray"),
            ("e2|g2", ""),
        ]

    def test_required_ids(self):
        """Rows without both ids are skipped."""
        records = RegistrationNormalizer().normalize([
            {"event_api_id": "e1", "event_date": "2025-01-09"},
            {"guest_api_id": "g1", "event_date": "2025-01-09"},
            {"eventApiId": "e2", "guestApiId": "g2", "event_date": "2025-01-09"},
        ])

        assert [r.dedupe_key for r in records] == ["e2|g2"]

    def test_thursday_flag(self):
        """Explicit non-Thursday rows are dropped; a blank flag counts as Thursday."""
        records = RegistrationNormalizer().normalize(
            pd.DataFrame([
                {"event_api_id": "e1", "guest_api_id": "g1", "event_date": "2025-01-09",
                 "is_thursday": "false"},
                {"event_api_id": "e1", "guest_api_id": "g2", "event_date": "2025-01-09",
                 "is_thursday": None},
                {"event_api_id": "e1", "guest_api_id": "g3", "event_date": "2025-01-09",
                 "is_thursday": "true"},
            ])
        )

        assert [r.guest_id for r in records] == ["g2", "g3"]

    def test_date_fallback_fields(self):
        """registered_at is used when event_date is missing."""
        records = RegistrationNormalizer().normalize([
            {"event_api_id": "e1", "guest_api_id": "g1", "registered_at": "2025-01-05T10:00:00Z"},
            {"event_api_id": "e1", "guest_api_id": "g2"},
        ])

        assert [(r.guest_id, r.date_key) for r in records] == [("g1", "2025-01-05")]

    def test_match_flags_and_tier(self):
        """Match flags and CRM tier are carried over."""
        records = RegistrationNormalizer().normalize([
            {
                "event_api_id": "e1",
                "guest_api_id": "g1",
                "event_date": "2025-01-09",
                "guest_email": "LORI@X.COM",
                "matched_hubspot_tier": "Great",
                "matched_zoom": "true",
                "matched_zoom_net_new": "yes",
                "matched_hubspot": True,
                "funnel_key": "phoenix",
            }
        ])

        record = records[0]
        assert record.guest_email == "lori@x.com"
        assert record.tier == LeadTier.GREAT
        assert record.matched_meeting
        assert record.matched_meeting_net_new
        assert record.matched_crm
        assert record.funnel == Funnel.PHOENIX


class TestDedupeByKey:
    """Test dedupe_by_key."""

    def test_reingest_is_noop(self):
        """Normalizing the same rows twice gives the same unique rows."""
        rows = [("a", 1), ("b", 2)]
        assert dedupe_by_key(rows + rows, lambda row: row[0]) == rows

    def test_none_keys_kept(self):
        """Rows without a key are always kept."""
        assert dedupe_by_key([1, 2, 3], lambda row: None) == [1, 2, 3]
