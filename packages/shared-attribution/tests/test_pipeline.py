"""Tests for end-to-end lead analytics from raw rows."""

import pandas as pd
import pytest
from funnelnav.attribution.pipeline import build_lead_analytics
from funnelnav.identity import SessionRecord

AD_ROWS = [
    {
        "date_day": "2025-01-07",
        "ad_id": "111",
        "ad_name": "Hook A",
        "campaign_name": "Free Workshop",
        "spend": 200,
        "impressions": 4000,
        "clicks": 80,
        "leads": 4,
    },
    {
        "date_day": "2025-01-08",
        "ad_id": "222",
        "ad_name": "Hook B",
        "campaign_name": "Free Workshop",
        "spend": 100,
        "impressions": 2000,
        "clicks": 20,
        "leads": 1,
    },
]

CRM_ROWS = [
    {
        "createdate": "2025-01-06T15:00:00Z",
        "hs_analytics_source": "PAID_SOCIAL",
        "firstname": "Lori",
        "lastname": "Smith",
        "email": "lori@x.com",
        "annual_revenue_in_dollars__official_": 2_000_000,
    },
    {
        "createdate": "2025-01-08T09:00:00Z",
        "hs_analytics_source": "PAID_SOCIAL",
        "firstname": "Ken",
        "lastname": "Ray",
        "annual_revenue_in_dollars": 300_000,
    },
    {
        "createdate": "2025-01-08T10:00:00Z",
        "hs_analytics_source": "ORGANIC_SEARCH",
        "firstname": "Not",
        "lastname": "Paid",
    },
]

SESSIONS = [
    {"session_id": "tue", "start_time": "2025-01-07T17:00:00Z", "attendees": ["Lori Smith", "Ana Lee"]},
    {"session_id": "thu", "start_time": "2025-01-09T17:00:00Z", "attendees": ["Lori S", "Ken Ray"]},
    {"session_id": "bad", "start_time": None, "attendees": ["Ghost"]},
]

ALIASES = [{"original_name": "Lori S", "target_name": "Lori Smith"}]


class TestBuildLeadAnalytics:
    """Test build_lead_analytics."""

    def test_full_report(self):
        """Rosters, CRM leads and ads combine into one report."""
        report = build_lead_analytics(
            ad_rows=AD_ROWS, crm_rows=CRM_ROWS, sessions=SESSIONS, aliases=ALIASES
        )

        current = report.month_current
        assert report.primary_date == "2025-01-09"
        assert current.spend == 300
        assert current.leads == 2
        assert (current.qualified_leads, current.great_leads) == (1, 1)
        assert current.show_ups == 3
        assert (current.tuesday_show_ups, current.thursday_show_ups) == (2, 1)
        assert current.fallback_mode
        assert current.costs.cpgl == 300

    def test_leads_matched_to_show_ups(self):
        """Leads are matched to the first session the person attended."""
        report = build_lead_analytics(
            ad_rows=AD_ROWS, crm_rows=CRM_ROWS, sessions=SESSIONS, aliases=ALIASES
        )

        rows = report.drilldowns["month_current"].table("leads").rows
        matched = {row["lead_name"]: row["matched_show_up_date"] for row in rows}
        assert matched == {"Lori Smith": "2025-01-07", "Ken Ray": "2025-01-09"}

    def test_aliases_keep_people_returning(self):
        """Without the alias the Thursday 'Lori S' would count as new."""
        with_alias = build_lead_analytics(sessions=SESSIONS, aliases=ALIASES)
        without_alias = build_lead_analytics(sessions=SESSIONS)

        assert with_alias.show_up_tracker.totals.thursday_total == 1
        assert without_alias.show_up_tracker.totals.thursday_total == 2

    def test_registration_rows(self):
        """Approved registrations in the lookback switch off fallback mode."""
        registrations = [
            {
                "event_api_id": "e1",
                "guest_api_id": "g1",
                "event_date": "2025-01-09",
                "guest_name": "Ken Ray",
                "matched_zoom_net_new": "true",
                "matched_hubspot": "true",
            }
        ]

        report = build_lead_analytics(
            ad_rows=AD_ROWS,
            crm_rows=CRM_ROWS,
            sessions=SESSIONS,
            registration_rows=registrations,
            aliases=ALIASES,
        )

        assert not report.month_current.fallback_mode
        assert report.month_current.registrations == 1
        assert report.month_current.registration_show_ups == 1
        assert report.data_availability.registration_crm_match_rate == 1.0

    def test_dataframe_inputs(self):
        """DataFrames and session records are accepted."""
        sessions = [SessionRecord.from_dict(SESSIONS[0])]

        report = build_lead_analytics(
            ad_rows=pd.DataFrame(AD_ROWS), crm_rows=pd.DataFrame(CRM_ROWS), sessions=sessions
        )

        assert report.month_current.spend == 300
        assert report.month_current.show_ups == 2

    def test_duplicate_session_rows_counted_once(self):
        """Re-ingesting the same session and date does not double attendance."""
        report = build_lead_analytics(
            ad_rows=AD_ROWS, crm_rows=CRM_ROWS, sessions=SESSIONS + SESSIONS[:2], aliases=ALIASES
        )

        assert report.month_current.show_ups == 3
        assert report.show_up_tracker.totals.tuesday_sessions == 1

    def test_sessions_outside_lookback_ignored(self):
        """Sessions before the lookback window do not count as first seen."""
        old = {"session_id": "old", "start_time": "2024-06-04T17:00:00Z", "attendees": ["Lori Smith", "Ken Ray"]}

        report = build_lead_analytics(
            ad_rows=AD_ROWS, crm_rows=CRM_ROWS, sessions=[old] + SESSIONS, aliases=ALIASES
        )

        assert report.month_current.show_ups == 3

    def test_empty_inputs(self):
        """No data still yields a complete report."""
        report = build_lead_analytics(primary_date="2025-01-31")

        assert report.primary_date == "2025-01-31"
        assert report.month_current.spend == 0
        assert report.headline.startswith("No Great Leads")
        assert len(report.trend_rows) == 60

    @pytest.mark.parametrize("primary_date", ["2025-01-09", "2025-01-20"])
    def test_explicit_primary_date(self, primary_date):
        """An explicit primary date is used as is."""
        report = build_lead_analytics(ad_rows=AD_ROWS, primary_date=primary_date)
        assert report.primary_date == primary_date
