"""Tests for headline, recommendation and alert rules."""

import pytest
from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.engine import ConversionMetrics, CostMetrics, WindowSnapshot
from funnelnav.attribution.insights import (
    NO_ANOMALIES_MESSAGE,
    NO_GREAT_LEADS_HEADLINE,
    STABLE_HEADLINE,
    DataAvailability,
    build_alerts,
    build_headline,
    build_recommendations,
)
from funnelnav.attribution.ranking import RankedAd
from funnelnav.attribution.schema import AdPerformance, Funnel, ShowUpTotals


def snap(**kwargs):
    return WindowSnapshot("2025-01-01", "2025-01-30", **kwargs)


@pytest.fixture
def ranked():
    best = AdPerformance("a", "Best Ad", "S", "C", Funnel.FREE, spend=100, attributed_great_leads=1)
    worst = AdPerformance("b", "Worst Ad", "S", "C", Funnel.FREE, spend=200)
    return [RankedAd(best, 1.0)], [RankedAd(worst, 700.0)]


@pytest.fixture
def healthy():
    """Availability with every richer source present and nothing to flag."""
    return DataAvailability(has_direct_registrations=True, has_crm_attribution_columns=True)


class TestHeadline:
    """Test build_headline."""

    def test_no_great_leads(self, ranked):
        """Zero great leads always wins."""
        top, bottom = ranked
        assert build_headline(snap(), snap(), top, bottom) == NO_GREAT_LEADS_HEADLINE

    def test_cpgl_improving(self, ranked):
        """A CPGL drop beyond the threshold is called out with the top ad."""
        top, bottom = ranked
        current = snap(great_leads=2, costs=CostMetrics(cpgl=50))
        previous = snap(great_leads=1, costs=CostMetrics(cpgl=100))

        headline = build_headline(current, previous, top, bottom)

        assert headline == (
            "CPGL is improving month-over-month (-50.0%), "
            "with Best Ad driving higher-quality outcomes."
        )

    def test_inefficiency(self, ranked):
        """Without a comparable CPGL the worst and best ads are named."""
        top, bottom = ranked
        headline = build_headline(snap(great_leads=1, costs=CostMetrics(cpgl=80)), snap(), top, bottom)
        assert headline.startswith("Cost inefficiency is concentrated in Worst Ad.")
        assert "Best Ad" in headline

    def test_stable(self):
        """With nothing to report the stable headline is used."""
        assert build_headline(snap(great_leads=1), snap(), [], []) == STABLE_HEADLINE


class TestRecommendations:
    """Test build_recommendations."""

    def test_reallocation_first(self, ranked):
        """Reallocation leads, with the expected great-lead lift."""
        top, bottom = ranked

        recs = build_recommendations(snap(), snap(), top, bottom, ShowUpTotals())

        assert len(recs) == 3
        assert recs[0].title == 'Reallocate 25% of spend from "Worst Ad" to "Best Ad"'
        assert recs[0].impact.startswith("Expected impact: +0.5 Great Leads")
        assert recs[1].title.startswith("Improve Lead -> Registration")
        assert recs[2].title.startswith("Add deterministic ad id capture")

    def test_weekday_parity(self):
        """A large Tuesday/Thursday gap targets the weaker day."""
        current = snap(conversions=ConversionMetrics(lead_to_registration=0.6))
        totals = ShowUpTotals(tuesday_total=6, thursday_total=2, tuesday_sessions=2, thursday_sessions=2)

        recs = build_recommendations(current, snap(), [], [], totals)

        assert recs[0].title == "Run a Thursday-specific follow-up sequence to raise show-up conversion"
        assert "+2.0 net-new show-ups" in recs[0].impact
        assert len(recs) == 2

    def test_registration_follow_up(self):
        """A weak registration show-up rate with direct data is flagged."""
        current = snap(
            direct_registrations=10,
            conversions=ConversionMetrics(lead_to_registration=0.6, registration_to_show_up=0.2),
        )

        recs = build_recommendations(current, snap(), [], [], ShowUpTotals())

        assert recs[0].title.startswith("Improve registration follow-up")
        assert recs[0].impact.startswith("Expected impact: +3.5 net-new show-ups")

    def test_capped(self, ranked):
        """No more than max_recommendations are returned."""
        top, bottom = ranked
        config = AnalyticsConfig(max_recommendations=1)

        recs = build_recommendations(snap(), snap(), top, bottom, ShowUpTotals(), config)

        assert len(recs) == 1


class TestAlerts:
    """Test build_alerts."""

    def test_no_anomalies(self, healthy):
        """Nothing to report yields exactly the no-anomalies message."""
        assert build_alerts(snap(), snap(), snap(), snap(), healthy) == [NO_ANOMALIES_MESSAGE]

    def test_cpl_increase(self, healthy):
        """A CPL rise above the threshold alerts."""
        current = snap(costs=CostMetrics(cpl=150))
        previous = snap(costs=CostMetrics(cpl=100))

        alerts = build_alerts(current, previous, snap(), snap(), healthy)

        assert alerts == ["CPL increased 50.0% month-over-month."]

    def test_weekly_show_up_drop(self, healthy):
        """A large week-over-week show-up drop alerts."""
        alerts = build_alerts(snap(), snap(), snap(show_ups=5), snap(show_ups=10), healthy)
        assert alerts == ["Net new show-ups are down 50.0% week-over-week."]

    def test_degraded_sources(self):
        """Missing registration data and attribution columns are both reported."""
        alerts = build_alerts(snap(), snap(), snap(), snap(), DataAvailability())

        assert len(alerts) == 2
        assert alerts[0].startswith("Registration-level data is unavailable.")
        assert alerts[1].startswith("Advanced CRM attribution columns are missing")

    def test_low_registration_match_rates(self):
        """Low registration match rates alert when registrations exist."""
        availability = DataAvailability(
            has_direct_registrations=True,
            has_crm_attribution_columns=True,
            direct_registrations_current=10,
            registration_meeting_match_rate=0.2,
            registration_crm_match_rate=0.5,
        )

        alerts = build_alerts(snap(), snap(), snap(), snap(), availability)

        assert alerts == [
            "Low registration -> meeting net-new match rate (20.0%).",
            "Low registration -> CRM identity match rate (50.0%).",
        ]


class TestDataAvailability:
    """Test DataAvailability.from_snapshot."""

    def test_rates(self):
        """Match rates are computed against direct registrations."""
        current = snap(
            direct_registrations=4,
            direct_registration_net_new_matches=1,
            direct_registration_crm_matches=3,
        )

        availability = DataAvailability.from_snapshot(current, True, False, 8, 10)

        assert availability.attribution_lead_coverage == 0.8
        assert availability.registration_meeting_match_rate == 0.25
        assert availability.registration_crm_match_rate == 0.75
        assert availability.to_dict()["direct_registrations_current"] == 4
