"""Integration tests for package imports."""

import pytest


class TestAllPackagesImportable:
    """Test that all FunnelNav packages can be imported together."""

    def test_identity_package_imports(self):
        """Identity package classes should be importable."""
        from funnelnav.identity import IdentityResolutionEngine
        from funnelnav.identity import InMemoryIdentityRepository
        from funnelnav.identity import SessionDeduper
        from funnelnav.identity import Canonicalizer
        from funnelnav.identity import build_net_new
        from funnelnav.identity import IdentityConfig

        assert IdentityResolutionEngine is not None
        assert InMemoryIdentityRepository is not None
        assert SessionDeduper is not None
        assert Canonicalizer is not None
        assert build_net_new is not None
        assert IdentityConfig is not None

    def test_attribution_package_imports(self):
        """Attribution package classes should be importable."""
        from funnelnav.attribution import AttributionEngine
        from funnelnav.attribution import WindowAnalyticsBuilder
        from funnelnav.attribution import AdSpendNormalizer
        from funnelnav.attribution import CRMLeadNormalizer
        from funnelnav.attribution import RegistrationNormalizer
        from funnelnav.attribution import build_lead_analytics

        assert AttributionEngine is not None
        assert WindowAnalyticsBuilder is not None
        assert AdSpendNormalizer is not None
        assert build_lead_analytics is not None

    def test_all_exports_resolve(self):
        """Every name in __all__ should resolve."""
        import funnelnav.attribution as attribution
        import funnelnav.identity as identity

        for module in (identity, attribution):
            for name in module.__all__:
                assert getattr(module, name) is not None


class TestCrossPackageIntegration:
    """Test that packages work together."""

    def test_resolved_identities_feed_show_up_matching(self, identity_engine, sample_sessions, sample_crm_rows):
        """First-seen dates from identity resolution match CRM leads to show-ups."""
        from funnelnav.attribution import CRMLeadNormalizer, ShowUpIndex
        from funnelnav.identity import SessionDeduper, SessionRecord

        deduper = SessionDeduper()
        for row in sample_sessions:
            session = SessionRecord.from_dict(row)
            attendees = deduper.dedupe_attendees(session.raw_participants)
            identity_engine.process_session(session.session_id, session.date_key, attendees)

        first_seen = identity_engine.first_seen_index()
        assert first_seen["lori smith"] == "2025-01-07"
        assert first_seen["ken ray"] == "2025-01-09"

        index = ShowUpIndex.from_first_seen(first_seen)
        leads = CRMLeadNormalizer(show_up_index=index).normalize(sample_crm_rows)

        assert [(lead.lead_name, lead.matched_show_up_date_key) for lead in leads] == [
            ("Lori Smith", "2025-01-07"),
            ("Ken Ray", "2025-01-09"),
        ]

    def test_net_new_summary_feeds_show_up_index(self, sample_sessions):
        """A net-new roll-up builds the same kind of index."""
        from funnelnav.attribution import ShowUpIndex
        from funnelnav.identity import SessionRecord, build_net_new

        summary = build_net_new([SessionRecord.from_dict(row) for row in sample_sessions])
        index = ShowUpIndex.from_net_new(summary)

        assert len(index) == 3
        assert index.match("Ana Lee", "2025-01-01").day_type == "Tuesday"

    def test_end_to_end_report(self, sample_ad_rows, sample_crm_rows, sample_sessions):
        """Raw exports produce a complete report."""
        from funnelnav.attribution import build_lead_analytics

        report = build_lead_analytics(
            ad_rows=sample_ad_rows, crm_rows=sample_crm_rows, sessions=sample_sessions
        )

        current = report.month_current
        assert report.primary_date == "2025-01-09"
        assert current.spend == pytest.approx(300.0)
        assert current.show_ups == 3
        assert current.great_leads == 1
        assert current.registrations == 1
        assert current.fallback_mode
        assert report.to_dict()["headline"] == report.headline
