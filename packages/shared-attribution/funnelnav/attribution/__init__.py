"""
FunnelNav Attribution - windowed ad/lead funnel analytics.

Provides:
- Normalizers for ad delivery, CRM lead and event registration exports
- Lead-quality tiers and show-up matching against first-seen attendance
- Proportional allocation of leads, registrations and show-ups onto ads
- Month/week snapshots, ranked ads, headline, recommendations and alerts
- Per-metric drill-down tables

Attribution here is an estimate: outcomes carry no ad identifier, so they
are bucketed by date and funnel and spread across the ads that delivered
on that date.

Usage:
    from funnelnav.attribution import build_lead_analytics

    report = build_lead_analytics(
        ad_rows=ads_export,
        crm_rows=crm_contacts,
        sessions=meeting_rosters,
        registration_rows=event_guests,
    )
    print(report.headline)
"""

from funnelnav.attribution.allocation import (
    AllocationPolicy,
    AllocationResult,
    OutcomeBucket,
    allocate,
    allocation_weights,
    build_buckets,
)
from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.drilldown import DrilldownTable, WindowDrilldown, build_window_drilldown
from funnelnav.attribution.engine import AttributionEngine, WindowSnapshot
from funnelnav.attribution.exceptions import AttributionError, ConfigurationError
from funnelnav.attribution.insights import (
    NO_ANOMALIES_MESSAGE,
    DataAvailability,
    Recommendation,
    build_alerts,
    build_headline,
    build_recommendations,
)
from funnelnav.attribution.metrics import MetricDelta, metric_delta, safe_divide
from funnelnav.attribution.normalizer import (
    AdSpendNormalizer,
    CRMLeadNormalizer,
    RegistrationNormalizer,
    RowNormalizer,
)
from funnelnav.attribution.pipeline import build_lead_analytics
from funnelnav.attribution.ranking import RankedAd, bottom_ads, top_ads
from funnelnav.attribution.schema import (
    AdPerformance,
    AdRow,
    Funnel,
    LeadRecord,
    LeadTier,
    RegistrationRecord,
    ShowUpDay,
    classify_tier,
)
from funnelnav.attribution.showups import ShowUpIndex
from funnelnav.attribution.windows import AnalyticsReport, WindowAnalyticsBuilder

__all__ = [
    # Schema
    "AdRow",
    "LeadRecord",
    "RegistrationRecord",
    "ShowUpDay",
    "AdPerformance",
    "Funnel",
    "LeadTier",
    "classify_tier",
    # Normalizers
    "RowNormalizer",
    "AdSpendNormalizer",
    "CRMLeadNormalizer",
    "RegistrationNormalizer",
    "ShowUpIndex",
    # Attribution
    "AttributionEngine",
    "WindowSnapshot",
    "AllocationPolicy",
    "AllocationResult",
    "OutcomeBucket",
    "allocate",
    "allocation_weights",
    "build_buckets",
    "RankedAd",
    "top_ads",
    "bottom_ads",
    # Report
    "WindowAnalyticsBuilder",
    "AnalyticsReport",
    "DataAvailability",
    "Recommendation",
    "NO_ANOMALIES_MESSAGE",
    "build_headline",
    "build_recommendations",
    "build_alerts",
    "DrilldownTable",
    "WindowDrilldown",
    "build_window_drilldown",
    "build_lead_analytics",
    # Metrics
    "MetricDelta",
    "metric_delta",
    "safe_divide",
    # Config / errors
    "AnalyticsConfig",
    "AttributionError",
    "ConfigurationError",
]
