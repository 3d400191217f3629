"""
Window analytics builder - assembles the full attribution report.

The report is anchored at the *primary date*: the latest date seen in the
input data, not wall-clock today, so a report over frozen historical data is
reproducible. From it five windows are derived:

    month_current   [primary - 29, primary]
    month_previous  the 30 days before month_current
    week_current    [primary - 6, primary]
    week_previous   the 7 days before week_current
    lookback        [primary - 119, primary]

Usage:
    builder = WindowAnalyticsBuilder()
    report = builder.build(ad_rows, leads, registrations, show_up_days, sessions)
    payload = report.to_dict()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from funnelnav.attribution.allocation import AllocationResult, build_daily_totals
from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.dates import add_days, date_in_range, iter_date_keys
from funnelnav.attribution.drilldown import (
    DEFAULT_METRIC_KEY,
    DEFAULT_WINDOW_KEY,
    METRIC_LABELS,
    WindowDrilldown,
    build_window_drilldown,
)
from funnelnav.attribution.engine import AttributionEngine, WindowSnapshot
from funnelnav.attribution.insights import (
    DataAvailability,
    Recommendation,
    build_alerts,
    build_headline,
    build_recommendations,
)
from funnelnav.attribution.metrics import MetricDelta, metric_delta, safe_divide
from funnelnav.attribution.ranking import RankedAd, bottom_ads, top_ads
from funnelnav.attribution.schema import (
    AdPerformance,
    AdRow,
    LeadRecord,
    RegistrationRecord,
    ShowUpDay,
    ShowUpSession,
    ShowUpTotals,
)

logger = logging.getLogger(__name__)


def _to_plain(value: Any) -> Any:
    """Recursively convert report objects to dicts, lists and scalars."""
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return _to_plain(value.to_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class DateRange:
    """Inclusive ``[start_key, end_key]`` window."""

    start_key: str
    end_key: str
    label: str = ""

    def contains(self, date_key: str | None) -> bool:
        return date_in_range(date_key, self.start_key, self.end_key)


@dataclass
class MetricSnapshotRow:
    """One metric across the month and week windows."""

    id: str
    label: str
    current: float
    previous: float
    weekly_current: float
    weekly_previous: float
    monthly_delta: MetricDelta
    weekly_delta: MetricDelta
    format: str
    better_when: str


@dataclass
class FunnelStage:
    """A funnel stage and its conversion from the stage before it."""

    key: str
    label: str
    value: float
    conversion_from_previous: float | None = None


@dataclass
class LeadQualityBreakdown:
    """Counts and shares of standard, qualified and great leads."""

    standard: float
    qualified: int
    great: int
    standard_pct: float
    qualified_pct: float
    great_pct: float

    @classmethod
    def from_snapshot(cls, snapshot: WindowSnapshot) -> LeadQualityBreakdown:
        total = snapshot.leads
        return cls(
            standard=snapshot.standard_leads,
            qualified=snapshot.qualified_leads,
            great=snapshot.great_leads,
            standard_pct=safe_divide(snapshot.standard_leads, total),
            qualified_pct=safe_divide(snapshot.qualified_leads, total),
            great_pct=safe_divide(snapshot.great_leads, total),
        )


@dataclass
class TrendRow:
    """One day of the trend series."""

    date: str
    label: str
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    leads: float = 0
    registrations: int = 0
    qualified_leads: int = 0
    great_leads: int = 0
    net_new_tuesday: int = 0
    net_new_thursday: int = 0
    net_new_total: int = 0


@dataclass
class ShowUpTracker:
    """Trend rows plus Tuesday/Thursday net-new totals and averages."""

    rows: list[TrendRow]
    totals: ShowUpTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": _to_plain(self.rows),
            "total_tuesday": self.totals.tuesday_total,
            "total_thursday": self.totals.thursday_total,
            "tuesday_sessions": self.totals.tuesday_sessions,
            "thursday_sessions": self.totals.thursday_sessions,
            "average_tuesday": self.totals.average_tuesday,
            "average_thursday": self.totals.average_thursday,
        }


@dataclass
class RegistrationFunnel:
    """Direct registrations and how many matched downstream identities."""

    registrations: int
    meeting_matches: int
    net_new_matches: int
    crm_matches: int
    registration_to_show_up_rate: float


@dataclass
class CostCard:
    """Current and previous month value of one cost metric."""

    key: str
    label: str
    value: float
    previous: float


@dataclass
class AnalyticsReport:
    """The assembled analytics report.

    ``to_dict()`` returns a plain nested structure of dicts, lists and
    scalars for the rendering layer.
    """

    generated_at: str
    primary_date: str
    windows: dict[str, DateRange]
    data_availability: DataAvailability
    month_current: WindowSnapshot
    month_previous: WindowSnapshot
    week_current: WindowSnapshot
    week_previous: WindowSnapshot
    metric_snapshot_rows: list[MetricSnapshotRow]
    funnel_stages: list[FunnelStage]
    lead_quality: LeadQualityBreakdown
    show_up_tracker: ShowUpTracker
    registration_funnel: RegistrationFunnel
    cost_cards: dict[str, CostCard]
    ad_attribution_rows: list[AdPerformance]
    top_ads: list[RankedAd]
    bottom_ads: list[RankedAd]
    headline: str
    recommendations: list[Recommendation]
    alerts: list[str]
    drilldowns: dict[str, WindowDrilldown] = field(default_factory=dict)
    allocation: AllocationResult | None = None

    @property
    def trend_rows(self) -> list[TrendRow]:
        return self.show_up_tracker.rows

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: _to_plain(getattr(self, f.name)) for f in fields(self)}
        data["drilldowns"] = {
            "default_window_key": DEFAULT_WINDOW_KEY,
            "default_metric_key": DEFAULT_METRIC_KEY,
            "windows": _to_plain(self.windows),
            "by_window": _to_plain(self.drilldowns),
            "metric_labels": dict(METRIC_LABELS),
        }
        return data


_SNAPSHOT_METRICS: tuple[tuple[str, str, str, str, str], ...] = (
    # id, label, snapshot attribute path, format, better_when
    ("spend", "Ad Spend", "spend", "currency", "lower"),
    ("impressions", "Impressions", "impressions", "count", "higher"),
    ("clicks", "Clicks", "clicks", "count", "higher"),
    ("leads", "Leads Captured", "leads", "count", "higher"),
    ("registrations", "Registrations", "registrations", "count", "higher"),
    ("showups", "Net New Show-Ups", "show_ups", "count", "higher"),
    ("qualified", "Qualified Leads", "qualified_leads", "count", "higher"),
    ("great", "Great Leads", "great_leads", "count", "higher"),
    ("cpl", "CPL", "costs.cpl", "currency", "lower"),
    ("cpql", "CPQL", "costs.cpql", "currency", "lower"),
    ("cpgl", "CPGL", "costs.cpgl", "currency", "lower"),
    ("cost_per_showup", "Cost Per Show-Up", "costs.cost_per_show_up", "currency", "lower"),
    ("cost_per_registration", "Cost Per Registration", "costs.cost_per_registration", "currency", "lower"),
    ("impr_to_click", "Impression -> Click", "conversions.impression_to_click", "percent", "higher"),
    ("click_to_lead", "Click -> Lead", "conversions.click_to_lead", "percent", "higher"),
    ("lead_to_registration", "Lead -> Registration", "conversions.lead_to_registration", "percent", "higher"),
    ("registration_to_showup", "Registration -> Show-Up", "conversions.registration_to_show_up", "percent", "higher"),
    ("showup_to_qualified", "Show-Up -> Qualified", "conversions.show_up_to_qualified", "percent", "higher"),
    ("showup_to_great", "Show-Up -> Great", "conversions.show_up_to_great", "percent", "higher"),
)

_COST_CARDS: tuple[tuple[str, str, str], ...] = (
    ("cpl", "CPL", "cpl"),
    ("cpql", "CPQL", "cpql"),
    ("cpgl", "CPGL", "cpgl"),
    ("cost_per_showup", "Cost Per Show-Up", "cost_per_show_up"),
    ("cost_per_registration", "Cost Per Registration", "cost_per_registration"),
)


def _resolve(snapshot: WindowSnapshot, path: str) -> float:
    value: Any = snapshot
    for part in path.split("."):
        value = getattr(value, part)
    return value


def build_metric_snapshot_rows(
    month_current: WindowSnapshot,
    month_previous: WindowSnapshot,
    week_current: WindowSnapshot,
    week_previous: WindowSnapshot,
) -> list[MetricSnapshotRow]:
    """One row per reported metric with monthly and weekly deltas."""
    rows = []
    for metric_id, label, path, fmt, better_when in _SNAPSHOT_METRICS:
        current = _resolve(month_current, path)
        previous = _resolve(month_previous, path)
        weekly_current = _resolve(week_current, path)
        weekly_previous = _resolve(week_previous, path)
        rows.append(
            MetricSnapshotRow(
                id=metric_id,
                label=label,
                current=current,
                previous=previous,
                weekly_current=weekly_current,
                weekly_previous=weekly_previous,
                monthly_delta=metric_delta(current, previous),
                weekly_delta=metric_delta(weekly_current, weekly_previous),
                format=fmt,
                better_when=better_when,
            )
        )
    return rows


def build_funnel_stages(snapshot: WindowSnapshot) -> list[FunnelStage]:
    """
    Chain the funnel stages of one snapshot.

    The first stage has no conversion; every later stage converts from the
    one before it.

    Example:
        >>> snap = WindowSnapshot("2025-01-01", "2025-01-30", impressions=1000, clicks=50)
        >>> [stage.conversion_from_previous for stage in build_funnel_stages(snap)][:2]
        [None, 0.05]
    """
    values = [
        ("impressions", "Impressions", snapshot.impressions),
        ("clicks", "Clicks", snapshot.clicks),
        ("leads", "Leads Captured", snapshot.leads),
        ("registrations", "Registrations", snapshot.registrations),
        ("showups", "Net New Show-Ups", snapshot.show_ups),
        ("qualified", "Qualified Leads", snapshot.qualified_leads),
        ("great", "Great Leads", snapshot.great_leads),
    ]
    stages = []
    for index, (key, label, value) in enumerate(values):
        conversion = None if index == 0 else safe_divide(value, values[index - 1][2])
        stages.append(FunnelStage(key, label, value, conversion))
    return stages


def pick_primary_date(date_keys: Iterable[str | None], fallback: str | None = None) -> str:
    """Return the latest date key, or ``fallback`` (default: today UTC) if none."""
    keys = [key for key in date_keys if key]
    if keys:
        return max(keys)
    return fallback or datetime.now(timezone.utc).strftime("%Y-%m-%d")


class WindowAnalyticsBuilder:
    """Run the attribution engine over the report windows and assemble the report."""

    def __init__(self, config: AnalyticsConfig | None = None, engine: AttributionEngine | None = None):
        """
        Initialize the builder.

        Args:
            config: Analytics configuration
            engine: Attribution engine (created from ``config`` if omitted)
        """
        self.config = config or AnalyticsConfig()
        self.engine = engine or AttributionEngine(self.config)

    def windows(self, primary_date: str) -> dict[str, DateRange]:
        """Derive the five named windows ending at ``primary_date``."""
        month_days, week_days = self.config.month_days, self.config.week_days
        month_start = add_days(primary_date, -(month_days - 1))
        week_start = add_days(primary_date, -(week_days - 1))
        return {
            "month_current": DateRange(month_start, primary_date, f"Current {month_days} Days"),
            "month_previous": DateRange(
                add_days(month_start, -month_days), add_days(month_start, -1), f"Previous {month_days} Days"
            ),
            "week_current": DateRange(week_start, primary_date, f"Current {week_days} Days"),
            "week_previous": DateRange(
                add_days(week_start, -week_days), add_days(week_start, -1), f"Previous {week_days} Days"
            ),
            "lookback": DateRange(
                add_days(primary_date, -(self.config.lookback_days - 1)), primary_date, "Lookback Window"
            ),
        }

    def build_trend_rows(
        self,
        primary_date: str,
        ad_rows: Sequence[AdRow],
        leads: Sequence[LeadRecord],
        registrations: Sequence[RegistrationRecord],
        show_up_days: Sequence[ShowUpDay],
    ) -> list[TrendRow]:
        """Daily rows for the last ``trend_days`` days ending at ``primary_date``."""
        ads_by_date: dict[str, TrendRow] = {}
        for row in ad_rows:
            day = ads_by_date.setdefault(row.date_key, TrendRow(row.date_key, row.date_key[5:]))
            day.spend += row.spend
            day.impressions += row.impressions
            day.clicks += row.clicks
            day.leads += row.leads

        lead_totals = build_daily_totals(leads, registrations)
        show_ups = {day.date: day for day in show_up_days}

        rows = []
        start = add_days(primary_date, -(self.config.trend_days - 1))
        for date_key in iter_date_keys(start, primary_date):
            ad = ads_by_date.get(date_key) or TrendRow(date_key, date_key[5:])
            bucket = lead_totals.get(date_key)
            show_up = show_ups.get(date_key) or ShowUpDay(date=date_key)
            rows.append(
                TrendRow(
                    date=date_key,
                    label=date_key[5:],
                    spend=ad.spend,
                    impressions=ad.impressions,
                    clicks=ad.clicks,
                    leads=bucket.leads if bucket and bucket.leads else ad.leads,
                    registrations=bucket.registrations if bucket else 0,
                    qualified_leads=bucket.qualified_leads if bucket else 0,
                    great_leads=bucket.great_leads if bucket else 0,
                    net_new_tuesday=show_up.tuesday,
                    net_new_thursday=show_up.thursday,
                    net_new_total=show_up.total,
                )
            )
        return rows

    def build(
        self,
        ad_rows: Sequence[AdRow],
        leads: Sequence[LeadRecord],
        registrations: Sequence[RegistrationRecord] = (),
        show_up_days: Iterable[ShowUpDay | Any] = (),
        sessions: Iterable[ShowUpSession | Any] = (),
        show_up_totals: ShowUpTotals | None = None,
        has_crm_attribution_columns: bool = False,
        primary_date: str | None = None,
    ) -> AnalyticsReport:
        """
        Build the full report.

        Args:
            ad_rows: Normalized daily ad rows
            leads: Normalized paid-social leads (show-up matches already applied)
            registrations: Normalized direct registrations (may be empty)
            show_up_days: Daily net-new show-up rows
            sessions: Per-session net-new detail, for the show-ups drill-down
            show_up_totals: Tuesday/Thursday totals; derived from the
                lookback show-up days if omitted
            has_crm_attribution_columns: Whether the CRM rows carried the
                advanced attribution columns
            primary_date: Anchor date; defaults to the latest date across ads,
                leads and show-up days

        Returns:
            AnalyticsReport
        """
        days = ShowUpDay.coerce_all(show_up_days)
        session_rows = [ShowUpSession.coerce(session) for session in sessions]

        if primary_date is None:
            primary_date = pick_primary_date(
                [row.date_key for row in ad_rows]
                + [lead.created_date_key for lead in leads]
                + [day.date for day in days]
            )
        windows = self.windows(primary_date)
        lookback = windows["lookback"]

        ad_rows = [row for row in ad_rows if lookback.contains(row.date_key)]
        leads = [lead for lead in leads if lookback.contains(lead.created_date_key)]
        registrations = [row for row in registrations if lookback.contains(row.date_key)]
        days = [day for day in days if lookback.contains(day.date)]
        session_rows = [session for session in session_rows if lookback.contains(session.date_key)]
        has_direct = len(registrations) > 0
        if not has_direct:
            logger.warning("No registration-level data in the lookback window; using CRM membership proxy")

        ads, allocation = self.engine.attribute(ad_rows, leads, registrations if has_direct else ())

        def snapshot(name: str) -> WindowSnapshot:
            window = windows[name]
            return self.engine.compute_snapshot(
                ad_rows, leads, days, registrations, window.start_key, window.end_key, has_direct
            )

        month_current = snapshot("month_current")
        month_previous = snapshot("month_previous")
        week_current = snapshot("week_current")
        week_previous = snapshot("week_previous")

        limit = self.config.ranked_ads_limit
        top = top_ads(ads, limit)
        bottom = bottom_ads(ads, limit)
        totals = show_up_totals or ShowUpTotals.from_days(days)

        availability = DataAvailability.from_snapshot(
            month_current,
            has_direct_registrations=has_direct,
            has_crm_attribution_columns=has_crm_attribution_columns,
            attributed_leads_total=allocation.attributed_leads_total,
            lead_count=len(leads),
        )

        drilldowns = {
            name: build_window_drilldown(
                window.start_key,
                window.end_key,
                ad_rows,
                leads,
                registrations,
                session_rows,
                has_direct,
            )
            for name, window in windows.items()
        }

        report = AnalyticsReport(
            generated_at=datetime.now(timezone.utc).isoformat(),
            primary_date=primary_date,
            windows=windows,
            data_availability=availability,
            month_current=month_current,
            month_previous=month_previous,
            week_current=week_current,
            week_previous=week_previous,
            metric_snapshot_rows=build_metric_snapshot_rows(
                month_current, month_previous, week_current, week_previous
            ),
            funnel_stages=build_funnel_stages(month_current),
            lead_quality=LeadQualityBreakdown.from_snapshot(month_current),
            show_up_tracker=ShowUpTracker(
                rows=self.build_trend_rows(primary_date, ad_rows, leads, registrations, days),
                totals=totals,
            ),
            registration_funnel=RegistrationFunnel(
                registrations=month_current.direct_registrations,
                meeting_matches=month_current.direct_registration_meeting_matches,
                net_new_matches=month_current.direct_registration_net_new_matches,
                crm_matches=month_current.direct_registration_crm_matches,
                registration_to_show_up_rate=month_current.conversions.registration_to_show_up,
            ),
            cost_cards={
                key: CostCard(
                    key=key,
                    label=label,
                    value=getattr(month_current.costs, attr),
                    previous=getattr(month_previous.costs, attr),
                )
                for key, label, attr in _COST_CARDS
            },
            ad_attribution_rows=ads,
            top_ads=top,
            bottom_ads=bottom,
            headline=build_headline(month_current, month_previous, top, bottom, self.config),
            recommendations=build_recommendations(
                month_current, month_previous, top, bottom, totals, self.config
            ),
            alerts=build_alerts(
                month_current, month_previous, week_current, week_previous, availability, self.config
            ),
            drilldowns=drilldowns,
            allocation=allocation,
        )
        logger.info(
            f"Built analytics report for {primary_date}: {len(ads)} ads, {len(leads)} leads, "
            f"{len(registrations)} registrations"
        )
        return report
