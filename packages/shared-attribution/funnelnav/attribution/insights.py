"""
Rule-based headline, recommendations and alerts for the analytics report.

All rules read the current and previous month snapshots (alerts also read the
week snapshots and the data-availability block). Thresholds come from
``AnalyticsConfig``.

Usage:
    headline = build_headline(month_current, month_previous, top, bottom)
    recommendations = build_recommendations(month_current, month_previous, top, bottom, totals)
    alerts = build_alerts(month_current, month_previous, week_current, week_previous, availability)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any

from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.engine import WindowSnapshot
from funnelnav.attribution.metrics import metric_delta, round_to, safe_divide
from funnelnav.attribution.ranking import RankedAd
from funnelnav.attribution.schema import ShowUpTotals

logger = logging.getLogger(__name__)

NO_GREAT_LEADS_HEADLINE = (
    "No Great Leads were captured in the current 30-day window. "
    "Immediate budget and funnel action is required to protect CPGL."
)
STABLE_HEADLINE = (
    "Lead quality and cost performance are stable. "
    "Focus now is to tighten attribution and improve registration-to-show-up conversion."
)
NO_ANOMALIES_MESSAGE = "No critical anomalies detected in the current window."


@dataclass
class Recommendation:
    """One actionable recommendation."""

    title: str
    reason: str
    impact: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class DataAvailability:
    """Which richer data sources the report could use.

    Attributes:
        has_direct_registrations: Registration-level data was supplied
        has_crm_attribution_columns: CRM rows carry the advanced attribution columns
        attribution_lead_coverage: Share of leads that found a candidate ad
        direct_registrations_current: Direct registrations in the current month
        registration_meeting_match_rate: Net-new meeting matches / registrations
        registration_crm_match_rate: CRM identity matches / registrations
    """

    has_direct_registrations: bool = False
    has_crm_attribution_columns: bool = False
    attribution_lead_coverage: float = 0.0
    direct_registrations_current: int = 0
    registration_meeting_match_rate: float = 0.0
    registration_crm_match_rate: float = 0.0

    @classmethod
    def from_snapshot(
        cls,
        month_current: WindowSnapshot,
        has_direct_registrations: bool,
        has_crm_attribution_columns: bool,
        attributed_leads_total: float,
        lead_count: int,
    ) -> DataAvailability:
        registrations = month_current.direct_registrations
        return cls(
            has_direct_registrations=has_direct_registrations,
            has_crm_attribution_columns=has_crm_attribution_columns,
            attribution_lead_coverage=safe_divide(attributed_leads_total, lead_count),
            direct_registrations_current=registrations,
            registration_meeting_match_rate=safe_divide(
                month_current.direct_registration_net_new_matches, registrations
            ),
            registration_crm_match_rate=safe_divide(
                month_current.direct_registration_crm_matches, registrations
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _pct(value: float) -> float:
    return round_to(value * 100, 1)


def build_headline(
    month_current: WindowSnapshot,
    month_previous: WindowSnapshot,
    top: Sequence[RankedAd],
    bottom: Sequence[RankedAd],
    config: AnalyticsConfig | None = None,
) -> str:
    """
    Pick the one-sentence summary of the current month.

    Example:
        >>> from funnelnav.attribution.engine import WindowSnapshot
        >>> empty = WindowSnapshot("2025-01-01", "2025-01-30")
        >>> build_headline(empty, empty, [], []).startswith("No Great Leads")
        True
    """
    config = config or AnalyticsConfig()
    if month_current.great_leads <= 0:
        return NO_GREAT_LEADS_HEADLINE

    cpgl_delta = metric_delta(month_current.costs.cpgl, month_previous.costs.cpgl).delta_pct
    if cpgl_delta is not None and cpgl_delta < config.cpgl_improving_delta:
        leader = top[0].ad.ad_name if top else "top ads"
        return (
            f"CPGL is improving month-over-month ({_pct(cpgl_delta)}%), "
            f"with {leader} driving higher-quality outcomes."
        )

    if top and bottom:
        return (
            f"Cost inefficiency is concentrated in {bottom[0].ad.ad_name}. "
            f"Reallocating budget to {top[0].ad.ad_name} is the fastest path to lower CPGL."
        )

    return STABLE_HEADLINE


def build_recommendations(
    month_current: WindowSnapshot,
    month_previous: WindowSnapshot,
    top: Sequence[RankedAd],
    bottom: Sequence[RankedAd],
    show_up_totals: ShowUpTotals,
    config: AnalyticsConfig | None = None,
) -> list[Recommendation]:
    """
    Build up to ``max_recommendations`` recommendations in priority order.

    Order: reallocation from the worst to the best ad, lead to registration
    fix, registration to show-up fix (direct registration data only), weekday
    parity fix. When fewer than the maximum fire, a deterministic-linkage
    recommendation is appended.
    """
    config = config or AnalyticsConfig()
    recommendations: list[Recommendation] = []

    if top and bottom:
        worst, best = bottom[0].ad, top[0].ad
        budget_shift = worst.spend * config.reallocation_share
        worst_per_dollar = safe_divide(worst.attributed_great_leads, worst.spend)
        best_per_dollar = safe_divide(best.attributed_great_leads, best.spend)
        expected_lift = max((best_per_dollar - worst_per_dollar) * budget_shift, 0)
        if expected_lift > 0:
            impact = (
                f"Expected impact: +{round_to(expected_lift, 2)} Great Leads per similar "
                "period and lower CPGL."
            )
        else:
            impact = (
                f"Expected impact: remove roughly ${round_to(budget_shift, 0):.0f} in "
                "inefficient spend with limited quality downside."
            )
        share = round_to(config.reallocation_share * 100, 0)
        recommendations.append(
            Recommendation(
                title=f'Reallocate {share:.0f}% of spend from "{worst.ad_name}" to "{best.ad_name}"',
                reason=(
                    f'"{worst.ad_name}" has weak quality efficiency, while "{best.ad_name}" '
                    "has the strongest cost-to-quality profile."
                ),
                impact=impact,
            )
        )

    current_rate = month_current.conversions.lead_to_registration
    if current_rate < config.lead_to_registration_floor:
        target = max(current_rate + 0.1, month_previous.conversions.lead_to_registration)
        additional = max((target - current_rate) * month_current.leads, 0)
        recommendations.append(
            Recommendation(
                title="Improve Lead -> Registration with tighter CTA and registration reminders",
                reason=(
                    f"Lead -> Registration is {_pct(current_rate)}%, creating a bottleneck "
                    "before show-up."
                ),
                impact=(
                    f"Expected impact: +{round_to(additional, 1)} registrations per 30 days, "
                    "improving downstream show-ups and CPGL."
                ),
            )
        )

    show_up_rate = month_current.conversions.registration_to_show_up
    if month_current.direct_registrations > 0 and show_up_rate < config.registration_to_showup_floor:
        gain = (config.registration_to_showup_goal - show_up_rate) * month_current.direct_registrations
        recommendations.append(
            Recommendation(
                title="Improve registration follow-up to lift net-new meeting show-ups",
                reason=(
                    f"Only {_pct(show_up_rate)}% of registrations are matching net-new "
                    "meeting show-ups."
                ),
                impact=(
                    f"Expected impact: +{round_to(gain, 1)} net-new show-ups if match rate "
                    f"reaches {_pct(config.registration_to_showup_goal):.0f}%."
                ),
            )
        )

    tuesday_avg = show_up_totals.average_tuesday
    thursday_avg = show_up_totals.average_thursday
    gap = abs(tuesday_avg - thursday_avg)
    if gap >= config.weekday_parity_gap:
        weaker = "Tuesday" if tuesday_avg < thursday_avg else "Thursday"
        recommendations.append(
            Recommendation(
                title=f"Run a {weaker}-specific follow-up sequence to raise show-up conversion",
                reason=f"{weaker} is underperforming on net new attendance per session.",
                impact=(
                    f"Expected impact: +{round_to(gap, 1)} net-new show-ups per {weaker} "
                    "session if parity is reached."
                ),
            )
        )

    if len(recommendations) < config.max_recommendations:
        recommendations.append(
            Recommendation(
                title="Add deterministic ad id capture to CRM and registration records",
                reason=(
                    "Current attribution relies on weighted fallback logic because there is "
                    "no direct ad -> lead -> registration linkage."
                ),
                impact=(
                    "Expected impact: cleaner CPQL/CPGL optimization decisions and faster "
                    "budget iteration cycles."
                ),
            )
        )

    return recommendations[: config.max_recommendations]


def build_alerts(
    month_current: WindowSnapshot,
    month_previous: WindowSnapshot,
    week_current: WindowSnapshot,
    week_previous: WindowSnapshot,
    availability: DataAvailability,
    config: AnalyticsConfig | None = None,
) -> list[str]:
    """
    Collect anomaly and degraded-mode alerts.

    Never returns an empty list: when nothing fires the result is exactly
    ``[NO_ANOMALIES_MESSAGE]``.
    """
    config = config or AnalyticsConfig()
    alerts: list[str] = []

    cpl_delta = metric_delta(month_current.costs.cpl, month_previous.costs.cpl).delta_pct
    if cpl_delta is not None and cpl_delta > config.cpl_increase_alert:
        alerts.append(f"CPL increased {_pct(cpl_delta)}% month-over-month.")

    show_up_delta = metric_delta(
        month_current.conversions.registration_to_show_up,
        month_previous.conversions.registration_to_show_up,
    ).delta_pct
    if show_up_delta is not None and show_up_delta < config.registration_showup_drop_alert:
        alerts.append(f"Registration -> Show-Up dropped {_pct(abs(show_up_delta))}% month-over-month.")

    week_delta = metric_delta(week_current.show_ups, week_previous.show_ups).delta_pct
    if week_delta is not None and week_delta < config.weekly_showup_drop_alert:
        alerts.append(f"Net new show-ups are down {_pct(abs(week_delta))}% week-over-week.")

    if not availability.has_direct_registrations:
        alerts.append(
            "Registration-level data is unavailable. Registration metrics are currently "
            "using the CRM membership proxy."
        )
    elif availability.direct_registrations_current > 0:
        if availability.registration_meeting_match_rate < config.registration_meeting_match_floor:
            alerts.append(
                "Low registration -> meeting net-new match rate "
                f"({_pct(availability.registration_meeting_match_rate)}%)."
            )
        if availability.registration_crm_match_rate < config.registration_crm_match_floor:
            alerts.append(
                "Low registration -> CRM identity match rate "
                f"({_pct(availability.registration_crm_match_rate)}%)."
            )

    if not availability.has_crm_attribution_columns:
        alerts.append(
            "Advanced CRM attribution columns are missing; ad-path analysis is operating "
            "in fallback mode."
        )

    if not alerts:
        alerts.append(NO_ANOMALIES_MESSAGE)
    else:
        logger.debug(f"{len(alerts)} alerts raised")
    return alerts
