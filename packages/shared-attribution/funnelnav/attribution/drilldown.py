"""
Per-metric drill-down tables for one report window.

Each funnel metric maps to a table of the underlying rows (ad rows for
impressions and clicks, lead rows for lead metrics, registration rows,
net-new attendee names). Cost metrics reuse the table of their denominator.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from funnelnav.attribution.dates import date_in_range
from funnelnav.attribution.metrics import round_to
from funnelnav.attribution.schema import (
    AdRow,
    LeadRecord,
    LeadTier,
    RegistrationRecord,
    ShowUpSession,
)

METRIC_LABELS: dict[str, str] = {
    "impressions": "Impressions",
    "clicks": "Clicks",
    "leads": "Leads Captured",
    "registrations": "Registrations",
    "showups": "Net New Show-Ups",
    "standard": "Standard Leads",
    "qualified": "Qualified Leads",
    "great": "Great Leads",
    "cpl": "CPL",
    "cpql": "CPQL",
    "cpgl": "CPGL",
    "cost_per_showup": "Cost Per Show-Up",
    "cost_per_registration": "Cost Per Registration",
    "registration_meeting_matches": "Registrations Matched in Meetings",
    "registration_net_new_matches": "Registrations Matched Net New",
    "registration_crm_matches": "Registrations Matched in CRM",
}

# Cost metric -> table of its denominator
TABLE_ALIASES: dict[str, str] = {
    "cpl": "leads",
    "cpql": "qualified",
    "cpgl": "great",
    "cost_per_showup": "showups",
    "cost_per_registration": "registrations",
}

DEFAULT_WINDOW_KEY = "month_current"
DEFAULT_METRIC_KEY = "leads"


@dataclass(frozen=True)
class DrilldownColumn:
    """A table column: row key, display label and value type."""

    key: str
    label: str
    type: str = "text"

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "label": self.label, "type": self.type}


def _columns(*specs: tuple[str, str] | tuple[str, str, str]) -> list[DrilldownColumn]:
    return [DrilldownColumn(*spec) for spec in specs]


AD_COLUMNS = _columns(
    ("date", "Date"),
    ("campaign", "Campaign"),
    ("adset", "Ad Set"),
    ("ad", "Ad"),
    ("funnel", "Funnel"),
    ("spend", "Spend", "currency"),
)

LEAD_COLUMNS = _columns(
    ("lead_date", "Lead Date"),
    ("lead_name", "Lead Name"),
    ("email", "Email"),
    ("funnel", "Funnel"),
    ("tier", "Tier"),
    ("revenue", "Revenue", "currency"),
    ("matched_show_up", "Matched Show-Up"),
    ("matched_show_up_date", "Show-Up Date"),
    ("campaign", "Campaign"),
)

REGISTRATION_COLUMNS = _columns(
    ("event_date", "Registration Date"),
    ("guest_name", "Name"),
    ("guest_email", "Email"),
    ("funnel", "Funnel"),
    ("crm_tier", "CRM Tier"),
    ("matched_meeting", "Matched Meeting"),
    ("matched_meeting_net_new", "Matched Net New"),
    ("matched_crm", "Matched CRM"),
    ("source", "Source"),
)


@dataclass
class DrilldownTable:
    """Columns, rows and the message shown when there are no rows."""

    columns: list[DrilldownColumn]
    rows: list[dict[str, Any]]
    empty_message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": [column.to_dict() for column in self.columns],
            "rows": list(self.rows),
            "empty_message": self.empty_message,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Rows restricted to the table's columns, headed by column labels."""
        keys = [column.key for column in self.columns]
        df = pd.DataFrame(self.rows, columns=keys)
        return df.rename(columns={column.key: column.label for column in self.columns})


@dataclass
class WindowDrilldown:
    """All drill-down tables for one ``[start_key, end_key]`` window."""

    start_key: str
    end_key: str
    tables: dict[str, DrilldownTable] = field(default_factory=dict)

    def table(self, metric: str) -> DrilldownTable:
        """Return the table for ``metric``, resolving cost-metric aliases."""
        return self.tables[TABLE_ALIASES.get(metric, metric)]

    def to_dict(self) -> dict[str, Any]:
        tables = {key: table.to_dict() for key, table in self.tables.items()}
        for alias, target in TABLE_ALIASES.items():
            if target in tables:
                tables[alias] = tables[target]
        return {"start_key": self.start_key, "end_key": self.end_key, "tables": tables}


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _ad_row(row: AdRow) -> dict[str, Any]:
    return {
        "date": row.date_key,
        "campaign": row.campaign_name,
        "adset": row.adset_name,
        "ad": row.ad_name,
        "funnel": row.funnel.value,
        "spend": round_to(row.spend, 2),
        "impressions": round_to(row.impressions, 0),
        "clicks": round_to(row.clicks, 0),
        "meta_leads": round_to(row.leads, 0),
    }


def _lead_row(lead: LeadRecord) -> dict[str, Any]:
    return {
        "lead_date": lead.created_date_key,
        "lead_name": lead.lead_name,
        "email": lead.email,
        "funnel": lead.funnel.value,
        "tier": lead.tier.value,
        "revenue": lead.revenue,
        "matched_show_up": _yes_no(lead.matched_show_up),
        "matched_show_up_date": lead.matched_show_up_date_key or "",
        "registration_proxy": _yes_no(lead.is_registration_proxy),
        "campaign": lead.campaign,
        "membership": lead.membership,
        "source_data_2": lead.source_data_2,
    }


def _registration_row(registration: RegistrationRecord) -> dict[str, Any]:
    return {
        "event_date": registration.date_key,
        "guest_name": registration.guest_name,
        "guest_email": registration.guest_email,
        "funnel": registration.funnel.value,
        "crm_tier": registration.tier.value,
        "matched_meeting": _yes_no(registration.matched_meeting),
        "matched_meeting_net_new": _yes_no(registration.matched_meeting_net_new),
        "matched_crm": _yes_no(registration.matched_crm),
        "source": "Registration",
    }


def _proxy_registration_row(lead: LeadRecord) -> dict[str, Any]:
    return {
        "event_date": lead.created_date_key,
        "guest_name": lead.lead_name,
        "guest_email": lead.email,
        "funnel": lead.funnel.value,
        "crm_tier": lead.tier.value,
        "matched_meeting": _yes_no(lead.matched_show_up),
        "matched_meeting_net_new": _yes_no(lead.matched_show_up),
        "matched_crm": "Yes",
        "source": "CRM Proxy",
    }


def _tier_table(rows: list[dict[str, Any]], tier: LeadTier, with_show_up: bool) -> DrilldownTable:
    keys = ["lead_date", "lead_name", "email", "funnel", "revenue"]
    if with_show_up:
        keys.append("matched_show_up")
    keys.append("campaign")
    by_key = {column.key: column for column in LEAD_COLUMNS}

    def selected(row: dict[str, Any]) -> bool:
        row_tier = LeadTier(row["tier"])
        if tier == LeadTier.STANDARD:
            return row_tier.counts_as_standard
        return row_tier == tier

    return DrilldownTable(
        columns=[by_key[key] for key in keys],
        rows=[row for row in rows if selected(row)],
        empty_message=f"No {tier.value} leads in this window.",
    )


def build_window_drilldown(
    start_key: str,
    end_key: str,
    ad_rows: Sequence[AdRow],
    leads: Sequence[LeadRecord],
    registrations: Sequence[RegistrationRecord],
    sessions: Iterable[ShowUpSession | Any],
    has_direct_registrations: bool,
) -> WindowDrilldown:
    """
    Build every drill-down table for one window.

    Args:
        start_key: First date key (inclusive)
        end_key: Last date key (inclusive)
        ad_rows: Normalized daily ad rows
        leads: Normalized paid-social leads
        registrations: Normalized direct registrations
        sessions: Per-session net-new detail (``SessionAttendance`` or dicts)
        has_direct_registrations: Use direct registrations for the
            registrations table instead of the CRM proxy

    Returns:
        WindowDrilldown keyed by metric
    """
    ads = [_ad_row(row) for row in ad_rows if date_in_range(row.date_key, start_key, end_key)]
    leads_in_range = [lead for lead in leads if date_in_range(lead.created_date_key, start_key, end_key)]
    lead_rows = [_lead_row(lead) for lead in leads_in_range]
    registration_rows = [
        _registration_row(row)
        for row in registrations
        if date_in_range(row.date_key, start_key, end_key)
    ]
    proxy_rows = [_proxy_registration_row(lead) for lead in leads_in_range if lead.is_registration_proxy]

    show_up_rows = []
    for value in sessions:
        session = ShowUpSession.coerce(value)
        if not date_in_range(session.date_key, start_key, end_key):
            continue
        for name in session.new_names:
            show_up_rows.append(
                {"session_date": session.date_key, "day_type": session.day_type, "attendee_name": name}
            )

    registration_keys = ("event_date", "guest_name", "guest_email")
    by_key = {column.key: column for column in REGISTRATION_COLUMNS}

    def match_table(flag: str, extra: tuple[str, ...], message: str) -> DrilldownTable:
        return DrilldownTable(
            columns=[by_key[key] for key in registration_keys + extra],
            rows=[row for row in registration_rows if row[flag] == "Yes"],
            empty_message=message,
        )

    tables = {
        "impressions": DrilldownTable(
            columns=AD_COLUMNS + _columns(("impressions", "Impressions", "number")),
            rows=[row for row in ads if row["impressions"] > 0],
            empty_message="No ad impression rows in this window.",
        ),
        "clicks": DrilldownTable(
            columns=AD_COLUMNS + _columns(("clicks", "Clicks", "number")),
            rows=[row for row in ads if row["clicks"] > 0],
            empty_message="No ad click rows in this window.",
        ),
        "leads": DrilldownTable(
            columns=list(LEAD_COLUMNS),
            rows=lead_rows,
            empty_message="No paid-social leads in this window.",
        ),
        "registrations": DrilldownTable(
            columns=list(REGISTRATION_COLUMNS),
            rows=registration_rows if has_direct_registrations else proxy_rows,
            empty_message=(
                "No registrations in this window."
                if has_direct_registrations
                else "No CRM membership proxy registrations in this window."
            ),
        ),
        "showups": DrilldownTable(
            columns=_columns(
                ("session_date", "Session Date"),
                ("day_type", "Day"),
                ("attendee_name", "Net New Attendee"),
            ),
            rows=show_up_rows,
            empty_message="No net-new meeting show-ups in this window.",
        ),
        "standard": _tier_table(lead_rows, LeadTier.STANDARD, with_show_up=False),
        "qualified": _tier_table(lead_rows, LeadTier.QUALIFIED, with_show_up=True),
        "great": _tier_table(lead_rows, LeadTier.GREAT, with_show_up=True),
        "registration_meeting_matches": match_table(
            "matched_meeting",
            ("matched_meeting", "matched_meeting_net_new"),
            "No registrations matched to meeting attendance in this window.",
        ),
        "registration_net_new_matches": match_table(
            "matched_meeting_net_new",
            ("matched_meeting_net_new",),
            "No registrations matched to net-new show-ups in this window.",
        ),
        "registration_crm_matches": match_table(
            "matched_crm",
            ("crm_tier", "matched_crm"),
            "No registrations matched to CRM contacts in this window.",
        ),
    }
    return WindowDrilldown(start_key=start_key, end_key=end_key, tables=tables)
