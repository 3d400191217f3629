"""
End-to-end lead analytics from raw export rows.

Composes the two halves of the system: meeting rosters go through the
identity side (alias map, session selection and dedupe, net-new roll-up),
whose first-seen index is then used to match CRM leads to show-ups before
the window analytics report is built.

Usage:
    from funnelnav.attribution.pipeline import build_lead_analytics

    report = build_lead_analytics(
        ad_rows=ads_export,
        crm_rows=crm_contacts,
        sessions=meeting_rosters,
        registration_rows=event_guests,
        aliases=alias_rows,
    )
    payload = report.to_dict()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd

from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.dates import add_days, date_in_range, parse_date_key
from funnelnav.attribution.normalizer import (
    AdSpendNormalizer,
    CRMLeadNormalizer,
    RegistrationNormalizer,
    dedupe_by_key,
)
from funnelnav.attribution.schema import ShowUpTotals
from funnelnav.attribution.showups import ShowUpIndex
from funnelnav.attribution.windows import AnalyticsReport, WindowAnalyticsBuilder, pick_primary_date
from funnelnav.identity import (
    IdentityConfig,
    SessionRecord,
    build_alias_map,
    build_net_new,
    select_session_instances,
)

logger = logging.getLogger(__name__)

RowsLike = pd.DataFrame | list[dict[str, Any]]


def _records(data: RowsLike | None) -> list[dict[str, Any]]:
    if data is None:
        return []
    if isinstance(data, pd.DataFrame):
        return data.to_dict(orient="records")
    return list(data)


def _session_records(sessions: Iterable[SessionRecord | Mapping[str, Any]]) -> list[SessionRecord]:
    records = []
    skipped = 0
    for session in sessions:
        record = session if isinstance(session, SessionRecord) else SessionRecord.from_dict(session)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning(f"Skipped {skipped} sessions without an id or parseable start_time")
    unique = dedupe_by_key(records, lambda record: (record.session_id, record.date_key))
    if len(unique) < len(records):
        logger.debug(f"Dropped {len(records) - len(unique)} duplicate session/date rows")
    return unique


def build_lead_analytics(
    ad_rows: RowsLike | None = None,
    crm_rows: RowsLike | None = None,
    sessions: Iterable[SessionRecord | Mapping[str, Any]] = (),
    registration_rows: RowsLike | None = None,
    aliases: Iterable[Mapping[str, Any]] = (),
    config: AnalyticsConfig | None = None,
    identity_config: IdentityConfig | None = None,
    primary_date: str | None = None,
) -> AnalyticsReport:
    """
    Build the analytics report from raw rows.

    Args:
        ad_rows: Daily ad delivery export
        crm_rows: CRM contact export
        sessions: Meeting rosters (``SessionRecord`` or dicts accepted by
            ``SessionRecord.from_dict``)
        registration_rows: Event guest export (may be empty)
        aliases: ``{original_name, target_name}`` alias rows
        config: Analytics configuration
        identity_config: Identity configuration for roster dedupe
        primary_date: Anchor date; defaults to the latest date across ads,
            CRM contacts and sessions

    Returns:
        AnalyticsReport
    """
    config = config or AnalyticsConfig()
    identity_config = identity_config or IdentityConfig()

    ad_records = _records(ad_rows)
    crm_records = _records(crm_rows)
    registration_records = _records(registration_rows)
    session_records = _session_records(sessions)

    if primary_date is None:
        primary_date = pick_primary_date(
            [parse_date_key(row.get("date_day")) for row in ad_records]
            + [parse_date_key(row.get("createdate")) for row in crm_records]
            + [session.date_key for session in session_records]
        )
    lookback_start = add_days(primary_date, -(config.lookback_days - 1))

    alias_map = build_alias_map(aliases)
    in_lookback = [
        session
        for session in session_records
        if date_in_range(session.date_key, lookback_start, primary_date)
    ]
    selected = select_session_instances(in_lookback, alias_map, identity_config)
    net_new = build_net_new(selected, alias_map, identity_config)

    index = ShowUpIndex.from_net_new(
        net_new, config.showup_match_window_days, config.showup_match_min_key_length
    )
    lead_normalizer = CRMLeadNormalizer(config, show_up_index=index)
    leads = lead_normalizer.normalize(crm_records)
    ads = AdSpendNormalizer(config).normalize(ad_records)
    registrations = RegistrationNormalizer(config).normalize(registration_records)

    totals = ShowUpTotals(
        tuesday_total=net_new.tuesday_total,
        thursday_total=net_new.thursday_total,
        tuesday_sessions=net_new.tuesday_sessions,
        thursday_sessions=net_new.thursday_sessions,
    )

    builder = WindowAnalyticsBuilder(config)
    return builder.build(
        ads,
        leads,
        registrations,
        show_up_days=net_new.daily,
        sessions=net_new.sessions,
        show_up_totals=totals,
        has_crm_attribution_columns=lead_normalizer.has_attribution_columns,
        primary_date=primary_date,
    )
