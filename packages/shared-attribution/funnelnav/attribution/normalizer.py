"""
Row normalizers - transform provider exports into analytics records.

Each normalizer handles one external row shape:
- AdSpendNormalizer: daily ad delivery rows (spend, impressions, clicks, leads)
- CRMLeadNormalizer: CRM contact rows, restricted to paid-social leads
- RegistrationNormalizer: event registration guest rows

Inputs may be a DataFrame or a list of dicts. Rows that cannot be used (no
parseable date, missing natural key) are skipped and counted, never raised.
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Iterable
from typing import Any, TypeVar

import pandas as pd

from funnelnav.attribution.config import AnalyticsConfig
from funnelnav.attribution.dates import parse_date_key
from funnelnav.attribution.metrics import to_number
from funnelnav.attribution.schema import (
    AdRow,
    Funnel,
    LeadRecord,
    LeadTier,
    RegistrationRecord,
    classify_tier,
)
from funnelnav.attribution.showups import ShowUpIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SLUG = re.compile(r"[^a-z0-9]+")
_EMAIL_SEPARATORS = re.compile(r"[._-]+")
_TRUE_STRINGS = {"true", "t", "yes", "y", "1"}


def dedupe_by_key(rows: Iterable[T], key_fn: Callable[[T], Hashable | None]) -> list[T]:
    """Keep the first row for each natural key.

    Rows whose key is None are always kept. Re-ingesting the same external
    rows is therefore a no-op.

    Example:
        >>> dedupe_by_key([("a", 1), ("a", 2), ("b", 3)], lambda row: row[0])
        [('a', 1), ('b', 3)]
    """
    seen: set[Hashable] = set()
    unique: list[T] = []
    for row in rows:
        key = key_fn(row)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(row)
    return unique


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _text(value: Any, default: str = "") -> str:
    if _is_blank(value):
        return default
    # Numeric ids come back as floats from columns with missing values.
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _first_text(row: dict[str, Any], *fields: str) -> str:
    for field in fields:
        text = _text(row.get(field))
        if text:
            return text
    return ""


def _first_number(row: dict[str, Any], *fields: str) -> float | None:
    """Return the first field that holds a finite number."""
    for field in fields:
        value = row.get(field)
        if _is_blank(value):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            return number
    return None


def _flag(value: Any, default: bool = False) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _slug(value: str) -> str:
    return _SLUG.sub("-", value.lower()).strip("-")


class RowNormalizer(ABC):
    """Base class for analytics row normalizers."""

    def __init__(self, config: AnalyticsConfig | None = None):
        """
        Initialize normalizer.

        Args:
            config: Analytics configuration
        """
        self.config = config or AnalyticsConfig()

    @abstractmethod
    def normalize(self, data: pd.DataFrame | list[dict[str, Any]]) -> list[Any]:
        """
        Normalize source rows to analytics records.

        Args:
            data: Source data as DataFrame or list of dicts

        Returns:
            List of normalized records
        """
        pass

    def _to_dataframe(self, data: pd.DataFrame | list[dict[str, Any]] | None) -> pd.DataFrame:
        """Convert input to DataFrame."""
        if isinstance(data, pd.DataFrame):
            return data
        return pd.DataFrame(list(data or []))


class AdSpendNormalizer(RowNormalizer):
    """
    Normalize daily ad delivery rows.

    Expected fields: date_day, ad_id, ad_name, adset_name, campaign_name,
    ad_account_id, funnel_key, spend, impressions, clicks, leads.

    Example:
        rows = AdSpendNormalizer().normalize(ads_export)
    """

    def classify_funnel(self, row: dict[str, Any]) -> Funnel:
        """Explicit funnel key first, then phoenix keywords or account ids."""
        explicit = Funnel.parse(row.get("funnel_key"))
        if explicit is not None:
            return explicit

        blob = " ".join(
            _text(row.get(field))
            for field in ("campaign_name", "adset_name", "ad_name", "ad_account_id")
        ).lower()
        if "phoenix" in blob or any(account in blob for account in self.config.phoenix_account_ids):
            return Funnel.PHOENIX
        return Funnel.FREE

    def normalize(self, data: pd.DataFrame | list[dict[str, Any]]) -> list[AdRow]:
        """Normalize ad rows; rows without a parseable date are skipped."""
        df = self._to_dataframe(data)
        rows: list[AdRow] = []
        skipped = 0

        for _, row in df.iterrows():
            row_dict = row.to_dict()
            date_key = parse_date_key(row_dict.get("date_day"))
            if not date_key:
                skipped += 1
                continue

            campaign = _text(row_dict.get("campaign_name"), "Unknown Campaign")
            adset = _text(row_dict.get("adset_name"), "Unknown Ad Set")
            ad_id = _text(row_dict.get("ad_id")) or f"unknown-{_slug(campaign)}-{_slug(adset)}-{date_key}"

            rows.append(
                AdRow(
                    date_key=date_key,
                    ad_id=ad_id,
                    ad_name=_text(row_dict.get("ad_name"), "Unknown Ad"),
                    adset_name=adset,
                    campaign_name=campaign,
                    funnel=self.classify_funnel(row_dict),
                    spend=to_number(row_dict.get("spend")),
                    impressions=to_number(row_dict.get("impressions")),
                    clicks=to_number(row_dict.get("clicks")),
                    leads=to_number(row_dict.get("leads")),
                )
            )

        unique = dedupe_by_key(
            rows, lambda r: None if r.ad_id.startswith("unknown-") else (r.ad_id, r.date_key)
        )
        if skipped:
            logger.warning(f"Skipped {skipped} ad rows without a parseable date_day")
        if len(unique) < len(rows):
            logger.debug(f"Dropped {len(rows) - len(unique)} duplicate ad/date rows")
        logger.info(f"Normalized {len(unique)} ad rows")
        return unique


class CRMLeadNormalizer(RowNormalizer):
    """
    Normalize CRM contact rows into paid-social leads.

    Revenue is resolved once here: the official revenue field first, then the
    fallback field. Leads are matched to meeting show-ups when a
    ``ShowUpIndex`` is supplied.

    Example:
        normalizer = CRMLeadNormalizer(show_up_index=ShowUpIndex.from_net_new(net_new))
        leads = normalizer.normalize(crm_rows)
    """

    REVENUE_FIELDS = ("annual_revenue_in_dollars__official_", "annual_revenue_in_dollars")
    ATTRIBUTION_COLUMNS = ("hs_latest_source",)

    def __init__(
        self,
        config: AnalyticsConfig | None = None,
        show_up_index: ShowUpIndex | None = None,
    ):
        """
        Initialize CRM lead normalizer.

        Args:
            config: Analytics configuration
            show_up_index: First-seen index used to flag leads that showed up
        """
        super().__init__(config)
        self.show_up_index = show_up_index
        self.has_attribution_columns = False

    @staticmethod
    def is_paid_social(row: dict[str, Any]) -> bool:
        return "PAID_SOCIAL" in _text(row.get("hs_analytics_source")).upper()

    @staticmethod
    def classify_funnel(row: dict[str, Any]) -> Funnel:
        blob = " ".join(
            _text(row.get(field)) for field in ("hs_analytics_source_data_2", "membership_s", "campaign")
        ).lower()
        return Funnel.PHOENIX if "phoenix" in blob else Funnel.FREE

    @staticmethod
    def is_registration_proxy(row: dict[str, Any]) -> bool:
        membership = _text(row.get("membership_s")).lower()
        return "luma" in membership or "registered" in membership

    @staticmethod
    def lead_name(row: dict[str, Any]) -> str:
        """First + last name, else the email local part with separators as spaces."""
        full = f"{_text(row.get('firstname'))} {_text(row.get('lastname'))}".strip()
        if full:
            return full
        local = _text(row.get("email")).split("@")[0]
        return _EMAIL_SEPARATORS.sub(" ", local).strip()

    def resolve_revenue(self, row: dict[str, Any]) -> float | None:
        return _first_number(row, *self.REVENUE_FIELDS)

    def normalize(self, data: pd.DataFrame | list[dict[str, Any]]) -> list[LeadRecord]:
        """Normalize CRM rows to paid-social leads sorted by creation date."""
        df = self._to_dataframe(data)
        self.has_attribution_columns = any(col in df.columns for col in self.ATTRIBUTION_COLUMNS)

        leads: list[LeadRecord] = []
        skipped = 0
        for _, row in df.iterrows():
            row_dict = row.to_dict()
            if not self.is_paid_social(row_dict):
                continue

            created = parse_date_key(row_dict.get("createdate"))
            if not created:
                skipped += 1
                continue

            revenue = self.resolve_revenue(row_dict)
            name = self.lead_name(row_dict)
            match = self.show_up_index.match(name, created) if self.show_up_index else None

            leads.append(
                LeadRecord(
                    created_date_key=created,
                    funnel=self.classify_funnel(row_dict),
                    tier=classify_tier(
                        revenue, self.config.qualified_revenue_min, self.config.great_revenue_min
                    ),
                    is_registration_proxy=self.is_registration_proxy(row_dict),
                    matched_show_up=match is not None,
                    matched_show_up_date_key=match.date_key if match else None,
                    lead_name=name,
                    email=_text(row_dict.get("email")).lower(),
                    first_name=_text(row_dict.get("firstname")),
                    last_name=_text(row_dict.get("lastname")),
                    membership=_text(row_dict.get("membership_s")),
                    campaign=_text(row_dict.get("campaign")),
                    source_data_1=_text(row_dict.get("hs_analytics_source_data_1")),
                    source_data_2=_text(row_dict.get("hs_analytics_source_data_2")),
                    revenue=revenue,
                )
            )

        if skipped:
            logger.warning(f"Skipped {skipped} paid-social leads without a parseable createdate")
        leads.sort(key=lambda lead: lead.created_date_key)
        logger.info(
            f"Normalized {len(leads)} paid-social leads "
            f"({sum(lead.matched_show_up for lead in leads)} matched to show-ups)"
        )
        return leads


class RegistrationNormalizer(RowNormalizer):
    """
    Normalize event registration guest rows.

    Rows are unique by ``event_api_id|guest_api_id``; both ids and a
    parseable event date are required. Only approved guests are kept, and
    rows explicitly flagged as not part of the Thursday series are dropped.

    Example:
        registrations = RegistrationNormalizer().normalize(guest_rows)
    """

    DATE_FIELDS = ("event_date", "registered_at", "event_start_at")

    @staticmethod
    def tier_from_crm(value: Any) -> LeadTier:
        tier = _text(value).lower()
        if tier == LeadTier.GREAT.value:
            return LeadTier.GREAT
        if tier == LeadTier.QUALIFIED.value:
            return LeadTier.QUALIFIED
        return LeadTier.STANDARD

    def _date_key(self, row: dict[str, Any]) -> str | None:
        for field in self.DATE_FIELDS:
            if not _is_blank(row.get(field)):
                return parse_date_key(row.get(field))
        return None

    def normalize(self, data: pd.DataFrame | list[dict[str, Any]]) -> list[RegistrationRecord]:
        """Normalize registration rows sorted by event date."""
        df = self._to_dataframe(data)
        records: list[RegistrationRecord] = []
        skipped = 0

        for _, row in df.iterrows():
            row_dict = row.to_dict()
            event_id = _first_text(row_dict, "event_api_id", "eventApiId")
            guest_id = _first_text(row_dict, "guest_api_id", "guestApiId")
            if not event_id or not guest_id:
                skipped += 1
                continue

            date_key = self._date_key(row_dict)
            if not date_key:
                skipped += 1
                continue

            approval = _text(row_dict.get("approval_status"), "approved").lower()
            if approval != "approved":
                continue
            if not _flag(row_dict.get("is_thursday"), default=True):
                continue

            records.append(
                RegistrationRecord(
                    date_key=date_key,
                    event_id=event_id,
                    guest_id=guest_id,
                    guest_name=_text(row_dict.get("guest_name")),
                    guest_email=_text(row_dict.get("guest_email")).lower(),
                    funnel=Funnel.parse(row_dict.get("funnel_key")) or Funnel.FREE,
                    tier=self.tier_from_crm(row_dict.get("matched_hubspot_tier")),
                    matched_meeting=_flag(row_dict.get("matched_zoom")),
                    matched_meeting_net_new=_flag(row_dict.get("matched_zoom_net_new")),
                    matched_crm=_flag(row_dict.get("matched_hubspot")),
                )
            )

        unique = dedupe_by_key(records, lambda record: record.dedupe_key)
        if skipped:
            logger.warning(f"Skipped {skipped} registration rows missing ids or a parseable date")
        if len(unique) < len(records):
            logger.debug(f"Dropped {len(records) - len(unique)} duplicate event/guest rows")
        unique.sort(key=lambda record: record.date_key)
        logger.info(f"Normalized {len(unique)} approved registrations")
        return unique
