"""Configuration for windowed attribution analytics."""

from __future__ import annotations

import os
from dataclasses import dataclass

from funnelnav.attribution.exceptions import ConfigurationError

DEFAULT_PHOENIX_ACCOUNT_IDS: tuple[str, ...] = ("1034775818463907",)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class AnalyticsConfig:
    """Windows, thresholds and rule parameters for the analytics report.

    Attributes:
        lookback_days: Length of the full lookback window ending at the primary date
        month_days: Length of the current/previous "month" windows
        week_days: Length of the current/previous "week" windows
        trend_days: Number of daily trend rows ending at the primary date
        showup_match_window_days: Max days between lead creation and first show-up
        showup_match_min_key_length: Min name-key length for containment matches
        qualified_revenue_min: Lowest revenue (inclusive) of a qualified lead
        great_revenue_min: Revenue strictly above this is a great lead
        phoenix_account_ids: Ad account ids whose spend belongs to the phoenix funnel
        ranked_ads_limit: Number of top and bottom ads reported
    """

    lookback_days: int = 120
    month_days: int = 30
    week_days: int = 7
    trend_days: int = 60
    showup_match_window_days: int = 30
    showup_match_min_key_length: int = 8
    qualified_revenue_min: float = 250_000
    great_revenue_min: float = 1_000_000
    phoenix_account_ids: tuple[str, ...] = DEFAULT_PHOENIX_ACCOUNT_IDS
    ranked_ads_limit: int = 5

    # Headline / recommendation rules
    cpgl_improving_delta: float = -0.15
    reallocation_share: float = 0.25
    lead_to_registration_floor: float = 0.5
    registration_to_showup_floor: float = 0.45
    registration_to_showup_goal: float = 0.55
    weekday_parity_gap: float = 1.0
    max_recommendations: int = 3

    # Alert rules
    cpl_increase_alert: float = 0.25
    registration_showup_drop_alert: float = -0.25
    weekly_showup_drop_alert: float = -0.30
    registration_meeting_match_floor: float = 0.35
    registration_crm_match_floor: float = 0.70

    def __post_init__(self) -> None:
        """Validate window lengths and tier thresholds."""
        for name in ("lookback_days", "month_days", "week_days", "trend_days", "ranked_ads_limit"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.lookback_days < 2 * self.month_days:
            raise ConfigurationError(
                "lookback_days must cover the current and previous month windows, "
                f"got {self.lookback_days} < 2 * {self.month_days}"
            )
        if self.showup_match_window_days < 0:
            raise ConfigurationError(
                f"showup_match_window_days must not be negative, got {self.showup_match_window_days}"
            )
        if self.qualified_revenue_min > self.great_revenue_min:
            raise ConfigurationError(
                "qualified_revenue_min must not exceed great_revenue_min, "
                f"got {self.qualified_revenue_min} > {self.great_revenue_min}"
            )

    @classmethod
    def from_env(cls) -> AnalyticsConfig:
        """Create configuration from environment variables.

        Reads FUNNELNAV_LOOKBACK_DAYS, FUNNELNAV_MONTH_DAYS, FUNNELNAV_WEEK_DAYS,
        FUNNELNAV_TREND_DAYS, FUNNELNAV_SHOWUP_MATCH_WINDOW_DAYS and
        FUNNELNAV_PHOENIX_ACCOUNT_IDS (comma-separated).

        Returns:
            AnalyticsConfig instance.

        Raises:
            ConfigurationError: If a variable is not an integer or a value is
                out of range.
        """
        return cls(
            lookback_days=_env_int("FUNNELNAV_LOOKBACK_DAYS", 120),
            month_days=_env_int("FUNNELNAV_MONTH_DAYS", 30),
            week_days=_env_int("FUNNELNAV_WEEK_DAYS", 7),
            trend_days=_env_int("FUNNELNAV_TREND_DAYS", 60),
            showup_match_window_days=_env_int("FUNNELNAV_SHOWUP_MATCH_WINDOW_DAYS", 30),
            phoenix_account_ids=_env_list("FUNNELNAV_PHOENIX_ACCOUNT_IDS", DEFAULT_PHOENIX_ACCOUNT_IDS),
        )
