"""Configuration for attendee identity resolution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum

from funnelnav.identity.exceptions import ConfigurationError

DEFAULT_BOT_KEYWORDS: tuple[str, ...] = (
    "note",
    "notetaker",
    "fireflies.ai",
    "fathom",
    "read.ai",
    "otter.ai",
)

DEFAULT_NON_PERSON_TOKENS: frozenset[str] = frozenset(
    {
        "iphone",
        "ipad",
        "android",
        "galaxy",
        "phone",
        "zoom",
        "user",
        "guest",
        "host",
        "cohost",
        "admin",
        "desktop",
        "laptop",
        "macbook",
        "pc",
        "meeting",
    }
)

# Known ambiguous display names, checked in order against the alias-resolved name.
DEFAULT_PREFIX_RULES: tuple[tuple[str, str], ...] = (
    (r"^chris\s+lipper\b", "Chris Lipper"),
    (r"^allen\s+g(?:\b|[^a-z0-9])", "Allen Goddard"),
    (r"^allen\s+godard\b", "Allen Goddard"),
    (r"^allen\s+goddard\b", "Allen Goddard"),
    (r"^josh\s+cougler\b", "Josh Cougler"),
    (r"^matt\s+s\b", "Matt Shiebler"),
)

DEFAULT_DEVICE_PATTERN = r"iphone|ipad|android|galaxy"


class DayType(str, Enum):
    """Session group label."""

    TUESDAY = "Tuesday"
    THURSDAY = "Thursday"
    OTHER = "Other"


DEFAULT_SERIES_GROUPS: dict[str, str] = {
    "87199667045": "Tuesday",
    "88955819691": "Tuesday",
    "84242212480": "Thursday",
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class IdentityConfig:
    """Tunable thresholds and vocabularies for identity resolution.

    Confidence values are on a 0-100 scale. A candidate scoring at or above
    ``auto_merge_threshold`` is merged automatically when it is the only such
    candidate; scores in ``[review_threshold, auto_merge_threshold)`` open a
    pending review case instead.

    Example:
        >>> config = IdentityConfig(auto_merge_threshold=95)
        >>> config.review_threshold
        75
    """

    max_alias_hops: int = 12
    auto_merge_threshold: int = 90
    review_threshold: int = 75
    min_session_attendees: int = 2
    bot_keywords: tuple[str, ...] = DEFAULT_BOT_KEYWORDS
    non_person_tokens: frozenset[str] = DEFAULT_NON_PERSON_TOKENS
    device_pattern: str = DEFAULT_DEVICE_PATTERN
    prefix_rules: tuple[tuple[str, str], ...] = DEFAULT_PREFIX_RULES
    series_groups: dict[str, DayType] = field(default_factory=lambda: dict(DEFAULT_SERIES_GROUPS))

    def __post_init__(self) -> None:
        """Validate threshold ordering and coerce series group labels."""
        if self.max_alias_hops < 1:
            raise ConfigurationError(f"max_alias_hops must be positive, got {self.max_alias_hops}")
        if not 0 <= self.review_threshold <= self.auto_merge_threshold <= 100:
            raise ConfigurationError(
                "Thresholds must satisfy 0 <= review_threshold <= auto_merge_threshold <= 100, "
                f"got review={self.review_threshold} auto_merge={self.auto_merge_threshold}"
            )
        groups = {}
        for series_id, label in self.series_groups.items():
            try:
                groups[str(series_id)] = DayType(str(getattr(label, "value", label)).strip().title())
            except ValueError as e:
                raise ConfigurationError(
                    f"series_groups[{series_id!r}] must be one of "
                    f"{[day.value for day in DayType]}, got {label!r}"
                ) from e
        self.series_groups = groups

    @classmethod
    def from_env(cls) -> IdentityConfig:
        """Create configuration from environment variables.

        Reads FUNNELNAV_AUTO_MERGE_THRESHOLD, FUNNELNAV_REVIEW_THRESHOLD,
        FUNNELNAV_MAX_ALIAS_HOPS and FUNNELNAV_MIN_SESSION_ATTENDEES.
        Unset variables keep their defaults.

        Returns:
            IdentityConfig instance.

        Raises:
            ConfigurationError: If a variable is not an integer or the
                resulting thresholds are inconsistent.
        """
        return cls(
            max_alias_hops=_env_int("FUNNELNAV_MAX_ALIAS_HOPS", 12),
            auto_merge_threshold=_env_int("FUNNELNAV_AUTO_MERGE_THRESHOLD", 90),
            review_threshold=_env_int("FUNNELNAV_REVIEW_THRESHOLD", 75),
            min_session_attendees=_env_int("FUNNELNAV_MIN_SESSION_ATTENDEES", 2),
        )
