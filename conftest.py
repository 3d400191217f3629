"""Shared pytest fixtures for FunnelNav packages."""

import itertools
from datetime import UTC, datetime

import pytest

from funnelnav.identity import IdentityResolutionEngine, InMemoryIdentityRepository


@pytest.fixture
def identity_engine():
    """Identity engine over an in-memory repository with a fixed clock."""
    counter = itertools.count(1)
    return IdentityResolutionEngine(
        InMemoryIdentityRepository(),
        id_factory=lambda: f"id-{next(counter)}",
        clock=lambda: datetime(2025, 1, 7, 18, tzinfo=UTC),
    )


@pytest.fixture
def sample_ad_rows():
    """Two days of ad delivery rows for the free funnel."""
    return [
        {
            "date_day": "2025-01-07",
            "ad_id": "111",
            "ad_name": "Hook A",
            "adset_name": "Broad",
            "campaign_name": "Free Workshop",
            "spend": 200.0,
            "impressions": 4000,
            "clicks": 80,
            "leads": 4,
        },
        {
            "date_day": "2025-01-09",
            "ad_id": "222",
            "ad_name": "Hook B",
            "adset_name": "Lookalike",
            "campaign_name": "Free Workshop",
            "spend": 100.0,
            "impressions": 2000,
            "clicks": 20,
            "leads": 1,
        },
    ]


@pytest.fixture
def sample_crm_rows():
    """Paid-social CRM contacts with and without revenue."""
    return [
        {
            "createdate": "2025-01-06T15:00:00Z",
            "hs_analytics_source": "PAID_SOCIAL",
            "firstname": "Lori",
            "lastname": "Smith",
            "email": "lori@example.com",
            "annual_revenue_in_dollars__official_": 2_000_000,
        },
        {
            "createdate": "2025-01-07T09:00:00Z",
            "hs_analytics_source": "PAID_SOCIAL",
            "firstname": "Ken",
            "lastname": "Ray",
            "membership_s": "Luma Registered",
        },
    ]


@pytest.fixture
def sample_sessions():
    """A Tuesday and a Thursday roster."""
    return [
        {
            "session_id": "tue-1",
            "start_time": "2025-01-07T17:00:00Z",
            "participants": [
                {"name": "Lori Smith", "user_email": "lori@example.com"},
                {"name": "Lori's iPhone"},
                {"name": "Ana Lee"},
                {"name": "Fireflies.ai Notetaker"},
            ],
        },
        {
            "session_id": "thu-1",
            "start_time": "2025-01-09T17:00:00Z",
            "participants": [{"name": "Lori Smith"}, {"name": "Ken Ray"}],
        },
    ]
