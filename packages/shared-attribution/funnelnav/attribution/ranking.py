"""Rank ads by attributed efficiency.

Top ads reward cheap great and qualified leads plus show-up rate and lead
quality. Bottom ads penalize spend that produced no great or qualified leads
and a high cost per lead.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from funnelnav.attribution.schema import AdPerformance


@dataclass
class RankedAd:
    """An ad with the score it was ranked by."""

    ad: AdPerformance
    score: float

    def to_dict(self) -> dict[str, Any]:
        data = self.ad.to_dict()
        data["score"] = self.score
        return data


def top_score(ad: AdPerformance) -> float:
    """Efficiency score; higher is better.

    Example:
        >>> from funnelnav.attribution.schema import Funnel
        >>> ad = AdPerformance("1", "A", "S", "C", Funnel.FREE, spend=100.0,
        ...                    meta_leads=10.0, attributed_great_leads=1.0)
        >>> round(top_score(ad), 4)
        0.035
    """
    cpgl_component = 1 / ad.cpgl if ad.attributed_great_leads > 0 and ad.cpgl > 0 else 0.0
    cpql_component = 1 / ad.cpql if ad.attributed_qualified_leads > 0 and ad.cpql > 0 else 0.0
    return (
        cpgl_component * 0.5
        + cpql_component * 0.2
        + ad.show_up_rate * 0.15
        + (ad.quality_score / 100) * 0.15
    )


def bottom_score(ad: AdPerformance) -> float:
    """Inefficiency score; higher is worse."""
    no_great = 1 if ad.attributed_great_leads <= 0 else 0
    no_qualified = 1 if ad.attributed_qualified_leads <= 0 else 0
    return ad.spend * (1 + no_great + no_qualified) + ad.cpl * 5


def _spending(ads: Iterable[AdPerformance]) -> list[AdPerformance]:
    return [ad for ad in ads if ad.spend > 0]


def top_ads(ads: Iterable[AdPerformance], limit: int = 5) -> list[RankedAd]:
    """Return the ``limit`` most efficient ads that spent anything."""
    ranked = [RankedAd(ad, top_score(ad)) for ad in _spending(ads)]
    ranked.sort(key=lambda item: item.score, reverse=True)
    return ranked[:limit]


def bottom_ads(ads: Iterable[AdPerformance], limit: int = 5) -> list[RankedAd]:
    """Return the ``limit`` least efficient ads that spent anything."""
    ranked = [RankedAd(ad, bottom_score(ad)) for ad in _spending(ads)]
    ranked.sort(key=lambda item: item.score, reverse=True)
    return ranked[:limit]
