"""Shared result type and ranking helpers for the business scorers."""

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from app.models.business import Business


@dataclass
class ScoredBusiness:
    """One scored candidate, as produced by any scorer."""

    business: Business
    score: float
    algorithm: str
    distance_km: float | None = None
    factors: dict[str, float | bool] = field(default_factory=dict)

    @property
    def business_id(self) -> int:
        return self.business.id

    def to_dict(self) -> dict:
        data = {
            "business_id": self.business.id,
            "score": self.score,
            "algorithm": self.algorithm,
        }
        if self.distance_km is not None:
            data["distance_km"] = self.distance_km
        return data


def rank(items: Iterable[ScoredBusiness], count: int) -> list[ScoredBusiness]:
    """Sort by score descending (stable for ties) and truncate."""
    return sorted(items, key=lambda item: item.score, reverse=True)[:count]


def positional_scores(businesses: Sequence[Business], algorithm: str, count: int | None = None) -> list[ScoredBusiness]:
    """Score an already-ordered fallback list as (count - i) / count."""
    total = count or len(businesses)
    return [
        ScoredBusiness(business=b, score=round((total - i) / total, 4), algorithm=algorithm)
        for i, b in enumerate(businesses)
    ]
