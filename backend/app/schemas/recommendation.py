"""Pydantic schemas for recommendations and related businesses."""

from pydantic import BaseModel


class RecommendationItem(BaseModel):
    """One scored business in a recommendation list."""

    business_id: int
    score: float
    algorithm: str
    contributing_algorithms: list[str]
    distance_km: float | None = None
    personalization_applied: bool = False
    personalization_factors: list[str] = []


class RecommendationResponse(BaseModel):
    user_id: int
    personalization_level: str
    count: int
    recommendations: list[RecommendationItem]


class SimilarBusinessItem(BaseModel):
    business_id: int
    score: float
    type: str
    reasons: list[str]


class SimilarBusinessesResponse(BaseModel):
    business_id: int
    count: int
    similar: list[SimilarBusinessItem]


class ScorerRecommendationItem(BaseModel):
    """One result from a standalone scorer."""

    business_id: int
    score: float
    algorithm: str
    distance_km: float | None = None
