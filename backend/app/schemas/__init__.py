"""Pydantic schemas package."""

from app.schemas.recommendation import (
    RecommendationItem,
    RecommendationResponse,
    SimilarBusinessItem,
    SimilarBusinessesResponse,
    ScorerRecommendationItem,
)
from app.schemas.interaction import (
    InteractionCreate,
    InteractionRead,
    BusinessViewCreate,
    BusinessViewResponse,
)
from app.schemas.trending import (
    TrendingItemRead,
    SearchTermCount,
    SimilarityBatchRequest,
    TrendingBatchRequest,
    BatchTaskResponse,
)
from app.schemas.experiment import (
    ExperimentAssignment,
    ExperimentMetricsRow,
)

__all__ = [
    # Recommendations
    "RecommendationItem",
    "RecommendationResponse",
    "SimilarBusinessItem",
    "SimilarBusinessesResponse",
    "ScorerRecommendationItem",
    # Interactions
    "InteractionCreate",
    "InteractionRead",
    "BusinessViewCreate",
    "BusinessViewResponse",
    # Trending and batch
    "TrendingItemRead",
    "SearchTermCount",
    "SimilarityBatchRequest",
    "TrendingBatchRequest",
    "BatchTaskResponse",
    # Experiments
    "ExperimentAssignment",
    "ExperimentMetricsRow",
]
