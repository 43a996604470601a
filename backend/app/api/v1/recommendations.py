"""Recommendation and related-business endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from app.config import get_settings
from app.dependencies.services import get_recommendation_service
from app.schemas.recommendation import RecommendationResponse, ScorerRecommendationItem, SimilarBusinessesResponse
from app.services.errors import InvalidInputError, NotFoundError
from app.services.recommendation_service import RecommendationService

router = APIRouter(tags=["recommendations"])
settings = get_settings()


@router.get("/recommendations/{user_id}", response_model=RecommendationResponse)
def get_recommendations(
    user_id: int,
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    category_ids: list[int] | None = Query(None, description="Restrict to these categories"),
    count: int = Query(settings.default_recommendation_count, ge=1, le=settings.max_recommendation_count),
    service: RecommendationService = Depends(get_recommendation_service),
):
    """Ranked recommendations for a user, personalized per their experiment variant."""
    try:
        items = service.get_recommendations(user_id, latitude, longitude, category_ids, count)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return RecommendationResponse(
        user_id=user_id,
        personalization_level=service.personalization_level(user_id),
        count=len(items),
        recommendations=items,
    )


@router.get("/recommendations/{user_id}/algorithms/{algorithm}", response_model=list[ScorerRecommendationItem])
def get_scorer_recommendations(
    user_id: int,
    algorithm: Literal["content_based", "collaborative", "location_based"],
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    count: int = Query(settings.default_recommendation_count, ge=1, le=settings.max_recommendation_count),
    service: RecommendationService = Depends(get_recommendation_service),
):
    """Results from a single scorer, for comparison and debugging."""
    try:
        return service.scorer_recommendations(user_id, algorithm, latitude, longitude, count)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/businesses/{business_id}/similar", response_model=SimilarBusinessesResponse)
def get_similar_businesses(
    business_id: int,
    count: int = Query(10, ge=1, le=50),
    service: RecommendationService = Depends(get_recommendation_service),
):
    """Related businesses from stored similarity, or live fallback tiers."""
    try:
        items = service.get_similar_businesses(business_id, count)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return SimilarBusinessesResponse(business_id=business_id, count=len(items), similar=items)
