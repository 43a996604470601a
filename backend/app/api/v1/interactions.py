"""Interaction tracking and business view endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.dependencies.services import get_recommendation_service
from app.models.base import get_sync_db
from app.schemas.interaction import BusinessViewCreate, BusinessViewResponse, InteractionCreate, InteractionRead
from app.services import trending_service
from app.services.errors import InvalidInputError, NotFoundError
from app.services.recommendation_service import RecommendationService

router = APIRouter(tags=["interactions"])


@router.post("/interactions", response_model=InteractionRead, status_code=201)
def track_interaction(
    payload: InteractionCreate,
    service: RecommendationService = Depends(get_recommendation_service),
):
    """Record an interaction and update the user's preferences."""
    try:
        return service.track_interaction(
            payload.user_id,
            payload.business_id,
            payload.interaction_type,
            context=payload.context,
            latitude=payload.latitude,
            longitude=payload.longitude,
            weight=payload.weight,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/businesses/{business_id}/views", response_model=BusinessViewResponse)
def record_business_view(
    business_id: int,
    payload: BusinessViewCreate | None = None,
    db: Session = Depends(get_sync_db),
):
    """Log a view and bump today's trending counters for the business."""
    user_id = payload.user_id if payload else None
    try:
        return trending_service.record_view(db, business_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
