"""Trending read endpoints."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.models.base import get_sync_db
from app.schemas.trending import SearchTermCount, TimePeriod, TrendingItemRead, TrendingItemType
from app.services import trending_service

router = APIRouter(prefix="/trending", tags=["trending"])


@router.get("", response_model=list[TrendingItemRead])
def list_trending(
    db: Session = Depends(get_sync_db),
    period: TimePeriod = Query("daily"),
    item_type: TrendingItemType = Query("business"),
    area: str | None = Query(None, description="Filter by location area"),
    day: date | None = Query(None, alias="date", description="Period date (default today)"),
    limit: int = Query(20, ge=1, le=100),
):
    """Stored trending records, best first."""
    return trending_service.get_trending(db, item_type, period, day, area, limit)


@router.get("/search-terms", response_model=list[SearchTermCount])
def list_popular_search_terms(
    db: Session = Depends(get_sync_db),
    category_id: int | None = Query(None),
    days: int = Query(trending_service.POPULAR_TERMS_DAYS, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
):
    """Most searched terms over the last `days` days."""
    return trending_service.popular_search_terms(db, limit=limit, category_id=category_id, days=days)
