"""Pydantic schemas for interaction tracking and view logging."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class InteractionCreate(BaseModel):
    """Incoming user-business interaction."""

    user_id: int
    business_id: int
    interaction_type: str = Field(min_length=1, max_length=30)
    weight: float | None = Field(None, ge=0)
    context: dict[str, Any] | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class InteractionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    business_id: int
    interaction_type: str
    weight: float
    source: str | None = None
    session_id: str | None = None
    created_at: datetime


class BusinessViewCreate(BaseModel):
    user_id: int | None = None


class BusinessViewResponse(BaseModel):
    """Today's trending counters for the viewed business."""

    model_config = ConfigDict(from_attributes=True)

    item_id: int
    location_area: str | None = None
    date_period: date
    view_count: int
    trend_score: float
    hybrid_score: float | None = None
