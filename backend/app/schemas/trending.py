"""Pydantic schemas for trending records and batch triggers."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TimePeriod = Literal["daily", "weekly", "monthly"]
TrendingItemType = Literal["business", "category", "offering", "search_term"]


class TrendingItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_type: str
    item_id: int | None = None
    item_name: str | None = None
    location_area: str | None = None
    time_period: str
    date_period: date
    trend_score: float
    hybrid_score: float | None = None
    view_count: int
    search_count: int
    calculated_at: datetime | None = None


class SearchTermCount(BaseModel):
    search_term: str
    search_count: int


class SimilarityBatchRequest(BaseModel):
    """Scope for a batch similarity pass. Empty scope means every category."""

    business_ids: list[int] | None = None
    category_id: int | None = None
    force: bool = False


class TrendingBatchRequest(BaseModel):
    period: TimePeriod = "daily"
    day: date | None = Field(None, alias="date")
    item_type: TrendingItemType | Literal["all"] = "all"


class BatchTaskResponse(BaseModel):
    """Response from queueing a batch task."""

    message: str
    task_id: str
