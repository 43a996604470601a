"""Pydantic schemas for experiment assignment and metrics."""

from pydantic import BaseModel


class ExperimentAssignment(BaseModel):
    experiment: str
    user_id: int
    variant: str
    active: bool


class ExperimentMetricsRow(BaseModel):
    """Per-variant summary over the reporting window."""

    personalization_level: str
    request_count: int
    avg_response_time_ms: float
    avg_recommendation_count: float
    unique_users: int
