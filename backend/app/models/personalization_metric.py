"""Personalization metrics: one row per served recommendation request."""

from sqlalchemy import Column, String, Integer, Float, DateTime, Index, func

from app.models.base import Base, IntegerIDMixin, JSONType


class PersonalizationMetric(IntegerIDMixin, Base):
    __tablename__ = "personalization_metrics"

    user_id = Column(Integer, nullable=False)
    personalization_level = Column(String(20), nullable=False)  # experiment variant
    response_time_ms = Column(Float, nullable=False)
    recommendation_count = Column(Integer, nullable=False)
    metrics = Column(JSONType)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_personalization_metrics_created", "created_at", "personalization_level"),
    )
