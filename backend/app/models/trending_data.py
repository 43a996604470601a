"""Trending data model: per-period, per-area trend scores."""

from sqlalchemy import Column, Float, String, Date, DateTime, Index, Integer, func

from app.models.base import Base, IntegerIDMixin


class TrendingData(IntegerIDMixin, Base):
    __tablename__ = "trending_data"

    item_type = Column(String(20), nullable=False)  # business, category, offering, search_term
    item_id = Column(Integer)  # null for search terms
    item_name = Column(String(255))
    location_area = Column(String(100))
    time_period = Column(String(10), nullable=False)  # daily, weekly, monthly
    date_period = Column(Date, nullable=False)

    trend_score = Column(Float, default=0.0, nullable=False)
    hybrid_score = Column(Float)
    view_count = Column(Integer, default=0, nullable=False)
    search_count = Column(Integer, default=0, nullable=False)
    calculated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_trending_lookup", "item_type", "time_period", "date_period", "location_area"),
        Index("idx_trending_item", "item_type", "item_id"),
    )
