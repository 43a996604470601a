"""Raw activity logs that feed the trending calculator."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Integer, func

from app.models.base import Base, IntegerIDMixin


class SearchLog(IntegerIDMixin, Base):
    __tablename__ = "search_logs"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    search_term = Column(String(255))
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    clicked_business_id = Column(Integer, ForeignKey("businesses.id", ondelete="SET NULL"))
    clicked_offering_id = Column(Integer, ForeignKey("business_offerings.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_search_logs_created", "created_at"),
    )


class BusinessView(IntegerIDMixin, Base):
    __tablename__ = "business_views"

    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_business_views_business_created", "business_id", "created_at"),
    )
