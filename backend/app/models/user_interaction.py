"""User interaction model: weighted user-business events."""

from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Index, Integer, func
from sqlalchemy.orm import relationship

from app.models.base import Base, IntegerIDMixin, JSONType


class UserInteraction(IntegerIDMixin, Base):
    __tablename__ = "user_interactions"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    interaction_type = Column(String(30), nullable=False)  # view, favorite, review, phone_call, visit, ...
    weight = Column(Float, default=1.0, nullable=False)
    source = Column(String(50))  # search, map, feed, ...
    context_data = Column(JSONType)
    user_latitude = Column(Float)
    user_longitude = Column(Float)
    session_id = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="interactions")
    business = relationship("Business")

    __table_args__ = (
        Index("idx_interactions_user_created", "user_id", "created_at"),
        Index("idx_interactions_user_type", "user_id", "interaction_type"),
        Index("idx_interactions_business", "business_id"),
    )
