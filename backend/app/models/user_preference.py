"""User preference record: accumulated category weights and search bounds."""

from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.models.base import Base, IntegerIDMixin, JSONType


class UserPreference(IntegerIDMixin, Base):
    __tablename__ = "user_preferences"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    preferred_categories = Column(JSONType, nullable=False, default=list)  # list of category ids
    category_weights = Column(JSONType, nullable=False, default=dict)  # str(category id) -> accumulated weight

    min_price_range = Column(Integer)
    max_price_range = Column(Integer)
    min_rating = Column(Float)

    preferred_latitude = Column(Float)
    preferred_longitude = Column(Float)
    preferred_radius_km = Column(Float)

    last_updated = Column(DateTime(timezone=True))

    # Relationships
    user = relationship("User", back_populates="preference")
