"""Business catalogue models: categories, businesses and their offerings."""

from sqlalchemy import Column, String, Float, Boolean, ForeignKey, Index, Integer
from sqlalchemy.orm import relationship

from app.models.base import Base, IntegerIDMixin, TimestampMixin


class Category(IntegerIDMixin, Base):
    __tablename__ = "categories"

    name = Column(String(100), nullable=False)
    slug = Column(String(120), unique=True)
    parent_id = Column(Integer, ForeignKey("categories.id"), index=True)


class Business(IntegerIDMixin, TimestampMixin, Base):
    __tablename__ = "businesses"

    name = Column(String(255), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), index=True)
    subcategory_id = Column(Integer, ForeignKey("categories.id"), index=True)

    # Location
    latitude = Column(Float)
    longitude = Column(Float)
    area = Column(String(100), index=True)  # neighbourhood / city area used for trending

    # Quality signals
    overall_rating = Column(Float, default=0.0, nullable=False)  # 0-5
    total_reviews = Column(Integer, default=0, nullable=False)
    price_range = Column(Integer)  # 1-4
    discovery_score = Column(Float, default=0.0, nullable=False)  # precomputed popularity, 0-100

    is_verified = Column(Boolean, default=False, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    category = relationship("Category", foreign_keys=[category_id])
    subcategory = relationship("Category", foreign_keys=[subcategory_id])
    offerings = relationship("BusinessOffering", back_populates="business", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_business_geo", "latitude", "longitude"),
        Index("idx_business_active_rating", "is_active", "overall_rating"),
    )

    @property
    def category_ids(self) -> set[int]:
        return {cid for cid in (self.category_id, self.subcategory_id) if cid is not None}


class BusinessOffering(IntegerIDMixin, TimestampMixin, Base):
    __tablename__ = "business_offerings"

    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    business = relationship("Business", back_populates="offerings")
