"""Business similarity model: one row per canonical (a < b) business pair."""

from sqlalchemy import Column, Float, String, DateTime, ForeignKey, Index, Integer, UniqueConstraint, CheckConstraint, func

from app.models.base import Base, IntegerIDMixin, JSONType


class BusinessSimilarity(IntegerIDMixin, Base):
    __tablename__ = "business_similarities"

    business_a_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    business_b_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    similarity_score = Column(Float, nullable=False)
    similarity_type = Column(String(30), nullable=False)  # category_similar, location_similar, user_behavior_similar, general_similar
    contributing_factors = Column(JSONType, nullable=False, default=dict)
    calculated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("business_a_id", "business_b_id", name="uq_similarity_pair"),
        CheckConstraint("business_a_id < business_b_id", name="ck_similarity_canonical_order"),
        Index("idx_similarity_b_score", "business_b_id", "similarity_score"),
    )
