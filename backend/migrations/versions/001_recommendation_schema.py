"""Recommendation engine schema.

Creates:
- categories, businesses, business_offerings: the catalogue the engine scores
- users, user_interactions, user_preferences: weighted activity and accumulated preferences
- business_similarities: canonical (a < b) pair scores
- search_logs, business_views, trending_data: trending inputs and outputs
- personalization_metrics: per-request experiment metrics

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. categories
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(120), unique=True),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("categories.id")),
    )
    op.create_index("ix_categories_parent_id", "categories", ["parent_id"])

    # 2. businesses
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.id")),
        sa.Column("subcategory_id", sa.Integer, sa.ForeignKey("categories.id")),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("area", sa.String(100)),
        sa.Column("overall_rating", sa.Float, server_default="0", nullable=False),
        sa.Column("total_reviews", sa.Integer, server_default="0", nullable=False),
        sa.Column("price_range", sa.Integer),
        sa.Column("discovery_score", sa.Float, server_default="0", nullable=False),
        sa.Column("is_verified", sa.Boolean, server_default=sa.text("false"), nullable=False),
        sa.Column("is_featured", sa.Boolean, server_default=sa.text("false"), nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_businesses_category_id", "businesses", ["category_id"])
    op.create_index("ix_businesses_subcategory_id", "businesses", ["subcategory_id"])
    op.create_index("ix_businesses_area", "businesses", ["area"])
    op.create_index("ix_businesses_is_active", "businesses", ["is_active"])
    op.create_index("idx_business_geo", "businesses", ["latitude", "longitude"])
    op.create_index("idx_business_active_rating", "businesses", ["is_active", "overall_rating"])

    # 3. business_offerings
    op.create_table(
        "business_offerings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("business_id", sa.Integer, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_business_offerings_business_id", "business_offerings", ["business_id"])

    # 4. users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("name", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # 5. user_interactions
    op.create_table(
        "user_interactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("business_id", sa.Integer, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("interaction_type", sa.String(30), nullable=False),
        sa.Column("weight", sa.Float, server_default="1.0", nullable=False),
        sa.Column("source", sa.String(50)),
        sa.Column("context_data", JSONB),
        sa.Column("user_latitude", sa.Float),
        sa.Column("user_longitude", sa.Float),
        sa.Column("session_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_interactions_user_created", "user_interactions", ["user_id", "created_at"])
    op.create_index("idx_interactions_user_type", "user_interactions", ["user_id", "interaction_type"])
    op.create_index("idx_interactions_business", "user_interactions", ["business_id"])

    # 6. user_preferences
    op.create_table(
        "user_preferences",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False),
        sa.Column("preferred_categories", JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("category_weights", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("min_price_range", sa.Integer),
        sa.Column("max_price_range", sa.Integer),
        sa.Column("min_rating", sa.Float),
        sa.Column("preferred_latitude", sa.Float),
        sa.Column("preferred_longitude", sa.Float),
        sa.Column("preferred_radius_km", sa.Float),
        sa.Column("last_updated", sa.DateTime(timezone=True)),
    )

    # 7. business_similarities
    op.create_table(
        "business_similarities",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("business_a_id", sa.Integer, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("business_b_id", sa.Integer, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("similarity_score", sa.Float, nullable=False),
        sa.Column("similarity_type", sa.String(30), nullable=False),
        sa.Column("contributing_factors", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("business_a_id", "business_b_id", name="uq_similarity_pair"),
        sa.CheckConstraint("business_a_id < business_b_id", name="ck_similarity_canonical_order"),
    )
    op.create_index("idx_similarity_b_score", "business_similarities", ["business_b_id", "similarity_score"])

    # 8. search_logs
    op.create_table(
        "search_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("search_term", sa.String(255)),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.id", ondelete="SET NULL")),
        sa.Column("clicked_business_id", sa.Integer, sa.ForeignKey("businesses.id", ondelete="SET NULL")),
        sa.Column("clicked_offering_id", sa.Integer, sa.ForeignKey("business_offerings.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_search_logs_created", "search_logs", ["created_at"])

    # 9. business_views
    op.create_table(
        "business_views",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("business_id", sa.Integer, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_business_views_business_created", "business_views", ["business_id", "created_at"])

    # 10. trending_data
    op.create_table(
        "trending_data",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("item_id", sa.Integer),
        sa.Column("item_name", sa.String(255)),
        sa.Column("location_area", sa.String(100)),
        sa.Column("time_period", sa.String(10), nullable=False),
        sa.Column("date_period", sa.Date, nullable=False),
        sa.Column("trend_score", sa.Float, server_default="0", nullable=False),
        sa.Column("hybrid_score", sa.Float),
        sa.Column("view_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("search_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_trending_lookup", "trending_data", ["item_type", "time_period", "date_period", "location_area"])
    op.create_index("idx_trending_item", "trending_data", ["item_type", "item_id"])

    # 11. personalization_metrics
    op.create_table(
        "personalization_metrics",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("personalization_level", sa.String(20), nullable=False),
        sa.Column("response_time_ms", sa.Float, nullable=False),
        sa.Column("recommendation_count", sa.Integer, nullable=False),
        sa.Column("metrics", JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_personalization_metrics_created", "personalization_metrics", ["created_at", "personalization_level"])


def downgrade() -> None:
    op.drop_table("personalization_metrics")
    op.drop_table("trending_data")
    op.drop_table("business_views")
    op.drop_table("search_logs")
    op.drop_table("business_similarities")
    op.drop_table("user_preferences")
    op.drop_table("user_interactions")
    op.drop_table("users")
    op.drop_table("business_offerings")
    op.drop_table("businesses")
    op.drop_table("categories")
