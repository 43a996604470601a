"""Activity summaries used by the light and full personalization paths.

Unlike the stored preference record, these are rebuilt from recent
interactions on every request and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from app.models.business import Business
from app.models.user_interaction import UserInteraction
from app.services.interest_profile_service import interaction_weight

SUMMARY_WINDOW_DAYS = 30
SUMMARY_SAMPLE_SIZE = 100
SUMMARY_TOP_CATEGORIES = 5
SUMMARY_INTERACTION_TYPES = ("favorite", "review", "phone_call", "visit")

# "Liked" means one of these, for the similar-users lookup
LIKE_INTERACTION_TYPES = ("favorite", "review", "phone_call")
SIMILAR_USERS_LIKED_LIMIT = 20

RATING_SENSITIVITY_TYPES = ("favorite", "review")
DEFAULT_RATING_SENSITIVITY = 0.5


@dataclass
class ActivitySummary:
    category_weights: dict[int, float] = field(default_factory=dict)
    visited_business_ids: set[int] = field(default_factory=set)
    preferred_price_ranges: set[int] = field(default_factory=set)


@dataclass
class FullActivityProfile(ActivitySummary):
    similar_users_liked: set[int] = field(default_factory=set)
    rating_sensitivity: float = DEFAULT_RATING_SENSITIVITY

    def prefers_current_time(self, business: Business) -> bool:
        """Time-of-day affinity. Not modelled yet, so never matches."""
        return False


def build_activity_summary(db: Session, user_id: int, now: datetime | None = None) -> ActivitySummary:
    """Summarize the user's strong interactions over the last 30 days (capped sample)."""
    now = now or datetime.now(timezone.utc)
    rows = db.execute(
        select(
            UserInteraction.business_id,
            UserInteraction.interaction_type,
            UserInteraction.weight,
            Business.category_id,
            Business.price_range,
        )
        .join(Business, UserInteraction.business_id == Business.id)
        .where(
            UserInteraction.user_id == user_id,
            UserInteraction.interaction_type.in_(SUMMARY_INTERACTION_TYPES),
            UserInteraction.created_at >= now - timedelta(days=SUMMARY_WINDOW_DAYS),
        )
        .order_by(UserInteraction.created_at.desc())
        .limit(SUMMARY_SAMPLE_SIZE)
    ).all()

    weights: dict[int, float] = {}
    summary = ActivitySummary()
    for business_id, interaction_type, weight, category_id, price_range in rows:
        summary.visited_business_ids.add(business_id)
        if category_id is not None:
            weight = weight if weight is not None else interaction_weight(interaction_type)
            weights[category_id] = weights.get(category_id, 0.0) + weight
        if price_range:
            summary.preferred_price_ranges.add(price_range)

    top = sorted(weights.items(), key=lambda kv: kv[1], reverse=True)[:SUMMARY_TOP_CATEGORIES]
    summary.category_weights = dict(top)
    return summary


def similar_users_liked(db: Session, user_id: int, limit: int = SIMILAR_USERS_LIKED_LIMIT) -> set[int]:
    """Businesses liked by users who share at least one liked business with this user."""
    mine = aliased(UserInteraction)
    theirs = aliased(UserInteraction)
    neighbours = (
        select(theirs.user_id)
        .join(mine, mine.business_id == theirs.business_id)
        .where(
            mine.user_id == user_id,
            theirs.user_id != user_id,
            mine.interaction_type.in_(LIKE_INTERACTION_TYPES),
            theirs.interaction_type.in_(LIKE_INTERACTION_TYPES),
        )
        .distinct()
    )
    own = select(UserInteraction.business_id).where(UserInteraction.user_id == user_id)
    rows = db.execute(
        select(UserInteraction.business_id)
        .where(
            UserInteraction.user_id.in_(neighbours),
            UserInteraction.interaction_type.in_(LIKE_INTERACTION_TYPES),
            UserInteraction.business_id.not_in(own),
        )
        .distinct()
        .order_by(UserInteraction.business_id)
        .limit(limit)
    ).scalars().all()
    return set(rows)


def rating_sensitivity(db: Session, user_id: int) -> float:
    """Average rating of favorited/reviewed businesses over 5, capped at 1."""
    average = db.execute(
        select(func.avg(Business.overall_rating))
        .join(UserInteraction, UserInteraction.business_id == Business.id)
        .where(
            UserInteraction.user_id == user_id,
            UserInteraction.interaction_type.in_(RATING_SENSITIVITY_TYPES),
        )
    ).scalar()
    if not average:
        return DEFAULT_RATING_SENSITIVITY
    return min(float(average) / 5, 1.0)


def build_full_profile(db: Session, user_id: int, now: datetime | None = None) -> FullActivityProfile:
    summary = build_activity_summary(db, user_id, now)
    return FullActivityProfile(
        category_weights=summary.category_weights,
        visited_business_ids=summary.visited_business_ids,
        preferred_price_ranges=summary.preferred_price_ranges,
        similar_users_liked=similar_users_liked(db, user_id),
        rating_sensitivity=rating_sensitivity(db, user_id),
    )
