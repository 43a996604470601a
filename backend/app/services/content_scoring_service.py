"""Content-based scoring: ranks businesses against a user's preference profile.

score = category_overlap * 0.40 + rating / 5 * 0.25 + price_closeness * 0.20
      + min(reviews / 100, 1) * 0.15
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models.business import Business
from app.models.user_interaction import UserInteraction
from app.services.interest_profile_service import UserPreferenceProfile, load_profile
from app.services.ranking import ScoredBusiness, positional_scores, rank

logger = logging.getLogger(__name__)

POPULAR_MIN_RATING = 4.0


def score_business(business: Business, profile: UserPreferenceProfile) -> float:
    score = 0.0

    # Category overlap (0.4)
    preferred = profile.preferred_category_ids
    if preferred:
        overlap = len(business.category_ids & preferred) / len(preferred)
        score += overlap * 0.4

    # Rating (0.25)
    score += (business.overall_rating or 0.0) / 5.0 * 0.25

    # Price closeness to the band midpoint (0.2)
    if profile.has_price_band and business.price_range:
        band = profile.max_price - profile.min_price
        if band > 0:
            midpoint = (profile.min_price + profile.max_price) / 2
            closeness = max(0.0, 1 - abs(business.price_range - midpoint) / band)
            score += closeness * 0.2

    # Popularity (0.15)
    score += min((business.total_reviews or 0) / 100, 1.0) * 0.15

    return round(score, 4)


def _profile_candidates(db: Session, profile: UserPreferenceProfile) -> list[Business]:
    query = select(Business).where(Business.is_active == True)  # noqa: E712
    preferred = sorted(profile.preferred_category_ids)
    if preferred:
        query = query.where(or_(Business.category_id.in_(preferred), Business.subcategory_id.in_(preferred)))
    if profile.min_price is not None:
        query = query.where(Business.price_range >= profile.min_price)
    if profile.max_price is not None:
        query = query.where(Business.price_range <= profile.max_price)
    if profile.min_rating:
        query = query.where(Business.overall_rating >= profile.min_rating)
    return db.execute(query).scalars().all()


def _interacted_category_fallback(db: Session, user_id: int, count: int) -> list[ScoredBusiness]:
    category_ids = db.execute(
        select(Business.category_id)
        .join(UserInteraction, UserInteraction.business_id == Business.id)
        .where(UserInteraction.user_id == user_id, Business.category_id.is_not(None))
        .distinct()
    ).scalars().all()
    if not category_ids:
        return []

    businesses = db.execute(
        select(Business)
        .where(Business.is_active == True, Business.category_id.in_(category_ids))  # noqa: E712
        .order_by(Business.overall_rating.desc(), Business.total_reviews.desc(), Business.id)
        .limit(count)
    ).scalars().all()
    return positional_scores(businesses, "content_based_fallback", count)


def popular_businesses(db: Session, count: int) -> list[ScoredBusiness]:
    """Unpersonalized ranking by review count, then rating."""
    businesses = db.execute(
        select(Business)
        .where(Business.is_active == True, Business.overall_rating >= POPULAR_MIN_RATING)  # noqa: E712
        .order_by(Business.total_reviews.desc(), Business.overall_rating.desc(), Business.id)
        .limit(count)
    ).scalars().all()
    return positional_scores(businesses, "popular_fallback", count)


def recommend(db: Session, user_id: int, count: int = 20) -> list[ScoredBusiness]:
    """Content-based recommendations with interaction and popularity fallbacks."""
    profile = load_profile(db, user_id)

    if profile is not None:
        scored = [
            ScoredBusiness(business=b, score=score_business(b, profile), algorithm="content_based")
            for b in _profile_candidates(db, profile)
        ]
        if scored:
            return rank(scored, count)
        logger.debug("No content candidates for user %s, using fallback", user_id)

    return _interacted_category_fallback(db, user_id, count) or popular_businesses(db, count)
