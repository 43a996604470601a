"""Location-based scoring: distance decay, quality, preference alignment and local popularity.

score = (1 - distance / radius) * 0.4
      + (0.7 * rating / 5 + 0.3 * min(reviews / 50, 1)) * 0.3
      + preference_alignment * 0.2
      + min(local_interactions / 20, 1) * 0.1
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.business import Business
from app.models.user_interaction import UserInteraction
from app.services.business_queries import businesses_within_radius, get_active_businesses
from app.services.geo import bounding_box, haversine_km
from app.services.interest_profile_service import UserPreferenceProfile, load_profile
from app.services.ranking import ScoredBusiness, rank

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 25.0
MAX_RADIUS_KM = 100.0

LOCAL_POPULARITY_RADIUS_KM = 10.0
LOCAL_POPULARITY_DAYS = 30
LOCAL_POPULARITY_FULL_SCORE = 20

ANCHOR_INTERACTION_DAYS = 7
ANCHOR_BUSINESS_DAYS = 30

BUSINESSES_BY_DISTANCE_LIMIT = 50
TRENDING_IN_AREA_DAYS = 7
TRENDING_IN_AREA_LIMIT = 20


def effective_radius(profile: UserPreferenceProfile | None) -> float:
    radius = profile.radius_km if profile is not None and profile.radius_km else DEFAULT_RADIUS_KM
    return min(radius, MAX_RADIUS_KM)


def resolve_anchor(
    db: Session,
    user_id: int,
    latitude: float | None,
    longitude: float | None,
    profile: UserPreferenceProfile | None,
    now: datetime | None = None,
) -> tuple[float, float] | None:
    """Pick the coordinate to score around.

    Priority:
    1. Explicit coordinates
    2. The user's stored preferred location
    3. Most recent interaction with a recorded user coordinate (7 days)
    4. Most recent interacted business with coordinates (30 days)
    """
    if latitude is not None and longitude is not None:
        return latitude, longitude

    if profile is not None and profile.has_home_location:
        return profile.home_latitude, profile.home_longitude

    now = now or datetime.now(timezone.utc)
    row = db.execute(
        select(UserInteraction.user_latitude, UserInteraction.user_longitude)
        .where(
            UserInteraction.user_id == user_id,
            UserInteraction.user_latitude.is_not(None),
            UserInteraction.user_longitude.is_not(None),
            UserInteraction.created_at >= now - timedelta(days=ANCHOR_INTERACTION_DAYS),
        )
        .order_by(UserInteraction.created_at.desc())
        .limit(1)
    ).first()
    if row:
        return row[0], row[1]

    row = db.execute(
        select(Business.latitude, Business.longitude)
        .join(UserInteraction, UserInteraction.business_id == Business.id)
        .where(
            UserInteraction.user_id == user_id,
            Business.latitude.is_not(None),
            Business.longitude.is_not(None),
            UserInteraction.created_at >= now - timedelta(days=ANCHOR_BUSINESS_DAYS),
        )
        .order_by(UserInteraction.created_at.desc())
        .limit(1)
    ).first()
    if row:
        return row[0], row[1]

    return None


def preference_alignment(business: Business, profile: UserPreferenceProfile | None) -> float:
    """Average of the applicable preference checks; 0.5 when nothing applies."""
    if profile is None:
        return 0.5

    total = 0.0
    checks = 0

    preferred = profile.preferred_category_ids
    if preferred:
        total += len(business.category_ids & preferred) / len(preferred)
        checks += 1

    if profile.has_price_band and business.price_range:
        total += 1.0 if profile.min_price <= business.price_range <= profile.max_price else 0.0
        checks += 1

    if profile.min_rating and business.overall_rating:
        total += 1.0 if business.overall_rating >= profile.min_rating else 0.0
        checks += 1

    return total / checks if checks else 0.5


def local_interaction_counts(
    db: Session,
    business_ids: Iterable[int],
    latitude: float,
    longitude: float,
    exclude_user_id: int | None = None,
    radius_km: float = LOCAL_POPULARITY_RADIUS_KM,
    days: int = LOCAL_POPULARITY_DAYS,
    now: datetime | None = None,
) -> Counter:
    """Interactions per business made from within radius_km of the anchor."""
    ids = list(business_ids)
    counts: Counter = Counter()
    if not ids:
        return counts

    now = now or datetime.now(timezone.utc)
    min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_km)
    query = select(UserInteraction.business_id, UserInteraction.user_latitude, UserInteraction.user_longitude).where(
        UserInteraction.business_id.in_(ids),
        UserInteraction.user_latitude.between(min_lat, max_lat),
        UserInteraction.user_longitude.between(min_lon, max_lon),
        UserInteraction.created_at >= now - timedelta(days=days),
    )
    if exclude_user_id is not None:
        query = query.where(UserInteraction.user_id != exclude_user_id)

    for business_id, lat, lon in db.execute(query).all():
        if haversine_km(latitude, longitude, lat, lon) <= radius_km:
            counts[business_id] += 1
    return counts


def score_business(
    business: Business,
    distance_km: float,
    radius_km: float,
    profile: UserPreferenceProfile | None,
    local_interactions: int,
) -> float:
    distance_score = max(0.0, 1 - distance_km / radius_km)
    quality = (business.overall_rating or 0.0) / 5.0 * 0.7 + min((business.total_reviews or 0) / 50, 1.0) * 0.3
    popularity = min(local_interactions / LOCAL_POPULARITY_FULL_SCORE, 1.0)

    score = (
        distance_score * 0.4
        + quality * 0.3
        + preference_alignment(business, profile) * 0.2
        + popularity * 0.1
    )
    return round(score, 4)


def recommend(
    db: Session,
    user_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    count: int = 20,
    now: datetime | None = None,
) -> list[ScoredBusiness]:
    """Nearby businesses scored around the resolved anchor. Empty if no anchor is known."""
    profile = load_profile(db, user_id)
    anchor = resolve_anchor(db, user_id, latitude, longitude, profile, now)
    if anchor is None:
        logger.debug("No location anchor for user %s", user_id)
        return []

    radius = effective_radius(profile)
    nearby = businesses_within_radius(db, anchor[0], anchor[1], radius)
    local = local_interaction_counts(
        db, [b.id for b, _ in nearby], anchor[0], anchor[1], exclude_user_id=user_id, now=now,
    )

    scored = [
        ScoredBusiness(
            business=business,
            score=score_business(business, distance, radius, profile, local[business.id]),
            algorithm="location_based",
            distance_km=round(distance, 2),
        )
        for business, distance in nearby
    ]
    return rank(scored, count)


def businesses_by_distance(
    db: Session,
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_RADIUS_KM,
    category_ids: Iterable[int] | None = None,
    limit: int = BUSINESSES_BY_DISTANCE_LIMIT,
) -> list[tuple[Business, float]]:
    """Nearest-first listing, distances rounded to 2 decimals."""
    radius_km = min(radius_km, MAX_RADIUS_KM)
    return [
        (business, round(distance, 2))
        for business, distance in businesses_within_radius(
            db, latitude, longitude, radius_km, category_ids=category_ids, limit=limit,
        )
    ]


def trending_in_area(
    db: Session,
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_RADIUS_KM,
    days: int = TRENDING_IN_AREA_DAYS,
    limit: int = TRENDING_IN_AREA_LIMIT,
    now: datetime | None = None,
) -> list[tuple[Business, int]]:
    """Businesses most interacted with from inside the area recently, as (business, count)."""
    now = now or datetime.now(timezone.utc)
    min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_km)
    rows = db.execute(
        select(UserInteraction.business_id, UserInteraction.user_latitude, UserInteraction.user_longitude).where(
            UserInteraction.user_latitude.between(min_lat, max_lat),
            UserInteraction.user_longitude.between(min_lon, max_lon),
            UserInteraction.created_at >= now - timedelta(days=days),
        )
    ).all()

    counts: Counter = Counter()
    for business_id, lat, lon in rows:
        if haversine_km(latitude, longitude, lat, lon) <= radius_km:
            counts[business_id] += 1

    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    businesses = get_active_businesses(db, [bid for bid, _ in ranked])
    return [(businesses[bid], n) for bid, n in ranked if bid in businesses][:limit]
