"""Collaborative scoring: neighbour-based recommendations over interaction-weight vectors.

A user's vector maps business_id -> summed interaction weight over the
recency window. Neighbours are other users whose vectors, compared on the
businesses both touched, have cosine similarity >= 0.1. Candidates are the
neighbours' positive interactions (weight >= 2.0) on businesses the user has
never touched, scored by weight * neighbour similarity.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Mapping

from sqlalchemy import case, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.business import Business
from app.models.user_interaction import UserInteraction
from app.services.business_queries import get_active_businesses
from app.services.ranking import ScoredBusiness, positional_scores, rank

logger = logging.getLogger(__name__)

MIN_INTERACTIONS_FOR_SIMILARITY = 3
SIMILARITY_THRESHOLD = 0.1
MAX_NEIGHBOURS = 10
POSITIVE_WEIGHT_FLOOR = 2.0
RECENTLY_ADDED_DAYS = 30


def cosine_similarity(vector_a: Mapping[int, float], vector_b: Mapping[int, float]) -> float:
    """Cosine similarity over the keys both vectors share. 0.0 when they share none."""
    common = vector_a.keys() & vector_b.keys()
    if not common:
        return 0.0

    dot = sum(vector_a[k] * vector_b[k] for k in common)
    magnitude_a = math.sqrt(sum(vector_a[k] ** 2 for k in common))
    magnitude_b = math.sqrt(sum(vector_b[k] ** 2 for k in common))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


def _window_start(now: datetime | None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=get_settings().interaction_recency_days)


def interaction_vector(db: Session, user_id: int, now: datetime | None = None) -> dict[int, float]:
    """business_id -> summed weight of the user's interactions inside the recency window."""
    rows = db.execute(
        select(UserInteraction.business_id, UserInteraction.weight).where(
            UserInteraction.user_id == user_id,
            UserInteraction.created_at >= _window_start(now),
        )
    ).all()
    vector: dict[int, float] = defaultdict(float)
    for business_id, weight in rows:
        vector[business_id] += weight
    return dict(vector)


def find_neighbours(
    db: Session,
    user_id: int,
    vector: Mapping[int, float],
    now: datetime | None = None,
) -> dict[int, float]:
    """Top neighbours as user_id -> similarity, best first."""
    rows = db.execute(
        select(UserInteraction.user_id, UserInteraction.business_id, UserInteraction.weight).where(
            UserInteraction.business_id.in_(list(vector)),
            UserInteraction.user_id != user_id,
            UserInteraction.created_at >= _window_start(now),
        )
    ).all()

    others: dict[int, dict[int, float]] = defaultdict(lambda: defaultdict(float))
    for other_id, business_id, weight in rows:
        others[other_id][business_id] += weight

    similarities = {}
    for other_id, other_vector in others.items():
        similarity = cosine_similarity(vector, other_vector)
        if similarity >= SIMILARITY_THRESHOLD:
            similarities[other_id] = similarity

    top = sorted(similarities.items(), key=lambda kv: (-kv[1], kv[0]))[:MAX_NEIGHBOURS]
    return dict(top)


def _touched_business_ids(db: Session, user_id: int) -> set[int]:
    """Every business the user ever interacted with, regardless of age."""
    return set(db.execute(
        select(UserInteraction.business_id).where(UserInteraction.user_id == user_id).distinct()
    ).scalars().all())


def fallback(db: Session, user_id: int, count: int, now: datetime | None = None) -> list[ScoredBusiness]:
    """Recently added, then most reviewed / highest rated, excluding known businesses."""
    now = now or datetime.now(timezone.utc)
    touched = _touched_business_ids(db, user_id)
    recently_added = case((Business.created_at >= now - timedelta(days=RECENTLY_ADDED_DAYS), 1), else_=0)

    query = select(Business).where(Business.is_active == True)  # noqa: E712
    if touched:
        query = query.where(Business.id.not_in(sorted(touched)))
    businesses = db.execute(
        query.order_by(
            recently_added.desc(),
            Business.total_reviews.desc(),
            Business.overall_rating.desc(),
            Business.id,
        ).limit(count)
    ).scalars().all()
    return positional_scores(businesses, "collaborative_fallback", count)


def recommend(db: Session, user_id: int, count: int = 20, now: datetime | None = None) -> list[ScoredBusiness]:
    vector = interaction_vector(db, user_id, now)
    if len(vector) < MIN_INTERACTIONS_FOR_SIMILARITY:
        logger.debug("User %s has %d businesses in window, using fallback", user_id, len(vector))
        return fallback(db, user_id, count, now)

    neighbours = find_neighbours(db, user_id, vector, now)
    if not neighbours:
        return fallback(db, user_id, count, now)

    touched = _touched_business_ids(db, user_id)
    query = select(UserInteraction.user_id, UserInteraction.business_id, UserInteraction.weight).where(
        UserInteraction.user_id.in_(list(neighbours)),
        UserInteraction.weight >= POSITIVE_WEIGHT_FLOOR,
        UserInteraction.created_at >= _window_start(now),
    )
    if touched:
        query = query.where(UserInteraction.business_id.not_in(sorted(touched)))

    scores: dict[int, float] = defaultdict(float)
    for neighbour_id, business_id, weight in db.execute(query).all():
        scores[business_id] += weight * neighbours[neighbour_id]

    businesses = get_active_businesses(db, scores)
    scored = [
        ScoredBusiness(business=businesses[bid], score=round(score, 4), algorithm="collaborative_filtering")
        for bid, score in scores.items()
        if bid in businesses
    ]
    return rank(scored, count)


def calculate_user_similarity(db: Session, user_a_id: int, user_b_id: int, now: datetime | None = None) -> float:
    """Cosine similarity of two users' recency-window vectors."""
    return cosine_similarity(interaction_vector(db, user_a_id, now), interaction_vector(db, user_b_id, now))
