"""Business similarity service: multi-factor pairwise similarity with hard category gating.

score = category_match * 0.60 + location_proximity * 0.15 + review_sentiment * 0.10
      + feature_overlap * 0.10 + user_overlap * 0.05

Pairs in an incompatible category pair are gated to 0 before any factor is
computed. Independently, a computed category_match of 0 forces the final
score to 0. The two checks read different rule tables and are kept apart.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Iterator

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.models.business import Business, Category
from app.models.business_similarity import BusinessSimilarity
from app.models.user_interaction import UserInteraction
from app.services.business_queries import get_business
from app.services.category_rules import CategoryRules, get_category_rules
from app.services.errors import NotFoundError
from app.services.geo import haversine_km

logger = logging.getLogger(__name__)

SIMILARITY_WEIGHTS = {
    "category_match": 0.60,
    "location_proximity": 0.15,
    "review_sentiment": 0.10,
    "feature_overlap": 0.10,
    "user_overlap": 0.05,
}

# (max distance km, proximity score), checked in order
PROXIMITY_BUCKETS = ((1.0, 1.0), (5.0, 0.8), (10.0, 0.5), (25.0, 0.2))

# Interactions that count a user as a "visitor" for user_overlap
OVERLAP_INTERACTION_TYPES = ("favorite", "review", "phone_call", "visit")

# Amenity comparison is not implemented; every pair gets the same baseline
FEATURE_BASELINE = 0.5


@dataclass
class SimilarityResult:
    factors: dict[str, float] = field(default_factory=dict)
    score: float = 0.0
    similarity_type: str = "general_similar"
    gated: bool = False


def canonical_pair(business_a_id: int, business_b_id: int) -> tuple[int, int]:
    """Order a pair so the smaller id comes first."""
    if business_a_id == business_b_id:
        raise ValueError("A business cannot be paired with itself")
    return (business_a_id, business_b_id) if business_a_id < business_b_id else (business_b_id, business_a_id)


def _category_name(business: Business) -> str | None:
    return business.category.name if business.category is not None else None


def _has_coordinates(business: Business) -> bool:
    return business.latitude is not None and business.longitude is not None


def category_match(a: Business, b: Business, rules: CategoryRules) -> float:
    if a.category_id is not None and a.category_id == b.category_id:
        return 1.0 if a.subcategory_id == b.subcategory_id else 0.8
    if rules.is_compatible(_category_name(a), _category_name(b)):
        return 0.6
    return 0.0


def location_proximity(a: Business, b: Business) -> float:
    if not (_has_coordinates(a) and _has_coordinates(b)):
        return 0.0
    distance = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
    for max_km, score in PROXIMITY_BUCKETS:
        if distance <= max_km:
            return score
    return 0.0


def review_sentiment(a: Business, b: Business) -> float:
    diff = abs((a.overall_rating or 0.0) - (b.overall_rating or 0.0))
    return max(0.0, 1 - diff / 5)


def feature_overlap(a: Business, b: Business) -> float:
    price_score = 0.0
    if a.price_range and b.price_range:
        price_score = max(0.0, 1 - abs(a.price_range - b.price_range) / 3)
    return (price_score + FEATURE_BASELINE) / 2


def user_overlap(users_a: set[int], users_b: set[int]) -> float:
    """Jaccard index of the two visitor sets."""
    if not users_a or not users_b:
        return 0.0
    return len(users_a & users_b) / len(users_a | users_b)


def similarity_type(factors: dict[str, float]) -> str:
    if factors.get("category_match", 0) > 0.8:
        return "category_similar"
    if factors.get("location_proximity", 0) > 0.8:
        return "location_similar"
    if factors.get("user_overlap", 0) > 0.7:
        return "user_behavior_similar"
    return "general_similar"


def compute_similarity(
    a: Business,
    b: Business,
    users_a: Iterable[int] = (),
    users_b: Iterable[int] = (),
    rules: CategoryRules | None = None,
) -> SimilarityResult:
    """Score one business pair. Symmetric in (a, b)."""
    rules = rules or get_category_rules()

    if rules.is_incompatible(_category_name(a), _category_name(b)):
        return SimilarityResult(gated=True)

    factors = {
        "category_match": category_match(a, b, rules),
        "location_proximity": location_proximity(a, b),
        "review_sentiment": round(review_sentiment(a, b), 4),
        "feature_overlap": round(feature_overlap(a, b), 4),
        "user_overlap": round(user_overlap(set(users_a), set(users_b)), 4),
    }

    if factors["category_match"] == 0:
        return SimilarityResult(factors=factors, score=0.0, similarity_type=similarity_type(factors))

    score = sum(factors[name] * weight for name, weight in SIMILARITY_WEIGHTS.items())
    score = round(min(1.0, max(0.0, score)), 4)
    return SimilarityResult(factors=factors, score=score, similarity_type=similarity_type(factors))


def realtime_similarity(a: Business, b: Business) -> float:
    """Reduced similarity for live "related businesses" fallbacks. Display ordering only."""
    score = 0.0
    if a.category_id is not None and a.category_id == b.category_id:
        score += 0.4
    score += review_sentiment(a, b) * 0.3
    if _has_coordinates(a) and _has_coordinates(b):
        distance = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
        score += max(0.0, 1 - distance / 10) * 0.2
    if a.price_range and b.price_range:
        score += max(0.0, 1 - abs(a.price_range - b.price_range) / 3) * 0.1
    return round(score, 4)


def interacting_users(db: Session, business_ids: Iterable[int]) -> dict[int, set[int]]:
    """Distinct visitor ids per business, for user_overlap."""
    ids = list(business_ids)
    users: dict[int, set[int]] = {}
    if not ids:
        return users
    rows = db.execute(
        select(UserInteraction.business_id, UserInteraction.user_id)
        .where(
            UserInteraction.business_id.in_(ids),
            UserInteraction.interaction_type.in_(OVERLAP_INTERACTION_TYPES),
        )
        .distinct()
    ).all()
    for business_id, user_id in rows:
        users.setdefault(business_id, set()).add(user_id)
    return users


def _store(
    db: Session,
    pair: tuple[int, int],
    result: SimilarityResult,
    record: BusinessSimilarity | None,
    min_score: float,
) -> str | None:
    """Upsert or prune one pair. Returns the stats key for what happened."""
    if result.score < min_score:
        if record is not None:
            db.delete(record)
            return "removed"
        return None

    now = datetime.now(timezone.utc)
    if record is None:
        db.add(BusinessSimilarity(
            business_a_id=pair[0],
            business_b_id=pair[1],
            similarity_score=result.score,
            similarity_type=result.similarity_type,
            contributing_factors=result.factors,
            calculated_at=now,
        ))
        return "created"

    record.similarity_score = result.score
    record.similarity_type = result.similarity_type
    record.contributing_factors = result.factors
    record.calculated_at = now
    return "updated"


def upsert_similarity(
    db: Session,
    business_a_id: int,
    business_b_id: int,
    result: SimilarityResult,
    min_score: float | None = None,
) -> str | None:
    """Write one result under its canonical pair key."""
    if min_score is None:
        min_score = get_settings().similarity_min_score
    pair = canonical_pair(business_a_id, business_b_id)
    record = db.execute(
        select(BusinessSimilarity).where(
            BusinessSimilarity.business_a_id == pair[0],
            BusinessSimilarity.business_b_id == pair[1],
        )
    ).scalar_one_or_none()
    return _store(db, pair, result, record, min_score)


def _new_stats() -> dict[str, int]:
    return {"processed": 0, "created": 0, "updated": 0, "removed": 0, "skipped": 0, "failed": 0}


def compatible_category_ids(db: Session, category_id: int, rules: CategoryRules | None = None) -> list[int]:
    """Ids of the categories whose names the rules list as compatible with this one."""
    rules = rules or get_category_rules()
    name = db.execute(select(Category.name).where(Category.id == category_id)).scalar_one_or_none()
    names = rules.compatible_with(name)
    if not names:
        return []
    return list(db.execute(
        select(Category.id)
        .where(func.lower(Category.name).in_(sorted(names)), Category.id != category_id)
        .order_by(Category.id)
    ).scalars())


def recalculate_similarities(
    db: Session,
    business_ids: Iterable[int] | None = None,
    category_id: int | None = None,
    force: bool = False,
    rules: CategoryRules | None = None,
    with_category_ids: Iterable[int] | None = None,
) -> dict[str, int]:
    """Batch pass over every unordered pair of the selected active businesses.

    Existing pairs are skipped unless ``force`` is set. Callers bound the
    O(n^2) cost by scoping to explicit ids or a single category. With
    ``with_category_ids`` the category scope also pairs its businesses with
    businesses in those categories; pairs between two of the extra
    categories are left to their own runs.
    """
    settings = get_settings()
    rules = rules or get_category_rules()
    extra_ids = set(with_category_ids or ()) if category_id is not None else set()

    query = select(Business).options(selectinload(Business.category)).where(Business.is_active == True)  # noqa: E712
    if business_ids is not None:
        query = query.where(Business.id.in_(list(business_ids)))
    if category_id is not None:
        query = query.where(Business.category_id.in_(sorted({category_id} | extra_ids)))
    businesses = db.execute(query.order_by(Business.id)).scalars().all()

    if len(businesses) > settings.similarity_batch_size:
        logger.warning(
            "Similarity batch of %d businesses exceeds configured batch size %d",
            len(businesses), settings.similarity_batch_size,
        )

    ids = [b.id for b in businesses]
    visitors = interacting_users(db, ids)
    existing = {
        (r.business_a_id, r.business_b_id): r
        for r in db.execute(
            select(BusinessSimilarity).where(
                BusinessSimilarity.business_a_id.in_(ids),
                BusinessSimilarity.business_b_id.in_(ids),
            )
        ).scalars()
    } if ids else {}

    stats = _new_stats()
    for i, a in enumerate(businesses):
        for b in businesses[i + 1:]:
            if extra_ids and category_id not in (a.category_id, b.category_id):
                continue
            stats["processed"] += 1
            pair = canonical_pair(a.id, b.id)
            record = existing.get(pair)
            if record is not None and not force:
                stats["skipped"] += 1
                continue
            try:
                result = compute_similarity(a, b, visitors.get(a.id, ()), visitors.get(b.id, ()), rules)
                with db.begin_nested():
                    outcome = _store(db, pair, result, record, settings.similarity_min_score)
            except Exception:
                logger.exception("Similarity failed for pair %d/%d", *pair)
                stats["failed"] += 1
                continue
            if outcome:
                stats[outcome] += 1

    logger.info(
        "Similarity batch: %d pairs processed, %d created, %d updated, %d removed, %d skipped, %d failed",
        stats["processed"], stats["created"], stats["updated"], stats["removed"], stats["skipped"], stats["failed"],
    )
    return stats


def recalculate_by_category(
    db: Session,
    force: bool = False,
    rules: CategoryRules | None = None,
) -> Iterator[tuple[int, dict[str, int]]]:
    """Full nightly pass, one category at a time. Yields (category_id, stats) after each.

    Each run pairs a category with itself and with the compatible categories
    that sort after it, so every same-category and compatible pair is scored
    exactly once. Callers commit between categories.
    """
    rules = rules or get_category_rules()
    category_ids = db.execute(
        select(Business.category_id)
        .where(Business.is_active == True, Business.category_id.is_not(None))  # noqa: E712
        .distinct()
        .order_by(Business.category_id)
    ).scalars().all()
    for cid in category_ids:
        later = [other for other in compatible_category_ids(db, cid, rules) if other > cid]
        yield cid, recalculate_similarities(db, category_id=cid, force=force, rules=rules, with_category_ids=later)


def recalculate_for_business(
    db: Session,
    business_id: int,
    limit: int = 100,
    rules: CategoryRules | None = None,
) -> dict[str, int]:
    """Recompute one business against active businesses in its own or a compatible category."""
    settings = get_settings()
    rules = rules or get_category_rules()

    business = get_business(db, business_id)
    if business is None:
        raise NotFoundError(f"Business {business_id} not found")

    compatible = rules.compatible_with(_category_name(business))

    conditions = [Business.category_id == business.category_id]
    if compatible:
        conditions.append(func.lower(Category.name).in_(sorted(compatible)))

    candidates = db.execute(
        select(Business)
        .outerjoin(Category, Business.category_id == Category.id)
        .options(selectinload(Business.category))
        .where(
            Business.is_active == True,  # noqa: E712
            Business.id != business.id,
            or_(*conditions),
        )
        .order_by(Business.id)
        .limit(limit)
    ).scalars().all()

    visitors = interacting_users(db, [business.id] + [c.id for c in candidates])
    stats = _new_stats()
    for other in candidates:
        stats["processed"] += 1
        try:
            result = compute_similarity(business, other, visitors.get(business.id, ()), visitors.get(other.id, ()), rules)
            with db.begin_nested():
                outcome = upsert_similarity(db, business.id, other.id, result, settings.similarity_min_score)
        except Exception:
            logger.exception("Similarity failed for pair %d/%d", business.id, other.id)
            stats["failed"] += 1
            continue
        if outcome:
            stats[outcome] += 1

    logger.info("Recalculated similarities for business %d: %s", business.id, stats)
    return stats


def get_similarity_records(
    db: Session,
    business_id: int,
    min_score: float = 0.0,
    limit: int | None = None,
) -> list[tuple[int, BusinessSimilarity]]:
    """Stored records touching a business as (other business id, record), best first."""
    query = (
        select(BusinessSimilarity)
        .where(
            or_(
                BusinessSimilarity.business_a_id == business_id,
                BusinessSimilarity.business_b_id == business_id,
            ),
            BusinessSimilarity.similarity_score >= min_score,
        )
        .order_by(BusinessSimilarity.similarity_score.desc(), BusinessSimilarity.id)
    )
    if limit is not None:
        query = query.limit(limit)
    records = db.execute(query).scalars().all()
    return [
        (r.business_b_id if r.business_a_id == business_id else r.business_a_id, r)
        for r in records
    ]
