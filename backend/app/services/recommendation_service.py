"""Recommendation orchestrator: experiment-gated personalization, response caching and metrics.

Request flow:
1. Assign the user's "personalization_level" variant (none / light / full)
2. Return the cached list for (user, location, categories, count, variant) if present
3. Otherwise fetch count * 2 candidates and score them on the variant's path:
   - none:  base score only
   - light: base score + activity boost (capped at 0.25)
   - full:  0.6 * base + 0.4 * personal score, over a preference-filtered candidate set
4. Sort, truncate, cache, and queue a metrics row

Base score:
    rating * 0.3 + min(reviews / 50, 1) * 0.2 + discovery / 100 * 0.2
    + (1 - distance / radius) * 0.3 (with coordinates) + 0.1 verified + 0.15 featured
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement

from app.config import Settings, get_settings
from app.models.business import Business
from app.models.user import User
from app.models.user_interaction import UserInteraction
from app.models.user_preference import UserPreference  # noqa: F401
from app.services.activity_profile_service import (
    ActivitySummary,
    FullActivityProfile,
    build_activity_summary,
    build_full_profile,
)
from app.services import collaborative_service, content_scoring_service, location_scoring_service
from app.services.business_queries import businesses_within_radius, get_active_businesses, get_business
from app.services.category_rules import CategoryRules, get_category_rules
from app.services.errors import InvalidInputError, NotFoundError
from app.services.experiment_service import PERSONALIZATION_EXPERIMENT, ExperimentRegistry, build_default_registry
from app.services.geo import is_valid_coordinate
from app.services.interest_profile_service import apply_interaction_signal, get_or_create_preference, interaction_weight
from app.services.recommendation_cache import RecommendationCache
from app.services.similarity_service import get_similarity_records, realtime_similarity

logger = logging.getLogger(__name__)

LIGHT_BOOST_CAP = 0.25
FULL_BASE_WEIGHT = 0.6
FULL_PERSONAL_WEIGHT = 0.4

# Interactions that change what "related businesses" should look like
SIMILARITY_TRIGGER_TYPES = ("favorite", "review", "collection_add")
# Negative signals are not recorded; weights are non-negative
RETRACTION_TYPES = ("unfavorite", "collection_remove")
MAX_INTERACTION_TYPE_LENGTH = 30

SCORER_ALGORITHMS = ("content_based", "collaborative", "location_based")

SIMILAR_NEARBY_RADIUS_KM = 10.0
SIMILAR_TOP_RATED_MIN = 4.0

FACTOR_REASONS = {
    "category_match": "Same category",
    "location_proximity": "Nearby location",
    "review_sentiment": "Similar ratings",
    "feature_overlap": "Similar price range",
    "user_overlap": "Popular with the same visitors",
}
REASON_FACTOR_MIN = 0.5


class MetricsRecorder(Protocol):
    def record(
        self,
        user_id: int,
        personalization_level: str,
        response_time_ms: float,
        recommendation_count: int,
        metrics: dict | None = None,
    ): ...


def _queue_similarity_update(business_id: int):
    """Dispatch Celery task to refresh a business's similarity rows."""
    try:
        from app.tasks.recommendation_tasks import recalculate_business_similarities
        recalculate_business_similarities.delay(business_id)
    except Exception as e:
        logger.warning("Could not queue similarity update for business %s: %s", business_id, e)


def _context_text(context: dict, key: str, max_length: int) -> str | None:
    """Context values are free-form; stored columns are bounded strings."""
    value = context.get(key)
    return str(value)[:max_length] if value is not None else None


def base_score(business: Business, distance_km: float | None, radius_km: float) -> float:
    score = (business.overall_rating or 0.0) * 0.3
    score += min((business.total_reviews or 0) / 50, 1.0) * 0.2
    score += (business.discovery_score or 0.0) / 100 * 0.2
    if distance_km is not None:
        score += max(0.0, 1 - distance_km / radius_km) * 0.3
    if business.is_verified:
        score += 0.1
    if business.is_featured:
        score += 0.15
    return score


def light_boost(business: Business, summary: ActivitySummary) -> float:
    boost = 0.0
    if business.category_id in summary.category_weights:
        boost += min(summary.category_weights[business.category_id] / 10, 0.1)
    if business.price_range in summary.preferred_price_ranges:
        boost += 0.05
    if business.id in summary.visited_business_ids:
        boost += 0.1
    return min(boost, LIGHT_BOOST_CAP)


def full_personal_score(business: Business, profile: FullActivityProfile) -> float:
    score = 0.0
    if business.category_id in profile.category_weights:
        score += min(profile.category_weights[business.category_id] / 10, 0.4)
    if business.price_range in profile.preferred_price_ranges:
        score += 0.2
    if business.id in profile.similar_users_liked:
        score += 0.2
    if profile.prefers_current_time(business):
        score += 0.1
    if (business.overall_rating or 0.0) >= 4.0 and profile.rating_sensitivity > 0.7:
        score += 0.1
    return min(score, 1.0)


def personalization_factors(business: Business, profile: FullActivityProfile) -> list[str]:
    factors = []
    if business.category_id in profile.category_weights:
        factors.append("matches_category_preference")
    if business.price_range in profile.preferred_price_ranges:
        factors.append("matches_price_preference")
    if business.id in profile.similar_users_liked:
        factors.append("liked_by_similar_users")
    return factors


def similarity_reasons(factors: dict | None) -> list[str]:
    return [
        label for name, label in FACTOR_REASONS.items()
        if (factors or {}).get(name, 0) >= REASON_FACTOR_MIN
    ]


class RecommendationService:
    """Serves recommendations, related businesses and interaction tracking for one session."""

    def __init__(
        self,
        db: Session,
        cache: RecommendationCache | None = None,
        experiments: ExperimentRegistry | None = None,
        metrics: MetricsRecorder | None = None,
        rules: CategoryRules | None = None,
        settings: Settings | None = None,
        similarity_dispatcher: Callable[[int], None] | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.cache = cache
        self.experiments = experiments or build_default_registry(self.settings)
        self.metrics = metrics
        self.rules = rules or get_category_rules()
        self.similarity_dispatcher = similarity_dispatcher or _queue_similarity_update

    # --- Recommendations ---

    def personalization_level(self, user_id: int) -> str:
        return self.experiments.variant_for(PERSONALIZATION_EXPERIMENT, user_id)

    def get_recommendations(
        self,
        user_id: int,
        latitude: float | None = None,
        longitude: float | None = None,
        category_ids: Iterable[int] | None = None,
        count: int | None = None,
    ) -> list[dict]:
        count = self.settings.default_recommendation_count if count is None else count
        category_ids = sorted(set(category_ids or []))
        self._validate_request(latitude, longitude, count)
        self._require_user(user_id)

        variant = self.personalization_level(user_id)
        cache_key = RecommendationCache.build_key(user_id, latitude, longitude, category_ids, count, variant)

        started = time.perf_counter()
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        if variant == "full":
            items = self._full_personalized(user_id, latitude, longitude, category_ids, count)
        elif variant == "light":
            items = self._light_personalized(user_id, latitude, longitude, category_ids, count)
        else:
            items = self._fast(latitude, longitude, category_ids, count)

        if self.cache is not None:
            self.cache.set(cache_key, items)

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._record_metrics(user_id, variant, elapsed_ms, len(items), latitude is not None)
        return items

    def _validate_request(self, latitude: float | None, longitude: float | None, count: int):
        if count < 1:
            raise InvalidInputError("count must be at least 1")
        if count > self.settings.max_recommendation_count:
            raise InvalidInputError(f"count must be at most {self.settings.max_recommendation_count}")
        if (latitude is None) != (longitude is None):
            raise InvalidInputError("latitude and longitude must be given together")
        if latitude is not None and not is_valid_coordinate(latitude, longitude):
            raise InvalidInputError("coordinates out of range")

    def _require_user(self, user_id: int) -> User:
        user = self.db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def _candidates(
        self,
        latitude: float | None,
        longitude: float | None,
        category_ids: list[int],
        limit: int,
        filters: Iterable[ColumnElement] = (),
    ) -> list[tuple[Business, float | None]]:
        """Active businesses nearest-first with coordinates, else best rated/discovered first."""
        if latitude is not None and longitude is not None:
            return businesses_within_radius(
                self.db, latitude, longitude, self.settings.recommendation_radius_km,
                category_ids=category_ids, filters=filters, limit=limit,
            )

        query = select(Business).where(Business.is_active == True)  # noqa: E712
        if category_ids:
            query = query.where(Business.category_id.in_(category_ids))
        for condition in filters:
            query = query.where(condition)
        query = query.order_by(
            Business.overall_rating.desc(), Business.discovery_score.desc(), Business.id,
        ).limit(limit)
        return [(b, None) for b in self.db.execute(query).scalars()]

    def _item(
        self,
        business: Business,
        score: float,
        distance_km: float | None,
        algorithm: str,
        contributing: list[str],
        personalization_applied: bool = False,
        factors: list[str] | None = None,
    ) -> dict:
        return {
            "business_id": business.id,
            "score": round(score, 4),
            "algorithm": algorithm,
            "contributing_algorithms": contributing,
            "distance_km": round(distance_km, 2) if distance_km is not None else None,
            "personalization_applied": personalization_applied,
            "personalization_factors": factors or [],
        }

    @staticmethod
    def _top(items: list[dict], count: int) -> list[dict]:
        return sorted(items, key=lambda item: item["score"], reverse=True)[:count]

    def _fast(self, latitude, longitude, category_ids, count) -> list[dict]:
        radius = self.settings.recommendation_radius_km
        items = [
            self._item(b, base_score(b, d, radius), d, "fast", ["fast"])
            for b, d in self._candidates(latitude, longitude, category_ids, count * 2)
        ]
        return self._top(items, count)

    def _light_personalized(self, user_id, latitude, longitude, category_ids, count) -> list[dict]:
        radius = self.settings.recommendation_radius_km
        summary = build_activity_summary(self.db, user_id)
        items = []
        for b, d in self._candidates(latitude, longitude, category_ids, count * 2):
            boost = light_boost(b, summary)
            items.append(self._item(
                b, base_score(b, d, radius) + boost, d, "light_personal", ["fast", "light_personal"],
                personalization_applied=boost > 0,
            ))
        return self._top(items, count)

    def _full_personalized(self, user_id, latitude, longitude, category_ids, count) -> list[dict]:
        radius = self.settings.recommendation_radius_km
        profile = build_full_profile(self.db, user_id)

        preferred = []
        if profile.category_weights:
            preferred.append(Business.category_id.in_(sorted(profile.category_weights)))
        if profile.preferred_price_ranges:
            preferred.append(Business.price_range.in_(sorted(profile.preferred_price_ranges)))
        filters = [or_(and_(*preferred), Business.is_featured == True)] if preferred else []  # noqa: E712

        items = []
        for b, d in self._candidates(latitude, longitude, category_ids, count * 2, filters):
            score = base_score(b, d, radius) * FULL_BASE_WEIGHT + full_personal_score(b, profile) * FULL_PERSONAL_WEIGHT
            items.append(self._item(
                b, score, d, "full_personal", ["fast", "full_personal"],
                personalization_applied=True, factors=personalization_factors(b, profile),
            ))
        return self._top(items, count)

    def _record_metrics(self, user_id: int, variant: str, elapsed_ms: float, size: int, has_location: bool):
        if self.metrics is None or not self.settings.metrics_enabled:
            return
        try:
            self.metrics.record(user_id, variant, elapsed_ms, size, {"has_location": has_location})
        except Exception as e:
            logger.warning("Failed to record personalization metrics for user %s: %s", user_id, e)

    def scorer_recommendations(
        self,
        user_id: int,
        algorithm: str,
        latitude: float | None = None,
        longitude: float | None = None,
        count: int | None = None,
    ) -> list[dict]:
        """Run one standalone scorer, uncached and outside the experiment."""
        count = self.settings.default_recommendation_count if count is None else count
        if algorithm not in SCORER_ALGORITHMS:
            raise InvalidInputError(f"Algorithm must be one of {', '.join(SCORER_ALGORITHMS)}, got {algorithm!r}")
        self._validate_request(latitude, longitude, count)
        self._require_user(user_id)

        if algorithm == "content_based":
            scored = content_scoring_service.recommend(self.db, user_id, count)
        elif algorithm == "collaborative":
            scored = collaborative_service.recommend(self.db, user_id, count)
        else:
            scored = location_scoring_service.recommend(self.db, user_id, latitude, longitude, count)
        return [item.to_dict() for item in scored]

    # --- Related businesses ---

    def get_similar_businesses(self, business_id: int, count: int = 10) -> list[dict]:
        """Stored similarity pairs first; live fallback tiers when none exist."""
        if count < 1:
            raise InvalidInputError("count must be at least 1")
        business = get_business(self.db, business_id)
        if business is None:
            raise NotFoundError(f"Business {business_id} not found")

        records = get_similarity_records(self.db, business.id, min_score=self.settings.similar_display_min_score)
        active = get_active_businesses(self.db, [other_id for other_id, _ in records])
        items = [
            {
                "business_id": other_id,
                "score": record.similarity_score,
                "type": record.similarity_type,
                "reasons": similarity_reasons(record.contributing_factors),
            }
            for other_id, record in records
            if other_id in active
        ][:count]
        if items:
            return items

        return self._similar_fallback(business, count)

    def _similar_fallback(self, business: Business, count: int) -> list[dict]:
        items: list[dict] = []
        seen = {business.id}

        def add_tier(candidates: list[Business], similarity_type: str, reasons: list[str]):
            tier = [
                {
                    "business_id": c.id,
                    "score": realtime_similarity(business, c),
                    "type": similarity_type,
                    "reasons": list(reasons),
                }
                for c in candidates
            ]
            tier.sort(key=lambda item: item["score"], reverse=True)
            items.extend(tier[: count - len(items)])
            seen.update(c.id for c in candidates)

        # Same category, best rated first
        if business.category_id is not None:
            same_category = self.db.execute(
                select(Business)
                .where(
                    Business.is_active == True,  # noqa: E712
                    Business.id != business.id,
                    Business.category_id == business.category_id,
                )
                .order_by(Business.overall_rating.desc(), Business.total_reviews.desc(), Business.id)
                .limit(count)
            ).scalars().all()
            add_tier(same_category, "category_similar", ["Same category", "Similar ratings"])

        # Nearby with a comparable rating
        if len(items) < count and business.latitude is not None and business.longitude is not None:
            floor = max(3.0, (business.overall_rating or 0.0) - 1)
            nearby = businesses_within_radius(
                self.db, business.latitude, business.longitude, SIMILAR_NEARBY_RADIUS_KM,
                filters=[Business.id.not_in(sorted(seen)), Business.overall_rating >= floor],
            )
            nearby_businesses = sorted((b for b, _ in nearby), key=lambda b: -(b.overall_rating or 0.0))
            add_tier(nearby_businesses[: count - len(items)], "location_similar", ["Nearby location", "Similar ratings"])

        # Anything highly rated
        if len(items) < count:
            top_rated = self.db.execute(
                select(Business)
                .where(
                    Business.is_active == True,  # noqa: E712
                    Business.id.not_in(sorted(seen)),
                    Business.overall_rating >= SIMILAR_TOP_RATED_MIN,
                )
                .order_by(Business.overall_rating.desc(), Business.total_reviews.desc(), Business.id)
                .limit(count - len(items))
            ).scalars().all()
            add_tier(top_rated, "general_similar", ["Highly rated", "Popular choice"])

        return items[:count]

    # --- Interaction tracking ---

    def track_interaction(
        self,
        user_id: int,
        business_id: int,
        interaction_type: str,
        context: dict | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        weight: float | None = None,
    ) -> UserInteraction:
        """Record an interaction and fold it into the user's preference record."""
        if not interaction_type or len(interaction_type) > MAX_INTERACTION_TYPE_LENGTH:
            raise InvalidInputError("interaction_type is required and must be at most 30 characters")
        if interaction_type in RETRACTION_TYPES:
            raise InvalidInputError(f"{interaction_type} interactions carry negative weight and are not recorded")
        if weight is not None and weight < 0:
            raise InvalidInputError("Interaction weight must be non-negative")
        if (latitude is None) != (longitude is None):
            raise InvalidInputError("latitude and longitude must be given together")
        if latitude is not None and not is_valid_coordinate(latitude, longitude):
            raise InvalidInputError("coordinates out of range")

        self._require_user(user_id)
        business = get_business(self.db, business_id)
        if business is None:
            raise NotFoundError(f"Business {business_id} not found")

        context = dict(context or {})
        weight = interaction_weight(interaction_type) if weight is None else weight
        interaction = UserInteraction(
            user_id=user_id,
            business_id=business.id,
            interaction_type=interaction_type,
            weight=weight,
            source=_context_text(context, "source", 50),
            context_data=context or None,
            user_latitude=latitude,
            user_longitude=longitude,
            session_id=_context_text(context, "session_id", 100),
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(interaction)

        preference = get_or_create_preference(self.db, user_id)
        apply_interaction_signal(preference, business, weight)
        self.db.flush()

        if interaction_type in SIMILARITY_TRIGGER_TYPES:
            self.similarity_dispatcher(business.id)

        logger.info("Tracked %s interaction: user %s -> business %s", interaction_type, user_id, business.id)
        return interaction
