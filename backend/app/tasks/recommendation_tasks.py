"""Celery tasks for similarity recomputation, trending aggregation and metrics."""

import logging
from datetime import date as date_type

from app.tasks.celery_app import celery_app
from app.models.base import SyncSessionLocal

# Import ALL models to ensure relationships resolve
from app.models.business import Business, BusinessOffering, Category  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.user_interaction import UserInteraction  # noqa: F401
from app.models.user_preference import UserPreference  # noqa: F401
from app.models.business_similarity import BusinessSimilarity  # noqa: F401
from app.models.trending_data import TrendingData  # noqa: F401
from app.models.activity_log import BusinessView, SearchLog  # noqa: F401
from app.models.personalization_metric import PersonalizationMetric  # noqa: F401
from app.services import metrics_service, similarity_service, trending_service

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.recommendation_tasks.recalculate_similarities")
def recalculate_similarities(business_ids: list[int] | None = None, category_id: int | None = None, force: bool = False):
    """Batch similarity pass.

    With no scope the pass runs once per category, pairing each category with
    itself and its compatible categories, and commits after each one.
    """
    with SyncSessionLocal() as session:
        try:
            if business_ids is not None or category_id is not None:
                compatible = None
                if category_id is not None:
                    compatible = similarity_service.compatible_category_ids(session, category_id)
                stats = similarity_service.recalculate_similarities(
                    session, business_ids=business_ids, category_id=category_id, force=force,
                    with_category_ids=compatible,
                )
            else:
                stats: dict[str, int] = {}
                for _, batch in similarity_service.recalculate_by_category(session, force=force):
                    for key, value in batch.items():
                        stats[key] = stats.get(key, 0) + value
                    session.commit()

            session.commit()
            logger.info("Similarity recalculation complete: %s", stats)
            return stats

        except Exception:
            session.rollback()
            logger.exception("Failed to recalculate similarities")
            raise


@celery_app.task(name="app.tasks.recommendation_tasks.recalculate_business_similarities")
def recalculate_business_similarities(business_id: int):
    """Refresh one business's pairs after a strong interaction."""
    with SyncSessionLocal() as session:
        try:
            stats = similarity_service.recalculate_for_business(session, business_id)
            session.commit()
            return stats

        except Exception:
            session.rollback()
            logger.exception("Failed to recalculate similarities for business %s", business_id)
            raise


@celery_app.task(name="app.tasks.recommendation_tasks.calculate_trending")
def calculate_trending(period: str = "daily", date: str | None = None, item_type: str = "all"):
    """Recompute trending records for a period. `date` is an ISO date string (default today)."""
    day = date_type.fromisoformat(date) if date else None
    with SyncSessionLocal() as session:
        try:
            if item_type == "all":
                stats = trending_service.calculate_all_trending(session, period, day)
            else:
                stats = {item_type: trending_service.calculate_trending(session, item_type, period, day)}

            session.commit()
            logger.info("Trending %s calculation complete: %s", period, stats)
            return stats

        except Exception:
            session.rollback()
            logger.exception("Failed to calculate %s trending", period)
            raise


@celery_app.task(name="app.tasks.recommendation_tasks.record_personalization_metric")
def record_personalization_metric(
    user_id: int,
    personalization_level: str,
    response_time_ms: float,
    recommendation_count: int,
    metrics: dict | None = None,
):
    """Persist one request's metrics row. Failures are logged, never retried."""
    with SyncSessionLocal() as session:
        try:
            metrics_service.record_personalization_metric(
                session, user_id, personalization_level, response_time_ms, recommendation_count, metrics,
            )
            session.commit()
            return {"recorded": 1}

        except Exception:
            session.rollback()
            logger.exception("Failed to record personalization metric for user %s", user_id)
            return {"recorded": 0}
