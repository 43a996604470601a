"""Personalization metrics: per-request latency/size rows and per-variant summaries."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.personalization_metric import PersonalizationMetric

logger = logging.getLogger(__name__)


def record_personalization_metric(
    db: Session,
    user_id: int,
    personalization_level: str,
    response_time_ms: float,
    recommendation_count: int,
    metrics: dict | None = None,
) -> PersonalizationMetric:
    row = PersonalizationMetric(
        user_id=user_id,
        personalization_level=personalization_level,
        response_time_ms=round(response_time_ms, 2),
        recommendation_count=recommendation_count,
        metrics=metrics or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    db.flush()
    return row


class CeleryMetricsRecorder:
    """Queues metric rows on the Celery worker so the request never waits on them."""

    def record(
        self,
        user_id: int,
        personalization_level: str,
        response_time_ms: float,
        recommendation_count: int,
        metrics: dict | None = None,
    ):
        try:
            from app.tasks.recommendation_tasks import record_personalization_metric as task
            task.delay(user_id, personalization_level, response_time_ms, recommendation_count, metrics or {})
        except Exception as e:
            logger.warning("Could not queue personalization metric for user %s: %s", user_id, e)


class NullMetricsRecorder:
    def record(self, *args, **kwargs):
        pass


def get_experiment_metrics(db: Session, days: int = 7) -> list[dict]:
    """Per-variant request count, mean latency, mean result size and unique users."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    rows = db.execute(
        select(
            PersonalizationMetric.personalization_level,
            func.count(PersonalizationMetric.id),
            func.avg(PersonalizationMetric.response_time_ms),
            func.avg(PersonalizationMetric.recommendation_count),
            func.count(func.distinct(PersonalizationMetric.user_id)),
        )
        .where(PersonalizationMetric.created_at >= since)
        .group_by(PersonalizationMetric.personalization_level)
        .order_by(PersonalizationMetric.personalization_level)
    ).all()
    return [
        {
            "personalization_level": level,
            "request_count": total,
            "avg_response_time_ms": round(float(avg_time or 0), 2),
            "avg_recommendation_count": round(float(avg_count or 0), 2),
            "unique_users": users,
        }
        for level, total, avg_time, avg_count, users in rows
    ]
