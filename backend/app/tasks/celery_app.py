"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "discovery",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.recommendation_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    task_track_started=True,
    task_time_limit=3600,
    task_soft_time_limit=3300,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "recalculate-similarities-nightly": {
        "task": "app.tasks.recommendation_tasks.recalculate_similarities",
        "schedule": crontab(minute=0, hour=2),
    },
    "calculate-trending-daily": {
        "task": "app.tasks.recommendation_tasks.calculate_trending",
        "schedule": crontab(minute=0, hour="*"),
        "kwargs": {"period": "daily"},
    },
    "calculate-trending-weekly": {
        "task": "app.tasks.recommendation_tasks.calculate_trending",
        "schedule": crontab(minute=15, hour=1),
        "kwargs": {"period": "weekly"},
    },
    "calculate-trending-monthly": {
        "task": "app.tasks.recommendation_tasks.calculate_trending",
        "schedule": crontab(minute=30, hour=1, day_of_month=1),
        "kwargs": {"period": "monthly"},
    },
}
