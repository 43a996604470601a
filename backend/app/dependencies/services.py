"""Service dependencies for FastAPI routes."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.base import get_sync_db
from app.services.experiment_service import ExperimentRegistry, build_default_registry
from app.services.metrics_service import CeleryMetricsRecorder, NullMetricsRecorder
from app.services.recommendation_cache import RecommendationCache, build_cache
from app.services.recommendation_service import RecommendationService


@lru_cache
def get_recommendation_cache() -> RecommendationCache:
    return build_cache()


@lru_cache
def get_experiment_registry() -> ExperimentRegistry:
    return build_default_registry(get_settings())


def get_metrics_recorder():
    """Queue metrics on Celery when enabled, otherwise drop them."""
    if get_settings().metrics_enabled:
        return CeleryMetricsRecorder()
    return NullMetricsRecorder()


def get_recommendation_service(
    db: Session = Depends(get_sync_db),
    cache: RecommendationCache = Depends(get_recommendation_cache),
    experiments: ExperimentRegistry = Depends(get_experiment_registry),
    metrics=Depends(get_metrics_recorder),
) -> RecommendationService:
    return RecommendationService(db, cache=cache, experiments=experiments, metrics=metrics)
