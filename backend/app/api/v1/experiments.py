"""Experiment assignment and metrics endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.dependencies.services import get_experiment_registry
from app.models.base import get_sync_db
from app.schemas.experiment import ExperimentAssignment, ExperimentMetricsRow
from app.services.experiment_service import ExperimentRegistry
from app.services.metrics_service import get_experiment_metrics

router = APIRouter(prefix="/experiments", tags=["experiments"])


@router.get("/metrics", response_model=list[ExperimentMetricsRow])
def experiment_metrics(
    db: Session = Depends(get_sync_db),
    days: int = Query(7, ge=1, le=90),
):
    """Per-variant request counts, latency and result size."""
    return get_experiment_metrics(db, days=days)


@router.get("/{name}/variant/{user_id}", response_model=ExperimentAssignment)
def experiment_variant(
    name: str,
    user_id: int,
    registry: ExperimentRegistry = Depends(get_experiment_registry),
):
    if name not in registry:
        raise HTTPException(status_code=404, detail=f"Unknown experiment: {name}")

    return ExperimentAssignment(
        experiment=name,
        user_id=user_id,
        variant=registry.variant_for(name, user_id),
        active=registry.get(name).active,
    )
