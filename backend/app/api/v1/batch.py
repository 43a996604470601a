"""Batch job triggers."""

from fastapi import APIRouter, HTTPException

from app.schemas.trending import BatchTaskResponse, SimilarityBatchRequest, TrendingBatchRequest

router = APIRouter(prefix="/batch", tags=["batch"])


@router.post("/similarities", response_model=BatchTaskResponse, status_code=202)
def trigger_similarity_batch(payload: SimilarityBatchRequest):
    """Queue a similarity recomputation."""
    if payload.business_ids is not None and not payload.business_ids:
        raise HTTPException(status_code=400, detail="business_ids must not be empty")

    from app.tasks.recommendation_tasks import recalculate_similarities

    task = recalculate_similarities.delay(
        business_ids=payload.business_ids,
        category_id=payload.category_id,
        force=payload.force,
    )
    return BatchTaskResponse(message="Similarity recalculation queued", task_id=task.id)


@router.post("/trending", response_model=BatchTaskResponse, status_code=202)
def trigger_trending_batch(payload: TrendingBatchRequest):
    """Queue a trending recomputation."""
    from app.tasks.recommendation_tasks import calculate_trending

    task = calculate_trending.delay(
        period=payload.period,
        date=payload.day.isoformat() if payload.day else None,
        item_type=payload.item_type,
    )
    return BatchTaskResponse(message=f"{payload.period.capitalize()} trending calculation queued", task_id=task.id)
