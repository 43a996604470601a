"""API v1 router aggregation."""

from fastapi import APIRouter

from app.api.v1.recommendations import router as recommendations_router
from app.api.v1.interactions import router as interactions_router
from app.api.v1.trending import router as trending_router
from app.api.v1.experiments import router as experiments_router
from app.api.v1.batch import router as batch_router

router = APIRouter(prefix="/api/v1")

router.include_router(recommendations_router)
router.include_router(interactions_router)
router.include_router(trending_router)
router.include_router(experiments_router)
router.include_router(batch_router)
