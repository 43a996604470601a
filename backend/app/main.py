"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from sqlalchemy import text

from app.config import get_settings
from app.models.base import engine, AsyncSessionLocal, Base
from app.api.v1 import router as api_v1_router
from app.dependencies.services import get_recommendation_cache

# Import ALL models so create_all and relationship resolution see every table
from app.models.business import Business, BusinessOffering, Category  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.user_interaction import UserInteraction  # noqa: F401
from app.models.user_preference import UserPreference  # noqa: F401
from app.models.business_similarity import BusinessSimilarity  # noqa: F401
from app.models.trending_data import TrendingData  # noqa: F401
from app.models.activity_log import BusinessView, SearchLog  # noqa: F401
from app.models.personalization_metric import PersonalizationMetric  # noqa: F401

logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting %s...", settings.app_name)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified")
    yield
    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Recommendation, similarity and trending engine for local business discovery",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_v1_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}


RECOMMENDATION_TASKS = (
    "app.tasks.recommendation_tasks.recalculate_similarities",
    "app.tasks.recommendation_tasks.recalculate_business_similarities",
    "app.tasks.recommendation_tasks.calculate_trending",
    "app.tasks.recommendation_tasks.record_personalization_metric",
)


async def check_database() -> dict:
    async with AsyncSessionLocal() as session:
        result = await session.execute(text("SELECT 1"))
        result.scalar()
    return {"ok": True}


def check_cache() -> dict:
    """Ping the recommendation cache and report its TTL."""
    cache = get_recommendation_cache()
    cache.client.ping()
    return {"ok": True, "ttl_seconds": cache.ttl}


def check_workers() -> dict:
    """Workers are healthy when at least one has every recommendation task registered."""
    from app.tasks.celery_app import celery_app

    registered = celery_app.control.inspect(timeout=5).registered() or {}
    missing = {
        worker: sorted(set(RECOMMENDATION_TASKS) - set(tasks))
        for worker, tasks in registered.items()
    }
    return {
        "ok": any(not names for names in missing.values()),
        "workers": sorted(registered),
        "missing_tasks": {worker: names for worker, names in missing.items() if names},
        "scheduled": sorted(celery_app.conf.beat_schedule),
    }


@app.get("/health/detailed")
async def detailed_health_check():
    checks = {}

    try:
        checks["database"] = await check_database()
    except Exception as e:
        checks["database"] = {"ok": False, "message": str(e)}

    # Redis also backs the Celery broker
    try:
        checks["cache"] = check_cache()
    except Exception as e:
        checks["cache"] = {"ok": False, "message": str(e)}

    try:
        checks["celery_workers"] = check_workers()
    except Exception as e:
        checks["celery_workers"] = {"ok": False, "message": str(e)}

    all_ok = all(check.get("ok", False) for check in checks.values())
    status = "healthy" if all_ok else "degraded"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
