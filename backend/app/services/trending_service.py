"""Trending service: per-period, per-area trend scores from raw search and view counts.

trend_score  = min(100, searches * 5) * 0.7 + min(100, views * 2) * 0.3
hybrid_score = trend_score * 0.6 + (rating / 5 * 100) * 0.4   (businesses only)

Stored scores are always recomputable from the raw logs. The batch
calculation overwrites each key; record_view() patches the current daily key
between batch runs.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.activity_log import BusinessView, SearchLog
from app.models.business import Business, BusinessOffering, Category
from app.models.trending_data import TrendingData
from app.models.user import User
from app.services.business_queries import get_business
from app.services.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

TIME_PERIODS = ("daily", "weekly", "monthly")
ITEM_TYPES = ("business", "category", "offering", "search_term")
SEARCH_TERM_LIMIT = 100
POPULAR_TERMS_DAYS = 30


def trend_score(searches: int, views: int) -> float:
    return round(min(100, searches * 5) * 0.7 + min(100, views * 2) * 0.3, 2)


def hybrid_score(trend: float, rating: float | None) -> float:
    return round(trend * 0.6 + ((rating or 0.0) / 5 * 100) * 0.4, 2)


def validate_period(period: str):
    if period not in TIME_PERIODS:
        raise InvalidInputError(f"Period must be one of {', '.join(TIME_PERIODS)}, got {period!r}")


def validate_item_type(item_type: str):
    if item_type not in ITEM_TYPES:
        raise InvalidInputError(f"Item type must be one of {', '.join(ITEM_TYPES)}, got {item_type!r}")


def period_bounds(period: str, day: date) -> tuple[datetime, datetime]:
    """Half-open UTC window [start, end) of the day/week/month containing day.

    Weeks start on Monday.
    """
    validate_period(period)
    if period == "daily":
        start = day
        end = start + timedelta(days=1)
    elif period == "weekly":
        start = day - timedelta(days=day.weekday())
        end = start + timedelta(days=7)
    else:
        start = day.replace(day=1)
        end = (start + timedelta(days=32)).replace(day=1)
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.min, tzinfo=timezone.utc),
    )


def _find_record(
    db: Session,
    item_type: str,
    item_id: int | None,
    item_name: str | None,
    area: str | None,
    period: str,
    day: date,
) -> TrendingData | None:
    query = select(TrendingData).where(
        TrendingData.item_type == item_type,
        TrendingData.time_period == period,
        TrendingData.date_period == day,
        TrendingData.location_area.is_(None) if area is None else TrendingData.location_area == area,
    )
    if item_id is None:
        query = query.where(TrendingData.item_id.is_(None), TrendingData.item_name == item_name)
    else:
        query = query.where(TrendingData.item_id == item_id)
    return db.execute(query).scalars().first()


def _upsert(
    db: Session,
    item_type: str,
    item_id: int | None,
    item_name: str | None,
    area: str | None,
    period: str,
    day: date,
    searches: int,
    views: int,
    hybrid: float | None,
) -> str:
    trend = trend_score(searches, views)
    record = _find_record(db, item_type, item_id, item_name, area, period, day)
    if record is None:
        db.add(TrendingData(
            item_type=item_type,
            item_id=item_id,
            item_name=item_name,
            location_area=area,
            time_period=period,
            date_period=day,
            trend_score=trend,
            hybrid_score=hybrid,
            view_count=views,
            search_count=searches,
            calculated_at=datetime.now(timezone.utc),
        ))
        return "created"

    values = {
        "item_name": item_name,
        "trend_score": trend,
        "hybrid_score": hybrid,
        "view_count": views,
        "search_count": searches,
    }
    if all(getattr(record, k) == v for k, v in values.items()):
        return "unchanged"
    for key, value in values.items():
        setattr(record, key, value)
    record.calculated_at = datetime.now(timezone.utc)
    return "updated"


def _new_stats() -> dict[str, int]:
    return {"processed": 0, "created": 0, "updated": 0, "unchanged": 0, "failed": 0}


def _store_all(db: Session, item_type: str, rows: list[dict], period: str, day: date) -> dict[str, int]:
    stats = _new_stats()
    for row in rows:
        stats["processed"] += 1
        try:
            with db.begin_nested():
                outcome = _upsert(db, item_type, period=period, day=day, **row)
        except Exception:
            logger.exception("Trending upsert failed for %s %s", item_type, row.get("item_id") or row.get("item_name"))
            stats["failed"] += 1
            continue
        stats[outcome] += 1
    logger.info(
        "%s trending (%s, %s): %d processed, %d created, %d updated, %d failed",
        item_type, period, day, stats["processed"], stats["created"], stats["updated"], stats["failed"],
    )
    return stats


def _counts(db: Session, column, created_at, start: datetime, end: datetime) -> dict:
    rows = db.execute(
        select(column, func.count())
        .where(column.is_not(None), created_at >= start, created_at < end)
        .group_by(column)
    ).all()
    return {key: n for key, n in rows}


def _business_rows(db: Session, start: datetime, end: datetime) -> list[dict]:
    searches = _counts(db, SearchLog.clicked_business_id, SearchLog.created_at, start, end)
    views = _counts(db, BusinessView.business_id, BusinessView.created_at, start, end)
    ids = sorted(set(searches) | set(views))
    if not ids:
        return []

    businesses = db.execute(select(Business).where(Business.id.in_(ids))).scalars().all()
    rows = []
    for business in sorted(businesses, key=lambda b: b.id):
        trend = trend_score(searches.get(business.id, 0), views.get(business.id, 0))
        rows.append({
            "item_id": business.id,
            "item_name": business.name,
            "area": business.area,
            "searches": searches.get(business.id, 0),
            "views": views.get(business.id, 0),
            "hybrid": hybrid_score(trend, business.overall_rating),
        })
    return rows


def _category_rows(db: Session, start: datetime, end: datetime) -> list[dict]:
    searches = _counts(db, SearchLog.category_id, SearchLog.created_at, start, end)
    if not searches:
        return []
    categories = db.execute(select(Category).where(Category.id.in_(sorted(searches)))).scalars().all()
    return [
        {"item_id": c.id, "item_name": c.name, "area": None, "searches": searches[c.id], "views": 0, "hybrid": None}
        for c in sorted(categories, key=lambda c: c.id)
    ]


def _offering_rows(db: Session, start: datetime, end: datetime) -> list[dict]:
    searches = _counts(db, SearchLog.clicked_offering_id, SearchLog.created_at, start, end)
    if not searches:
        return []
    rows = db.execute(
        select(BusinessOffering, Business.area)
        .join(Business, BusinessOffering.business_id == Business.id)
        .where(BusinessOffering.id.in_(sorted(searches)))
        .order_by(BusinessOffering.id)
    ).all()
    return [
        {"item_id": o.id, "item_name": o.name, "area": area, "searches": searches[o.id], "views": 0, "hybrid": None}
        for o, area in rows
    ]


def _search_term_rows(db: Session, start: datetime, end: datetime) -> list[dict]:
    rows = db.execute(
        select(SearchLog.search_term, func.count().label("n"))
        .where(
            SearchLog.search_term.is_not(None),
            SearchLog.search_term != "",
            SearchLog.created_at >= start,
            SearchLog.created_at < end,
        )
        .group_by(SearchLog.search_term)
        .order_by(func.count().desc(), SearchLog.search_term)
        .limit(SEARCH_TERM_LIMIT)
    ).all()
    return [
        {"item_id": None, "item_name": term, "area": None, "searches": n, "views": 0, "hybrid": None}
        for term, n in rows
    ]


_ROW_BUILDERS: dict[str, Callable[[Session, datetime, datetime], list[dict]]] = {
    "business": _business_rows,
    "category": _category_rows,
    "offering": _offering_rows,
    "search_term": _search_term_rows,
}


def calculate_trending(
    db: Session,
    item_type: str,
    period: str = "daily",
    day: date | None = None,
) -> dict[str, int]:
    """Recompute and upsert trending records for one item type."""
    validate_item_type(item_type)
    validate_period(period)
    day = day or datetime.now(timezone.utc).date()

    start, end = period_bounds(period, day)
    rows = _ROW_BUILDERS[item_type](db, start, end)
    return _store_all(db, item_type, rows, period, day)


def calculate_all_trending(db: Session, period: str = "daily", day: date | None = None) -> dict[str, dict[str, int]]:
    validate_period(period)
    day = day or datetime.now(timezone.utc).date()
    return {item_type: calculate_trending(db, item_type, period, day) for item_type in ITEM_TYPES}


def record_view(
    db: Session,
    business_id: int,
    user_id: int | None = None,
    at: datetime | None = None,
) -> TrendingData:
    """Log one business view and bump today's trending record for the business's area.

    The increment is a plain read-modify-write with no locking: concurrent
    views of the same business can be lost. The next batch recompute from
    business_views overwrites the count. Use an atomic UPDATE ... SET
    view_count = view_count + 1 here if exact live counts are ever required.
    """
    business = get_business(db, business_id)
    if business is None:
        raise NotFoundError(f"Business {business_id} not found")
    if user_id is not None and db.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")

    at = at or datetime.now(timezone.utc)
    day = at.date()
    db.add(BusinessView(business_id=business.id, user_id=user_id, created_at=at))

    record = _find_record(db, "business", business.id, None, business.area, "daily", day)
    if record is None:
        record = TrendingData(
            item_type="business",
            item_id=business.id,
            item_name=business.name,
            location_area=business.area,
            time_period="daily",
            date_period=day,
            view_count=0,
            search_count=0,
        )
        db.add(record)

    record.view_count = (record.view_count or 0) + 1
    record.trend_score = trend_score(record.search_count or 0, record.view_count)
    record.hybrid_score = hybrid_score(record.trend_score, business.overall_rating)
    record.calculated_at = datetime.now(timezone.utc)
    db.flush()
    return record


def get_trending(
    db: Session,
    item_type: str = "business",
    period: str = "daily",
    day: date | None = None,
    area: str | None = None,
    limit: int = 20,
) -> list[TrendingData]:
    """Stored trending records for a key, best first (hybrid score where present)."""
    validate_item_type(item_type)
    validate_period(period)
    day = day or datetime.now(timezone.utc).date()

    query = select(TrendingData).where(
        TrendingData.item_type == item_type,
        TrendingData.time_period == period,
        TrendingData.date_period == day,
    )
    if area is not None:
        query = query.where(TrendingData.location_area == area)
    order = func.coalesce(TrendingData.hybrid_score, TrendingData.trend_score)
    return db.execute(query.order_by(order.desc(), TrendingData.id).limit(limit)).scalars().all()


def popular_search_terms(
    db: Session,
    limit: int = 20,
    category_id: int | None = None,
    days: int = POPULAR_TERMS_DAYS,
) -> list[dict]:
    """Most frequent search terms over the last `days` days."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    query = (
        select(SearchLog.search_term, func.count().label("search_count"))
        .where(SearchLog.search_term.is_not(None), SearchLog.created_at >= since)
        .group_by(SearchLog.search_term)
    )
    if category_id is not None:
        query = query.where(SearchLog.category_id == category_id)
    rows = db.execute(query.order_by(func.count().desc(), SearchLog.search_term).limit(limit)).all()
    return [{"search_term": term, "search_count": n} for term, n in rows]
