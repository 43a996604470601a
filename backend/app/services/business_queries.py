"""Data-access helpers for fetching candidate businesses."""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement

from app.models.business import Business
from app.services.geo import bounding_box, haversine_km


def get_business(db: Session, business_id: int) -> Business | None:
    return db.execute(select(Business).where(Business.id == business_id)).scalar_one_or_none()


def get_active_businesses(db: Session, business_ids: Iterable[int]) -> dict[int, Business]:
    """Fetch active businesses by id, keyed by id."""
    ids = list(business_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(Business).where(Business.id.in_(ids), Business.is_active == True)  # noqa: E712
    ).scalars().all()
    return {b.id: b for b in rows}


def businesses_within_radius(
    db: Session,
    latitude: float,
    longitude: float,
    radius_km: float,
    category_ids: Iterable[int] | None = None,
    filters: Iterable[ColumnElement] = (),
    limit: int | None = None,
) -> list[tuple[Business, float]]:
    """Active businesses within radius_km, nearest first, as (business, distance_km).

    A bounding box narrows the SQL scan; haversine makes the exact cut.
    """
    min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_km)
    query = select(Business).where(
        Business.is_active == True,  # noqa: E712
        Business.latitude.between(min_lat, max_lat),
        Business.longitude.between(min_lon, max_lon),
    )
    category_ids = list(category_ids or [])
    if category_ids:
        query = query.where(Business.category_id.in_(category_ids))
    for condition in filters:
        query = query.where(condition)

    results = []
    for business in db.execute(query).scalars():
        distance = haversine_km(latitude, longitude, business.latitude, business.longitude)
        if distance <= radius_km:
            results.append((business, distance))

    results.sort(key=lambda pair: pair[1])
    if limit is not None:
        results = results[:limit]
    return results
