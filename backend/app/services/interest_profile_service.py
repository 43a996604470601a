"""Interest profile service: typed user preference profile and interaction signal updates."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.business import Business
from app.models.user_preference import UserPreference

# Default weight per interaction type; unlisted types count as 1.0
INTERACTION_WEIGHTS = {
    "view": 1.0,
    "search_click": 1.5,
    "favorite": 3.0,
    "review": 4.0,
    "phone_call": 5.0,
    "visit": 1.0,
    "share": 3.5,
    "collection_add": 4.5,
    "offer_view": 2.0,
    "offer_use": 5.0,
    "direction_request": 3.0,
    "website_click": 2.5,
}

DEFAULT_INTERACTION_WEIGHT = 1.0


def interaction_weight(interaction_type: str) -> float:
    return INTERACTION_WEIGHTS.get(interaction_type, DEFAULT_INTERACTION_WEIGHT)


@dataclass
class UserPreferenceProfile:
    """A user's derived preferences. Every field is optional.

    Defaults:
        category_weights: empty (no category affinity)
        min_price / max_price: None (no price band)
        min_rating: None (any rating)
        home_latitude / home_longitude: None (no stored location)
        radius_km: None (the location scorer applies its own default)
    """

    category_weights: dict[int, float] = field(default_factory=dict)
    min_price: int | None = None
    max_price: int | None = None
    min_rating: float | None = None
    home_latitude: float | None = None
    home_longitude: float | None = None
    radius_km: float | None = None

    @property
    def preferred_category_ids(self) -> set[int]:
        return set(self.category_weights)

    @property
    def has_price_band(self) -> bool:
        return self.min_price is not None and self.max_price is not None

    @property
    def has_home_location(self) -> bool:
        return self.home_latitude is not None and self.home_longitude is not None

    @classmethod
    def from_record(cls, preference: UserPreference) -> "UserPreferenceProfile":
        # JSON object keys come back as strings
        weights = {int(k): float(v) for k, v in (preference.category_weights or {}).items()}
        for category_id in preference.preferred_categories or []:
            weights.setdefault(int(category_id), 0.0)
        return cls(
            category_weights=weights,
            min_price=preference.min_price_range,
            max_price=preference.max_price_range,
            min_rating=preference.min_rating,
            home_latitude=preference.preferred_latitude,
            home_longitude=preference.preferred_longitude,
            radius_km=preference.preferred_radius_km,
        )


def get_preference(db: Session, user_id: int) -> UserPreference | None:
    return db.execute(
        select(UserPreference).where(UserPreference.user_id == user_id)
    ).scalar_one_or_none()


def get_or_create_preference(db: Session, user_id: int) -> UserPreference:
    preference = get_preference(db, user_id)
    if preference is None:
        preference = UserPreference(user_id=user_id, preferred_categories=[], category_weights={})
        db.add(preference)
        db.flush()
    return preference


def load_profile(db: Session, user_id: int) -> UserPreferenceProfile | None:
    """Load the typed profile, or None if the user has no preference record."""
    preference = get_preference(db, user_id)
    if preference is None:
        return None
    return UserPreferenceProfile.from_record(preference)


def apply_interaction_signal(preference: UserPreference, business: Business, weight: float):
    """Fold one interaction into the user's preference record.

    Adds the business's category and subcategory to preferred_categories and
    accumulates their category_weights by the interaction weight.
    """
    if weight < 0:
        raise ValueError("Interaction weight must be non-negative")

    categories = list(preference.preferred_categories or [])
    weights = dict(preference.category_weights or {})
    for category_id in sorted(business.category_ids):
        if category_id not in categories:
            categories.append(category_id)
        key = str(category_id)
        weights[key] = round(weights.get(key, 0.0) + weight, 4)

    preference.preferred_categories = categories
    preference.category_weights = weights
    preference.last_updated = datetime.now(timezone.utc)
