"""Shared pytest fixtures: in-memory database, catalogue factories and fakes."""

from datetime import datetime, timedelta, timezone

import pytest
import redis
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.models.base import Base
from app.models.business import Business, BusinessOffering, Category
from app.models.user import User
from app.models.user_interaction import UserInteraction
from app.models.user_preference import UserPreference
from app.models.business_similarity import BusinessSimilarity  # noqa: F401
from app.models.trending_data import TrendingData  # noqa: F401
from app.models.activity_log import BusinessView, SearchLog
from app.models.personalization_metric import PersonalizationMetric  # noqa: F401
from app.services.category_rules import load_category_rules
from app.services.experiment_service import PERSONALIZATION_EXPERIMENT, Experiment, ExperimentRegistry
from app.services.interest_profile_service import interaction_weight


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRedis:
    """Just enough of the redis client for RecommendationCache."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("redis is down")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("redis is down")


class RecordingMetrics:
    def __init__(self):
        self.calls: list[tuple] = []

    def record(self, user_id, personalization_level, response_time_ms, recommendation_count, metrics=None):
        self.calls.append((user_id, personalization_level, response_time_ms, recommendation_count, metrics))


class FailingMetrics:
    def record(self, *args, **kwargs):
        raise RuntimeError("metrics store unavailable")


def fixed_registry(variant: str) -> ExperimentRegistry:
    """Registry that puts every user in one personalization variant."""
    return ExperimentRegistry([Experiment(PERSONALIZATION_EXPERIMENT, (variant,), (100,))])


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite needs these for SAVEPOINT to behave as on PostgreSQL
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def reject_inserts(db):
    """Install a trigger that makes the database refuse matching inserts into a table."""
    def _reject(table: str, condition: str):
        db.execute(text(
            f"CREATE TRIGGER reject_{table} BEFORE INSERT ON {table} "
            f"WHEN {condition} BEGIN SELECT RAISE(ABORT, 'rejected row'); END"
        ))
    return _reject


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def rules():
    return load_category_rules()


@pytest.fixture
def settings() -> Settings:
    return Settings(metrics_enabled=True, personalization_experiment_active=True)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_category(db):
    def _make(name: str, parent: Category | None = None) -> Category:
        category = Category(name=name, slug=name.lower().replace(" ", "-"), parent_id=parent.id if parent else None)
        db.add(category)
        db.flush()
        return category
    return _make


@pytest.fixture
def make_business(db):
    def _make(
        name: str = "Business",
        category: Category | None = None,
        subcategory: Category | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        rating: float = 4.0,
        reviews: int = 10,
        price_range: int | None = 2,
        discovery: float = 50.0,
        area: str | None = "Downtown",
        verified: bool = False,
        featured: bool = False,
        active: bool = True,
        created_at: datetime | None = None,
    ) -> Business:
        business = Business(
            name=name,
            category=category,
            subcategory=subcategory,
            latitude=latitude,
            longitude=longitude,
            overall_rating=rating,
            total_reviews=reviews,
            price_range=price_range,
            discovery_score=discovery,
            area=area,
            is_verified=verified,
            is_featured=featured,
            is_active=active,
        )
        if created_at is not None:
            business.created_at = created_at
            business.updated_at = created_at
        db.add(business)
        db.flush()
        return business
    return _make


@pytest.fixture
def make_offering(db):
    def _make(business: Business, name: str = "Offer") -> BusinessOffering:
        offering = BusinessOffering(business_id=business.id, name=name)
        db.add(offering)
        db.flush()
        return offering
    return _make


@pytest.fixture
def make_user(db):
    def _make(name: str = "User") -> User:
        user = User(name=name)
        db.add(user)
        db.flush()
        return user
    return _make


@pytest.fixture
def make_preference(db):
    def _make(user: User, **fields) -> UserPreference:
        fields.setdefault("preferred_categories", [])
        fields.setdefault("category_weights", {})
        preference = UserPreference(user_id=user.id, **fields)
        db.add(preference)
        db.flush()
        return preference
    return _make


@pytest.fixture
def interact(db, now):
    def _interact(
        user: User,
        business: Business,
        interaction_type: str = "favorite",
        weight: float | None = None,
        ago: timedelta = timedelta(hours=1),
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> UserInteraction:
        interaction = UserInteraction(
            user_id=user.id,
            business_id=business.id,
            interaction_type=interaction_type,
            weight=interaction_weight(interaction_type) if weight is None else weight,
            user_latitude=latitude,
            user_longitude=longitude,
            created_at=now - ago,
        )
        db.add(interaction)
        db.flush()
        return interaction
    return _interact


@pytest.fixture
def log_search(db):
    def _log(at: datetime, term: str | None = None, category=None, business=None, offering=None) -> SearchLog:
        row = SearchLog(
            search_term=term,
            category_id=category.id if category else None,
            clicked_business_id=business.id if business else None,
            clicked_offering_id=offering.id if offering else None,
            created_at=at,
        )
        db.add(row)
        db.flush()
        return row
    return _log


@pytest.fixture
def log_view(db):
    def _log(business: Business, at: datetime) -> BusinessView:
        row = BusinessView(business_id=business.id, created_at=at)
        db.add(row)
        db.flush()
        return row
    return _log
