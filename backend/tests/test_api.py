"""HTTP tests for the v1 API, with the database and service dependencies overridden."""

from types import SimpleNamespace

import pytest
import redis
from fastapi.testclient import TestClient

from app.dependencies.services import get_experiment_registry, get_recommendation_service
from app import main as main_module
from app.main import app
from app.models.base import get_sync_db
from app.services.experiment_service import build_default_registry
from app.services.recommendation_cache import RecommendationCache
from app.services.recommendation_service import RecommendationService
from app.tasks import recommendation_tasks
from app.tasks.celery_app import celery_app
from conftest import FakeRedis, RecordingMetrics, fixed_registry


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
def client(db, settings, rules, dispatched):
    def override_db():
        yield db

    def override_service():
        return RecommendationService(
            db,
            cache=RecommendationCache(FakeRedis()),
            experiments=fixed_registry("none"),
            metrics=RecordingMetrics(),
            rules=rules,
            settings=settings,
            similarity_dispatcher=dispatched.append,
        )

    app.dependency_overrides[get_sync_db] = override_db
    app.dependency_overrides[get_recommendation_service] = override_service
    app.dependency_overrides[get_experiment_registry] = lambda: build_default_registry(settings)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.fixture
def healthy_checks(monkeypatch):
    async def database_ok():
        return {"ok": True}

    monkeypatch.setattr(main_module, "check_database", database_ok)
    monkeypatch.setattr(main_module, "check_cache", lambda: {"ok": True, "ttl_seconds": 900})
    monkeypatch.setattr(main_module, "check_workers", lambda: {"ok": True, "workers": ["worker@host"]})


def test_detailed_health(client, healthy_checks):
    body = client.get("/health/detailed").json()

    assert body["status"] == "healthy"
    assert body["checks"]["cache"] == {"ok": True, "ttl_seconds": 900}


def test_detailed_health_reports_cache_outage(client, healthy_checks, monkeypatch):
    def cache_down():
        raise redis.ConnectionError("connection refused")

    monkeypatch.setattr(main_module, "check_cache", cache_down)

    body = client.get("/health/detailed").json()

    assert body["status"] == "degraded"
    assert body["checks"]["cache"] == {"ok": False, "message": "connection refused"}
    assert body["checks"]["database"]["ok"] is True


class FakeInspect:
    def __init__(self, registered):
        self._registered = registered

    def registered(self):
        return self._registered


def test_worker_check_flags_missing_tasks(monkeypatch):
    registered = {
        "current@host": list(main_module.RECOMMENDATION_TASKS),
        "stale@host": ["app.tasks.recommendation_tasks.calculate_trending"],
    }
    monkeypatch.setattr(celery_app.control, "inspect", lambda timeout=None: FakeInspect(registered))

    result = main_module.check_workers()

    assert result["ok"] is True
    assert result["workers"] == ["current@host", "stale@host"]
    assert list(result["missing_tasks"]) == ["stale@host"]
    assert "recalculate-similarities-nightly" in result["scheduled"]


def test_worker_check_without_workers(monkeypatch):
    monkeypatch.setattr(celery_app.control, "inspect", lambda timeout=None: FakeInspect(None))

    result = main_module.check_workers()

    assert result["ok"] is False
    assert result["workers"] == []


# --- Recommendations ---


def test_recommendations(client, make_user, make_business):
    user = make_user()
    business = make_business()

    response = client.get(f"/api/v1/recommendations/{user.id}", params={"count": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == user.id
    assert body["personalization_level"] == "none"
    assert body["count"] == 1
    assert body["recommendations"][0]["business_id"] == business.id
    assert body["recommendations"][0]["algorithm"] == "fast"


def test_recommendations_category_filter(client, make_user, make_category, make_business):
    user = make_user()
    cafe = make_category("Cafe")
    wanted = make_business(category=cafe)
    make_business(category=make_category("Bar"))

    response = client.get(f"/api/v1/recommendations/{user.id}", params={"category_ids": [cafe.id]})

    assert [r["business_id"] for r in response.json()["recommendations"]] == [wanted.id]


def test_recommendations_unknown_user(client):
    assert client.get("/api/v1/recommendations/999").status_code == 404


@pytest.mark.parametrize("params", [{"count": 0}, {"count": 101}, {"latitude": 91, "longitude": 0}])
def test_recommendations_rejects_bad_query(client, make_user, params):
    user = make_user()
    assert client.get(f"/api/v1/recommendations/{user.id}", params=params).status_code == 422


def test_recommendations_needs_both_coordinates(client, make_user):
    user = make_user()
    response = client.get(f"/api/v1/recommendations/{user.id}", params={"latitude": 40.0})
    assert response.status_code == 400


def test_scorer_recommendations(client, make_user, make_business):
    user = make_user()
    business = make_business(rating=4.5)

    response = client.get(f"/api/v1/recommendations/{user.id}/algorithms/content_based")

    assert response.status_code == 200
    assert response.json()[0]["business_id"] == business.id
    assert response.json()[0]["algorithm"] == "popular_fallback"


def test_scorer_recommendations_unknown_algorithm(client, make_user):
    user = make_user()
    assert client.get(f"/api/v1/recommendations/{user.id}/algorithms/random").status_code == 422


def test_similar_businesses(client, make_category, make_business):
    restaurant = make_category("Restaurant")
    source = make_business(category=restaurant)
    other = make_business(category=restaurant)

    response = client.get(f"/api/v1/businesses/{source.id}/similar")

    assert response.status_code == 200
    body = response.json()
    assert body["business_id"] == source.id
    assert body["similar"][0]["business_id"] == other.id
    assert body["similar"][0]["type"] == "category_similar"


def test_similar_businesses_unknown(client):
    assert client.get("/api/v1/businesses/999/similar").status_code == 404


# --- Interactions and views ---


def test_track_interaction(client, make_user, make_business, dispatched):
    user, business = make_user(), make_business()

    response = client.post("/api/v1/interactions", json={
        "user_id": user.id,
        "business_id": business.id,
        "interaction_type": "favorite",
        "context": {"source": "search", "session_id": "s-1"},
    })

    assert response.status_code == 201
    body = response.json()
    assert body["weight"] == 3.0
    assert body["source"] == "search"
    assert body["session_id"] == "s-1"
    assert dispatched == [business.id]


def test_track_interaction_numeric_session_id(client, make_user, make_business):
    user, business = make_user(), make_business()
    response = client.post("/api/v1/interactions", json={
        "user_id": user.id, "business_id": business.id, "interaction_type": "view",
        "context": {"session_id": 1234},
    })
    assert response.status_code == 201
    assert response.json()["session_id"] == "1234"


def test_track_interaction_rejects_retraction(client, make_user, make_business):
    user, business = make_user(), make_business()
    response = client.post("/api/v1/interactions", json={
        "user_id": user.id, "business_id": business.id, "interaction_type": "unfavorite",
    })
    assert response.status_code == 400


def test_track_interaction_rejects_negative_weight(client, make_user, make_business):
    user, business = make_user(), make_business()
    response = client.post("/api/v1/interactions", json={
        "user_id": user.id, "business_id": business.id, "interaction_type": "view", "weight": -1,
    })
    assert response.status_code == 422


def test_track_interaction_unknown_business(client, make_user):
    user = make_user()
    response = client.post("/api/v1/interactions", json={
        "user_id": user.id, "business_id": 999, "interaction_type": "view",
    })
    assert response.status_code == 404


def test_business_view_feeds_trending(client, make_business):
    business = make_business(rating=4.0)

    first = client.post(f"/api/v1/businesses/{business.id}/views")
    second = client.post(f"/api/v1/businesses/{business.id}/views", json={"user_id": None})
    trending = client.get("/api/v1/trending")

    assert first.status_code == 200
    assert second.json()["view_count"] == 2
    assert [t["item_id"] for t in trending.json()] == [business.id]


def test_business_view_unknown(client):
    assert client.post("/api/v1/businesses/999/views").status_code == 404


def test_business_view_unknown_user(client, make_business):
    business = make_business()
    response = client.post(f"/api/v1/businesses/{business.id}/views", json={"user_id": 999})
    assert response.status_code == 404


# --- Trending ---


def test_trending_rejects_unknown_period(client):
    assert client.get("/api/v1/trending", params={"period": "hourly"}).status_code == 422


def test_popular_search_terms(client, log_search, now):
    log_search(now, "pizza")
    log_search(now, "pizza")
    log_search(now, "sushi")

    response = client.get("/api/v1/trending/search-terms")

    assert response.json() == [
        {"search_term": "pizza", "search_count": 2},
        {"search_term": "sushi", "search_count": 1},
    ]


# --- Experiments ---


def test_experiment_variant_is_stable(client):
    first = client.get("/api/v1/experiments/personalization_level/variant/7").json()
    second = client.get("/api/v1/experiments/personalization_level/variant/7").json()

    assert first == second
    assert first["variant"] in ("none", "light", "full")
    assert first["active"] is True


def test_unknown_experiment(client):
    assert client.get("/api/v1/experiments/colour/variant/7").status_code == 404


def test_experiment_metrics(client):
    assert client.get("/api/v1/experiments/metrics").json() == []
    assert client.get("/api/v1/experiments/metrics", params={"days": 0}).status_code == 422


# --- Batch triggers ---


def test_similarity_batch(client, monkeypatch):
    calls = []

    def fake_delay(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="task-1")

    monkeypatch.setattr(recommendation_tasks.recalculate_similarities, "delay", fake_delay)

    response = client.post("/api/v1/batch/similarities", json={"category_id": 3, "force": True})

    assert response.status_code == 202
    assert response.json()["task_id"] == "task-1"
    assert calls == [{"business_ids": None, "category_id": 3, "force": True}]


def test_similarity_batch_rejects_empty_ids(client):
    response = client.post("/api/v1/batch/similarities", json={"business_ids": []})
    assert response.status_code == 400


def test_trending_batch(client, monkeypatch):
    calls = []

    def fake_delay(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="task-2")

    monkeypatch.setattr(recommendation_tasks.calculate_trending, "delay", fake_delay)

    response = client.post("/api/v1/batch/trending", json={"period": "weekly", "date": "2026-01-05"})

    assert response.status_code == 202
    assert response.json()["message"] == "Weekly trending calculation queued"
    assert calls == [{"period": "weekly", "date": "2026-01-05", "item_type": "all"}]
