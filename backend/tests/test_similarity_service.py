"""Tests for pairwise business similarity."""

import pytest
from sqlalchemy import select

from app.models.business_similarity import BusinessSimilarity
from app.services.errors import NotFoundError
from app.services.similarity_service import (
    canonical_pair,
    compute_similarity,
    feature_overlap,
    get_similarity_records,
    realtime_similarity,
    compatible_category_ids,
    recalculate_by_category,
    recalculate_for_business,
    recalculate_similarities,
    similarity_type,
    user_overlap,
)

# 0.0045 degrees of latitude is roughly 0.5 km
HALF_KM = 0.0045


@pytest.fixture
def restaurant(make_category):
    return make_category("Restaurant")


@pytest.fixture
def clothing(make_category):
    return make_category("Clothing")


@pytest.fixture
def cafe(make_category):
    return make_category("Cafe")


@pytest.fixture
def restaurant_pair(make_business, restaurant):
    a = make_business("Trattoria", category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5, price_range=2)
    b = make_business("Osteria", category=restaurant, latitude=40.0 + HALF_KM, longitude=-73.0, rating=4.3, price_range=2)
    return a, b


def _all_records(db):
    return db.execute(select(BusinessSimilarity)).scalars().all()


class TestComputeSimilarity:
    def test_two_nearby_restaurants(self, restaurant_pair, rules):
        a, b = restaurant_pair
        result = compute_similarity(a, b, rules=rules)

        assert result.factors == {
            "category_match": 1.0,
            "location_proximity": 1.0,
            "review_sentiment": 0.96,
            "feature_overlap": 0.75,
            "user_overlap": 0.0,
        }
        assert result.score == pytest.approx(0.921)
        assert result.similarity_type == "category_similar"
        assert not result.gated

    def test_restaurant_and_clothing_are_gated(self, make_business, restaurant, clothing, rules):
        a = make_business("Diner", category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        b = make_business("Boutique", category=clothing, latitude=40.0, longitude=-73.0, rating=4.5)

        result = compute_similarity(a, b, users_a={1, 2}, users_b={1, 2}, rules=rules)

        assert result.gated
        assert result.score == 0.0
        assert result.factors == {}

    def test_same_category_different_subcategory(self, make_category, make_business, restaurant, rules):
        pizza = make_category("Pizza", parent=restaurant)
        sushi = make_category("Sushi", parent=restaurant)
        a = make_business(category=restaurant, subcategory=pizza)
        b = make_business(category=restaurant, subcategory=sushi)

        assert compute_similarity(a, b, rules=rules).factors["category_match"] == 0.8

    def test_compatible_categories(self, make_business, restaurant, cafe, rules):
        a = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        b = make_business(category=cafe, latitude=40.0 + HALF_KM, longitude=-73.0, rating=4.3)

        result = compute_similarity(a, b, rules=rules)

        assert result.factors["category_match"] == 0.6
        assert result.score == pytest.approx(0.681)
        assert result.similarity_type == "location_similar"

    def test_unrelated_categories_force_zero(self, make_category, make_business, rules):
        bakery = make_category("Bakery")
        florist = make_category("Florist")
        a = make_business(category=bakery, latitude=40.0, longitude=-73.0, rating=4.5)
        b = make_business(category=florist, latitude=40.0, longitude=-73.0, rating=4.5)

        result = compute_similarity(a, b, rules=rules)

        assert not result.gated
        assert result.factors["category_match"] == 0.0
        assert result.factors["location_proximity"] == 1.0
        assert result.score == 0.0

    def test_symmetric(self, make_business, restaurant, cafe, rules):
        businesses = [
            make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.9, price_range=1),
            make_business(category=cafe, latitude=40.03, longitude=-73.0, rating=3.1, price_range=4),
            make_business(category=restaurant, rating=2.0, price_range=None),
        ]
        for a in businesses:
            for b in businesses:
                if a is b:
                    continue
                forward = compute_similarity(a, b, {1, 2}, {2, 3}, rules)
                backward = compute_similarity(b, a, {2, 3}, {1, 2}, rules)
                assert forward.score == backward.score
                assert forward.factors == backward.factors

    def test_score_bounded_and_rounded(self, make_business, restaurant, rules):
        a = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=5.0, price_range=3)
        b = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=5.0, price_range=3)

        result = compute_similarity(a, b, {1}, {1}, rules)

        assert 0.0 <= result.score <= 1.0
        assert result.score == round(result.score, 4)

    @pytest.mark.parametrize("offset_km,expected", [
        (0.5, 1.0),
        (3.0, 0.8),
        (8.0, 0.5),
        (20.0, 0.2),
        (40.0, 0.0),
    ])
    def test_location_proximity_buckets(self, make_business, restaurant, rules, offset_km, expected):
        a = make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        b = make_business(category=restaurant, latitude=40.0 + offset_km / 111.195, longitude=-73.0)

        assert compute_similarity(a, b, rules=rules).factors["location_proximity"] == expected

    def test_missing_coordinates_mean_no_proximity(self, make_business, restaurant, rules):
        a = make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        b = make_business(category=restaurant)

        assert compute_similarity(a, b, rules=rules).factors["location_proximity"] == 0.0


class TestFactors:
    def test_feature_overlap_without_price(self, make_business):
        a = make_business(price_range=None)
        b = make_business(price_range=2)
        assert feature_overlap(a, b) == 0.25

    def test_feature_overlap_price_gap(self, make_business):
        assert feature_overlap(make_business(price_range=1), make_business(price_range=4)) == 0.25
        assert feature_overlap(make_business(price_range=1), make_business(price_range=2)) == pytest.approx(0.5833, abs=1e-4)

    def test_user_overlap_is_jaccard(self):
        assert user_overlap({1, 2}, {2, 3}) == pytest.approx(1 / 3)
        assert user_overlap(set(), {1}) == 0.0
        assert user_overlap({5}, {5}) == 1.0

    @pytest.mark.parametrize("factors,expected", [
        ({"category_match": 1.0, "location_proximity": 1.0}, "category_similar"),
        ({"category_match": 0.8, "location_proximity": 1.0}, "location_similar"),
        ({"category_match": 0.8, "location_proximity": 0.8, "user_overlap": 0.75}, "user_behavior_similar"),
        ({"category_match": 0.6, "location_proximity": 0.5, "user_overlap": 0.2}, "general_similar"),
    ])
    def test_similarity_type(self, factors, expected):
        assert similarity_type(factors) == expected

    def test_canonical_pair(self):
        assert canonical_pair(9, 4) == (4, 9)
        assert canonical_pair(4, 9) == (4, 9)
        with pytest.raises(ValueError):
            canonical_pair(3, 3)

    def test_realtime_similarity_identical_neighbours(self, make_business, restaurant):
        a = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.0, price_range=2)
        b = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.0, price_range=2)
        assert realtime_similarity(a, b) == 1.0

    def test_realtime_similarity_other_category(self, make_business, restaurant, clothing):
        a = make_business(category=restaurant, rating=4.0, price_range=None)
        b = make_business(category=clothing, rating=3.0, price_range=None)
        assert realtime_similarity(a, b) == pytest.approx(0.24)


class TestRecalculate:
    def test_stores_qualifying_pair_under_canonical_key(self, db, restaurant_pair, rules):
        a, b = restaurant_pair

        stats = recalculate_similarities(db, business_ids=[b.id, a.id], rules=rules)

        assert stats["processed"] == 1
        assert stats["created"] == 1
        records = _all_records(db)
        assert len(records) == 1
        record = records[0]
        assert (record.business_a_id, record.business_b_id) == (min(a.id, b.id), max(a.id, b.id))
        assert record.similarity_score == pytest.approx(0.921)
        assert record.similarity_type == "category_similar"

    def test_gated_pair_never_stored(self, db, make_business, restaurant, clothing, rules):
        make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        make_business(category=clothing, latitude=40.0, longitude=-73.0, rating=4.5)

        stats = recalculate_similarities(db, rules=rules)

        assert stats["processed"] == 1
        assert stats["created"] == 0
        assert _all_records(db) == []

    def test_existing_pairs_skipped_unless_forced(self, db, restaurant_pair, rules):
        a, b = restaurant_pair
        recalculate_similarities(db, rules=rules)

        b.overall_rating = 2.0
        db.flush()
        stats = recalculate_similarities(db, rules=rules)
        assert stats["skipped"] == 1
        assert _all_records(db)[0].similarity_score == pytest.approx(0.921)

        stats = recalculate_similarities(db, rules=rules, force=True)
        assert stats["updated"] == 1
        # review_sentiment drops from 0.96 to 0.5
        assert _all_records(db)[0].similarity_score == pytest.approx(0.875)

    def test_forced_recompute_drops_pairs_below_threshold(self, db, restaurant_pair, clothing, rules):
        a, b = restaurant_pair
        recalculate_similarities(db, rules=rules)

        b.category = clothing
        db.flush()
        stats = recalculate_similarities(db, rules=rules, force=True)

        assert stats["removed"] == 1
        assert _all_records(db) == []

    def test_inactive_businesses_excluded(self, db, make_business, restaurant, rules):
        make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        make_business(category=restaurant, latitude=40.0, longitude=-73.0, active=False)

        stats = recalculate_similarities(db, rules=rules)

        assert stats["processed"] == 0

    def test_category_scope(self, db, make_business, restaurant, cafe, rules):
        make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        make_business(category=cafe, latitude=40.0, longitude=-73.0)

        stats = recalculate_similarities(db, category_id=restaurant.id, rules=rules)

        assert stats["processed"] == 1

    def test_category_scope_with_compatible_categories(self, db, make_business, restaurant, cafe, rules):
        make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        make_business(category=cafe, latitude=40.0, longitude=-73.0)
        make_business(category=cafe, latitude=40.0, longitude=-73.0)

        stats = recalculate_similarities(db, category_id=restaurant.id, rules=rules, with_category_ids=[cafe.id])

        # the cafe/cafe pair belongs to the cafe run
        assert stats["processed"] == 5

    def test_compatible_category_ids(self, db, restaurant, cafe, clothing, rules):
        assert compatible_category_ids(db, restaurant.id, rules) == [cafe.id]
        assert compatible_category_ids(db, clothing.id, rules) == []

    def test_by_category_scores_each_pair_once(self, db, make_business, restaurant, cafe, rules):
        for category in (restaurant, restaurant, cafe, cafe):
            make_business(category=category, latitude=40.0, longitude=-73.0, rating=4.5)

        runs = dict(recalculate_by_category(db, rules=rules))

        assert runs[restaurant.id]["processed"] == 5
        assert runs[cafe.id]["processed"] == 1
        assert len(_all_records(db)) == 6

    def test_shared_visitors_feed_user_overlap(self, db, restaurant_pair, make_user, interact, rules):
        a, b = restaurant_pair
        shared, only_a = make_user("shared"), make_user("only a")
        interact(shared, a, "favorite")
        interact(shared, b, "review")
        interact(only_a, a, "visit")

        recalculate_similarities(db, rules=rules)

        assert _all_records(db)[0].contributing_factors["user_overlap"] == 0.5

    def test_recalculate_for_business_includes_compatible_categories(self, db, make_business, restaurant, cafe, clothing, rules):
        source = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        same = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        compatible = make_business(category=cafe, latitude=40.0, longitude=-73.0, rating=4.5)
        make_business(category=clothing, latitude=40.0, longitude=-73.0, rating=4.5)

        stats = recalculate_for_business(db, source.id, rules=rules)

        assert stats["processed"] == 2
        others = {other_id for other_id, _ in get_similarity_records(db, source.id)}
        assert others == {same.id, compatible.id}

    def test_recalculate_for_business_isolates_rejected_pair(self, db, make_business, restaurant, rules, reject_inserts):
        source = make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        refused = make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        kept = make_business(category=restaurant, latitude=40.0, longitude=-73.0)
        reject_inserts("business_similarities", f"NEW.business_b_id = {refused.id}")

        stats = recalculate_for_business(db, source.id, rules=rules)
        db.commit()

        assert (stats["created"], stats["failed"]) == (1, 1)
        assert {other_id for other_id, _ in get_similarity_records(db, source.id)} == {kept.id}

    def test_recalculate_for_unknown_business(self, db, rules):
        with pytest.raises(NotFoundError):
            recalculate_for_business(db, 999, rules=rules)

    def test_records_read_from_either_side(self, db, make_business, restaurant, rules):
        hub = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        lower = make_business(category=restaurant, latitude=40.0, longitude=-73.0, rating=4.5)
        higher = make_business(category=restaurant, latitude=40.2, longitude=-73.0, rating=1.0)
        recalculate_similarities(db, business_ids=[hub.id, lower.id, higher.id], rules=rules)

        records = get_similarity_records(db, lower.id)

        assert [other_id for other_id, _ in records][0] == hub.id
        scores = [record.similarity_score for _, record in records]
        assert scores == sorted(scores, reverse=True)
        assert get_similarity_records(db, lower.id, min_score=0.99) == []
