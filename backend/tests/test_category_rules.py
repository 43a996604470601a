"""Tests for category compatibility rules."""

import json

from app.services.category_rules import CategoryRules, load_category_rules


def test_bundled_rules_gate_restaurant_and_clothing(rules):
    assert rules.is_incompatible("Restaurant", "Clothing")
    assert rules.is_incompatible("clothing", "restaurant")


def test_lookup_is_case_and_whitespace_insensitive(rules):
    assert rules.is_incompatible("  RESTAURANT ", "Real Estate")
    assert rules.is_compatible("Restaurant", "CAFE")


def test_incompatible_is_symmetric_when_listed_one_way():
    rules = CategoryRules.from_dict({"incompatible": {"bakery": ["garage"]}})
    assert rules.is_incompatible("bakery", "garage")
    assert rules.is_incompatible("garage", "bakery")


def test_compatible_is_symmetric_when_listed_one_way(rules):
    # "cafe" has no key of its own, restaurant lists it
    assert rules.is_compatible("cafe", "restaurant")
    assert rules.is_compatible("restaurant", "cafe")


def test_unknown_or_missing_categories_are_neither(rules):
    assert not rules.is_incompatible("restaurant", None)
    assert not rules.is_compatible(None, None)
    assert not rules.is_incompatible("bakery", "florist")
    assert not rules.is_compatible("bakery", "florist")


def test_load_from_override_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"incompatible": {"Gym": ["Bar"]}, "compatible": {"Gym": ["Spa"]}}))

    rules = load_category_rules(path)

    assert rules.is_incompatible("bar", "gym")
    assert rules.is_compatible("spa", "gym")
    assert not rules.is_incompatible("restaurant", "clothing")


def test_compatible_with_collects_both_directions(rules):
    assert rules.compatible_with("Cafe") == {"restaurant", "food"}
    assert rules.compatible_with(" RESTAURANT ") == {"food", "cafe", "fast food", "dining"}
    assert rules.compatible_with("florist") == set()
    assert rules.compatible_with(None) == set()
