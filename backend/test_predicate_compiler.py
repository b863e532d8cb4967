"""
Tests for the filter predicate compiler.

Tests:
- Price bounds including the "less-than" and "no-limit" sentinels
- Bedroom/bathroom minimums and the studio case
- Feature AND semantics
- Every sort order, including rows without area or previous price

Run: pytest backend/test_predicate_compiler.py -v
"""

import math

import pytest

from app.core.filters import PRICE_LESS_THAN, PRICE_NO_LIMIT, OperationType, PropertyFilter, SortBy
from app.core.predicate_compiler import (
    compile_filter,
    compile_predicate,
    price_drop_percentage,
    price_per_area,
)


def ids(items):
    return [item["id"] for item in items]


class TestPredicate:
    def test_combined_scenario(self, sample_properties):
        f = PropertyFilter(
            operation_type=OperationType.SALE,
            price_min=200000,
            price_max=400000,
            bedrooms_at_least=2,
            features=frozenset({"ascensor"}),
        )
        assert ids(compile_filter(f).filter(sample_properties)) == [1]

    def test_operation_type_always_applies(self, sample_properties):
        assert ids(compile_filter(PropertyFilter(operation_type="Alquiler")).filter(sample_properties)) == [5]

    def test_less_than_is_below_lowest_option(self, sample_properties):
        f = PropertyFilter(price_min=PRICE_LESS_THAN)
        assert ids(compile_filter(f).filter(sample_properties)) == [2]

    def test_no_limit_has_no_upper_bound(self, sample_properties):
        f = PropertyFilter(price_min=400000, price_max=PRICE_NO_LIMIT)
        assert ids(compile_filter(f).filter(sample_properties)) == [3, 6]

    def test_inverted_range_matches_nothing(self, sample_properties):
        f = PropertyFilter(price_min=500000, price_max=200000)
        assert compile_filter(f).filter(sample_properties) == []

    def test_studio_means_zero_bedrooms(self, sample_properties):
        f = PropertyFilter(studio_only=True)
        assert ids(compile_filter(f).filter(sample_properties)) == [2]

    def test_bathrooms_at_least(self, sample_properties):
        f = PropertyFilter(bathrooms_at_least=2)
        assert ids(compile_filter(f).filter(sample_properties)) == [3, 6]

    def test_features_require_every_tag(self, sample_properties):
        both = PropertyFilter(features=frozenset({"ascensor", "terraza"}))
        assert ids(compile_filter(both).filter(sample_properties)) == [3]
        one = PropertyFilter(features=frozenset({"terraza"}))
        assert ids(compile_filter(one).filter(sample_properties)) == [3, 4]

    def test_missing_fields_do_not_match_minimums(self):
        item = {"id": 1, "operation_type": "Venta", "price": None, "bedrooms": None}
        assert not compile_filter(PropertyFilter(price_min=1)).matches(item)
        assert not compile_filter(PropertyFilter(bedrooms_at_least=1)).matches(item)
        assert compile_filter(PropertyFilter()).matches(item)

    def test_works_on_attribute_objects(self):
        class Row:
            operation_type = "Venta"
            price = 150000
            bedrooms = 1
            bathrooms = 1
            features = ["garaje"]

        assert compile_filter(PropertyFilter(features=frozenset({"garaje"}))).matches(Row())


class TestOrdering:
    def test_newest_first(self, sample_properties):
        f = PropertyFilter(sort_by=SortBy.NEWEST)
        assert ids(compile_filter(f).apply(sample_properties)) == [4, 2, 1, 3, 7, 6]

    def test_price_ascending(self, sample_properties):
        f = PropertyFilter(sort_by=SortBy.PRICE_ASC)
        assert ids(compile_filter(f).apply(sample_properties)) == [2, 4, 7, 1, 6, 3]

    def test_price_per_area_puts_missing_area_last(self, sample_properties):
        f = PropertyFilter(sort_by=SortBy.PRICE_PER_AREA)
        assert ids(compile_filter(f).apply(sample_properties)) == [2, 1, 4, 7, 3, 6]

    def test_price_drop_treats_missing_previous_price_as_zero(self, sample_properties):
        f = PropertyFilter(sort_by=SortBy.PRICE_DROP)
        assert ids(compile_filter(f).apply(sample_properties)) == [1, 2, 3, 6, 7, 4]

    def test_comparator_agrees_with_sort(self, sample_properties):
        matches, compare = compile_predicate(PropertyFilter(sort_by=SortBy.PRICE_ASC))
        cheap, expensive = sample_properties[1], sample_properties[2]
        assert matches(cheap)
        assert compare(cheap, expensive) < 0
        assert compare(expensive, cheap) > 0
        assert compare(cheap, cheap) == 0

    def test_string_timestamps(self):
        items = [
            {"id": 1, "created_at": "2024-01-01T00:00:00Z"},
            {"id": 2, "created_at": "2024-06-01T00:00:00+00:00"},
            {"id": 3, "created_at": None},
        ]
        assert ids(compile_filter(PropertyFilter()).sort(items)) == [2, 1, 3]


class TestDerivedMetrics:
    def test_price_per_area(self):
        assert price_per_area({"price": 300000, "superficie": 100}) == 3000
        assert price_per_area({"price": 300000, "superficie": 0}) == math.inf
        assert price_per_area({"price": 300000}) == math.inf

    def test_price_drop(self):
        assert price_drop_percentage({"price": 90, "previous_price": 100}) == pytest.approx(10)
        assert price_drop_percentage({"price": 90}) == 0
        assert price_drop_percentage({"price": 110, "previous_price": 100}) == pytest.approx(-10)


class TestCompilation:
    def test_equal_filters_compile_once(self):
        a = compile_filter(PropertyFilter(features=["a", "b"]))
        b = compile_filter(PropertyFilter(features=["b", "a"]))
        assert a is b

    def test_store_params(self):
        params = compile_filter(PropertyFilter(price_min=PRICE_LESS_THAN, studio_only=True)).store_params()
        assert params["price_lt"] == 100000
        assert params["price_gte"] is None
        assert params["bedrooms_eq"] == 0
        assert params["sort_by"] == "newest"
