"""
Tests for the query builder.
"""

import pytest
from bson import ObjectId
from pydantic import ValidationError

from catalog.query_builder import (
    AUTHOR_QUERY, BOOK_QUERY, FieldKind, FilterField, QueryConfig, SortOrder,
    build_filter, build_query, build_sort, parse_boolean, parse_number, parse_positive_int
)


class TestParsers:
    """Test cases for raw parameter parsing."""

    def test_parse_number(self):
        assert parse_number("10") == 10.0
        assert parse_number(" 12.5 ") == 12.5
        assert parse_number("abc") is None
        assert parse_number("") is None
        assert parse_number(None) is None
        assert parse_number("nan") is None
        assert parse_number("inf") is None

    def test_parse_boolean_only_accepts_literals(self):
        assert parse_boolean("true") is True
        assert parse_boolean("false") is False
        assert parse_boolean("True") is None
        assert parse_boolean("1") is None
        assert parse_boolean("yes") is None
        assert parse_boolean(None) is None

    def test_parse_positive_int(self):
        assert parse_positive_int("3", 1) == 3
        assert parse_positive_int("0", 1) == 1
        assert parse_positive_int("-2", 1) == 1
        assert parse_positive_int("2.5", 1) == 1
        assert parse_positive_int("x", 7) == 7
        assert parse_positive_int(None, 7) == 7


class TestBuildFilter:
    """Test cases for filter construction."""

    def test_empty_params(self):
        assert build_filter({}, BOOK_QUERY) == {}
        assert build_filter({}, AUTHOR_QUERY) == {}

    def test_text_filter_is_escaped_and_case_insensitive(self):
        query = build_filter({"title": "C++"}, BOOK_QUERY)
        assert query["title"] == {"$regex": r"C\+\+", "$options": "i"}

    def test_exact_filter(self):
        assert build_filter({"genre": "Fiction"}, BOOK_QUERY) == {"genre": "Fiction"}

    def test_invalid_min_price_is_ignored(self):
        query = build_filter({"minPrice": "abc", "maxPrice": "20"}, BOOK_QUERY)
        assert query == {"price": {"$lte": 20.0}}

    def test_both_bounds_invalid_drops_the_field(self):
        assert build_filter({"minPrice": "abc", "maxPrice": "?"}, BOOK_QUERY) == {}

    def test_age_range(self):
        query = build_filter({"minAge": "30", "maxAge": "60"}, AUTHOR_QUERY)
        assert query == {"age": {"$gte": 30.0, "$lte": 60.0}}

    @pytest.mark.parametrize("raw,expected", [
        ("true", {"available": True}),
        ("false", {"available": False}),
        ("yes", {}),
        ("TRUE", {}),
    ])
    def test_available_filter(self, raw, expected):
        assert build_filter({"available": raw}, BOOK_QUERY) == expected

    def test_author_reference(self):
        oid = ObjectId()
        assert build_filter({"author": str(oid)}, BOOK_QUERY) == {"author": oid}
        assert build_filter({"author": "not-an-id"}, BOOK_QUERY) == {}

    def test_unknown_params_are_ignored(self):
        assert build_filter({"publisher": "Ace"}, BOOK_QUERY) == {}


class TestBuildSort:
    """Test cases for sort resolution."""

    def test_defaults(self):
        assert build_sort({}, BOOK_QUERY) == [("title", 1)]
        assert build_sort({}, AUTHOR_QUERY) == [("created_at", -1)]

    def test_valid_field_and_order(self):
        assert build_sort({"sortBy": "price", "sortOrder": "desc"}, BOOK_QUERY) == [("price", -1)]
        assert build_sort({"sortBy": "age", "order": "asc"}, AUTHOR_QUERY) == [("age", 1)]

    def test_camel_case_fields_map_to_stored_names(self):
        assert build_sort({"sortBy": "publishedDate"}, BOOK_QUERY) == [("published_date", 1)]

    def test_unknown_field_falls_back_to_defaults(self):
        assert build_sort({"sortBy": "isbn", "sortOrder": "desc"}, BOOK_QUERY) == [("title", 1)]

    def test_missing_field_keeps_valid_order(self):
        assert build_sort({"order": "asc"}, AUTHOR_QUERY) == [("created_at", 1)]

    def test_invalid_order_uses_default(self):
        assert build_sort({"sortBy": "price", "sortOrder": "sideways"}, BOOK_QUERY) == [("price", 1)]


class TestBuildQuery:
    """Test cases for full query construction."""

    def test_defaults(self):
        spec = build_query({}, BOOK_QUERY)
        assert spec.page == 1
        assert spec.limit == 5
        assert spec.skip == 0

        assert build_query({}, AUTHOR_QUERY).limit == 10

    def test_invalid_page_and_limit_fall_back(self):
        spec = build_query({"page": "0", "limit": "abc"}, BOOK_QUERY)
        assert spec.page == 1
        assert spec.limit == 5

    def test_limit_is_capped(self):
        assert build_query({"limit": "5000"}, BOOK_QUERY).limit == 100

    def test_fiction_price_window(self):
        params = {
            "genre": "Fiction",
            "minPrice": "10",
            "maxPrice": "20",
            "sortBy": "price",
            "sortOrder": "desc",
            "page": "2",
            "limit": "5",
        }

        spec = build_query(params, BOOK_QUERY)

        assert spec.filter == {"genre": "Fiction", "price": {"$gte": 10.0, "$lte": 20.0}}
        assert spec.sort == [("price", -1)]
        assert spec.page == 2
        assert spec.limit == 5
        assert spec.skip == 5


class TestQueryConfig:
    """Test cases for configuration validation."""

    def test_default_sort_must_be_allowed(self):
        with pytest.raises(ValidationError):
            QueryConfig(sort_fields={"name": "name"}, default_sort="age")

    def test_default_limit_cannot_exceed_max(self):
        with pytest.raises(ValidationError):
            QueryConfig(sort_fields={"name": "name"}, default_sort="name", default_limit=50, max_limit=20)

    def test_range_field_needs_bounds(self):
        with pytest.raises(ValidationError):
            FilterField(field="price", kind=FieldKind.RANGE)

    def test_sort_order_direction(self):
        assert SortOrder.ASC.direction == 1
        assert SortOrder.DESC.direction == -1
