"""
Tests for the paginator.
"""

import pytest

from catalog.paginator import page_metadata, paginate, stable_sort
from catalog.query_builder import QuerySpec


class TestPageMetadata:
    """Test cases for page metadata."""

    def test_partial_last_page(self):
        meta = page_metadata(total_count=12, page=1, limit=5)

        assert meta["total_pages"] == 3
        assert meta["has_next"] is True
        assert meta["has_prev"] is False

    def test_exact_multiple(self):
        meta = page_metadata(total_count=10, page=2, limit=5)

        assert meta["total_pages"] == 2
        assert meta["has_next"] is False
        assert meta["has_prev"] is True

    def test_empty_collection(self):
        meta = page_metadata(total_count=0, page=1, limit=5)

        assert meta["total_pages"] == 0
        assert meta["has_next"] is False
        assert meta["has_prev"] is False

    def test_page_past_the_end(self):
        meta = page_metadata(total_count=3, page=4, limit=5)

        assert meta["total_pages"] == 1
        assert meta["current_page"] == 4
        assert meta["has_next"] is False
        assert meta["has_prev"] is True


class TestStableSort:
    """Test cases for tie-breaking."""

    def test_appends_id(self):
        assert stable_sort([("price", -1)]) == [("price", -1), ("_id", 1)]

    def test_keeps_explicit_id(self):
        assert stable_sort([("_id", -1)]) == [("_id", -1)]


class TestPaginate:
    """Test cases for fetching a page."""

    @pytest.mark.asyncio
    async def test_applies_window_and_sort(self, books_collection, cursor_factory):
        documents = [{"_id": i, "title": f"Book {i}"} for i in range(5)]
        cursor = cursor_factory(documents)
        books_collection.find.return_value = cursor
        books_collection.count_documents.return_value = 12
        spec = QuerySpec(filter={"genre": "Fiction"}, sort=[("price", -1)], page=2, limit=5)

        page = await paginate(books_collection, spec)

        books_collection.count_documents.assert_awaited_once_with({"genre": "Fiction"})
        books_collection.find.assert_called_once_with({"genre": "Fiction"}, None)
        cursor.sort.assert_called_once_with([("price", -1), ("_id", 1)])
        cursor.skip.assert_called_once_with(5)
        cursor.limit.assert_called_once_with(5)

        assert page.items == documents
        assert page.total_count == 12
        assert page.total_pages == 3
        assert page.current_page == 2
        assert page.page_size == 5
        assert page.has_next is True
        assert page.has_prev is True

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, books_collection):
        books_collection.count_documents.return_value = 3
        spec = QuerySpec(filter={}, sort=[("title", 1)], page=9, limit=5)

        page = await paginate(books_collection, spec)

        assert page.items == []
        assert page.total_count == 3
        assert page.has_next is False
