"""
Tests for the book rollups.
"""

import pytest
from bson import ObjectId

from catalog.aggregation import AggregationPipeline


@pytest.fixture
def pipeline(books_collection, authors_collection):
    return AggregationPipeline(books_collection, authors_collection)


def queue_results(collection, cursor_factory, *results):
    """Make successive aggregate() calls return the given result lists."""
    collection.aggregate.side_effect = [cursor_factory(result) for result in results]


class TestAggregationPipeline:
    """Test cases for AggregationPipeline."""

    @pytest.mark.asyncio
    async def test_empty_collection(self, pipeline, books_collection, authors_collection, cursor_factory):
        queue_results(books_collection, cursor_factory, [], [], [])

        result = await pipeline.run()

        assert result.books_per_genre == []
        assert result.avg_price_per_genre == []
        assert result.most_prolific_author is None
        assert result.to_response() == {"books_per_genre": [], "avg_price_per_genre": []}
        authors_collection.find_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_full_rollup(self, pipeline, books_collection, authors_collection, cursor_factory):
        author_id = ObjectId()
        queue_results(
            books_collection,
            cursor_factory,
            [{"_id": "Fiction", "total_books": 3}, {"_id": "Poetry", "total_books": 1}],
            [{"_id": "Poetry", "avg_price": 30.0}, {"_id": "Fiction", "avg_price": 12.5}],
            [{"_id": author_id, "total_books": 3}],
        )
        authors_collection.find_one.return_value = {
            "_id": author_id, "name": "Ursula K. Le Guin", "nationality": "American"
        }

        response = (await pipeline.run()).to_response()

        assert response["books_per_genre"] == [
            {"genre": "Fiction", "total_books": 3},
            {"genre": "Poetry", "total_books": 1},
        ]
        assert response["avg_price_per_genre"][0] == {"genre": "Poetry", "avg_price": 30.0}
        assert response["most_prolific_author"] == {
            "id": str(author_id),
            "name": "Ursula K. Le Guin",
            "nationality": "American",
            "total_books": 3,
        }

    @pytest.mark.asyncio
    async def test_missing_author_is_omitted(self, pipeline, books_collection, authors_collection, cursor_factory):
        queue_results(
            books_collection,
            cursor_factory,
            [{"_id": "Fiction", "total_books": 2}],
            [{"_id": "Fiction", "avg_price": 10.0}],
            [{"_id": ObjectId(), "total_books": 2}],
        )
        authors_collection.find_one.return_value = None

        result = await pipeline.run()

        assert result.most_prolific_author is None
        assert "most_prolific_author" not in result.to_response()
