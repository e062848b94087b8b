"""
Rollup statistics over the Book collection.

Each rollup is a read-only aggregation pipeline executed by the store.
"""

from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection

from catalog.models import AggregationResult, GenreAveragePrice, GenreCount, ProlificAuthor

logger = structlog.get_logger(__name__)

BOOKS_PER_GENRE = [
    {"$group": {"_id": "$genre", "total_books": {"$sum": 1}}},
    {"$sort": {"total_books": -1, "_id": 1}},
]

AVG_PRICE_PER_GENRE = [
    {"$group": {"_id": "$genre", "avg_price": {"$avg": "$price"}}},
    {"$sort": {"avg_price": -1, "_id": 1}},
]

# Ties on total_books resolve in whatever order the store scans groups.
AUTHOR_WITH_MOST_BOOKS = [
    {"$group": {"_id": "$author", "total_books": {"$sum": 1}}},
    {"$sort": {"total_books": -1}},
    {"$limit": 1},
]


class AggregationPipeline:
    """Computes genre and author rollups over all books."""

    def __init__(self, books: AsyncIOMotorCollection, authors: AsyncIOMotorCollection):
        self.books = books
        self.authors = authors
        self.logger = logger.bind(component="aggregation")

    async def books_per_genre(self):
        groups = await self.books.aggregate(BOOKS_PER_GENRE).to_list(length=None)
        return [GenreCount(genre=g["_id"], total_books=g["total_books"]) for g in groups]

    async def avg_price_per_genre(self):
        groups = await self.books.aggregate(AVG_PRICE_PER_GENRE).to_list(length=None)
        return [GenreAveragePrice(genre=g["_id"], avg_price=g["avg_price"]) for g in groups]

    async def most_prolific_author(self) -> Optional[ProlificAuthor]:
        """Return the author with the most books, or None if there is none to report."""
        groups = await self.books.aggregate(AUTHOR_WITH_MOST_BOOKS).to_list(length=1)
        if not groups:
            return None

        top = groups[0]
        author = await self.authors.find_one({"_id": top["_id"]}, {"name": 1, "nationality": 1})
        if author is None:
            self.logger.warning("Most prolific author no longer exists", author_id=str(top["_id"]))
            return None

        return ProlificAuthor(
            id=str(author["_id"]),
            name=author["name"],
            nationality=author.get("nationality"),
            total_books=top["total_books"],
        )

    async def run(self) -> AggregationResult:
        """Compute all rollups."""
        result = AggregationResult(
            books_per_genre=await self.books_per_genre(),
            avg_price_per_genre=await self.avg_price_per_genre(),
            most_prolific_author=await self.most_prolific_author(),
        )
        self.logger.info(
            "Computed book aggregation",
            genres=len(result.books_per_genre),
            has_prolific_author=result.most_prolific_author is not None
        )
        return result
