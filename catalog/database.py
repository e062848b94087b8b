"""
MongoDB connection management for the catalogue.
Handles connection, indexing and health checks for the catalogue collections.
"""

from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure

logger = structlog.get_logger(__name__)


class CatalogDatabase:
    """
    Async MongoDB manager for the author, book and user collections.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        authors_collection: str = "authors",
        books_collection: str = "books",
        users_collection: str = "users"
    ):
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_names = {
            "authors": authors_collection,
            "books": books_collection,
            "users": users_collection,
        }
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    @property
    def authors(self) -> AsyncIOMotorCollection:
        return self.database[self.collection_names["authors"]]

    @property
    def books(self) -> AsyncIOMotorCollection:
        return self.database[self.collection_names["books"]]

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.database[self.collection_names["users"]]

    async def connect(self) -> None:
        """Establish connection to MongoDB and make sure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """
        Create unique indexes backing the uniqueness rules, plus indexes for
        the filter and sort fields the query builder allows.
        """
        await self.books.create_index("title", unique=True)
        await self.books.create_index("genre")
        await self.books.create_index("price")
        await self.books.create_index("author")
        await self.books.create_index("published_date")
        await self.books.create_index([("genre", 1), ("price", 1)])

        await self.authors.create_index("name")
        await self.authors.create_index("nationality")
        await self.authors.create_index("created_at")

        await self.users.create_index("username", unique=True)
        await self.users.create_index("email", unique=True)

        logger.info("Successfully created MongoDB indexes")

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status and collection counts
        """
        try:
            await self.database.command("ping")
            return {
                "status": "healthy",
                "authors_count": await self.authors.count_documents({}),
                "books_count": await self.books.count_documents({}),
                "users_count": await self.users.count_documents({}),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
