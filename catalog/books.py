"""
Book operations, including the author reference checks and rollups.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError

from catalog.aggregation import AggregationPipeline
from catalog.change_detector import ChangeDetector
from catalog.errors import ConflictError, InvalidReferenceError, NotFoundError
from catalog.models import AggregationResult, Page, serialize_document, to_object_id, to_storage_datetime
from catalog.paginator import paginate
from catalog.query_builder import BOOK_QUERY, build_query

logger = structlog.get_logger(__name__)

BOOK_FIELDS = ("title", "genre", "price", "published_date", "available", "author")
AUTHOR_SUMMARY = {"name": 1, "nationality": 1}


class BookService:
    """Book resource backed by the books collection."""

    def __init__(self, books: AsyncIOMotorCollection, authors: AsyncIOMotorCollection):
        self.books = books
        self.authors = authors
        self.detector = ChangeDetector(books, "Book", BOOK_FIELDS, reference_fields=("author",))
        self.pipeline = AggregationPipeline(books, authors)

    async def _require_author(self, author_id: Any) -> ObjectId:
        oid = to_object_id(author_id, field="author")
        if not await self.authors.count_documents({"_id": oid}, limit=1):
            raise InvalidReferenceError("Author not found", field="author", id=str(oid))
        return oid

    async def _prepare(self, data: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(data)
        if document.get("author") is not None:
            document["author"] = await self._require_author(document["author"])
        if "published_date" in document:
            document["published_date"] = to_storage_datetime(document["published_date"])
        return document

    async def _attach_authors(self, books: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Replace each book's author reference with a name/nationality summary."""
        author_ids = list({book["author"] for book in books if book.get("author") is not None})
        authors = {}
        if author_ids:
            cursor = self.authors.find({"_id": {"$in": author_ids}}, AUTHOR_SUMMARY)
            authors = {author["_id"]: author for author in await cursor.to_list(length=None)}

        for book in books:
            book["author"] = authors.get(book.get("author"))
        return books

    async def create_book(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a book after checking its author exists and its title is free.

        Raises:
            InvalidReferenceError: If the author does not exist
            ConflictError: If a book with the same title exists
        """
        document = await self._prepare(data)

        if await self.books.find_one({"title": document["title"]}, {"_id": 1}) is not None:
            raise ConflictError("Book already exists", title=document["title"])

        now = datetime.utcnow()
        document.update(version=0, created_at=now, updated_at=now)

        try:
            result = await self.books.insert_one(document)
        except DuplicateKeyError as e:
            raise ConflictError("Book already exists", title=document["title"]) from e

        document["_id"] = result.inserted_id
        logger.info("Book created", id=str(result.inserted_id), title=document["title"])
        return serialize_document(document)

    async def list_books(self, params: Mapping[str, Any]) -> Page:
        """Filtered, sorted and paginated books with author summaries."""
        page = await paginate(self.books, build_query(params, BOOK_QUERY))
        books = await self._attach_authors(page.items)
        return page.model_copy(update={"items": [serialize_document(book) for book in books]})

    async def get_book(self, book_id: str) -> Dict[str, Any]:
        oid = to_object_id(book_id)
        book = await self.books.find_one({"_id": oid})
        if book is None:
            raise NotFoundError("Book not found", id=book_id)

        await self._attach_authors([book])
        return serialize_document(book)

    async def update_book(self, book_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(book_id)
        document = await self.detector.update(oid, await self._prepare(changes))
        return serialize_document(document)

    async def replace_book(self, book_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        oid = to_object_id(book_id)
        document = await self.detector.replace(oid, await self._prepare(data))
        return serialize_document(document)

    async def delete_book(self, book_id: str) -> Dict[str, Any]:
        oid = to_object_id(book_id)
        deleted = await self.books.find_one_and_delete({"_id": oid})
        if deleted is None:
            raise NotFoundError("Book not found", id=book_id)

        logger.info("Book deleted", id=book_id)
        return {
            "message": f"Book with ID {book_id} successfully deleted",
            "deleted": serialize_document(deleted),
        }

    async def aggregate(self) -> AggregationResult:
        return await self.pipeline.run()
